"""
Upload row parsers.
"""

from parsers.row_parser import (
    ElectronicsRow,
    GeneralRow,
    UnrecognizedRow,
    RawRow,
    ParsedRow,
    RowParseResult,
    BASE_COLUMNS,
    classify_raw_row,
    parse_row,
    parse_rows,
    records_from_dataframe,
)

__all__ = [
    "ElectronicsRow",
    "GeneralRow",
    "UnrecognizedRow",
    "RawRow",
    "ParsedRow",
    "RowParseResult",
    "BASE_COLUMNS",
    "classify_raw_row",
    "parse_row",
    "parse_rows",
    "records_from_dataframe",
]
