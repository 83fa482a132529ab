"""
Canonical forms for common tech spec values.

Every normalizer is idempotent: feeding its own output back in returns
the same string. Values that don't match a known shape are cleaned but
otherwise kept, so sellers never lose data.
"""

import re
from typing import Callable, Optional

from utils.text_utils import normalize_spec_key

_RESOLUTIONS = {
    "3840x2160": "4K",
    "2160p": "4K",
    "4k": "4K",
    "4k uhd": "4K UHD",
    "uhd": "4K UHD",
    "2560x1440": "1440p",
    "1440p": "1440p",
    "qhd": "1440p",
    "1920x1080": "1080p",
    "1080p": "1080p",
    "full hd": "1080p",
    "fhd": "1080p",
    "1280x720": "720p",
    "720p": "720p",
    "hd": "720p",
    "8k": "8K",
    "7680x4320": "8K",
}


def normalize_memory_size(value: str) -> str:
    """"8 gb" -> "8GB", "512mb" -> "512MB", "16" -> "16GB"."""
    cleaned = re.sub(r"\s+", "", str(value)).upper()
    match = re.fullmatch(r"(\d+)(GB|MB|TB)?", cleaned)
    if match:
        return f"{match.group(1)}{match.group(2) or 'GB'}"
    return cleaned


def normalize_storage_size(value: str) -> str:
    """"256 gb" -> "256GB", "1 tb" -> "1TB", "512gb ssd" -> "512GB SSD"."""
    cleaned = re.sub(r"\s+", "", str(value)).upper()
    match = re.fullmatch(r"(\d+)(GB|MB|TB)?(SSD|HDD|EMMC|UFS)?", cleaned)
    if match:
        size = f"{match.group(1)}{match.group(2) or 'GB'}"
        return f"{size} {match.group(3)}" if match.group(3) else size
    return cleaned


def normalize_screen_size(value: str) -> str:
    """"6.7 inches" -> '6.7"', "15.6 inch" -> '15.6"'."""
    cleaned = str(value).strip()
    match = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(inches|inch|in|\"|'')?", cleaned, re.IGNORECASE)
    if match:
        return f'{match.group(1)}"'
    return cleaned


def normalize_battery(value: str) -> str:
    """"5000 mah" -> "5000mAh"."""
    cleaned = re.sub(r"\s+", "", str(value))
    match = re.fullmatch(r"(\d+)(mah)?", cleaned, re.IGNORECASE)
    if match:
        return f"{match.group(1)}mAh"
    return cleaned


def normalize_megapixels(value: str) -> str:
    """"48 mp" -> "48MP", "12.2 megapixels" -> "12.2MP"."""
    cleaned = re.sub(r"\s+", "", str(value)).upper()
    match = re.fullmatch(r"(\d+(?:\.\d+)?)(MP|MEGAPIXELS?)?", cleaned)
    if match:
        return f"{match.group(1)}MP"
    return cleaned


def normalize_resolution(value: str) -> str:
    """"3840 x 2160" -> "4K", "full hd" -> "1080p", anything else upper-cased."""
    cleaned = re.sub(r"\s+", " ", str(value).strip().lower())
    cleaned = re.sub(r"\s*[x×]\s*", "x", cleaned)
    return _RESOLUTIONS.get(cleaned, str(value).strip().upper())


SPEC_NORMALIZERS: dict[str, Callable[[str], str]] = {
    "ram": normalize_memory_size,
    "memory": normalize_memory_size,
    "storage": normalize_storage_size,
    "screen_size": normalize_screen_size,
    "battery": normalize_battery,
    "megapixels": normalize_megapixels,
    "resolution": normalize_resolution,
}


def normalize_spec_value(key: str, value: Optional[str]) -> str:
    """Normalize one value using the normalizer registered for its key."""
    if value is None:
        return ""
    normalizer = SPEC_NORMALIZERS.get(normalize_spec_key(key))
    if normalizer:
        return normalizer(str(value))
    return str(value).strip()


def normalize_spec_values(values: Optional[dict]) -> dict[str, str]:
    """Normalize keys and values of an attribute map, dropping blanks."""
    normalized: dict[str, str] = {}
    if not values:
        return normalized

    for key, value in values.items():
        if value is None or not str(value).strip():
            continue
        normalized_key = normalize_spec_key(key)
        if not normalized_key:
            continue
        normalized[normalized_key] = normalize_spec_value(normalized_key, value)
    return normalized
