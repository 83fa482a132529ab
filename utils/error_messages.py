"""
Seller-facing error reasons in English and Chichewa.

Usage:
    from utils.error_messages import get_error_message

    reason = get_error_message("INVALID_PRICE", "ny")
"""

SUPPORTED_LANGUAGES = ("en", "ny")

ERROR_CODES = (
    "MISSING_PRICE",
    "INVALID_PRICE",
    "INVALID_STOCK",
    "MISSING_PRODUCT_NAME",
    "DUPLICATE_PRODUCT",
    "DUPLICATE_SKU",
    "INVALID_SKU",
    "MISSING_TECH_SPECS",
    "INVALID_CATEGORY",
    "INVALID_CONDITION",
    "INVALID_JSON_FORMAT",
    "FILE_PARSE_ERROR",
    "UNKNOWN_ERROR",
    "SYSTEM_ERROR",
)

MESSAGES = {
    "en": {
        "MISSING_PRICE": "Base price is required",
        "INVALID_PRICE": "Price must be a positive number",
        "INVALID_STOCK": "Stock quantity must be a non-negative number",
        "MISSING_PRODUCT_NAME": "Product name is required",
        "DUPLICATE_PRODUCT": "This product already exists in your shop",
        "DUPLICATE_SKU": "This SKU already exists in your shop",
        "INVALID_SKU": "SKU format is invalid",
        "MISSING_TECH_SPECS": "Missing required specs for tech item",
        "INVALID_CATEGORY": "Category not found in our catalog",
        "INVALID_CONDITION": "Invalid product condition",
        "INVALID_JSON_FORMAT": "Invalid JSON format in specs column",
        "FILE_PARSE_ERROR": "Could not read the uploaded file",
        "UNKNOWN_ERROR": "An unknown error occurred",
        "SYSTEM_ERROR": "A system error occurred. Please try again.",

        # Spec summaries
        "missing_specs": "Missing specs: {specs}",
        "missing_required_specs": "Missing required specs: {specs}",
    },
    "ny": {
        "MISSING_PRICE": "Mtengo woyambira ndi wofunikira",
        "INVALID_PRICE": "Mtengo uyenera kukhala nambala yabwino",
        "INVALID_STOCK": "Kuchuluka kwa katundu kuyenera kukhala nambala yosachepera zero",
        "MISSING_PRODUCT_NAME": "Dzina la katundu ndilofunikira",
        "DUPLICATE_PRODUCT": "Katundu ameneyu alipo kale m'sitolo yanu",
        "DUPLICATE_SKU": "SKU imeneyi ilipo kale m'sitolo yanu",
        "INVALID_SKU": "SKU ili ndi mavuto",
        "MISSING_TECH_SPECS": "Chonde lembani mndandanda wa katunduyu",
        "INVALID_CATEGORY": "Gulu silinapezekedwe mu katalogi yathu",
        "INVALID_CONDITION": "Mkhalidwe wa katundu ndi wolakwika",
        "INVALID_JSON_FORMAT": "JSON mu kolamu ya specs ili ndi mavuto",
        "FILE_PARSE_ERROR": "Sitingathe kuwerenga fayilo yomwe mwatumiza",
        "UNKNOWN_ERROR": "Vuto losadziwika linachitika",
        "SYSTEM_ERROR": "Vuto la sisitemu linachitika. Chonde yesaninso.",

        "missing_specs": "Kulibe: {specs}",
        "missing_required_specs": "Kulibe zidziwitso zofunikira: {specs}",
    },
}


def get_error_message(key: str, lang: str = "en", **kwargs) -> str:
    """
    Get a localized error reason, falling back to English.

    Args:
        key: Error code or summary template key
        lang: "en" or "ny"
        **kwargs: Format arguments for templates

    Returns:
        Formatted message string
    """
    lang_messages = MESSAGES.get(lang, MESSAGES["en"])
    template = lang_messages.get(key, MESSAGES["en"].get(key, key))
    if not kwargs:
        return template
    try:
        return template.format(**kwargs)
    except KeyError:
        return template
