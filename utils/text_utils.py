"""
Text utilities for product names and spec keys.

Used for duplicate detection and catalog matching, where
"Café Maker 2-in-1" and "cafe maker 2 - in - 1" must compare equal.
"""

import re
import unicodedata
from typing import Optional

KNOWN_BRANDS = [
    "apple", "samsung", "google", "huawei", "xiaomi", "oppo", "vivo",
    "sony", "lg", "hp", "dell", "lenovo", "asus", "acer", "msi",
    "microsoft", "logitech", "razer", "corsair", "kingston", "sandisk",
    "seagate", "western digital", "wd", "toshiba", "canon", "nikon",
    "jbl", "bose", "beats", "anker", "baseus", "ugreen", "tecno", "infinix",
    "itel", "nokia", "hisense", "tcl",
]

_WORD_RE = re.compile(r"[a-z0-9]+")


def strip_accents(text: str) -> str:
    """Drop combining marks after NFD decomposition ("Décor" -> "Decor")."""
    normalized = unicodedata.normalize("NFD", text)
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


def normalize_product_name(name: Optional[str]) -> str:
    """
    Normalize a product name for duplicate detection and matching.

    - "  Samsung  Galaxy S24 (Ultra) " -> "samsung galaxy s24 ultra"
    - "USB - C Cable" -> "usb-c cable"
    - "Crème Brûlée Torch" -> "creme brulee torch"

    Args:
        name: Raw product name

    Returns:
        Normalized name, or "" for blank input
    """
    if not name:
        return ""

    text = strip_accents(str(name)).lower().strip()
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"\s*-\s*", "-", text)
    return re.sub(r"\s+", " ", text).strip()


def normalize_spec_key(key: Optional[str]) -> str:
    """
    Normalize an attribute key: "Screen Size" -> "screen_size", "RAM" -> "ram".
    """
    if not key:
        return ""
    text = strip_accents(str(key)).lower()
    return re.sub(r"[^a-z0-9]+", "_", text).strip("_")


def significant_words(text: Optional[str], min_length: int = 3) -> list[str]:
    """Unique lower-case words longer than min_length, in order of appearance."""
    if not text:
        return []
    words = []
    for word in _WORD_RE.findall(strip_accents(text).lower()):
        if len(word) > min_length and word not in words:
            words.append(word)
    return words


def extract_brand(name: Optional[str]) -> Optional[str]:
    """
    Guess the brand from a product name using the known brand list.

    Returns:
        Title-cased brand ("Samsung"), or None
    """
    if not name:
        return None

    lower_name = f" {strip_accents(name).lower()} "
    for brand in KNOWN_BRANDS:
        if re.search(rf"(?<![a-z0-9]){re.escape(brand)}(?![a-z0-9])", lower_name):
            return brand.title() if len(brand) > 3 else brand.upper()
    return None


def trigrams(text: str) -> set[str]:
    """3-character shingles with two leading and one trailing pad space."""
    padded = f"  {text.lower()} "
    return {padded[i:i + 3] for i in range(len(padded) - 2)}


def trigram_similarity(a: Optional[str], b: Optional[str]) -> float:
    """
    Jaccard similarity of trigram sets, in [0, 1].

    Mirrors PostgreSQL pg_trgm closely enough for ranking when the
    database function is unavailable.
    """
    if not a or not b:
        return 0.0
    if a.lower() == b.lower():
        return 1.0

    set_a = trigrams(a)
    set_b = trigrams(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)
