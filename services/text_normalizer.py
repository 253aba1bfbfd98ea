"""
Text helpers shared by the ingestion pipeline, the classifier client and the
allergen conflict matcher.
"""
import re
import unicodedata
from typing import Iterable, Optional

MAX_TEXT_LENGTH = 255
ELLIPSIS = "..."

# Frequent words of German ingredient lists
GERMAN_KEYWORDS = (
    "zucker", "wasser", "salz", "öl", "mehl", "butter", "milch", "eier",
    "weizenmehl", "vollmilch", "palmöl", "sonnenblumenöl", "glukose", "fruktose",
    "maltodextrin", "lecithin", "vanillin", "aroma", "zitronensäure",
    "ascorbinsäure", "natriumchlorid", "kalzium", "vitamin",
    "konservierungsstoff", "farbstoff", "emulgator", "stabilisator",
    "antioxidationsmittel", "säureregulator",
)
LANGUAGE_HIT_THRESHOLD = 2

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_UPC_SEPARATORS_RE = re.compile(r"[\s\-]")
_UPC_RE = re.compile(r"^\d{8,14}$")


def _strip_control_characters(value: str) -> str:
    cleaned = []
    for char in value:
        if char in "\t\n\r":
            cleaned.append(" ")
        elif unicodedata.category(char) in ("Cc", "Cf"):
            continue
        else:
            cleaned.append(char)
    return "".join(cleaned)


def normalize_text(value: Optional[str], max_length: int = MAX_TEXT_LENGTH) -> str:
    """
    Strip markup tags and control characters, collapse whitespace and trim.
    Results longer than `max_length` are cut and end with "...".
    """
    if not value:
        return ""
    value = _TAG_RE.sub(" ", str(value))
    value = _strip_control_characters(value)
    value = _WHITESPACE_RE.sub(" ", value).strip()
    if len(value) > max_length:
        value = value[:max_length - len(ELLIPSIS)] + ELLIPSIS
    return value


def clean_product_name(name: Optional[str]) -> str:
    return normalize_text(name)


def looks_like_target_language(text: Optional[str], keywords: Iterable[str] = GERMAN_KEYWORDS,
                               threshold: int = LANGUAGE_HIT_THRESHOLD) -> bool:
    """
    True when at least `threshold` distinct vocabulary words occur anywhere in
    the text. Longer words are matched first and blanked out, so "weizenmehl"
    is one hit, not two.
    """
    if not text:
        return False
    remaining = text.lower()
    hits = 0
    for keyword in sorted(set(keywords), key=len, reverse=True):
        if keyword in remaining:
            hits += 1
            if hits >= threshold:
                return True
            remaining = remaining.replace(keyword, " ")
    return False


def normalize_allergen_term(term: Optional[str]) -> str:
    if not term:
        return ""
    return _WHITESPACE_RE.sub(" ", term).strip().lower()


def normalize_upc(value) -> Optional[str]:
    """Digits-only UPC/EAN with 8 to 14 digits, or None."""
    if value is None:
        return None
    digits = _UPC_SEPARATORS_RE.sub("", str(value))
    if not _UPC_RE.match(digits):
        return None
    return digits
