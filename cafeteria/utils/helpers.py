"""
General helper utilities
"""
import re
import unicodedata
from datetime import date, timedelta
from typing import Iterator, Optional

_YMD_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_ymd(value: Optional[str]) -> Optional[date]:
    """Parse a strict YYYY-MM-DD string, None when empty or invalid"""
    if not value or not isinstance(value, str):
        return None
    m = _YMD_RE.match(value.strip())
    if not m:
        return None
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError:
        return None


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every day in [start, end]"""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_label(value) -> str:
    """Lowercase, accent-free, punctuation collapsed to single spaces"""
    if value is None:
        return ""
    text = strip_accents(str(value)).lower()
    return re.sub(r"[^a-z0-9]+", " ", text).strip()


def clean_text(value) -> str:
    """Trim and collapse inner whitespace"""
    if value is None:
        return ""
    return re.sub(r"\s+", " ", str(value)).strip()


def title_case(value) -> str:
    """Accent-aware title casing: 'éLODIE  diop' -> 'Élodie Diop'"""
    text = clean_text(value).lower()
    return re.sub(r"[^\W\d_]+", lambda m: m.group(0)[0].upper() + m.group(0)[1:], text)


def cell_to_str(value) -> str:
    """Render a spreadsheet cell as text; integral floats lose their '.0'"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()
