"""Text normalisation for matching keys and cell comparison.

Every function here is pure and total: ``None``, NaN and non-string cells
are accepted and never raise.
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_WS_RE = re.compile(r"\s+")
_BRACKETS_RE = re.compile(r"[()\[\]{}]")
_KEY_DROP_RE = re.compile(r"[\s,.]")
_DIGITS_RE = re.compile(r"\D")

# Long-form province names and their short form. The first four are the
# forms seen in the Chungcheong exports; the rest extend the same rule to
# every other metropolitan city and province.
PROVINCE_ALIASES: dict[str, str] = {
    "충청남도": "충남",
    "충청북도": "충북",
    "대전광역시": "대전",
    "세종특별자치시": "세종",
    "서울특별시": "서울",
    "부산광역시": "부산",
    "대구광역시": "대구",
    "인천광역시": "인천",
    "광주광역시": "광주",
    "울산광역시": "울산",
    "경기도": "경기",
    "강원특별자치도": "강원",
    "강원도": "강원",
    "전북특별자치도": "전북",
    "전라북도": "전북",
    "전라남도": "전남",
    "경상북도": "경북",
    "경상남도": "경남",
    "제주특별자치도": "제주",
}

# Longest first so "강원특별자치도" never loses to a shorter prefix; a match
# must not follow another Hangul syllable.
_PROVINCE_RE = re.compile(
    r"(?<![가-힣])("
    + "|".join(re.escape(k) for k in sorted(PROVINCE_ALIASES, key=len, reverse=True))
    + ")"
)

_SELF_YES = {"y", "yes", "예", "셀프", "o", "true", "1"}
_SELF_NO = {"n", "no", "아니오", "일반", "x", "false", "0"}


def cell_text(value: Any) -> str:
    """Render a raw cell as trimmed text; whole floats lose their ``.0``."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def collapse_whitespace(value: Any) -> str:
    return _WS_RE.sub(" ", cell_text(value)).strip()


def normalize(raw: Any) -> str:
    """Return the matching key for an address.

    Steps, in order: collapse whitespace, unwrap bracketed notation while
    keeping its content, shorten long province names, then drop spaces and
    the ``,``/``.`` separators.

    >>> normalize("충청남도 천안시 (신부동) 12-3")
    '충남천안시신부동12-3'
    """
    text = collapse_whitespace(raw)
    text = _BRACKETS_RE.sub(" ", text)
    text = _PROVINCE_RE.sub(lambda m: PROVINCE_ALIASES[m.group(1)], text)
    return _KEY_DROP_RE.sub("", text).strip()


def canon_header(value: Any) -> str:
    """Header labels compare with all whitespace removed."""
    return _WS_RE.sub("", cell_text(value))


def normalize_phone(value: Any) -> str:
    return _DIGITS_RE.sub("", cell_text(value))


def parse_self_service(value: Any) -> bool | None:
    text = canon_header(value).lower()
    if text in _SELF_YES:
        return True
    if text in _SELF_NO:
        return False
    return None


def parse_price(value: Any) -> int | None:
    """Parse a price cell. Blank and ``-`` mean absent; values round half up."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        number = Decimal(repr(value))
    else:
        text = cell_text(value).replace(",", "")
        if text in ("", "-"):
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
        if not number.is_finite():
            return None
    return int(number.quantize(Decimal(1), rounding=ROUND_HALF_UP))
