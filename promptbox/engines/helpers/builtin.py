"""
Built-in helpers, merged into every helper table unless disabled.

Trusted host functions: dates, strings, colors and element lookups used by
the prompt templates. Date helpers accept ``date``/``datetime`` objects or
ISO-8601 strings and return "" / None instead of raising on bad input.
"""

import re
from collections.abc import Callable
from datetime import date, datetime
from types import MappingProxyType
from typing import Any

_WEEKDAYS_ZH = ("星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日")

_DATE_TOKENS = re.compile(r"YYYY|MM|DD|HH|mm|ss|M|D|H|m|s")
_TIME_RE = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
_THOUSANDS = re.compile(r"(\d)(?=(\d{3})+(?!\d))")
_WORD_START = re.compile(r"\b\w")


def _to_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("/", "-")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _naive(d: datetime) -> datetime:
    return d.astimezone().replace(tzinfo=None) if d.tzinfo else d


# Dates


def day_of_week(value: Any) -> str:
    d = _to_datetime(value)
    if d is None:
        return ""
    return _WEEKDAYS_ZH[d.weekday()]


def format_date(value: Any, fmt: str = "YYYY-MM-DD") -> str:
    """Format *value* as ``long``, ``short`` or a token pattern (YYYY, MM, DD, HH, mm, ss, M, D, H, m, s)."""
    d = _to_datetime(value)
    if d is None:
        return ""
    if fmt == "long":
        return f"{d.year}年{d.month}月{d.day}日 {d.hour:02d}:{d.minute:02d}"
    if fmt == "short":
        return f"{d.year}/{d.month}/{d.day}"
    tokens = {
        "YYYY": str(d.year),
        "MM": f"{d.month:02d}",
        "DD": f"{d.day:02d}",
        "HH": f"{d.hour:02d}",
        "mm": f"{d.minute:02d}",
        "ss": f"{d.second:02d}",
        "M": str(d.month),
        "D": str(d.day),
        "H": str(d.hour),
        "m": str(d.minute),
        "s": str(d.second),
    }
    return _DATE_TOKENS.sub(lambda m: tokens[m.group(0)], fmt)


def calculate_age(value: Any, *, today: date | None = None) -> int | None:
    d = _to_datetime(value)
    if d is None:
        return None
    now = today or date.today()
    age = now.year - d.year
    if (now.month, now.day) < (d.month, d.day):
        age -= 1
    return age


def is_future_date(value: Any) -> bool:
    d = _to_datetime(value)
    if d is None:
        return False
    return _naive(d) > datetime.now()


def is_valid_date(value: Any) -> bool:
    return _to_datetime(value) is not None


def is_valid_time(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    return _TIME_RE.match(value) is not None


# Strings


def capitalize(value: Any) -> str:
    """Upper-case the first letter of each word."""
    if not value:
        return ""
    return _WORD_START.sub(lambda m: m.group(0).upper(), str(value))


def format_number(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    try:
        float(value)
    except (TypeError, ValueError):
        return ""
    text = str(value)
    whole, dot, frac = text.partition(".")
    return _THOUSANDS.sub(r"\1,", whole) + dot + frac


def truncate(value: Any, max_length: int = 50) -> str:
    if not value:
        return ""
    text = str(value)
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


# Colors


def _parse_hex(color: Any) -> tuple[int, int, int] | None:
    if not isinstance(color, str) or not color.startswith("#"):
        return None
    hex_part = color[1:]
    if len(hex_part) == 3:
        hex_part = "".join(ch * 2 for ch in hex_part)
    try:
        return int(hex_part[0:2], 16), int(hex_part[2:4], 16), int(hex_part[4:6], 16)
    except ValueError:
        return None


def _to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def get_complementary(color: Any) -> str:
    rgb = _parse_hex(color)
    if rgb is None:
        return "#000000"
    return _to_hex(*(255 - c for c in rgb))


def lighten_color(color: Any, percent: float = 30) -> str:
    """Interpolate towards white by *percent*, preserving hue."""
    rgb = _parse_hex(color)
    if rgb is None:
        return "#FFFFFF"
    ratio = percent / 100
    return _to_hex(*(min(255, round(c + (255 - c) * ratio)) for c in rgb))


def is_light_color(color: Any) -> bool:
    rgb = _parse_hex(color)
    if rgb is None:
        return True
    r, g, b = (c / 255 for c in rgb)
    return 0.2126 * r + 0.7152 * g + 0.0722 * b > 0.5


# Elements

_ZODIAC_ELEMENTS = {
    "aries": "fire", "leo": "fire", "sagittarius": "fire",
    "taurus": "earth", "virgo": "earth", "capricorn": "earth",
    "gemini": "air", "libra": "air", "aquarius": "air",
    "cancer": "water", "scorpio": "water", "pisces": "water",
}

_ELEMENT_COLORS = {
    "metal": "#FFD700",
    "wood": "#228B22",
    "water": "#1E90FF",
    "fire": "#FF4500",
    "earth": "#DEB887",
    "air": "#87CEEB",
}

_OPPOSITE_ELEMENTS = {
    "metal": "fire",
    "fire": "metal",
    "water": "earth",
    "earth": "water",
    "wood": "wood",
    "air": "earth",
}


def zodiac_to_element(sign: Any) -> str | None:
    if not isinstance(sign, str) or not sign:
        return None
    return _ZODIAC_ELEMENTS.get(sign.strip().lower())


def get_element_color(element: Any) -> str:
    if not isinstance(element, str) or not element:
        return "#CCCCCC"
    return _ELEMENT_COLORS.get(element.lower(), "#CCCCCC")


def get_opposite_element(element: Any) -> str | None:
    if not isinstance(element, str) or not element:
        return None
    return _OPPOSITE_ELEMENTS.get(element.lower())


BUILTIN_HELPERS: MappingProxyType[str, Callable[..., Any]] = MappingProxyType(
    {
        "day_of_week": day_of_week,
        "format_date": format_date,
        "calculate_age": calculate_age,
        "is_future_date": is_future_date,
        "capitalize": capitalize,
        "format_number": format_number,
        "truncate": truncate,
        "get_complementary": get_complementary,
        "lighten_color": lighten_color,
        "is_light_color": is_light_color,
        "zodiac_to_element": zodiac_to_element,
        "get_element_color": get_element_color,
        "get_opposite_element": get_opposite_element,
        "is_valid_date": is_valid_date,
        "is_valid_time": is_valid_time,
    }
)
