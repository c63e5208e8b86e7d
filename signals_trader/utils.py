from __future__ import annotations
import math
import re
from decimal import Decimal

__all__ = ["parse_number", "format_number", "first_line", "snippet"]


def parse_number(text: str | None) -> float | None:
    """
    Строка-число → float. Запятые считаются разделителями тысяч:
    '95,093' → 95093.0, '94,861.68' → 94861.68, '142.4' → 142.4.
    Мусор, NaN и бесконечности → None (поле считается отсутствующим).
    """
    if text is None:
        return None

    t = re.sub(r"\s+", "", str(text)).replace(",", "")
    if t in {"", ".", "-", "-."}:
        return None
    try:
        value = float(t)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def format_number(value: float) -> str:
    """Число без экспоненты и хвостовых нулей: 95093.0 → '95093', 1e-05 → '0.00001'."""
    d = Decimal(repr(float(value))).normalize()
    s = format(d, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    return s


def first_line(text: str | None, limit: int = 40) -> str:
    t = (text or "").strip()
    return t.splitlines()[0][:limit] if t else ""


def snippet(text: str | None, limit: int = 40) -> str:
    t = " ".join((text or "").split())
    return t if len(t) <= limit else t[: limit - 1] + "…"
