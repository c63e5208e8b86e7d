import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from .models import ParseFailure, ParseResult, ParseSuccess, Side, TradeSignal
from .utils import format_number, parse_number, snippet

log = logging.getLogger(__name__)

# число: либо с разделителями тысяч (95,093.5), либо обычное (142.4)
NUM = r"(?:\d{1,3}(?:,\d{3})+(?!\d)(?:\.\d+)?|\d+(?:\.\d+)?)"
# разделитель между меткой и значением: "Entry: ", "SL - ", "@ ", "TP=$"
SEP = r"[\s:=\-–$@]*"
# необязательный номер цели: tp1, "Target 2:"
IDX = r"(?:\d+|\s+\d+(?=\s*[:.)]))?"

QUOTE_SUFFIX = "USDT"

# --- Tier 1: заголовок + размеченные строки ---
RE_HEADER      = re.compile(r"^([A-Z]{2,10})\s+(LONG|SHORT)\b", re.IGNORECASE)
RE_LEV_LINE    = re.compile(r"leverage", re.IGNORECASE)
RE_ENTRY_LINE  = re.compile(r"entry", re.IGNORECASE)
RE_STOP_LINE   = re.compile(r"stop\s*loss", re.IGNORECASE)
RE_TAKE_LINE   = re.compile(r"take\s*profit", re.IGNORECASE)
RE_FIRST_INT   = re.compile(r"(\d+)")
RE_ENTRY       = re.compile(r"entry" + SEP + "(" + NUM + ")", re.IGNORECASE)
RE_STOP        = re.compile(r"stop\s*loss" + SEP + "(" + NUM + ")", re.IGNORECASE)
RE_TAKE_RANGE  = re.compile(r"take\s*profit" + SEP + "(" + NUM + r")\s*[-–]\s*(" + NUM + ")", re.IGNORECASE)
RE_TAKE        = re.compile(r"take\s*profit" + SEP + "(" + NUM + ")", re.IGNORECASE)

# --- Tier 2: свободный формат ---
RE_G_SYMBOL    = re.compile(r"\b([A-Z]{2,10})(USDT|USD|PERP)?\b")
RE_G_SIDE      = re.compile(r"\b(LONG|SHORT|BUY|SELL)\b", re.IGNORECASE)
RE_G_ENTRY     = re.compile(r"(?:\bentry|@|\bprice|\benter)" + SEP + "(" + NUM + ")", re.IGNORECASE)
RE_G_TAKE      = re.compile(
    r"(?:\btp|\btake\s*profit|\btarget)" + IDX + SEP + "(" + NUM + r"(?:\s*[,/;\-–]\s*" + NUM + ")*)",
    re.IGNORECASE,
)
RE_G_STOP      = re.compile(r"(?:\bsl|\bstop\s*loss|\bstop)" + SEP + "(" + NUM + ")", re.IGNORECASE)
RE_G_LEV       = re.compile(r"\b(?:leverage|lev)" + SEP + r"x?(\d+)", re.IGNORECASE)
RE_NUM         = re.compile(NUM)


@dataclass
class _Fields:
    symbol: Optional[str] = None
    side: Optional[Side] = None
    entry: Optional[float] = None
    stop: Optional[float] = None
    takes: list[float] = field(default_factory=list)
    leverage: Optional[int] = None

    def missing(self) -> tuple[str, ...]:
        out = []
        if not self.symbol or self.side is None:
            out.append("symbol/side")
        if self.entry is None:
            out.append("entry")
        if not self.takes:
            out.append("take_profit")
        if self.stop is None:
            out.append("stop_loss")
        return tuple(out)


# ---------- field rules ----------

def _positive(token: str | None) -> float | None:
    value = parse_number(token)
    if value is None or value <= 0:
        return None
    return value


def _first_value(rx: re.Pattern, text: str | None) -> float | None:
    if not text:
        return None
    m = rx.search(text)
    return _positive(m.group(1)) if m else None


def _find_line(lines: list[str], anchor: re.Pattern) -> str | None:
    return next((ln for ln in lines if anchor.search(ln)), None)


def normalize_symbol(raw: str) -> str:
    """'sol' → 'SOLUSDT', 'BTCPERP' → 'BTCUSDT', 'ETHUSDT' остаётся как есть."""
    s = raw.upper()
    if s.endswith(QUOTE_SUFFIX):
        return s
    for marker in ("PERP", "USD"):
        if s.endswith(marker) and len(s) - len(marker) >= 2:
            s = s[: -len(marker)]
            break
    return s + QUOTE_SUFFIX


def side_from_word(word: str) -> Side:
    return Side.LONG if word.upper() in {"LONG", "BUY"} else Side.SHORT


def extract_header(line: str) -> tuple[str, Side] | None:
    m = RE_HEADER.match(line.strip())
    if not m:
        return None
    return normalize_symbol(m.group(1)), side_from_word(m.group(2))


def extract_leverage_line(line: str | None) -> int | None:
    # "Leverage: 10-25x" → 10 (нижняя граница)
    if not line:
        return None
    m = RE_FIRST_INT.search(line)
    if not m:
        return None
    lev = int(m.group(1))
    return lev if lev > 0 else None


def extract_take_line(line: str | None) -> list[float]:
    if not line:
        return []
    m = RE_TAKE_RANGE.search(line)
    if m:
        return [v for v in (_positive(m.group(1)), _positive(m.group(2))) if v is not None]
    value = _first_value(RE_TAKE, line)
    return [value] if value is not None else []


def extract_generic_takes(text: str) -> list[float]:
    takes: list[float] = []
    for m in RE_G_TAKE.finditer(text):
        for token in RE_NUM.findall(m.group(1)):
            value = _positive(token)
            if value is not None and value not in takes:
                takes.append(value)
    return takes


def extract_generic_leverage(text: str) -> int | None:
    m = RE_G_LEV.search(text)
    if not m:
        return None
    lev = int(m.group(1))
    return lev if lev > 0 else None


# ---------- tiers ----------

def _parse_structured(text: str) -> _Fields | None:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    if not lines:
        return None
    header = extract_header(lines[0])
    if header is None:
        log.debug("[PARSE] no symbol/side header: '%s'", snippet(lines[0]))
        return None

    f = _Fields(symbol=header[0], side=header[1])
    f.leverage = extract_leverage_line(_find_line(lines, RE_LEV_LINE))
    f.entry = _first_value(RE_ENTRY, _find_line(lines, RE_ENTRY_LINE))
    f.stop = _first_value(RE_STOP, _find_line(lines, RE_STOP_LINE))
    f.takes = extract_take_line(_find_line(lines, RE_TAKE_LINE))
    return f


def _parse_generic(text: str) -> _Fields:
    f = _Fields()

    m_sym = RE_G_SYMBOL.search(text.upper())
    if m_sym:
        f.symbol = normalize_symbol(m_sym.group(1) + (m_sym.group(2) or ""))

    m_side = RE_G_SIDE.search(text)
    if m_side:
        f.side = side_from_word(m_side.group(1))

    f.entry = _first_value(RE_G_ENTRY, text)
    f.takes = extract_generic_takes(text)
    f.stop = _first_value(RE_G_STOP, text)
    f.leverage = extract_generic_leverage(text)
    return f


def _to_signal(f: _Fields, raw: str) -> TradeSignal:
    takes = sorted(f.takes, reverse=f.side is Side.SHORT)
    return TradeSignal(
        symbol=f.symbol,
        side=f.side,
        entry_price=f.entry,
        take_profits=tuple(takes),
        stop_loss=f.stop,
        leverage=f.leverage,
        raw=raw,
    )


def parse_signal(text: str | None) -> ParseResult:
    """
    Текст → ParseSuccess | ParseFailure. Сначала размеченный формат,
    при неполном результате свободный. Исключений наружу не бросает.
    """
    if not text or not text.strip():
        return ParseFailure("empty message", ("symbol/side", "entry", "take_profit", "stop_loss"))

    structured = _parse_structured(text)
    if structured is not None and not structured.missing():
        return ParseSuccess(_to_signal(structured, text), "structured")
    if structured is not None:
        log.debug("[PARSE] structured incomplete (%s), trying generic", ", ".join(structured.missing()))

    generic = _parse_generic(text)
    missing = generic.missing()
    if missing:
        log.info("[SKIP] not a trade signal, missing: %s ('%s')", ", ".join(missing), snippet(text))
        return ParseFailure("missing " + ", ".join(missing), missing)
    return ParseSuccess(_to_signal(generic, text), "generic")


def format_signal(sig: TradeSignal) -> str:
    arrow = "📉" if sig.is_short else "📈"
    tps = " | ".join(f"TP{i}: {format_number(tp)}" for i, tp in enumerate(sig.take_profits, start=1))
    lines = [
        f"{arrow} {sig.symbol} {sig.side.value}",
        "",
        f"📍 Entry: {format_number(sig.entry_price)}",
        f"🎯 {tps}",
        f"🛑 SL: {format_number(sig.stop_loss)}",
    ]
    if sig.leverage:
        lines.append(f"⚡ Leverage: {sig.leverage}x")
    return "\n".join(lines)
