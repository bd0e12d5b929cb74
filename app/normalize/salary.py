from __future__ import annotations

import re
from typing import Iterable

from app.core.config.methodology import Methodology, get_methodology
from app.reference import get_reference_data
from app.schemas.salary import SalaryFigure

from .utils import contains_any, normalize_key, normalize_line

_DOLLAR_CURRENCIES = frozenset({"USD", "CAD", "AUD", "NZD", "SGD", "HKD", "MXN", "TWD"})

# Longest tokens first so "C$" wins over "$".
_SYMBOLS: tuple[tuple[str, str], ...] = (
    ("US$", "USD"),
    ("CA$", "CAD"),
    ("AU$", "AUD"),
    ("NZ$", "NZD"),
    ("HK$", "HKD"),
    ("NT$", "TWD"),
    ("C$", "CAD"),
    ("A$", "AUD"),
    ("S$", "SGD"),
    ("R$", "BRL"),
    ("Rs.", "INR"),
    ("Rs", "INR"),
    ("zł", "PLN"),
    ("₹", "INR"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
    ("₩", "KRW"),
    ("₺", "TRY"),
    ("₱", "PHP"),
    ("₦", "NGN"),
    ("₪", "ILS"),
    ("$", "USD"),
)
_WORD_SYMBOLS = {"Rs.", "Rs", "zł"}

_MULTIPLIERS = {
    "k": 1_000.0,
    "m": 1_000_000.0,
    "mm": 1_000_000.0,
    "mn": 1_000_000.0,
    "l": 100_000.0,
    "lakh": 100_000.0,
    "lakhs": 100_000.0,
    "lac": 100_000.0,
    "lacs": 100_000.0,
    "lpa": 100_000.0,
    "cr": 10_000_000.0,
    "crore": 10_000_000.0,
    "crores": 10_000_000.0,
}
_SUFFIX = r"(?:k|mm|mn|m|lakhs?|lacs?|lpa|l|crores?|cr)"
_NUMBER = r"\d[\d.,]*"
_RANGE_RE = re.compile(
    rf"(?P<a>{_NUMBER})\s*(?P<sa>{_SUFFIX})?(?![a-z])\s*(?:-|–|—|to|until|bis)\s*(?P<b>{_NUMBER})\s*(?P<sb>{_SUFFIX})?(?![a-z])",
    re.IGNORECASE,
)
_SINGLE_RE = re.compile(rf"(?P<a>{_NUMBER})\s*(?P<sa>{_SUFFIX})?(?![a-z])", re.IGNORECASE)

_THOUSANDS_COMMA_RE = re.compile(r"^\d{1,3}(,\d{3})+$")
_INDIAN_COMMA_RE = re.compile(r"^\d{1,2}(,\d{2})+,\d{3}$")
_THOUSANDS_DOT_RE = re.compile(r"^\d{1,3}(\.\d{3})+$")

_PERIOD_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("hour", re.compile(r"(/\s*h(?:ou)?r\b|/\s*h\b|\bper\s+hour\b|\bhourly\b|\ban\s+hour\b|\bp/?h\b)", re.IGNORECASE)),
    ("day", re.compile(r"(/\s*day\b|\bper\s+day\b|\bdaily\b|\ba\s+day\b|\bper\s+diem\b|\bday\s+rate\b)", re.IGNORECASE)),
    ("month", re.compile(r"(/\s*mo(?:nth)?\b|\bper\s+month\b|\bmonthly\b|\ba\s+month\b|\bp/?m\b|\bpcm\b)", re.IGNORECASE)),
    ("year", re.compile(r"(/\s*y(?:ea)?r\b|\bper\s+(?:year|annum)\b|\bannual(?:ly)?\b|\byearly\b|\bp\.?a\.?(?![a-z])|\blpa\b)", re.IGNORECASE)),
)
_NET_RE = re.compile(r"\b(net|after[\s-]+tax(?:es)?|take[\s-]+home)\b", re.IGNORECASE)

_BLOCKLIST = (
    "competitive",
    "negotiable",
    "doe",
    "depending on experience",
    "dependent on experience",
    "commensurate",
    "tbd",
    "tba",
    "market rate",
    "not specified",
    "unpaid",
)


def _parse_number(raw: str) -> float | None:
    text = raw.strip().rstrip(".,")
    if not text:
        return None
    if "," in text and "." in text:
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if _THOUSANDS_COMMA_RE.match(text) or _INDIAN_COMMA_RE.match(text):
            text = text.replace(",", "")
        else:
            text = text.replace(",", ".")
    elif "." in text and _THOUSANDS_DOT_RE.match(text):
        text = text.replace(".", "")
    try:
        return float(text)
    except ValueError:
        return None


def _multiplier(suffix: str | None) -> float:
    if not suffix:
        return 1.0
    return _MULTIPLIERS.get(suffix.lower(), 1.0)


def detect_currency(text: str, known_codes: Iterable[str], hint: str | None = None) -> tuple[str | None, str]:
    """Return the currency named in the text (or None) and the text with currency markers removed."""
    codes = sorted({code.upper() for code in known_codes}, key=len, reverse=True)
    if codes:
        code_re = re.compile(r"(?<![A-Za-z])(" + "|".join(re.escape(code) for code in codes) + r")(?![A-Za-z])")
        match = code_re.search(text)
        if match:
            return match.group(1).upper(), code_re.sub(" ", text)

    for symbol, code in _SYMBOLS:
        if symbol in _WORD_SYMBOLS:
            pattern = re.compile(rf"(?<![A-Za-z]){re.escape(symbol)}(?![A-Za-z])")
            if not pattern.search(text):
                continue
            stripped = pattern.sub(" ", text)
        else:
            if symbol not in text:
                continue
            stripped = text
            for other, _ in _SYMBOLS:
                if other not in _WORD_SYMBOLS:
                    stripped = stripped.replace(other, " ")
        if code == "USD" and symbol == "$" and hint in _DOLLAR_CURRENCIES:
            return hint, stripped
        return code, stripped
    return None, text


def detect_period(text: str) -> str:
    for period, pattern in _PERIOD_PATTERNS:
        if pattern.search(text):
            return period
    return "year"


def data_quality_for_range(minimum: float, maximum: float, methodology: Methodology) -> float:
    midpoint = (minimum + maximum) / 2
    if midpoint <= 0:
        return methodology.data_quality_default
    range_percent = (maximum - minimum) / midpoint * 100
    for threshold, quality in methodology.data_quality_buckets:
        if range_percent > threshold:
            return quality
    return methodology.data_quality_default


def _magnitudes(text: str) -> tuple[float, float] | None:
    match = _RANGE_RE.search(text)
    if match:
        first = _parse_number(match.group("a"))
        second = _parse_number(match.group("b"))
        if first is not None and second is not None:
            first_suffix, second_suffix = match.group("sa"), match.group("sb")
            if first_suffix is None and second_suffix is not None and first <= second:
                first_suffix = second_suffix
            return first * _multiplier(first_suffix), second * _multiplier(second_suffix)

    match = _SINGLE_RE.search(text)
    if match:
        value = _parse_number(match.group("a"))
        if value is not None:
            amount = value * _multiplier(match.group("sa"))
            return amount, amount
    return None


class SalaryParser:
    def __init__(self, currency_codes: Iterable[str], methodology: Methodology) -> None:
        self._codes = tuple(sorted({code.upper() for code in currency_codes}))
        self._methodology = methodology

    def parse(self, raw: str | None, currency_hint: str | None = None) -> SalaryFigure | None:
        text = normalize_line(raw or "")
        if not text:
            return None

        if contains_any(normalize_key(text), _BLOCKLIST):
            return None

        currency, stripped = detect_currency(text, self._codes, currency_hint)

        amounts = _magnitudes(stripped)
        if amounts is None:
            return None
        minimum, maximum = amounts
        if minimum <= 0 and maximum <= 0:
            return None
        if minimum > maximum:
            minimum, maximum = maximum, minimum

        inference_basis = None
        if currency is None:
            currency = currency_hint or "USD"
            inference_basis = f"currency not stated; assumed {currency}"

        return SalaryFigure(
            min=round(minimum, 2),
            max=round(maximum, 2),
            currency=currency,
            period=detect_period(text),
            basis="net" if _NET_RE.search(text) else "gross",
            data_quality=data_quality_for_range(minimum, maximum, self._methodology),
            inference_basis=inference_basis,
        )


def parse_salary(raw: str | None, currency_hint: str | None = None) -> SalaryFigure | None:
    parser = SalaryParser(get_reference_data().fx.usd_per_unit.keys(), get_methodology())
    return parser.parse(raw, currency_hint)
