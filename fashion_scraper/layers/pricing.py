"""
Price parsing and currency inference.

A price is only produced when BOTH the amount and the currency resolve.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from fashion_scraper.models.product import Price, quantize_amount

KNOWN_CURRENCIES = {
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "NZD", "CHF", "SEK", "NOK", "DKK",
    "PLN", "CZK", "HUF", "INR", "CNY", "HKD", "SGD", "KRW", "TWD", "BRL", "MXN",
    "ZAR", "AED", "SAR", "TRY", "RUB", "ILS", "THB", "MYR", "IDR", "PHP", "VND",
}

# Longest symbols first so "A$" is not read as "$"
CURRENCY_SYMBOLS = [
    ("US$", "USD"), ("AU$", "AUD"), ("CA$", "CAD"), ("NZ$", "NZD"), ("HK$", "HKD"),
    ("A$", "AUD"), ("C$", "CAD"), ("S$", "SGD"), ("R$", "BRL"),
    ("zł", "PLN"), ("Kč", "CZK"),
    ("$", "USD"), ("€", "EUR"), ("£", "GBP"), ("¥", "JPY"), ("₹", "INR"),
    ("₩", "KRW"), ("₽", "RUB"), ("₺", "TRY"), ("₪", "ILS"), ("฿", "THB"),
]

LOCALE_REGION_CURRENCY = {
    "US": "USD", "GB": "GBP", "UK": "GBP", "IE": "EUR", "DE": "EUR", "FR": "EUR",
    "IT": "EUR", "ES": "EUR", "NL": "EUR", "BE": "EUR", "AT": "EUR", "FI": "EUR",
    "PT": "EUR", "GR": "EUR", "JP": "JPY", "IN": "INR", "AU": "AUD", "CA": "CAD",
    "CH": "CHF", "SE": "SEK", "DK": "DKK", "NO": "NOK", "CN": "CNY", "KR": "KRW",
    "HK": "HKD", "SG": "SGD", "NZ": "NZD", "BR": "BRL", "MX": "MXN", "PL": "PLN",
}

_ISO_CODE_RE = re.compile(r"\b([A-Z]{3})\b")
_NUMBER_RE = re.compile(
    r"\d{1,3}(?:[ .,'\u00a0\u202f]\d{3})+(?:[.,]\d{1,2})?(?!\d)|\d+(?:[.,]\d{1,2})?(?!\d)"
)
_NOW_RE = re.compile(r"\bnow\b", re.IGNORECASE)
_NOISE_RE = re.compile(r"\b(?:was|from|price|sale|regular|only)\b:?", re.IGNORECASE)


def normalize_currency(value: Any) -> Optional[str]:
    """Return a known ISO-4217 code for an explicit currency value."""
    if not isinstance(value, str):
        return None
    code = value.strip().upper()
    if code in KNOWN_CURRENCIES:
        return code
    return currency_from_symbol(value)


def currency_from_symbol(text: str) -> Optional[str]:
    """Infer a currency from an explicit code or symbol inside text."""
    for match in _ISO_CODE_RE.finditer(text):
        if match.group(1) in KNOWN_CURRENCIES:
            return match.group(1)
    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in text:
            return code
    return None


def currency_from_locale(locale: Optional[str]) -> Optional[str]:
    """Infer a currency from a locale tag such as en-GB or fr_FR."""
    if not locale:
        return None
    parts = re.split(r"[-_]", locale.strip())
    if len(parts) < 2:
        return None
    return LOCALE_REGION_CURRENCY.get(parts[-1].upper())


def parse_amount(text: str) -> Optional[Decimal]:
    """
    Parse the first number in text into a Decimal.

    Handles "1,234.56", "1.234,56", "1 234,56", "1'234.50" and "250".
    """
    match = _NUMBER_RE.search(text)
    if not match:
        return None

    number = re.sub(r"[\s'\u00a0\u202f]", "", match.group())
    has_comma, has_dot = "," in number, "." in number

    if has_comma and has_dot:
        if number.rfind(",") > number.rfind("."):
            number = number.replace(".", "").replace(",", ".")
        else:
            number = number.replace(",", "")
    elif has_comma:
        head, _, tail = number.rpartition(",")
        if number.count(",") == 1 and len(tail) in (1, 2):
            number = f"{head}.{tail}"
        else:
            number = number.replace(",", "")
    elif has_dot:
        tail = number.rpartition(".")[2]
        if number.count(".") > 1 or len(tail) == 3:
            number = number.replace(".", "")

    try:
        amount = Decimal(number)
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount < 0:
        return None
    return amount


def build_price(amount: Any, currency: Optional[str]) -> Optional[Price]:
    """Build a Price from a raw amount and a resolved currency, or None."""
    if not currency:
        return None
    if isinstance(amount, bool):
        return None
    if isinstance(amount, (int, float, Decimal)):
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            return None
    elif isinstance(amount, str):
        value = parse_amount(amount)
    else:
        return None

    if value is None or not value.is_finite() or value <= 0:
        return None
    return Price(amount=quantize_amount(value, currency), currency=currency)


def parse_price_text(
    text: Optional[str],
    fallback_currency: Optional[str] = None,
) -> Optional[Price]:
    """
    Parse displayed price text such as "$1,200", "Was £300 Now £250" or "850 EUR".

    Args:
        text: Raw price text
        fallback_currency: Page-level currency (meta or locale) used when the
            text carries no symbol or code

    Returns:
        Price, or None when amount or currency cannot be resolved
    """
    if not text:
        return None

    text = text.strip()
    now = list(_NOW_RE.finditer(text))
    if now:
        text = text[now[-1].end():]
    text = _NOISE_RE.sub(" ", text)

    currency = currency_from_symbol(text) or fallback_currency
    return build_price(text, currency)
