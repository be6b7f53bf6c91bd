"""
Value normalisation shared by all extractors.

Prices become integer pence, weights become grams, and external ids are
derived deterministically so re-crawls of the same entity produce the same id.
"""

import hashlib
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import urlparse

# Grams per unit; volumes are treated as 1 ml = 1 g
WEIGHT_UNITS = {
    "kg": 1000,
    "kilogram": 1000,
    "kilograms": 1000,
    "g": 1,
    "gram": 1,
    "grams": 1,
    "ml": 1,
    "millilitre": 1,
    "millilitres": 1,
    "milliliter": 1,
    "milliliters": 1,
    "l": 1000,
    "ltr": 1000,
    "litre": 1000,
    "litres": 1000,
    "liter": 1000,
    "liters": 1000,
    "lb": 454,
    "lbs": 454,
    "pound": 454,
    "pounds": 454,
    "oz": 28.35,
    "ounce": 28.35,
    "ounces": 28.35,
}

WEIGHT_PATTERN = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*"
    r"(kg|kilograms?|g|grams?|ml|millilitres?|milliliters?|l|ltr|litres?|liters?"
    r"|lb|lbs|pounds?|oz|ounces?)\b",
    re.IGNORECASE,
)

QUANTITY_PATTERN = re.compile(r"(\d+)\s*(?:pack|x|pcs|pieces|count)\b", re.IGNORECASE)
MULTIPACK_PATTERN = re.compile(r"(\d+)\s*x\s*\d+", re.IGNORECASE)

PENCE_PATTERN = re.compile(r"^(\d+)p$", re.IGNORECASE)
DECIMAL_PRICE_PATTERN = re.compile(r"^(\d+)[.,](\d{1,2})$")
THOUSANDS_PATTERN = re.compile(r"^\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?$")
PLAIN_AMOUNT_PATTERN = re.compile(r"^\d+(?:\.\d+)?$")
EMBEDDED_PRICE_PATTERN = re.compile(r"[£$€]\s*(\d[\d,]*(?:\.\d{1,2})?)")

RATING_TEXT_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(?:/\s*5|out of 5|stars?)", re.IGNORECASE)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
)


def parse_price_to_pence(text: Any) -> Optional[int]:
    """
    Parse a price string to integer pence.

    Examples:
        "£12.99" -> 1299, "99p" -> 99, "10,99" -> 1099, "£1,299.00" -> 129900,
        "5" -> 500, "invalid" -> None

    A bare whole number below 100 is read as pounds, anything larger as pence.
    Unparsable input returns None, never 0.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None

    match = PENCE_PATTERN.match(text)
    if match:
        return int(match.group(1))

    cleaned = re.sub(r"[£$€\s]", "", text)
    if THOUSANDS_PATTERN.match(cleaned):
        cleaned = cleaned.replace(",", "")

    match = DECIMAL_PRICE_PATTERN.match(cleaned)
    if match:
        pounds = int(match.group(1))
        pence = int(match.group(2).ljust(2, "0"))
        return pounds * 100 + pence

    if cleaned.isdigit():
        value = int(cleaned)
        return value * 100 if value < 100 else value

    # Price inside surrounding text, e.g. "Now £5.00"
    match = EMBEDDED_PRICE_PATTERN.search(text)
    if match:
        return parse_price_to_pence(match.group(1))

    return None


def pounds_to_pence(value: Any) -> Optional[int]:
    """
    Convert a structured data offer price in pounds to pence.

    Numbers and plain decimal strings ("5", "12.99") are pounds. Any other
    string ("10,99", "£1,299.00") is normalised by parse_price_to_pence.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        text = re.sub(r"[£\s]", "", str(value))
        if not PLAIN_AMOUNT_PATTERN.match(text):
            return parse_price_to_pence(value)
        amount = Decimal(text)
    if not amount.is_finite() or amount < 0:
        return None
    return int((amount * 100).quantize(Decimal("1")))


def parse_weight(text: Optional[str]) -> Optional[int]:
    """
    Parse the first weight/volume in free text to grams.

    Examples:
        "2.5kg" -> 2500, "5lb" -> 2270, "12 x 400g" -> 400
    """
    if not text:
        return None
    match = WEIGHT_PATTERN.search(text)
    if not match:
        return None
    amount = float(match.group(1).replace(",", "."))
    factor = WEIGHT_UNITS[match.group(2).lower()]
    return int(round(amount * factor))


def parse_quantity(text: Optional[str]) -> Optional[int]:
    """
    Parse a pack quantity from free text.

    "12 x 400g" -> 12, "6 pack" -> 6. Multi-pack notation wins over
    pack/count words when both appear.
    """
    if not text:
        return None
    quantity = None
    match = QUANTITY_PATTERN.search(text)
    if match:
        quantity = int(match.group(1))
    match = MULTIPACK_PATTERN.search(text)
    if match:
        quantity = int(match.group(1))
    return quantity


def external_id_from_url(url: str) -> Optional[str]:
    """Derive a stable id from the last non-empty path segment of a URL."""
    path = urlparse(url).path
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return None
    return segments[-1]


def review_external_id(retailer: str, url: str, author: Optional[str], body: str, index: int) -> str:
    """Content-hash id for reviews that carry no natural id."""
    digest = hashlib.md5(f"{url}{author or ''}{body}".encode("utf-8")).hexdigest()
    return f"{retailer}-review-{digest}-{index}"


def parse_rating(value: Any) -> Optional[float]:
    """Parse a 0-5 rating from a number or text like "4 out of 5"."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        rating = float(value)
    else:
        text = str(value).strip()
        try:
            rating = float(text)
        except ValueError:
            match = RATING_TEXT_PATTERN.search(text)
            if not match:
                return None
            rating = float(match.group(1))
    if rating < 0 or rating > 5:
        return None
    return rating


def parse_review_date(value: Any) -> Optional[date]:
    """Parse a review date from ISO timestamps or common UK display formats."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    # ISO timestamps: keep the date part
    if re.match(r"^\d{4}-\d{2}-\d{2}", text):
        text = text[:10]

    text = re.sub(r"(\d)(st|nd|rd|th)\b", r"\1", text)
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_int(value: Any) -> Optional[int]:
    """First integer in a value, e.g. "12 people found this helpful" -> 12."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    match = re.search(r"\d+", str(value).replace(",", ""))
    return int(match.group(0)) if match else None
