"""Data normalization utilities for prices, ratings, counts and URLs."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


TRACKING_PARAMS = frozenset({
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
})


class PriceNormalizer:
    """Price string parsing."""

    @staticmethod
    def clean_price_string(raw) -> Optional[Decimal]:
        """Parse a price string and extract numeric value.

        Handles various formats:
        - "₹1,299" -> 1299
        - "Rs. 45.50" -> 45.50
        - "1234.56" -> 1234.56

        Args:
            raw: Raw price string (numbers pass through)

        Returns:
            Decimal price value, or None if parsing fails
        """
        if raw is None:
            return None
        if isinstance(raw, (int, float, Decimal)):
            return Decimal(str(raw))

        cleaned = str(raw).replace("Rs.", "").strip()

        # Remove thousand separators (commas)
        cleaned = cleaned.replace(",", "")

        # Remove any remaining non-digit/non-decimal characters
        cleaned = re.sub(r"[^\d.]", "", cleaned).strip(".")

        if not cleaned:
            return None

        try:
            return Decimal(cleaned)
        except InvalidOperation:
            return None

    @staticmethod
    def extract_price_from_text(text) -> Optional[Decimal]:
        """Extract first price-like number from text.

        Useful for HTML text nodes that carry a label next to the amount,
        e.g. "MRP: ₹1,299 (incl. of all taxes)".

        Returns:
            Extracted price as Decimal, or None if not found
        """
        if text is None or text == "":
            return None
        if isinstance(text, (int, float, Decimal)):
            return PriceNormalizer.clean_price_string(text)

        for match in re.findall(r"\d[\d,]*\.?\d*", str(text)):
            price = PriceNormalizer.clean_price_string(match)
            if price and price > 0:
                return price

        return None


def parse_rating(text) -> Optional[float]:
    """First decimal number in ``text`` if it is a plausible 0-5 star rating."""
    if text is None:
        return None
    match = re.search(r"\d+(?:\.\d+)?", str(text))
    if not match:
        return None
    value = float(match.group())
    return value if 0 <= value <= 5 else None


def parse_count(text) -> Optional[int]:
    """Parse a review / rating count such as "1,234 Reviews" or "2.3k"."""
    if text is None:
        return None
    if isinstance(text, int):
        return text
    match = re.search(r"(\d[\d,]*(?:\.\d+)?)\s*([kKmM]?)", str(text))
    if not match:
        return None
    number = float(match.group(1).replace(",", ""))
    suffix = match.group(2).lower()
    if suffix == "k":
        number *= 1_000
    elif suffix == "m":
        number *= 1_000_000
    return int(round(number))


def clean_text(text: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become None."""
    if text is None:
        return None
    cleaned = re.sub(r"\s+", " ", text).strip()
    return cleaned or None


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def normalize_url(url: str) -> str:
    """Normalize a URL by removing tracking parameters and the fragment.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    if not url:
        return url

    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), ""))
