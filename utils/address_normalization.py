"""
Address normalization for duplicate detection.

German address lists spell the same street many ways ("Bahnhofstr.",
"Bahnhofstraße", "Bahnhofstrasse"). These helpers fold such variants onto one
canonical form and build the key that identifies an address.
"""

import re
from typing import Iterable

from models.address import NormalizedAddress


KEY_DELIMITER = "|"

# Checked in order; only the first abbreviation found in a street is expanded.
STREET_ABBREVIATIONS: tuple[tuple[str, str], ...] = (
    ("str.", "strasse"),
    ("str ", "strasse "),
    ("straße", "strasse"),
    ("stra?e", "strasse"),  # OCR error for ß
    ("st.", "strasse"),
)

UMLAUTS = {
    "ä": "ae",
    "ö": "oe",
    "ü": "ue",
    "Ä": "ae",
    "Ö": "oe",
    "Ü": "ue",
    "ß": "ss",
    "ẞ": "ss",
}

_WHITESPACE = re.compile(r"\s+")
_HOUSE_NUMBER_SEPARATORS = re.compile(r"[\s\-_]")


def normalize_umlauts(text: str) -> str:
    """
    Fold umlauts and ß to their ASCII spelling and lowercase.

    "Müller Straße" → "mueller strasse"
    """
    if not text:
        return ""

    for umlaut, replacement in UMLAUTS.items():
        text = text.replace(umlaut, replacement)

    return text.lower()


def normalize_street(street: str) -> str:
    """
    Normalize a street name for comparison.

    - Expands the first matching abbreviation ("Hauptstr." → "Hauptstrasse")
    - Folds umlauts and lowercases
    - Collapses whitespace

    Only one abbreviation is ever expanded, even when a street contains
    several. Existing lists were keyed this way.
    """
    if not street:
        return ""

    normalized = street.strip()
    lower = normalized.lower()

    for abbreviation, full in STREET_ABBREVIATIONS:
        if abbreviation in lower:
            normalized = re.sub(re.escape(abbreviation), full, normalized, flags=re.IGNORECASE)
            break

    normalized = normalize_umlauts(normalized)

    return _WHITESPACE.sub(" ", normalized).strip()


def normalize_house_number(house_number: str) -> str:
    """
    Normalize a house number: "1 a", "1-a", "1_A" → "1a".
    """
    if not house_number:
        return ""

    normalized = house_number.strip().lower()

    return _HOUSE_NUMBER_SEPARATORS.sub("", normalized)


def create_normalized_key(
    street: str,
    house_number: str,
    postal_code: str,
    city: str
) -> str:
    """
    Build the duplicate-detection key of an address.

    Format: "{street}|{house_number}|{postal_code}|{city}", each part
    normalized. The delimiter is removed from the parts so it can never
    appear inside one.
    """
    parts = (
        normalize_street(street),
        normalize_house_number(house_number),
        (postal_code or "").strip(),
        normalize_umlauts((city or "").strip()),
    )

    return KEY_DELIMITER.join(part.replace(KEY_DELIMITER, "") for part in parts)


def consolidate_addresses(addresses: Iterable[NormalizedAddress]) -> list[NormalizedAddress]:
    """
    Merge addresses that share a normalized key.

    The first record seen for a key is kept; the unit counts of later
    duplicates are added to it. Input records are not modified.

    Returns:
        One address per distinct key, in first-seen order
    """
    by_key: dict[str, NormalizedAddress] = {}

    for address in addresses:
        existing = by_key.get(address.normalized_key)
        if existing is None:
            by_key[address.normalized_key] = address.model_copy()
        else:
            existing.we_count += address.we_count

    return list(by_key.values())


def build_normalized_address(**fields) -> NormalizedAddress:
    """Create a NormalizedAddress with its key filled in."""
    address = NormalizedAddress(**fields)
    address.normalized_key = create_normalized_key(
        address.street,
        address.house_number,
        address.postal_code,
        address.city,
    )
    return address
