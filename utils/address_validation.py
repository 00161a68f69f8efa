"""
Address validation with suggestions for missing fields.

Errors are advisory: they are attached to one address and never stop the
other addresses of the same list from being processed.
"""

import re
from collections import Counter
from typing import Iterable, Optional

from models.address import AddressValidationError, NormalizedAddress
from utils.address_normalization import normalize_street, normalize_umlauts


_POSTAL_CODE = re.compile(r"^\d{5}$")


def is_valid_postal_code(postal_code: Optional[str]) -> bool:
    """German postal codes have exactly five digits."""
    return bool(postal_code) and bool(_POSTAL_CODE.match(postal_code.strip()))


def _most_common(values: Iterable[str]) -> Optional[str]:
    # most_common keeps first-seen order among equal counts
    counts = Counter(values)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def suggest_postal_code(
    address: NormalizedAddress,
    all_addresses: list[NormalizedAddress]
) -> Optional[str]:
    """Most frequent valid postal code among siblings with the same street and city."""
    if not address.street or not address.city:
        return None

    street = normalize_street(address.street)
    city = normalize_umlauts(address.city)

    return _most_common(
        other.postal_code
        for other in all_addresses
        if is_valid_postal_code(other.postal_code)
        and normalize_street(other.street) == street
        and normalize_umlauts(other.city) == city
    )


def suggest_city(
    address: NormalizedAddress,
    all_addresses: list[NormalizedAddress]
) -> Optional[str]:
    """Most frequent city among siblings with the same street and postal code."""
    if not address.street or not address.postal_code:
        return None

    street = normalize_street(address.street)
    postal_code = address.postal_code.strip()

    return _most_common(
        other.city
        for other in all_addresses
        if other.city and other.city.strip()
        and normalize_street(other.street) == street
        and (other.postal_code or "").strip() == postal_code
    )


def validate_address(
    address: NormalizedAddress,
    all_addresses: list[NormalizedAddress]
) -> list[AddressValidationError]:
    """
    Validate one address against the rest of its list.

    Checks:
    - street, house number, postal code and city are present
    - postal code has exactly 5 digits

    A missing postal code or city comes with a suggestion taken from
    sibling addresses when one exists.

    Returns:
        Validation errors (empty when the address is valid)
    """
    errors: list[AddressValidationError] = []

    if not address.street or not address.street.strip():
        errors.append(AddressValidationError(field="street", message="Straße fehlt"))

    if not address.house_number or not address.house_number.strip():
        errors.append(AddressValidationError(field="houseNumber", message="Hausnummer fehlt"))

    if not address.postal_code or not address.postal_code.strip():
        errors.append(AddressValidationError(
            field="postalCode",
            message="Postleitzahl fehlt",
            suggestion=suggest_postal_code(address, all_addresses),
        ))
    elif not is_valid_postal_code(address.postal_code):
        errors.append(AddressValidationError(
            field="postalCode",
            message="Postleitzahl muss 5-stellig sein",
        ))

    if not address.city or not address.city.strip():
        errors.append(AddressValidationError(
            field="city",
            message="Ort fehlt",
            suggestion=suggest_city(address, all_addresses),
        ))

    return errors


def describe_errors(errors: list[AddressValidationError]) -> str:
    """Join errors into one failure reason, with suggestions in brackets."""
    parts = []
    for error in errors:
        if error.suggestion:
            parts.append(f"{error.message} (Vorschlag: {error.suggestion})")
        else:
            parts.append(error.message)
    return "; ".join(parts)
