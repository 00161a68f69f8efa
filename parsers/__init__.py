"""
File parsers module.

Turns uploaded address lists into headers plus header -> cell rows.
"""

from parsers.address_list_parser import (
    parse_address_list,
    detect_separator,
    ParsedAddressList,
)

__all__ = [
    "parse_address_list",
    "detect_separator",
    "ParsedAddressList",
]
