"""
Symbolic address parsing.

Examples:
- "DB1.10"      -> data block 1, byte 10
- "DB1.DBX0.1"  -> data block 1, byte 0, bit 1
- "M10.5"       -> bit memory, byte 10, bit 5
- "IW20"        -> inputs, byte 20
- "V100"        -> S7-200 V memory (data block 1), byte 100
- "T5", "C3"    -> timer 5, counter 3

The X, B, W and D size letters (``MW4``, ``DB1.DBD8``) are accepted for
familiarity but only locate the first byte. How much is accessed is always
given separately, as a byte count or a data type.
"""

import re
from typing import NamedTuple, Optional

from .error import AddressFormatError
from .item import RequestItem
from .type import Area, VariableType

_ADDRESS = re.compile(
    r"""
    ^(?:
        DB(?P<db>\d+)\.(?:DB[XBWD])?
      | (?P<area>[IEQAMV])[XBWD]?
    )
    (?P<byte>\d+)
    (?:\.(?P<bit>\d+))?$
    """,
    re.VERBOSE,
)

_ELEMENT = re.compile(r"^(?P<area>[TCZ])(?P<number>\d+)$")

_AREAS = {
    "I": Area.PE,
    "E": Area.PE,
    "Q": Area.PA,
    "A": Area.PA,
    "M": Area.MK,
    "V": Area.DB,
    "T": Area.TM,
    "C": Area.CT,
    "Z": Area.CT,
}

# S7-200 V memory is mapped onto DB1
_V_MEMORY_DB = 1


class ParsedAddress(NamedTuple):
    area: Area
    db_number: int
    byte_address: int
    bit_address: Optional[int]


def parse_address(address: str) -> ParsedAddress:
    """Split an address string into area, DB number, byte and optional bit offset.

    Raises:
        AddressFormatError: if the string does not follow the address grammar.
    """
    if not isinstance(address, str):
        raise AddressFormatError(f"address must be a string, got {address!r}")
    text = address.strip().upper()
    if not text:
        raise AddressFormatError("address is empty")

    match = _ELEMENT.match(text)
    if match:
        return ParsedAddress(_AREAS[match.group("area")], 0, int(match.group("number")), None)

    match = _ADDRESS.match(text)
    if not match:
        if re.match(r"^DB\.|^DB$|^DB[XBWD]", text):
            raise AddressFormatError(f"{address!r}: data block address without block number")
        raise AddressFormatError(f"invalid address {address!r}")

    bit = match.group("bit")
    bit_address = int(bit) if bit is not None else None
    if bit_address is not None and bit_address > 7:
        raise AddressFormatError(f"{address!r}: bit offset must be in [0, 7], got {bit_address}")

    byte_address = int(match.group("byte"))
    if match.group("db") is not None:
        return ParsedAddress(Area.DB, int(match.group("db")), byte_address, bit_address)

    letter = match.group("area")
    db_number = _V_MEMORY_DB if letter == "V" else 0
    return ParsedAddress(_AREAS[letter], db_number, byte_address, bit_address)


def parse_byte(address: str, count: int = 1, variable_type: VariableType = VariableType.BYTE) -> RequestItem:
    """Parse a byte oriented address into a request item.

    Args:
        address: symbolic address, e.g. ``"DB1.10"`` or ``"MW4"``. A size
            letter only selects the address form, ``"MW4"`` and ``"MB4"``
            both start at byte 4 and neither implies a length or a type.
        count: number of elements to read or write.
        variable_type: addressing unit, ``BYTE`` unless the caller wants words.

    Returns:
        The request item. Timers and counters always get the TIMER/COUNTER
        variable type and ``count`` counts elements.
    """
    parsed = parse_address(address)
    if parsed.bit_address is not None:
        raise AddressFormatError(f"{address!r}: bit offset not allowed for byte access")
    if variable_type is VariableType.BIT:
        raise AddressFormatError(f"{address!r}: use parse_bit for bit access")

    if parsed.area is Area.TM:
        variable_type = VariableType.TIMER
    elif parsed.area is Area.CT:
        variable_type = VariableType.COUNTER
    elif variable_type in (VariableType.TIMER, VariableType.COUNTER):
        raise AddressFormatError(f"{address!r}: {variable_type.name} access needs a T or C address")

    return RequestItem(parsed.area, parsed.db_number, parsed.byte_address, 0, count, variable_type)


def parse_bit(address: str) -> RequestItem:
    """Parse a bit address such as ``"M0.0"`` or ``"DB1.DBX2.3"``."""
    parsed = parse_address(address)
    if parsed.area in (Area.TM, Area.CT):
        raise AddressFormatError(f"{address!r}: timers and counters are not bit addressable")
    if parsed.bit_address is None:
        raise AddressFormatError(f"{address!r}: bit access needs a bit offset")
    return RequestItem(parsed.area, parsed.db_number, parsed.byte_address, parsed.bit_address, 1, VariableType.BIT)


def format_address(item: RequestItem) -> str:
    """Render the canonical address string of a request item."""
    if item.area in (Area.TM, Area.CT):
        return f"{item.area.letter}{item.byte_address}"
    if item.area is Area.DI:
        raise AddressFormatError("instance data blocks have no address string form")

    if item.area is Area.DB:
        text = f"DB{item.db_number}.{item.byte_address}"
    else:
        text = f"{item.area.letter}{item.byte_address}"
    if item.variable_type is VariableType.BIT:
        text += f".{item.bit_address}"
    return text
