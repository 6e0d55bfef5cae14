"""
Value codecs for the PLC data types.

Every :class:`~s7comm.type.DataType` has one encoder turning a Python value
into its big endian wire representation and one decoder doing the reverse:

==============  ======================  =====================================
type            Python value            wire format
==============  ======================  =====================================
BOOL            bool                    one byte, or one bit inside a byte
BYTE            int 0..255              uint8
CHAR            str of length 1         one ASCII byte
WORD            int 0..65535            uint16
INT             int                     int16
DWORD           int                     uint32
DINT            int                     int32
REAL            float                   IEEE 754 single
LREAL           float                   IEEE 754 double
STRING          str                     max length, actual length, ASCII text
TIME            timedelta               int32 milliseconds
DATE            date                    uint16 days since 1990-01-01
TIME_OF_DAY     timedelta               uint32 milliseconds since midnight
==============  ======================  =====================================
"""

import struct
import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, Union

from .error import InvalidArgument
from .item import MAX_STRING_LENGTH
from .type import DataType

logger = logging.getLogger(__name__)

EPOCH = date(1990, 1, 1)
MAX_DATE = date(2168, 12, 31)

_FORMATS: Dict[DataType, str] = {
    DataType.BYTE: ">B",
    DataType.WORD: ">H",
    DataType.INT: ">h",
    DataType.DWORD: ">I",
    DataType.DINT: ">i",
    DataType.REAL: ">f",
    DataType.LREAL: ">d",
}


def _milliseconds(value: Union[timedelta, int]) -> int:
    if isinstance(value, timedelta):
        return int(round(value.total_seconds() * 1000))
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise InvalidArgument(f"expected timedelta or milliseconds, got {value!r}")


def _encode_number(value: Any, data_type: DataType) -> bytes:
    try:
        return struct.pack(_FORMATS[data_type], value)
    except struct.error as e:
        raise InvalidArgument(f"{value!r} is not a valid {data_type.name}: {e}")


def _decode_number(data: bytes, data_type: DataType, byte_index: int) -> Union[int, float]:
    value: Union[int, float] = struct.unpack_from(_FORMATS[data_type], data, byte_index)[0]
    return value


def encode_bool(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def decode_bool(data: bytes, byte_index: int = 0, bit_index: int = 0) -> bool:
    """Get the boolean value of bit ``bit_index`` of byte ``byte_index``."""
    if not 0 <= bit_index <= 7:
        raise InvalidArgument(f"bit index must be in [0, 7], got {bit_index}")
    return bool(data[byte_index] >> bit_index & 1)


def set_bool(buffer: bytearray, byte_index: int, bit_index: int, value: bool) -> None:
    """Set one bit of ``buffer`` in place, leaving its neighbours untouched."""
    if not 0 <= bit_index <= 7:
        raise InvalidArgument(f"bit index must be in [0, 7], got {bit_index}")
    mask = 1 << bit_index
    if value:
        buffer[byte_index] |= mask
    else:
        buffer[byte_index] &= ~mask & 0xFF


def encode_char(value: str) -> bytes:
    if not isinstance(value, str) or len(value) != 1:
        raise InvalidArgument(f"a CHAR is a single character, got {value!r}")
    try:
        return value.encode("ascii")
    except UnicodeEncodeError:
        raise InvalidArgument(f"{value!r} is not an ASCII character")


def decode_char(data: bytes, byte_index: int = 0) -> str:
    return chr(data[byte_index])


def encode_string(value: str, max_size: int = MAX_STRING_LENGTH) -> bytes:
    """Encode an S7 STRING: max length byte, actual length byte, then the characters.

    Args:
        value: text to encode, ASCII only.
        max_size: declared maximum length of the PLC variable.

    Raises:
        InvalidArgument: the text is longer than ``max_size`` (at most 254)
            or holds non ASCII characters.
    """
    if not isinstance(value, str):
        raise InvalidArgument(f"a STRING value must be str, got {value!r}")
    if not 0 < max_size <= MAX_STRING_LENGTH:
        raise InvalidArgument(f"STRING max size must be in [1, {MAX_STRING_LENGTH}], got {max_size}")
    if len(value) > max_size:
        raise InvalidArgument(f"STRING of {len(value)} characters exceeds the maximum of {max_size}")
    try:
        text = value.encode("ascii")
    except UnicodeEncodeError:
        raise InvalidArgument(f"{value!r} contains non ASCII characters")
    return bytes([max_size, len(text)]) + text


def decode_string(data: bytes, byte_index: int = 0) -> str:
    """Decode an S7 STRING starting with its two header bytes."""
    max_size, length = data[byte_index], data[byte_index + 1]
    if max_size in (0, 0xFF) or length > max_size:
        logger.error(f"Invalid STRING header: max {max_size}, length {length}")
        raise InvalidArgument(f"invalid STRING header (max {max_size}, length {length})")
    start = byte_index + 2
    if start + length > len(data):
        raise InvalidArgument(f"STRING of {length} characters extends beyond {len(data)} bytes")
    return data[start : start + length].decode("ascii", errors="replace")


def encode_time(value: Union[timedelta, int]) -> bytes:
    milliseconds = _milliseconds(value)
    if not -(2**31) <= milliseconds < 2**31:
        raise InvalidArgument(f"TIME out of range: {value!r}")
    return struct.pack(">i", milliseconds)


def decode_time(data: bytes, byte_index: int = 0) -> timedelta:
    return timedelta(milliseconds=struct.unpack_from(">i", data, byte_index)[0])


def encode_date(value: date) -> bytes:
    if not isinstance(value, date):
        raise InvalidArgument(f"a DATE value must be a date, got {value!r}")
    if not EPOCH <= value <= MAX_DATE:
        raise InvalidArgument(f"DATE must be between {EPOCH} and {MAX_DATE}, got {value}")
    return struct.pack(">H", (value - EPOCH).days)


def decode_date(data: bytes, byte_index: int = 0) -> date:
    return EPOCH + timedelta(days=struct.unpack_from(">H", data, byte_index)[0])


def encode_time_of_day(value: Union[timedelta, int]) -> bytes:
    milliseconds = _milliseconds(value)
    if not 0 <= milliseconds < 86_400_000:
        raise InvalidArgument(f"TIME_OF_DAY must be within one day, got {value!r}")
    return struct.pack(">I", milliseconds)


def decode_time_of_day(data: bytes, byte_index: int = 0) -> timedelta:
    return timedelta(milliseconds=struct.unpack_from(">I", data, byte_index)[0])


_ENCODERS: Dict[DataType, Callable[[Any], bytes]] = {
    DataType.BOOL: encode_bool,
    DataType.CHAR: encode_char,
    DataType.STRING: encode_string,
    DataType.TIME: encode_time,
    DataType.DATE: encode_date,
    DataType.TIME_OF_DAY: encode_time_of_day,
}

_DECODERS: Dict[DataType, Callable[[bytes, int], Any]] = {
    DataType.CHAR: decode_char,
    DataType.STRING: decode_string,
    DataType.TIME: decode_time,
    DataType.DATE: decode_date,
    DataType.TIME_OF_DAY: decode_time_of_day,
}


def encode_value(value: Any, data_type: DataType) -> bytes:
    """Encode a single value of ``data_type``.

    Raises:
        InvalidArgument: the value does not fit the type.
    """
    data_type = DataType(data_type)
    if data_type in _FORMATS:
        return _encode_number(value, data_type)
    return _ENCODERS[data_type](value)


def decode_value(data: bytes, data_type: DataType, byte_index: int = 0, bit_index: int = 0) -> Any:
    """Decode one value of ``data_type`` found at ``byte_index`` of ``data``.

    ``bit_index`` is only used for BOOL values.
    """
    data_type = DataType(data_type)
    size = data_type.size or 2
    if byte_index < 0 or byte_index + size > len(data):
        raise InvalidArgument(f"{data_type.name} at byte {byte_index} extends beyond {len(data)} bytes")
    if data_type is DataType.BOOL:
        return decode_bool(data, byte_index, bit_index)
    if data_type in _FORMATS:
        return _decode_number(data, data_type, byte_index)
    return _DECODERS[data_type](data, byte_index)
