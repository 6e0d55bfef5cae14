"""
Explicit struct layouts.

A :class:`Layout` maps field names to a position and a data type inside a
block of PLC memory, so a whole structure can be read or written with one
request and converted to and from a dict::

    layout = (
        Layout()
        .add("id", 0, DataType.INT)
        .add("running", 2, DataType.BOOL, bit_offset=0)
        .add("speed", 4, DataType.REAL)
        .add("name", 8, DataType.STRING, max_length=10)
    )

The same layout can be written as a text table, one field per line::

    # Byte index    Variable name  Datatype
    0               id             INT
    2.0             running        BOOL
    4               speed          REAL
    8               name           STRING[10]
"""

import re
import logging
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

from .datatypes import decode_value, encode_string, encode_value, set_bool
from .error import InvalidArgument
from .item import MAX_STRING_LENGTH
from .type import DataType

logger = logging.getLogger(__name__)

_STRING_TYPE = re.compile(r"^STRING\[(?P<length>\d+)\]$")
_ARRAY_TYPE = re.compile(r"^ARRAY\[(?P<count>\d+)\]\s*OF\s*(?P<type>\w+)$")
_ALIASES = {"TOD": "TIME_OF_DAY"}


class Field(NamedTuple):
    name: str
    byte_offset: int
    bit_offset: int
    count: int
    data_type: DataType
    max_length: int  # only meaningful for STRING fields

    @property
    def size(self) -> int:
        """Number of bytes the field occupies."""
        if self.data_type is DataType.STRING:
            return self.max_length + 2
        assert self.data_type.size is not None
        return self.count * self.data_type.size


class Layout:
    """Named fields at fixed offsets of a byte block."""

    def __init__(self) -> None:
        self._fields: Dict[str, Field] = {}

    def add(
        self,
        name: str,
        byte_offset: int,
        data_type: DataType,
        bit_offset: int = 0,
        count: int = 1,
        max_length: int = MAX_STRING_LENGTH,
    ) -> "Layout":
        """Register a field.

        Args:
            name: unique field name.
            byte_offset: position of the field relative to the start of the block.
            data_type: type of the field's elements.
            bit_offset: bit inside the byte, BOOL fields only.
            count: number of consecutive elements, a list is returned when above 1.
            max_length: declared length of a STRING field.

        Returns:
            The layout itself, so registrations can be chained.
        """
        data_type = DataType(data_type)
        if name in self._fields:
            raise InvalidArgument(f"field {name!r} already defined")
        if byte_offset < 0:
            raise InvalidArgument(f"field {name!r}: negative byte offset {byte_offset}")
        if not 0 <= bit_offset <= 7:
            raise InvalidArgument(f"field {name!r}: bit offset must be in [0, 7], got {bit_offset}")
        if bit_offset and data_type is not DataType.BOOL:
            raise InvalidArgument(f"field {name!r}: only BOOL fields have a bit offset")
        if count <= 0:
            raise InvalidArgument(f"field {name!r}: count must be positive, got {count}")
        if count != 1 and data_type in (DataType.BOOL, DataType.STRING):
            raise InvalidArgument(f"field {name!r}: {data_type.name} fields hold a single value")
        if data_type is DataType.STRING and not 0 < max_length <= MAX_STRING_LENGTH:
            raise InvalidArgument(f"field {name!r}: STRING length must be in [1, {MAX_STRING_LENGTH}]")

        self._fields[name] = Field(name, byte_offset, bit_offset, count, data_type, max_length)
        return self

    @classmethod
    def from_specification(cls, specification: str) -> "Layout":
        """Build a layout from a text table of ``offset name type`` lines.

        Empty lines and ``#`` comments are skipped. BOOL offsets are written
        as ``byte.bit``; strings as ``STRING[n]``; arrays as ``ARRAY[n] OF TYPE``.
        """
        layout = cls()
        for number, line in enumerate(specification.split("\n"), start=1):
            line = line.split("#")[0].strip()
            if not line:
                continue
            try:
                index, name, type_ = line.split(None, 2)
            except ValueError:
                raise InvalidArgument(f"line {number}: expected 'offset name type', got {line!r}")

            byte_text, _, bit_text = index.partition(".")
            if not byte_text.isdigit() or (bit_text and not bit_text.isdigit()):
                raise InvalidArgument(f"line {number}: invalid offset {index!r}")

            count = 1
            max_length = MAX_STRING_LENGTH
            type_ = type_.strip().upper()
            string_match = _STRING_TYPE.match(type_)
            array_match = _ARRAY_TYPE.match(type_)
            if string_match:
                type_ = "STRING"
                max_length = int(string_match.group("length"))
            elif array_match:
                type_ = array_match.group("type")
                count = int(array_match.group("count"))

            type_ = _ALIASES.get(type_, type_)
            try:
                data_type = DataType(type_)
            except ValueError:
                raise InvalidArgument(f"line {number}: unknown data type {type_!r}")
            layout.add(name, int(byte_text), data_type, int(bit_text or 0), count, max_length)
        logger.debug(f"Parsed layout with {len(layout)} fields, {layout.size} bytes")
        return layout

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[Field]:
        return iter(self._fields.values())

    def __contains__(self, name: str) -> bool:
        return name in self._fields

    def __getitem__(self, name: str) -> Field:
        return self._fields[name]

    def __repr__(self) -> str:
        return f"<Layout fields={list(self._fields)} size={self.size}>"

    @property
    def size(self) -> int:
        """Number of bytes from the start of the block to the end of the last field."""
        return max((field.byte_offset + field.size for field in self), default=0)

    def decode(self, data: Union[bytes, bytearray], offset: int = 0) -> Dict[str, Any]:
        """Extract all fields from ``data``, the block starting at ``offset``."""
        if len(data) < offset + self.size:
            raise InvalidArgument(f"layout needs {self.size} bytes, got {len(data) - offset}")
        values: Dict[str, Any] = {}
        for field in self:
            start = offset + field.byte_offset
            if field.count == 1:
                values[field.name] = decode_value(data, field.data_type, start, field.bit_offset)
                continue
            step = field.size // field.count
            values[field.name] = [decode_value(data, field.data_type, start + i * step) for i in range(field.count)]
        return values

    def encode_fields(self, values: Dict[str, Any]) -> List[Tuple[Field, bytes]]:
        """Encode ``values`` field by field, in layout order.

        BOOL fields encode to ``b"\\x01"`` or ``b"\\x00"``, every other field
        to the bytes it occupies in the block.
        """
        unknown = set(values) - set(self._fields)
        if unknown:
            raise InvalidArgument(f"unknown fields: {', '.join(sorted(unknown))}")

        encoded = []
        for name, field in self._fields.items():
            if name not in values:
                continue
            value = values[name]
            if field.data_type is DataType.BOOL:
                payload = b"\x01" if value else b"\x00"
            elif field.data_type is DataType.STRING:
                payload = encode_string(value, field.max_length)
            elif field.count == 1:
                payload = encode_value(value, field.data_type)
            else:
                elements: List[Any] = list(value)
                if len(elements) != field.count:
                    raise InvalidArgument(f"field {name!r} holds {field.count} values, got {len(elements)}")
                payload = b"".join(encode_value(element, field.data_type) for element in elements)
            encoded.append((field, payload))
        return encoded

    def encode(self, values: Dict[str, Any], buffer: Optional[bytearray] = None) -> bytearray:
        """Write ``values`` into a block.

        Args:
            values: field values by name, fields left out keep their bytes.
            buffer: current block contents, a zeroed block when omitted.

        Returns:
            The updated block.
        """
        fields = self.encode_fields(values)
        block = bytearray(buffer) if buffer is not None else bytearray(self.size)
        if len(block) < self.size:
            raise InvalidArgument(f"layout needs {self.size} bytes, got {len(block)}")

        for field, payload in fields:
            start = field.byte_offset
            if field.data_type is DataType.BOOL:
                set_bool(block, start, field.bit_offset, payload == b"\x01")
            else:
                block[start : start + len(payload)] = payload
        return block
