"""
Request and data items.

A :class:`RequestItem` describes where to read or write, a :class:`DataItem`
carries the payload of one item. Both are immutable values; every check
happens when they are built, so a bad item never reaches the socket.
"""

from typing import Any, Optional, Sequence, Union

from .error import InvalidArgument, ItemAccessError
from .type import Area, DataType, ReturnCode, TransportSize, VariableType

MAX_STRING_LENGTH = 254

_MAX_BYTE_ADDRESS = 0xFFFFFF >> 3
_MAX_COUNT = 0xFFFF
_MAX_DB_NUMBER = 0xFFFF


def _check_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {value!r}")
    return value


class RequestItem:
    """Address of one variable in PLC memory.

    Args:
        area: memory area.
        db_number: data block number, 0 unless ``area`` is a data block.
        byte_address: byte offset, or the element number for timers and counters.
        bit_address: bit offset in [0, 7], only kept for bit items.
        count: number of elements of ``variable_type``.
        variable_type: addressing unit.
    """

    __slots__ = ("area", "db_number", "byte_address", "bit_address", "count", "variable_type")

    area: Area
    db_number: int
    byte_address: int
    bit_address: int
    count: int
    variable_type: VariableType

    def __init__(
        self,
        area: Area,
        db_number: int = 0,
        byte_address: int = 0,
        bit_address: int = 0,
        count: int = 1,
        variable_type: VariableType = VariableType.BYTE,
    ):
        try:
            area = Area(area)
            variable_type = VariableType(variable_type)
        except ValueError as e:
            raise InvalidArgument(str(e))

        db_number = _check_int("db_number", db_number)
        byte_address = _check_int("byte_address", byte_address)
        bit_address = _check_int("bit_address", bit_address)
        count = _check_int("count", count)

        if count <= 0:
            raise InvalidArgument(f"count must be positive, got {count}")
        if count > _MAX_COUNT:
            raise InvalidArgument(f"count {count} exceeds {_MAX_COUNT}")
        if db_number < 0 or db_number > _MAX_DB_NUMBER:
            raise InvalidArgument(f"db_number {db_number} out of range")
        if area not in (Area.DB, Area.DI) and db_number != 0:
            raise InvalidArgument(f"db_number must be 0 for area {area.name}, got {db_number}")
        if byte_address < 0 or byte_address > _MAX_BYTE_ADDRESS:
            raise InvalidArgument(f"byte_address {byte_address} out of range")
        if bit_address < 0 or bit_address > 7:
            raise InvalidArgument(f"bit_address must be in [0, 7], got {bit_address}")
        if variable_type is VariableType.BIT:
            if count != 1:
                raise InvalidArgument("a bit item addresses exactly one bit")
        else:
            bit_address = 0

        set_ = object.__setattr__
        set_(self, "area", area)
        set_(self, "db_number", db_number)
        set_(self, "byte_address", byte_address)
        set_(self, "bit_address", bit_address)
        set_(self, "count", count)
        set_(self, "variable_type", variable_type)

    @classmethod
    def create(
        cls,
        variable_type: VariableType,
        count: int,
        area: Area,
        db_number: int = 0,
        byte_address: int = 0,
        bit_address: int = 0,
    ) -> "RequestItem":
        """Build an item from raw parameters."""
        return cls(area, db_number, byte_address, bit_address, count, variable_type)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def _key(self) -> tuple:
        return (self.area, self.db_number, self.byte_address, self.bit_address, self.count, self.variable_type)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestItem):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (
            f"RequestItem(area={self.area.name}, db_number={self.db_number}, "
            f"byte_address={self.byte_address}, bit_address={self.bit_address}, "
            f"count={self.count}, variable_type={self.variable_type.name})"
        )

    @property
    def element_size(self) -> int:
        return self.variable_type.size

    @property
    def byte_length(self) -> int:
        """Number of payload bytes this item occupies on the wire."""
        return self.count * self.element_size

    @property
    def bit_length(self) -> int:
        if self.variable_type is VariableType.BIT:
            return 1
        return self.byte_length * 8

    @property
    def address(self) -> int:
        """Value of the 3 byte address field of the item specification."""
        if self.variable_type in (VariableType.TIMER, VariableType.COUNTER):
            return self.byte_address
        return (self.byte_address << 3) | self.bit_address

    @property
    def splittable(self) -> bool:
        return self.variable_type is not VariableType.BIT and self.count > 1

    def with_span(self, byte_address: int, count: int) -> "RequestItem":
        """Copy of this item starting at another offset with another element count."""
        return RequestItem(self.area, self.db_number, byte_address, self.bit_address, count, self.variable_type)


class DataItem:
    """Payload of one item, with the status the PLC reported for it."""

    __slots__ = ("data_type", "data", "return_code", "transport_size")

    data_type: DataType
    data: bytes
    return_code: int
    transport_size: TransportSize

    def __init__(
        self,
        data: Union[bytes, bytearray, Sequence[int]],
        data_type: DataType = DataType.BYTE,
        return_code: int = ReturnCode.SUCCESS,
        transport_size: Optional[TransportSize] = None,
    ):
        try:
            data_type = DataType(data_type)
            payload = bytes(data)
        except (TypeError, ValueError) as e:
            raise InvalidArgument(f"invalid data item: {e}")

        set_ = object.__setattr__
        set_(self, "data_type", data_type)
        set_(self, "data", payload)
        set_(self, "return_code", return_code)
        set_(self, "transport_size", transport_size if transport_size is not None else data_type.transport_size)

    @classmethod
    def create(cls, data: Union[bytes, bytearray, Sequence[int]], data_type: DataType = DataType.BYTE) -> "DataItem":
        """Build a payload for a write request.

        Raises:
            InvalidArgument: the payload is empty or not a valid ``data_type`` value.
        """
        item = cls(data, data_type)
        if not item.data:
            raise InvalidArgument("write payload must not be empty")
        if data_type is DataType.STRING:
            if len(item.data) < 3:
                raise InvalidArgument("a STRING payload needs 2 header bytes and at least one character")
            if item.data[1] > MAX_STRING_LENGTH or len(item.data) - 2 > MAX_STRING_LENGTH:
                raise InvalidArgument(f"a STRING holds at most {MAX_STRING_LENGTH} characters")
            if item.data[1] != len(item.data) - 2:
                raise InvalidArgument("STRING length byte does not match the payload")
        elif data_type.size is not None and len(item.data) % data_type.size:
            raise InvalidArgument(f"{data_type.name} payload must be a multiple of {data_type.size} bytes")
        return item

    @classmethod
    def from_response(cls, data: bytes, transport_size: int, return_code: int) -> "DataItem":
        try:
            ts = TransportSize(transport_size)
        except ValueError:
            ts = TransportSize.NULL
        data_type = DataType.BOOL if ts is TransportSize.BIT else DataType.BYTE
        return cls(data, data_type, return_code, ts)

    @classmethod
    def failed(cls, return_code: int) -> "DataItem":
        return cls(b"", DataType.BYTE, return_code, TransportSize.NULL)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DataItem):
            return NotImplemented
        return (self.data_type, self.data, self.return_code) == (other.data_type, other.data, other.return_code)

    def __hash__(self) -> int:
        return hash((self.data_type, self.data, self.return_code))

    def __repr__(self) -> str:
        return f"DataItem(data_type={self.data_type.name}, data={self.data!r}, return_code={self.return_code:#04x})"

    def __len__(self) -> int:
        return len(self.data)

    @property
    def ok(self) -> bool:
        return self.return_code == ReturnCode.SUCCESS

    def check(self) -> "DataItem":
        """Raise :class:`ItemAccessError` if the PLC refused this item."""
        if not self.ok:
            raise ItemAccessError(self.return_code)
        return self


def check_write_items(items: Sequence[RequestItem], data_items: Sequence[DataItem]) -> None:
    """Validate that every request item gets a payload of matching size.

    Raises:
        InvalidArgument: when counts or sizes disagree.
    """
    if len(items) != len(data_items):
        raise InvalidArgument(f"{len(items)} request items but {len(data_items)} data items")
    for index, (item, data_item) in enumerate(zip(items, data_items)):
        if not data_item.data:
            raise InvalidArgument(f"item {index}: write payload must not be empty")
        if len(data_item.data) != item.byte_length:
            raise InvalidArgument(
                f"item {index}: {item.byte_length} bytes addressed but {len(data_item.data)} bytes supplied"
            )
