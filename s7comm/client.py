"""
S7 client session.

A :class:`Client` owns one ISO on TCP connection, negotiates the PDU length
and serialises every request/response exchange on it. Each exchange runs
through a persistence wrapper: on a transport failure the session is torn
down, reconnected and the exchange retried exactly once.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from .address import parse_bit, parse_byte
from .batch import MIN_PDU_LENGTH, Batch, fragment_payload, merge_read_results, merge_write_results, plan_reads, plan_writes
from .connection import ISOTCPConnection, SocketFactory
from .control import build_control_request, check_control_response
from .datatypes import decode_string, decode_value, encode_string, encode_value
from .error import CommunicationError, InvalidArgument, ItemAccessError, ProtocolError
from .item import DataItem, RequestItem, check_write_items
from .layout import Layout
from .s7protocol import (
    S7Response,
    build_read_request,
    build_setup_communication_request,
    build_write_request,
    check_reference,
    parse_read_response,
    parse_response,
    parse_setup_communication_response,
    parse_write_response,
)
from .type import Area, ControlOperation, DataType, Parameter, PlcType, ReturnCode, SessionState, VariableType

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PDU length assumed when the PLC answers setup communication without parameters
DEFAULT_PDU_LENGTH = 240


def tsaps(plc_type: PlcType, rack: int, slot: int) -> Tuple[int, int]:
    """Local and remote TSAP for a PLC family.

    Returns:
        ``(local_tsap, remote_tsap)``
    """
    if plc_type is PlcType.S200:
        return 0x1000, 0x1001
    if plc_type is PlcType.S200_SMART:
        return 0x1000, 0x0300
    return 0x0100, 0x0100 | (rack << 5) | slot


class Client:
    """
    S7 client.

    Calls made on one client are serialised; use one client per PLC to work
    in parallel. Every public call connects first if needed.

    Examples:
        >>> from s7comm import Client, PlcType, DataType
        >>> client = Client("192.168.1.10", plc_type=PlcType.S300)
        >>> client.read_typed("DB1.10", DataType.REAL)
        21.5
        >>> client.write_bit("M0.0", True)
        >>> client.disconnect()
    """

    def __init__(
        self,
        address: str = "127.0.0.1",
        rack: Optional[int] = None,
        slot: Optional[int] = None,
        port: int = 102,
        plc_type: PlcType = PlcType.S1200,
        pdu_length: Optional[int] = None,
        timeout: float = 3.0,
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Initialize S7 client.

        Args:
            address: PLC IP address or host name
            rack: Rack number, defaults per PLC type
            slot: Slot number, defaults per PLC type
            port: TCP port (default 102)
            plc_type: PLC family, selects TSAPs and default PDU length
            pdu_length: PDU length to request, defaults per PLC type
            timeout: connect, send and receive timeout in seconds
            socket_factory: creates the TCP stream, see :class:`ISOTCPConnection`
        """
        self.plc_type = PlcType(plc_type)
        self.host = address
        self.rack = self.plc_type.default_rack if rack is None else rack
        self.slot = self.plc_type.default_slot if slot is None else slot
        self.local_tsap, self.remote_tsap = tsaps(self.plc_type, self.rack, self.slot)
        self.socket_factory = socket_factory

        self.connection: Optional[ISOTCPConnection] = None
        self.pdu_length = 0  # negotiated, 0 until connected
        self._state = SessionState.DISCONNECTED
        self._lock = threading.RLock()
        self._pdu_reference = 0

        milliseconds = int(timeout * 1000)
        if milliseconds <= 0:
            raise InvalidArgument(f"timeout must be positive, got {timeout}")
        if pdu_length is not None and pdu_length < MIN_PDU_LENGTH:
            raise InvalidArgument(f"PDU length must be at least {MIN_PDU_LENGTH}, got {pdu_length}")

        # Parameter storage, timeouts in milliseconds
        self._params: Dict[Parameter, int] = {
            Parameter.RemotePort: port,
            Parameter.PingTimeout: milliseconds,
            Parameter.SendTimeout: milliseconds,
            Parameter.RecvTimeout: milliseconds,
            Parameter.SrcTSap: self.local_tsap,
            Parameter.DstTSap: self.remote_tsap,
            Parameter.PDURequest: pdu_length or self.plc_type.default_pdu_length,
        }

    def __repr__(self) -> str:
        return f"<Client {self.host}:{self.port} {self.plc_type.name} rack={self.rack} slot={self.slot} {self._state.value}>"

    @property
    def port(self) -> int:
        return self._params[Parameter.RemotePort]

    @property
    def state(self) -> SessionState:
        return self._state

    def get_connected(self) -> bool:
        """Check if client is connected to PLC."""
        return self._state is SessionState.READY and self.connection is not None and self.connection.connected

    def get_pdu_length(self) -> int:
        """Negotiated PDU length, 0 while disconnected."""
        return self.pdu_length

    def connect(self) -> "Client":
        """
        Connect to the PLC and negotiate the PDU length.

        Returns:
            Self for method chaining
        """
        with self._lock:
            self._ensure_ready()
        return self

    def disconnect(self) -> None:
        """Disconnect from S7 PLC."""
        with self._lock:
            self._teardown()

    close = disconnect

    def _ensure_ready(self) -> ISOTCPConnection:
        if self._state is SessionState.READY and self.connection is not None and self.connection.connected:
            return self.connection

        self._teardown()
        self._state = SessionState.CONNECTING
        self._pdu_reference = 0
        connection = ISOTCPConnection(
            host=self.host,
            port=self.port,
            local_tsap=self.local_tsap,
            remote_tsap=self.remote_tsap,
            socket_factory=self.socket_factory,
        )
        self.connection = connection
        try:
            connection.connect(self._seconds(Parameter.PingTimeout))
            self._state = SessionState.NEGOTIATING
            self._setup_communication(connection)
        except Exception:
            self._teardown()
            raise

        self._state = SessionState.READY
        logger.info(
            f"Connected to {self.host}:{self.port} rack {self.rack} slot {self.slot}, PDU length {self.pdu_length}"
        )
        return connection

    def _setup_communication(self, connection: ISOTCPConnection) -> None:
        """Setup communication and negotiate PDU length."""
        requested = self._params[Parameter.PDURequest]
        response = self._exchange(
            connection, lambda reference: build_setup_communication_request(reference, requested), None
        )
        offered = parse_setup_communication_response(response)
        if offered is None:
            logger.warning(f"PLC did not answer setup communication parameters, assuming PDU length {DEFAULT_PDU_LENGTH}")
            negotiated = DEFAULT_PDU_LENGTH
        else:
            negotiated = min(requested, offered)
        if negotiated < MIN_PDU_LENGTH:
            raise ProtocolError(f"PLC offered PDU length {offered}, at least {MIN_PDU_LENGTH} is needed")
        self.pdu_length = negotiated
        logger.info(f"Negotiated PDU length: {self.pdu_length} (requested {requested})")

    def _teardown(self) -> None:
        if self.connection is not None:
            self.connection.disconnect()
            self.connection = None
        self.pdu_length = 0
        self._state = SessionState.DISCONNECTED

    def _next_reference(self) -> int:
        self._pdu_reference = (self._pdu_reference + 1) & 0xFFFF
        return self._pdu_reference

    def _seconds(self, param: Parameter) -> float:
        return self._params[param] / 1000

    def _exchange(
        self, connection: ISOTCPConnection, build: Callable[[int], bytes], timeout: Optional[int]
    ) -> S7Response:
        """Send one PDU stamped with the next reference and wait for its answer."""
        reference = self._next_reference()
        pdu = build(reference)

        connection.set_timeout(self._seconds(Parameter.SendTimeout))
        connection.send_data(pdu)
        connection.set_timeout(timeout / 1000 if timeout else self._seconds(Parameter.RecvTimeout))
        try:
            data = connection.receive_data()
        except CommunicationError as e:
            e.request_sent = True
            raise

        response = parse_response(data)
        check_reference(response, reference)
        return response

    def _transact(self, build: Callable[[int], bytes], timeout: Optional[int] = None) -> S7Response:
        return self._exchange(self._ensure_ready(), build, timeout)

    def _persistent(self, operation: Callable[[], T], retry_after_send: bool = True) -> T:
        """Run ``operation``, reconnecting and retrying it once on a transport failure.

        Args:
            operation: one request/response exchange.
            retry_after_send: whether the exchange may be repeated when the
                request had already been sent, false for writes whose effect
                may already have been applied. Reads and control telegrams
                are safe to repeat.
        """
        with self._lock:
            try:
                return operation()
            except CommunicationError as e:
                self._teardown()
                if e.request_sent and not retry_after_send:
                    logger.error(f"Request sent but no valid answer, outcome unknown: {e}")
                    raise
                logger.warning(f"Communication with {self.host}:{self.port} failed ({e}), reconnecting and retrying once")

            try:
                return operation()
            except CommunicationError:
                self._teardown()
                raise

    def _negotiated_pdu_length(self) -> int:
        self._persistent(self._ensure_ready)
        return self.pdu_length

    def read_items(self, items: Sequence[RequestItem]) -> List[DataItem]:
        """
        Read several variables at once.

        Items are packed into as few PDUs as the negotiated length allows;
        items too large for a single PDU are read in pieces and reassembled.

        Args:
            items: the variables to read.

        Returns:
            One :class:`DataItem` per request item, in the same order. A refused
            item carries its return code and no data.
        """
        items = list(items)
        if not all(isinstance(item, RequestItem) for item in items):
            raise InvalidArgument("read_items expects RequestItem instances")
        if not items:
            return []

        with self._lock:
            batches = plan_reads(items, self._negotiated_pdu_length())
            results = [self._persistent(lambda batch=batch: self._read_batch(batch)) for batch in batches]
        return merge_read_results(len(items), batches, results)

    def _read_batch(self, batch: Batch) -> List[DataItem]:
        items = [fragment.item for fragment in batch]
        response = self._transact(lambda reference: build_read_request(reference, items))
        return parse_read_response(response, items)

    def write_items(self, items: Sequence[RequestItem], data_items: Sequence[DataItem]) -> List[int]:
        """
        Write several variables at once.

        Args:
            items: the variables to write.
            data_items: one payload per item, sized to the item.

        Returns:
            The return code of every item, :attr:`ReturnCode.SUCCESS` when written.

        Raises:
            InvalidArgument: before anything is sent, when payloads do not match items.
            CommunicationError: with ``request_sent`` set when a request may
                have reached the PLC, the write outcome is then unknown.
        """
        items = list(items)
        data_items = list(data_items)
        if not all(isinstance(item, RequestItem) for item in items):
            raise InvalidArgument("write_items expects RequestItem instances")
        if not all(isinstance(data_item, DataItem) for data_item in data_items):
            raise InvalidArgument("write_items expects DataItem instances")
        check_write_items(items, data_items)
        if not items:
            return []

        with self._lock:
            batches = plan_writes(items, self._negotiated_pdu_length())
            results = [
                self._persistent(lambda batch=batch: self._write_batch(batch, data_items), retry_after_send=False)
                for batch in batches
            ]
        return merge_write_results(len(items), batches, results)

    def _write_batch(self, batch: Batch, data_items: Sequence[DataItem]) -> List[int]:
        items = [fragment.item for fragment in batch]
        payloads = [fragment_payload(fragment, data_items) for fragment in batch]
        response = self._transact(lambda reference: build_write_request(reference, items, payloads))
        return parse_write_response(response, items)

    def run_control_operation(self, operation: ControlOperation, timeout: Optional[int] = None) -> ReturnCode:
        """
        Send a control telegram and check its acknowledgement.

        A broken connection is reconnected and the telegram sent once more.

        Args:
            operation: what the CPU should do.
            timeout: time to wait for the acknowledgement in milliseconds,
                the receive timeout when omitted.

        Returns:
            :attr:`ReturnCode.SUCCESS` once the PLC acknowledged.
        """
        operation = ControlOperation(operation)
        logger.info(f"Running control operation {operation.value}")

        def run() -> None:
            response = self._transact(lambda reference: build_control_request(reference, operation), timeout)
            check_control_response(response, operation)

        self._persistent(run)
        return ReturnCode.SUCCESS

    def plc_stop(self) -> ReturnCode:
        """Stop PLC CPU."""
        return self.run_control_operation(ControlOperation.STOP)

    def plc_hot_start(self) -> ReturnCode:
        """Hot start PLC CPU."""
        return self.run_control_operation(ControlOperation.HOT_RESTART)

    def plc_cold_start(self) -> ReturnCode:
        """Cold start PLC CPU."""
        return self.run_control_operation(ControlOperation.COLD_RESTART)

    def copy_ram_to_rom(self, timeout: int = 0) -> ReturnCode:
        """Copy RAM to ROM.

        Args:
            timeout: milliseconds to wait for completion, the receive timeout when 0.
        """
        return self.run_control_operation(ControlOperation.COPY_RAM_TO_ROM, timeout or None)

    def compress(self, timeout: int) -> ReturnCode:
        """Compress PLC memory.

        Args:
            timeout: milliseconds to wait for completion.
        """
        return self.run_control_operation(ControlOperation.COMPRESS, timeout)

    def _read_one(self, item: RequestItem) -> bytearray:
        (result,) = self.read_items([item])
        return bytearray(result.check().data)

    def _write_one(self, item: RequestItem, data_item: DataItem) -> ReturnCode:
        (code,) = self.write_items([item], [data_item])
        if code != ReturnCode.SUCCESS:
            raise ItemAccessError(code)
        return ReturnCode.SUCCESS

    def read_area(self, area: Area, db_number: int, start: int, size: int) -> bytearray:
        """
        Read data from a memory area.

        Args:
            area: memory area
            db_number: DB number, 0 unless reading a data block
            start: start byte offset, or first element for timers and counters
            size: number of bytes, or of elements for timers and counters

        Returns:
            Data read from the area

        Raises:
            ItemAccessError: the PLC refused the access
        """
        area = Area(area)
        if area is Area.TM:
            variable_type = VariableType.TIMER
        elif area is Area.CT:
            variable_type = VariableType.COUNTER
        else:
            variable_type = VariableType.BYTE
        logger.debug(f"read_area: {area.name}, db {db_number}, start={start}, size={size}")
        return self._read_one(RequestItem(area, db_number, start, 0, size, variable_type))

    def write_area(self, area: Area, db_number: int, start: int, data: Union[bytes, bytearray]) -> ReturnCode:
        """
        Write data to a memory area.

        Args:
            area: memory area
            db_number: DB number, 0 unless writing a data block
            start: start byte offset, or first element for timers and counters
            data: bytes to write, two per timer or counter element

        Raises:
            ItemAccessError: the PLC refused the access
        """
        area = Area(area)
        if area in (Area.TM, Area.CT):
            if len(data) % 2:
                raise InvalidArgument("timer and counter data must hold 2 bytes per element")
            variable_type = VariableType.TIMER if area is Area.TM else VariableType.COUNTER
            count = len(data) // 2
        else:
            variable_type = VariableType.BYTE
            count = len(data)
        if count == 0:
            raise InvalidArgument("write payload must not be empty")
        logger.debug(f"write_area: {area.name}, db {db_number}, start={start}, size={len(data)}")
        item = RequestItem(area, db_number, start, 0, count, variable_type)
        return self._write_one(item, DataItem.create(data))

    def db_read(self, db_number: int, start: int, size: int) -> bytearray:
        """Read ``size`` bytes of a data block starting at byte ``start``."""
        return self.read_area(Area.DB, db_number, start, size)

    def db_write(self, db_number: int, start: int, data: Union[bytes, bytearray]) -> ReturnCode:
        """Write ``data`` into a data block starting at byte ``start``."""
        return self.write_area(Area.DB, db_number, start, data)

    def read_bytes(self, address: str, count: int) -> bytearray:
        """Read ``count`` bytes starting at ``address``, e.g. ``"DB1.10"``."""
        return self._read_one(parse_byte(address, count))

    def write_bytes(self, address: str, data: Union[bytes, bytearray]) -> ReturnCode:
        """Write ``data`` starting at ``address``."""
        if not data:
            raise InvalidArgument("write payload must not be empty")
        return self._write_one(parse_byte(address, len(data)), DataItem.create(data))

    def read_bit(self, address: str) -> bool:
        """Read a single bit, e.g. ``"M0.0"`` or ``"DB1.DBX2.3"``."""
        data = self._read_one(parse_bit(address))
        return bool(data[0] & 0x01)

    def write_bit(self, address: str, value: bool) -> ReturnCode:
        """Set or clear a single bit."""
        return self._write_one(parse_bit(address), DataItem.create(b"\x01" if value else b"\x00", DataType.BOOL))

    def read_typed(self, address: str, data_type: DataType) -> Any:
        """
        Read one value of ``data_type``.

        Args:
            address: byte address of the value, a bit address for BOOL.
            data_type: type of the value.

        Returns:
            The decoded value, see :mod:`s7comm.datatypes` for the Python types.
        """
        data_type = DataType(data_type)
        if data_type is DataType.BOOL:
            return self.read_bit(address)
        if data_type is DataType.STRING:
            with self._lock:
                header = self._read_one(parse_byte(address, 2))
                if header[0] in (0, 0xFF) or header[1] > header[0]:
                    raise InvalidArgument(f"{address!r} does not hold a valid STRING header")
                return decode_string(self._read_one(parse_byte(address, 2 + header[1])))
        assert data_type.size is not None
        return decode_value(self._read_one(parse_byte(address, data_type.size)), data_type)

    def write_typed(self, address: str, data_type: DataType, value: Any) -> ReturnCode:
        """
        Write one value of ``data_type``.

        Raises:
            InvalidArgument: the value does not fit the type, e.g. a STRING
                longer than 254 characters. Nothing is sent in that case.
        """
        data_type = DataType(data_type)
        if data_type is DataType.BOOL:
            return self.write_bit(address, value)
        if data_type is DataType.STRING:
            payload = encode_string(value)
        else:
            payload = encode_value(value, data_type)
        data_item = DataItem.create(payload, data_type)
        return self._write_one(parse_byte(address, len(payload)), data_item)

    def read_layout(self, address: str, layout: Layout) -> Dict[str, Any]:
        """Read a whole structure starting at ``address`` and decode its fields."""
        return layout.decode(self.read_bytes(address, layout.size))

    def write_layout(self, address: str, layout: Layout, values: Dict[str, Any]) -> ReturnCode:
        """
        Update fields of a structure starting at ``address``.

        Only the fields named in ``values`` are sent, all in one write job.
        BOOL fields are written as single bits, so the rest of their byte and
        every field left out are never touched.

        Raises:
            ItemAccessError: the PLC refused one of the fields.
        """
        base = parse_byte(address)
        items = []
        data_items = []
        for field, payload in layout.encode_fields(values):
            byte_address = base.byte_address + field.byte_offset
            if field.data_type is DataType.BOOL:
                items.append(
                    RequestItem(base.area, base.db_number, byte_address, field.bit_offset, 1, VariableType.BIT)
                )
                data_items.append(DataItem.create(payload, DataType.BOOL))
            else:
                items.append(base.with_span(byte_address, len(payload)))
                data_items.append(DataItem.create(payload))

        for code in self.write_items(items, data_items):
            if code != ReturnCode.SUCCESS:
                raise ItemAccessError(code)
        return ReturnCode.SUCCESS

    def get_param(self, param: Parameter) -> int:
        """Get client parameter.

        Args:
            param: Parameter number

        Returns:
            Parameter value, timeouts in milliseconds
        """
        try:
            return self._params[Parameter(param)]
        except (KeyError, ValueError):
            raise InvalidArgument(f"Parameter {param} not valid for client")

    def set_param(self, param: Parameter, value: int) -> None:
        """Set client parameter.

        Port, TSAP and PDU length changes take effect on the next connection.

        Args:
            param: Parameter number
            value: Parameter value, timeouts in milliseconds
        """
        try:
            param = Parameter(param)
        except ValueError:
            raise InvalidArgument(f"Parameter {param} not valid for client")
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidArgument(f"Parameter {param.name} must be a positive integer, got {value!r}")
        if param is Parameter.PDURequest and value < MIN_PDU_LENGTH:
            raise InvalidArgument(f"PDU length must be at least {MIN_PDU_LENGTH}, got {value}")

        with self._lock:
            # RemotePort cannot be changed while connected
            if param is Parameter.RemotePort and self._state is not SessionState.DISCONNECTED:
                raise InvalidArgument("Cannot change RemotePort while connected")
            if param is Parameter.SrcTSap:
                self.local_tsap = value
            elif param is Parameter.DstTSap:
                self.remote_tsap = value
            self._params[param] = value
        logger.debug(f"Set param {param.name}={value}")

    def __enter__(self) -> "Client":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.disconnect()

    def __del__(self) -> None:
        """Destructor."""
        if getattr(self, "connection", None) is not None:
            self._teardown()
