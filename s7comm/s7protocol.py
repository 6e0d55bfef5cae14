"""
S7 protocol implementation.

Handles S7 PDU encoding/decoding for variable read/write and communication
setup. Every builder takes the PDU reference from the caller; the session
owns the counter.

PDU layout::

    header      10 bytes (job) or 12 bytes (ack-data, with error class/code)
    parameters  function code, item count, item specifications
    data        per item: return code, transport size, length, payload
"""

import struct
import logging
from typing import List, NamedTuple, Optional, Sequence

from .error import ProtocolError, error_text
from .item import DataItem, RequestItem
from .type import Function, PduType, ReturnCode, TransportSize, VariableType

logger = logging.getLogger(__name__)

PROTOCOL_ID = 0x32

JOB_HEADER_SIZE = 10
ACK_HEADER_SIZE = 12

# function code + item count
PARAMETER_HEADER_SIZE = 2
# 0x12, length, syntax id, transport size, count, db number, area, address
ITEM_SPEC_SIZE = 12
# return code, transport size, length
DATA_ITEM_HEADER_SIZE = 4

SETUP_COMMUNICATION_SIZE = 8

_HEADER = struct.Struct(">BBHHHH")
_ACK_HEADER = struct.Struct(">BBHHHHBB")
_ITEM_SPEC = struct.Struct(">BBBBHHB3s")
_DATA_ITEM_HEADER = struct.Struct(">BBH")


class S7Response(NamedTuple):
    """A parsed response PDU."""

    pdu_type: int
    pdu_reference: int
    error_class: int
    error_code: int
    parameters: bytes
    data: bytes

    @property
    def error(self) -> int:
        return (self.error_class << 8) | self.error_code

    @property
    def function(self) -> Optional[int]:
        return self.parameters[0] if self.parameters else None


def padded(length: int) -> int:
    """Length of a payload padded to an even number of bytes."""
    return length + (length & 1)


def build_pdu(pdu_reference: int, parameters: bytes, data: bytes = b"", pdu_type: int = PduType.JOB) -> bytes:
    """Prefix parameter and data sections with a job header."""
    header = _HEADER.pack(
        PROTOCOL_ID,
        pdu_type,
        0x0000,  # Reserved
        pdu_reference & 0xFFFF,
        len(parameters),
        len(data),
    )
    return header + parameters + data


def encode_item_spec(item: RequestItem) -> bytes:
    """Encode the 12 byte S7-Any item specification of a request item."""
    return _ITEM_SPEC.pack(
        0x12,  # Variable specification
        0x0A,  # Length of following address specification
        0x10,  # Syntax ID: S7-Any
        item.variable_type,
        item.count,
        item.db_number,
        item.area,
        struct.pack(">I", item.address)[1:],
    )


def write_transport_size(item: RequestItem, data_item: DataItem) -> TransportSize:
    if item.variable_type is VariableType.BIT:
        return TransportSize.BIT
    if item.variable_type in (VariableType.TIMER, VariableType.COUNTER):
        return TransportSize.OCTET_STRING
    if data_item.transport_size is TransportSize.BIT:
        return TransportSize.BYTE_WORD_DWORD
    return data_item.transport_size


def encode_data_item(item: RequestItem, data_item: DataItem, last: bool) -> bytes:
    transport_size = write_transport_size(item, data_item)
    payload = data_item.data
    if transport_size is TransportSize.BIT:
        length = 1
    elif transport_size.length_in_bits:
        length = len(payload) * 8
    else:
        length = len(payload)

    encoded = _DATA_ITEM_HEADER.pack(0x00, transport_size, length) + payload
    if not last and len(payload) & 1:
        encoded += b"\x00"
    return encoded


def build_read_request(pdu_reference: int, items: Sequence[RequestItem]) -> bytes:
    """Build a read-var request PDU for up to one PDU worth of items."""
    parameters = bytes([Function.READ_VAR, len(items)])
    parameters += b"".join(encode_item_spec(item) for item in items)
    return build_pdu(pdu_reference, parameters)


def build_write_request(pdu_reference: int, items: Sequence[RequestItem], data_items: Sequence[DataItem]) -> bytes:
    """Build a write-var request PDU, one data block per item."""
    parameters = bytes([Function.WRITE_VAR, len(items)])
    parameters += b"".join(encode_item_spec(item) for item in items)
    last = len(items) - 1
    data = b"".join(encode_data_item(item, data_item, i == last) for i, (item, data_item) in enumerate(zip(items, data_items)))
    return build_pdu(pdu_reference, parameters, data)


def build_setup_communication_request(
    pdu_reference: int, pdu_length: int, max_amq_caller: int = 1, max_amq_callee: int = 1
) -> bytes:
    """
    Build S7 setup communication request.

    This negotiates the PDU length with the PLC.
    """
    parameters = struct.pack(
        ">BBHHH",
        Function.SETUP_COMMUNICATION,
        0x00,  # Reserved
        max_amq_caller,
        max_amq_callee,
        pdu_length,
    )
    return build_pdu(pdu_reference, parameters)


def parse_response(pdu: bytes) -> S7Response:
    """
    Parse S7 response PDU.

    Args:
        pdu: Complete S7 PDU, without TPKT/COTP framing

    Returns:
        Header fields and the raw parameter and data sections.
    """
    if len(pdu) < JOB_HEADER_SIZE:
        raise ProtocolError(f"PDU too short for S7 header: {len(pdu)} bytes")

    protocol_id, pdu_type, _, pdu_reference, param_len, data_len = _HEADER.unpack_from(pdu)
    if protocol_id != PROTOCOL_ID:
        raise ProtocolError(f"Invalid protocol ID: {protocol_id:#04x}")

    error_class = error_code = 0
    offset = JOB_HEADER_SIZE
    if pdu_type in (PduType.ACK, PduType.ACK_DATA):
        if len(pdu) < ACK_HEADER_SIZE:
            raise ProtocolError("PDU too short for S7 response header")
        error_class, error_code = pdu[10], pdu[11]
        offset = ACK_HEADER_SIZE

    if offset + param_len + data_len > len(pdu):
        raise ProtocolError(
            f"PDU sections ({param_len} + {data_len} bytes) extend beyond PDU of {len(pdu)} bytes"
        )

    parameters = bytes(pdu[offset : offset + param_len])
    offset += param_len
    data = bytes(pdu[offset : offset + data_len])
    return S7Response(pdu_type, pdu_reference, error_class, error_code, parameters, data)


def check_reference(response: S7Response, pdu_reference: int) -> None:
    if response.pdu_reference != pdu_reference & 0xFFFF:
        raise ProtocolError(
            f"PDU reference mismatch: sent {pdu_reference & 0xFFFF}, received {response.pdu_reference}"
        )


def _check_ack(response: S7Response, function: Function, item_count: int) -> None:
    if response.error:
        raise ProtocolError(f"{function.name} refused: {error_text(response.error)}", response.error)
    if response.pdu_type != PduType.ACK_DATA:
        raise ProtocolError(f"Expected ack-data PDU, got type {response.pdu_type:#04x}")
    if len(response.parameters) < PARAMETER_HEADER_SIZE:
        raise ProtocolError(f"{function.name} response parameters too short")
    if response.parameters[0] != function:
        raise ProtocolError(f"Expected function {function:#04x}, got {response.parameters[0]:#04x}")
    if response.parameters[1] != item_count:
        raise ProtocolError(f"Expected {item_count} items in response, got {response.parameters[1]}")


def _as_return_code(value: int) -> int:
    try:
        return ReturnCode(value)
    except ValueError:
        return value


def parse_read_response(response: S7Response, items: Sequence[RequestItem]) -> List[DataItem]:
    """Decode the data items of a read-var response, aligned with ``items``.

    A refused item yields an empty :class:`DataItem` carrying its return code;
    the other items of the PDU are not affected.
    """
    _check_ack(response, Function.READ_VAR, len(items))

    data = response.data
    result: List[DataItem] = []
    offset = 0
    last = len(items) - 1
    for index, item in enumerate(items):
        if offset + DATA_ITEM_HEADER_SIZE > len(data):
            raise ProtocolError(f"Read response truncated at item {index}")

        return_code, transport_size, length = _DATA_ITEM_HEADER.unpack_from(data, offset)
        offset += DATA_ITEM_HEADER_SIZE

        try:
            ts = TransportSize(transport_size)
        except ValueError:
            if return_code == ReturnCode.SUCCESS:
                raise ProtocolError(f"Item {index}: unknown transport size {transport_size:#04x}")
            ts = TransportSize.NULL
        size = (length + 7) // 8 if ts.length_in_bits else length
        if offset + size > len(data):
            raise ProtocolError(f"Item {index}: payload of {size} bytes extends beyond data section")
        payload = data[offset : offset + size]
        offset += size
        if index != last and size & 1:
            offset += 1

        if return_code != ReturnCode.SUCCESS:
            result.append(DataItem.failed(_as_return_code(return_code)))
            continue
        if size != item.byte_length:
            raise ProtocolError(f"Item {index}: expected {item.byte_length} bytes, received {size}")
        result.append(DataItem.from_response(payload, ts, ReturnCode.SUCCESS))

    logger.debug(f"Decoded {len(result)} read items")
    return result


def parse_write_response(response: S7Response, items: Sequence[RequestItem]) -> List[int]:
    """Return the per item return codes of a write-var response."""
    _check_ack(response, Function.WRITE_VAR, len(items))
    if len(response.data) < len(items):
        raise ProtocolError(f"Write response carries {len(response.data)} return codes for {len(items)} items")
    return [_as_return_code(code) for code in response.data[: len(items)]]


def parse_setup_communication_response(response: S7Response) -> Optional[int]:
    """Extract the PDU length offered by the PLC, ``None`` when the answer carries none."""
    params = response.parameters
    if response.error or len(params) < SETUP_COMMUNICATION_SIZE or params[0] != Function.SETUP_COMMUNICATION:
        return None
    _, _, max_amq_caller, max_amq_callee, pdu_length = struct.unpack(">BBHHH", params[:SETUP_COMMUNICATION_SIZE])
    logger.debug(f"Setup communication: amq caller {max_amq_caller}, callee {max_amq_callee}, pdu {pdu_length}")
    return pdu_length


# Size estimates used to plan batches


def read_request_size(item_count: int) -> int:
    return JOB_HEADER_SIZE + PARAMETER_HEADER_SIZE + ITEM_SPEC_SIZE * item_count


def read_response_item_size(item: RequestItem) -> int:
    return DATA_ITEM_HEADER_SIZE + padded(item.byte_length)


def read_response_size(items: Sequence[RequestItem]) -> int:
    return ACK_HEADER_SIZE + PARAMETER_HEADER_SIZE + sum(read_response_item_size(item) for item in items)


def write_request_item_size(item: RequestItem) -> int:
    return ITEM_SPEC_SIZE + DATA_ITEM_HEADER_SIZE + padded(item.byte_length)


def write_request_size(items: Sequence[RequestItem]) -> int:
    return JOB_HEADER_SIZE + PARAMETER_HEADER_SIZE + sum(write_request_item_size(item) for item in items)


def write_response_size(item_count: int) -> int:
    return ACK_HEADER_SIZE + PARAMETER_HEADER_SIZE + item_count
