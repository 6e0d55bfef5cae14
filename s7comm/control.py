"""
PLC control telegrams.

Each operation is a fixed parameter block calling a PI service of the CPU:
``P_PROGRAM`` starts or stops the user program, ``_MODU`` with argument
``EP`` copies RAM to ROM and ``_GARB`` compresses the work memory.
"""

import logging
from typing import Dict

from .error import ControlOperationError, error_text
from .s7protocol import S7Response, build_pdu
from .type import ControlOperation, Function, PduType

logger = logging.getLogger(__name__)

_UNKNOWN_PARAMETERS = b"\x00\x00\x00\x00\x00\x00\xfd"

_PARAMETERS: Dict[ControlOperation, bytes] = {
    # function, 7 unknown bytes, argument length (2), service name length (1) + name
    ControlOperation.HOT_RESTART: bytes([Function.PLC_CONTROL]) + _UNKNOWN_PARAMETERS + b"\x00\x00" + b"\x09P_PROGRAM",
    ControlOperation.COLD_RESTART: bytes([Function.PLC_CONTROL]) + _UNKNOWN_PARAMETERS + b"\x00\x02C " + b"\x09P_PROGRAM",
    ControlOperation.COPY_RAM_TO_ROM: bytes([Function.PLC_CONTROL]) + _UNKNOWN_PARAMETERS + b"\x00\x02EP" + b"\x05_MODU",
    ControlOperation.COMPRESS: bytes([Function.PLC_CONTROL]) + _UNKNOWN_PARAMETERS + b"\x00\x00" + b"\x05_GARB",
    # function, 5 unknown bytes, service name length + name
    ControlOperation.STOP: bytes([Function.PLC_STOP]) + b"\x00\x00\x00\x00\x00" + b"\x09P_PROGRAM",
}


def control_parameters(operation: ControlOperation) -> bytes:
    return _PARAMETERS[operation]


def acknowledge_function(operation: ControlOperation) -> Function:
    """Function code the PLC echoes when it accepts ``operation``."""
    if operation is ControlOperation.STOP:
        return Function.PLC_STOP
    return Function.PLC_CONTROL


def build_control_request(pdu_reference: int, operation: ControlOperation) -> bytes:
    """Build the job PDU of a control operation (parameters only, no data)."""
    logger.debug(f"Building {operation.value} telegram")
    return build_pdu(pdu_reference, control_parameters(operation))


def check_control_response(response: S7Response, operation: ControlOperation) -> None:
    """Verify the acknowledgement of a control operation.

    Raises:
        ControlOperationError: the PLC refused the operation or answered with
            something other than the expected acknowledgement.
    """
    if response.error:
        raise ControlOperationError(operation, error_text(response.error), response.error)
    if response.pdu_type != PduType.ACK_DATA:
        raise ControlOperationError(operation, f"expected ack-data PDU, got type {response.pdu_type:#04x}")
    expected = acknowledge_function(operation)
    if response.function != expected:
        received = "none" if response.function is None else f"{response.function:#04x}"
        raise ControlOperationError(operation, f"expected acknowledgement {expected:#04x}, got {received}")

