"""
Enumerations and code tables of the S7 communication protocol.
"""

from enum import Enum, IntEnum
from typing import Dict, Optional


class Parameter(IntEnum):
    # // PARAMS LIST
    RemotePort = 2
    PingTimeout = 3
    SendTimeout = 4
    RecvTimeout = 5
    SrcTSap = 9
    DstTSap = 16
    PDURequest = 10


class PduType(IntEnum):
    """S7 PDU type codes (ROSCTR)."""

    JOB = 0x01
    ACK = 0x02
    ACK_DATA = 0x03
    USERDATA = 0x07


class Function(IntEnum):
    """S7 protocol function codes."""

    READ_VAR = 0x04
    WRITE_VAR = 0x05
    PLC_CONTROL = 0x28
    PLC_STOP = 0x29
    SETUP_COMMUNICATION = 0xF0


# Area ID
class Area(IntEnum):
    PE = 0x81
    PA = 0x82
    MK = 0x83
    DB = 0x84
    DI = 0x85
    CT = 0x1C
    TM = 0x1D

    @property
    def letter(self) -> str:
        map_: Dict[Area, str] = {
            Area.PE: "I",
            Area.PA: "Q",
            Area.MK: "M",
            Area.DB: "DB",
            Area.DI: "DI",
            Area.CT: "C",
            Area.TM: "T",
        }
        return map_[self]


# Word Length
class VariableType(IntEnum):
    BIT = 0x01
    BYTE = 0x02
    CHAR = 0x03
    WORD = 0x04
    INT = 0x05
    DWORD = 0x06
    DINT = 0x07
    REAL = 0x08
    COUNTER = 0x1C
    TIMER = 0x1D

    @property
    def size(self) -> int:
        """Width in bytes of one element on the wire."""
        map_: Dict[VariableType, int] = {
            VariableType.BIT: 1,
            VariableType.BYTE: 1,
            VariableType.CHAR: 1,
            VariableType.WORD: 2,
            VariableType.INT: 2,
            VariableType.DWORD: 4,
            VariableType.DINT: 4,
            VariableType.REAL: 4,
            VariableType.COUNTER: 2,
            VariableType.TIMER: 2,
        }
        return map_[self]


class TransportSize(IntEnum):
    """Transport size of a data section item."""

    NULL = 0x00
    BIT = 0x03
    BYTE_WORD_DWORD = 0x04
    INTEGER = 0x05
    DINTEGER = 0x06
    REAL = 0x07
    OCTET_STRING = 0x09

    @property
    def length_in_bits(self) -> bool:
        return self in (TransportSize.BIT, TransportSize.BYTE_WORD_DWORD, TransportSize.INTEGER)


class DataType(Enum):
    """Payload types understood by the typed read and write helpers."""

    BOOL = "BOOL"
    BYTE = "BYTE"
    CHAR = "CHAR"
    WORD = "WORD"
    INT = "INT"
    DWORD = "DWORD"
    DINT = "DINT"
    REAL = "REAL"
    LREAL = "LREAL"
    STRING = "STRING"
    TIME = "TIME"
    DATE = "DATE"
    TIME_OF_DAY = "TIME_OF_DAY"

    @property
    def size(self) -> Optional[int]:
        """Element width in bytes, ``None`` for length-prefixed strings."""
        map_: Dict[DataType, Optional[int]] = {
            DataType.BOOL: 1,
            DataType.BYTE: 1,
            DataType.CHAR: 1,
            DataType.WORD: 2,
            DataType.INT: 2,
            DataType.DWORD: 4,
            DataType.DINT: 4,
            DataType.REAL: 4,
            DataType.LREAL: 8,
            DataType.STRING: None,
            DataType.TIME: 4,
            DataType.DATE: 2,
            DataType.TIME_OF_DAY: 4,
        }
        return map_[self]

    @property
    def transport_size(self) -> TransportSize:
        if self is DataType.BOOL:
            return TransportSize.BIT
        return TransportSize.BYTE_WORD_DWORD

    @property
    def variable_type(self) -> VariableType:
        if self is DataType.BOOL:
            return VariableType.BIT
        return VariableType.BYTE


class ReturnCode(IntEnum):
    """Per item status returned by the PLC."""

    RESERVED = 0x00
    HARDWARE_FAULT = 0x01
    ACCESS_DENIED = 0x03
    ADDRESS_OUT_OF_RANGE = 0x05
    DATA_TYPE_NOT_SUPPORTED = 0x06
    DATA_TYPE_INCONSISTENT = 0x07
    OBJECT_DOES_NOT_EXIST = 0x0A
    SUCCESS = 0xFF


class PlcType(Enum):
    S200 = "S200"
    S200_SMART = "S200_SMART"
    S300 = "S300"
    S400 = "S400"
    S1200 = "S1200"
    S1500 = "S1500"

    @property
    def default_rack(self) -> int:
        return 0

    @property
    def default_slot(self) -> int:
        map_: Dict[PlcType, int] = {
            PlcType.S300: 2,
            PlcType.S400: 3,
        }
        return map_.get(self, 1)

    @property
    def default_pdu_length(self) -> int:
        if self is PlcType.S1500:
            return 960
        return 240


class ControlOperation(Enum):
    HOT_RESTART = "hot_restart"
    COLD_RESTART = "cold_restart"
    STOP = "stop"
    COPY_RAM_TO_ROM = "copy_ram_to_rom"
    COMPRESS = "compress"


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    NEGOTIATING = "negotiating"
    READY = "ready"
