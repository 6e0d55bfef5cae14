"""
The s7comm Python library.

Pure Python client for the Siemens S7 communication protocol over ISO on TCP:
symbolic addresses, batched multi variable reads and writes, typed values,
struct layouts and CPU control.
"""

from importlib.metadata import version, PackageNotFoundError

from .client import Client
from .item import RequestItem, DataItem
from .layout import Layout
from .address import parse_bit, parse_byte, format_address
from .type import Area, ControlOperation, DataType, PlcType, ReturnCode, SessionState, VariableType
from .error import (
    S7Error,
    InvalidArgument,
    AddressFormatError,
    CommunicationError,
    S7TimeoutError,
    ProtocolError,
    ControlOperationError,
    ItemAccessError,
)

__all__ = [
    "Client",
    "RequestItem",
    "DataItem",
    "Layout",
    "parse_bit",
    "parse_byte",
    "format_address",
    "Area",
    "ControlOperation",
    "DataType",
    "PlcType",
    "ReturnCode",
    "SessionState",
    "VariableType",
    "S7Error",
    "InvalidArgument",
    "AddressFormatError",
    "CommunicationError",
    "S7TimeoutError",
    "ProtocolError",
    "ControlOperationError",
    "ItemAccessError",
]

try:
    __version__ = version("python-s7comm")
except PackageNotFoundError:
    __version__ = "0.0rc0"
