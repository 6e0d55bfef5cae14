"""
ISO on TCP connection management (RFC 1006).

Implements TPKT (Transport Service on top of TCP) and COTP (Connection Oriented
Transport Protocol) layers for S7 communication.
"""

import socket
import struct
import logging
from typing import Any, Callable, Optional, Tuple

from .error import CommunicationError, S7TimeoutError

logger = logging.getLogger(__name__)

SocketFactory = Callable[[Tuple[str, int], float], Any]

TPKT_VERSION = 3
TPKT_HEADER_SIZE = 4

# Max fragments of one TSDU
MAX_ISO_FRAGMENTS = 64


class ISOTCPConnection:
    """
    ISO on TCP connection implementation.

    Handles the transport layer for S7 communication including:
    - TCP socket management
    - TPKT framing (RFC 1006)
    - COTP connection setup and data transfer

    The socket is created by ``socket_factory``, called as
    ``socket_factory((host, port), timeout)``; any object offering
    ``sendall``, ``recv``, ``settimeout`` and ``close`` will do.
    """

    # COTP PDU types
    COTP_CR = 0xE0  # Connection Request
    COTP_CC = 0xD0  # Connection Confirm
    COTP_DR = 0x80  # Disconnect Request
    COTP_DC = 0xC0  # Disconnect Confirm
    COTP_DT = 0xF0  # Data Transfer
    COTP_ER = 0x70  # Error

    # TPDU size code 0x0A = 1024 bytes
    TPDU_SIZE = 0x0A

    def __init__(
        self,
        host: str,
        port: int = 102,
        local_tsap: int = 0x0100,
        remote_tsap: int = 0x0102,
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Initialize ISO TCP connection.

        Args:
            host: Target PLC IP address
            port: TCP port (default 102 for S7)
            local_tsap: Local Transport Service Access Point
            remote_tsap: Remote Transport Service Access Point
            socket_factory: creates the connected stream, defaults to socket.create_connection
        """
        self.host = host
        self.port = port
        self.local_tsap = local_tsap
        self.remote_tsap = remote_tsap
        self.socket_factory: SocketFactory = socket_factory or socket.create_connection
        self.socket: Optional[Any] = None
        self.connected = False
        self.timeout = 5.0

        # Connection parameters
        self.src_ref = 0x0001  # Source reference
        self.dst_ref = 0x0000  # Destination reference (assigned by peer)

    def connect(self, timeout: float = 5.0) -> None:
        """
        Establish ISO on TCP connection.

        Args:
            timeout: Connection and receive timeout in seconds
        """
        self.timeout = timeout

        try:
            self._tcp_connect()
            self._iso_connect()
        except CommunicationError:
            self.disconnect()
            raise

        self.connected = True
        logger.info(f"Connected to {self.host}:{self.port}, TSAP {self.local_tsap:04x}/{self.remote_tsap:04x}")

    def disconnect(self) -> None:
        """Disconnect from S7 device."""
        if self.socket is None:
            return
        try:
            if self.connected:
                self._send_cotp_disconnect()
            self.socket.close()
        except OSError as e:
            logger.debug(f"Error while closing socket: {e}")
        finally:
            self.socket = None
            self.connected = False
            logger.info(f"Disconnected from {self.host}:{self.port}")

    def set_timeout(self, timeout: float) -> None:
        self.timeout = timeout
        if self.socket is not None:
            self.socket.settimeout(timeout)

    def send_data(self, data: bytes) -> None:
        """
        Send data over ISO connection.

        Args:
            data: S7 PDU data to send

        Raises:
            CommunicationError: the frame could not be handed to the socket.
        """
        if not self.connected or self.socket is None:
            raise CommunicationError("Not connected")

        tpkt_frame = self._build_tpkt(self._build_cotp_dt(data))
        try:
            self.socket.sendall(tpkt_frame)
        except socket.timeout:
            raise S7TimeoutError("Send timeout")
        except OSError as e:
            raise CommunicationError(f"Send failed: {e}")
        logger.debug(f"Sent {len(tpkt_frame)} bytes")

    def receive_data(self) -> bytes:
        """
        Receive one S7 PDU, reassembling COTP fragments.

        Returns:
            S7 PDU data
        """
        if not self.connected or self.socket is None:
            raise CommunicationError("Not connected", request_sent=True)

        pdu = bytearray()
        for _ in range(MAX_ISO_FRAGMENTS):
            payload = self._recv_tpkt()
            data, last = self._parse_cotp_data(payload)
            pdu.extend(data)
            if last:
                logger.debug(f"Received PDU of {len(pdu)} bytes")
                return bytes(pdu)
        raise CommunicationError(f"Too many packets without EoT flag (> {MAX_ISO_FRAGMENTS})", request_sent=True)

    def exchange(self, data: bytes) -> bytes:
        """Send one PDU and wait for the answer."""
        self.send_data(data)
        try:
            return self.receive_data()
        except CommunicationError as e:
            e.request_sent = True
            raise

    def _tcp_connect(self) -> None:
        """Establish TCP connection."""
        try:
            self.socket = self.socket_factory((self.host, self.port), self.timeout)
            self.socket.settimeout(self.timeout)
        except socket.timeout:
            raise S7TimeoutError(f"TCP connection to {self.host}:{self.port} timed out")
        except OSError as e:
            raise CommunicationError(f"TCP connection failed: {e}")
        logger.debug(f"TCP connected to {self.host}:{self.port}")

    def _iso_connect(self) -> None:
        """Establish ISO connection using COTP handshake."""
        assert self.socket is not None
        try:
            self.socket.sendall(self._build_tpkt(self._build_cotp_cr()))
        except socket.timeout:
            raise S7TimeoutError("Send timeout during COTP connection request")
        except OSError as e:
            raise CommunicationError(f"COTP connection request failed: {e}")
        logger.debug("Sent COTP Connection Request")

        self._parse_cotp_cc(self._recv_tpkt())
        logger.debug("Received COTP Connection Confirm")

    def _recv_tpkt(self) -> bytes:
        """Receive one TPKT frame and return its payload."""
        version, _, length = struct.unpack(">BBH", self._recv_exact(TPKT_HEADER_SIZE))
        if version != TPKT_VERSION:
            raise CommunicationError(f"Invalid TPKT version: {version}", request_sent=True)
        if length <= TPKT_HEADER_SIZE:
            raise CommunicationError(f"Invalid TPKT length: {length}", request_sent=True)
        return self._recv_exact(length - TPKT_HEADER_SIZE)

    def _build_tpkt(self, payload: bytes) -> bytes:
        """
        Build TPKT frame.

        TPKT Header (4 bytes):
        - Version (1 byte): Always 3
        - Reserved (1 byte): Always 0
        - Length (2 bytes): Total frame length including header
        """
        return struct.pack(">BBH", TPKT_VERSION, 0, len(payload) + TPKT_HEADER_SIZE) + payload

    def _build_cotp_cr(self) -> bytes:
        """
        Build COTP Connection Request PDU.

        COTP CR format:
        - PDU Length: Length of COTP header (excluding this byte)
        - PDU Type: 0xE0 (Connection Request)
        - Destination Reference: 2 bytes
        - Source Reference: 2 bytes
        - Class/Option: 1 byte
        - Parameters: TPDU size, calling TSAP, called TSAP
        """
        parameters = (
            struct.pack(">BBB", 0xC0, 1, self.TPDU_SIZE)
            + struct.pack(">BBH", 0xC1, 2, self.local_tsap)
            + struct.pack(">BBH", 0xC2, 2, self.remote_tsap)
        )
        header = struct.pack(">BHHB", self.COTP_CR, 0x0000, self.src_ref, 0x00)
        return struct.pack(">B", len(header) + len(parameters)) + header + parameters

    def _parse_cotp_cc(self, data: bytes) -> None:
        """
        Parse COTP Connection Confirm PDU.

        Extracts destination reference assigned by the peer.
        """
        if len(data) < 7:
            raise CommunicationError("Invalid COTP CC: too short")

        _, pdu_type, dst_ref, src_ref, _ = struct.unpack(">BBHHB", data[:7])
        if pdu_type != self.COTP_CC:
            raise CommunicationError(f"Expected COTP CC, got {pdu_type:#04x}")

        # the peer's source reference becomes our destination reference
        self.dst_ref = src_ref

    def _build_cotp_dt(self, data: bytes) -> bytes:
        """
        Build COTP Data Transfer PDU.

        COTP DT format:
        - PDU Length: 2 (fixed for DT)
        - PDU Type: 0xF0 (Data Transfer)
        - EOT + Number: 0x80 (End of TSDU, sequence number 0)
        - Data: Variable length
        """
        return struct.pack(">BBB", 2, self.COTP_DT, 0x80) + data

    def _parse_cotp_data(self, cotp_pdu: bytes) -> Tuple[bytes, bool]:
        """
        Parse COTP Data Transfer PDU.

        Returns:
            The user data and whether the EOT flag marks the last fragment.
        """
        if len(cotp_pdu) < 3:
            raise CommunicationError("Invalid COTP DT: too short", request_sent=True)

        header_len, pdu_type, eot_num = struct.unpack(">BBB", cotp_pdu[:3])
        if pdu_type != self.COTP_DT:
            raise CommunicationError(f"Expected COTP DT, got {pdu_type:#04x}", request_sent=True)

        return cotp_pdu[header_len + 1 :], bool(eot_num & 0x80)

    def _send_cotp_disconnect(self) -> None:
        """Send COTP Disconnect Request."""
        dr_pdu = struct.pack(
            ">BBHHB",
            6,  # PDU length
            self.COTP_DR,
            self.dst_ref,
            self.src_ref,
            0x00,  # Reason (normal disconnect)
        )
        try:
            self.socket.sendall(self._build_tpkt(dr_pdu))
        except OSError as e:
            logger.debug(f"COTP disconnect request not sent: {e}")

    def _recv_exact(self, size: int) -> bytes:
        """
        Receive exactly the specified number of bytes.

        Raises:
            CommunicationError: If connection is lost
            S7TimeoutError: If timeout occurs
        """
        data = bytearray()

        while len(data) < size:
            try:
                chunk = self.socket.recv(size - len(data))
            except socket.timeout:
                raise S7TimeoutError("Receive timeout", request_sent=True)
            except OSError as e:
                raise CommunicationError(f"Receive error: {e}", request_sent=True)
            if not chunk:
                raise CommunicationError("Connection closed by peer", request_sent=True)
            data.extend(chunk)

        return bytes(data)

    def __enter__(self) -> "ISOTCPConnection":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        self.disconnect()
