import logging
import struct
import unittest

import pytest

from s7comm.address import parse_bit, parse_byte
from s7comm.error import ProtocolError
from s7comm.item import DataItem
from s7comm.s7protocol import (
    build_read_request,
    build_setup_communication_request,
    build_write_request,
    check_reference,
    encode_item_spec,
    parse_read_response,
    parse_response,
    parse_setup_communication_response,
    parse_write_response,
    read_request_size,
    read_response_size,
    write_request_size,
    write_response_size,
)
from s7comm.type import DataType, PduType, ReturnCode, TransportSize

logging.basicConfig(level=logging.WARNING)


def ack_data(reference: int, parameters: bytes, data: bytes = b"", error: int = 0) -> bytes:
    header = struct.pack(">BBHHHHBB", 0x32, 0x03, 0, reference, len(parameters), len(data), error >> 8, error & 0xFF)
    return header + parameters + data


@pytest.mark.protocol
class TestRequests(unittest.TestCase):
    def test_item_spec(self) -> None:
        spec = encode_item_spec(parse_byte("DB1.10", 4))
        self.assertEqual(spec, bytes.fromhex("120a1002000400018400 0050".replace(" ", "")))

    def test_item_spec_timer_uses_element_number(self) -> None:
        spec = encode_item_spec(parse_byte("T5", 2))
        self.assertEqual(spec, bytes.fromhex("120a101d000200001d000005"))

    def test_read_request(self) -> None:
        pdu = build_read_request(1, [parse_byte("DB1.10", 4)])
        expected = bytes.fromhex("32010000 0001 000e 0000 0401 120a100200040001840000 50".replace(" ", ""))
        self.assertEqual(pdu, expected)
        self.assertEqual(len(pdu), read_request_size(1))

    def test_read_request_many_items(self) -> None:
        items = [parse_byte(f"DB1.{i}") for i in range(3)]
        pdu = build_read_request(7, items)
        self.assertEqual(pdu[4:6], b"\x00\x07")
        self.assertEqual(pdu[10:12], b"\x04\x03")
        self.assertEqual(len(pdu), read_request_size(3))

    def test_write_bit_request(self) -> None:
        pdu = build_write_request(2, [parse_bit("M0.0")], [DataItem.create(b"\x01", DataType.BOOL)])
        expected = bytes.fromhex(
            "32010000 0002 000e 0005"
            "0501 120a100100010000830000 00"
            "0003 0001 01".replace(" ", "")
        )
        self.assertEqual(pdu, expected)

    def test_write_pads_odd_payloads_except_last(self) -> None:
        items = [parse_byte("DB1.0", 3), parse_byte("DB1.10", 1)]
        data_items = [DataItem.create(b"\x01\x02\x03"), DataItem.create(b"\x04")]
        pdu = build_write_request(3, items, data_items)
        data = pdu[10 + 2 + 24 :]
        self.assertEqual(data, bytes.fromhex("00040018 010203 00 00040008 04".replace(" ", "")))
        self.assertEqual(struct.unpack(">H", pdu[8:10])[0], len(data))
        self.assertLessEqual(len(pdu), write_request_size(items))

    def test_write_timer_uses_octet_string(self) -> None:
        pdu = build_write_request(4, [parse_byte("C3")], [DataItem.create(b"\x00\x10")])
        self.assertEqual(pdu[-6:], bytes.fromhex("000900020010"))

    def test_setup_communication_request(self) -> None:
        pdu = build_setup_communication_request(1, 480)
        self.assertEqual(pdu, bytes.fromhex("32010000000100080000f0000001000101e0"))

    def test_reference_wraps_to_16_bits(self) -> None:
        pdu = build_read_request(0x10001, [parse_byte("M0")])
        self.assertEqual(pdu[4:6], b"\x00\x01")


@pytest.mark.protocol
class TestResponses(unittest.TestCase):
    def test_parse_response(self) -> None:
        response = parse_response(ack_data(9, b"\x04\x01", b"\xff\x04\x00\x08\x2a"))
        self.assertEqual(response.pdu_type, PduType.ACK_DATA)
        self.assertEqual(response.pdu_reference, 9)
        self.assertEqual(response.parameters, b"\x04\x01")
        self.assertEqual(response.data, b"\xff\x04\x00\x08\x2a")
        self.assertEqual(response.error, 0)
        self.assertEqual(response.function, 0x04)

    def test_parse_response_invalid(self) -> None:
        self.assertRaises(ProtocolError, parse_response, b"\x32\x03")
        self.assertRaises(ProtocolError, parse_response, b"\x31" + ack_data(1, b"")[1:])
        truncated = ack_data(1, b"\x04\x01", b"\xff\x04\x00\x08\x2a")[:-1]
        self.assertRaises(ProtocolError, parse_response, truncated)

    def test_check_reference(self) -> None:
        response = parse_response(ack_data(5, b"\x04\x00"))
        check_reference(response, 5)
        self.assertRaises(ProtocolError, check_reference, response, 6)

    def test_read_response(self) -> None:
        items = [parse_byte("DB1.0", 3), parse_bit("M0.1"), parse_byte("DB2.0", 2)]
        data = bytes.fromhex("ff040018 010203 00 ff030001 01 00 ff040010 0405".replace(" ", ""))
        result = parse_read_response(parse_response(ack_data(1, b"\x04\x03", data)), items)
        self.assertEqual([r.data for r in result], [b"\x01\x02\x03", b"\x01", b"\x04\x05"])
        self.assertEqual(result[1].transport_size, TransportSize.BIT)
        self.assertTrue(all(r.ok for r in result))

    def test_read_response_failed_item_does_not_affect_siblings(self) -> None:
        items = [parse_byte("DB1.0", 2), parse_byte("DB9.0", 2), parse_byte("DB1.2", 2)]
        data = bytes.fromhex("ff0400100102 0a000000 ff0400100304".replace(" ", ""))
        result = parse_read_response(parse_response(ack_data(1, b"\x04\x03", data)), items)
        self.assertEqual(result[0].data, b"\x01\x02")
        self.assertEqual(result[1].return_code, ReturnCode.OBJECT_DOES_NOT_EXIST)
        self.assertEqual(result[1].data, b"")
        self.assertEqual(result[2].data, b"\x03\x04")

    def test_read_response_octet_string_length_in_bytes(self) -> None:
        data = bytes.fromhex("ff0900040001 0002".replace(" ", ""))
        result = parse_read_response(parse_response(ack_data(1, b"\x04\x01", data)), [parse_byte("T0", 2)])
        self.assertEqual(result[0].data, b"\x00\x01\x00\x02")

    def test_read_response_errors(self) -> None:
        items = [parse_byte("DB1.0", 2)]
        good = bytes.fromhex("ff0400100102")
        cases = [
            ack_data(1, b"\x04\x01", good, error=0x8104),  # header error
            ack_data(1, b"\x05\x01", good),  # wrong function
            ack_data(1, b"\x04\x02", good),  # wrong item count
            ack_data(1, b"\x04\x01", good[:-1]),  # truncated payload
            ack_data(1, b"\x04\x01", bytes.fromhex("ff0400080102")),  # wrong size
            ack_data(1, b"\x04\x01", bytes.fromhex("ff4200100102")),  # unknown transport size
        ]
        for pdu in cases:
            with self.assertRaises(ProtocolError, msg=pdu.hex()):
                parse_read_response(parse_response(pdu), items)

    def test_header_error_carries_code(self) -> None:
        pdu = ack_data(1, b"\x04\x01", error=0x8104)
        with self.assertRaises(ProtocolError) as context:
            parse_read_response(parse_response(pdu), [parse_byte("M0")])
        self.assertEqual(context.exception.error_code, 0x8104)

    def test_write_response(self) -> None:
        items = [parse_byte("DB1.0"), parse_byte("DB1.1")]
        response = parse_response(ack_data(1, b"\x05\x02", b"\xff\x05"))
        self.assertEqual(parse_write_response(response, items), [ReturnCode.SUCCESS, ReturnCode.ADDRESS_OUT_OF_RANGE])
        short = parse_response(ack_data(1, b"\x05\x02", b"\xff"))
        self.assertRaises(ProtocolError, parse_write_response, short, items)

    def test_setup_communication_response(self) -> None:
        response = parse_response(ack_data(1, bytes.fromhex("f00000010001 00f0".replace(" ", ""))))
        self.assertEqual(parse_setup_communication_response(response), 240)
        self.assertIsNone(parse_setup_communication_response(parse_response(ack_data(1, b""))))


@pytest.mark.protocol
class TestSizes(unittest.TestCase):
    def test_read_sizes(self) -> None:
        self.assertEqual(read_request_size(2), 10 + 2 + 24)
        items = [parse_byte("DB1.0", 3), parse_byte("DB1.0", 4)]
        self.assertEqual(read_response_size(items), 12 + 2 + (4 + 4) + (4 + 4))

    def test_write_sizes(self) -> None:
        items = [parse_byte("DB1.0", 3)]
        self.assertEqual(write_request_size(items), 10 + 2 + 12 + 4 + 4)
        self.assertEqual(write_response_size(3), 12 + 2 + 3)
