import logging
import struct
import unittest
from datetime import date, timedelta

import pytest

from s7comm.datatypes import (
    EPOCH,
    decode_bool,
    decode_char,
    decode_date,
    decode_string,
    decode_time,
    decode_time_of_day,
    decode_value,
    encode_date,
    encode_string,
    encode_time,
    encode_time_of_day,
    encode_value,
    set_bool,
)
from s7comm.error import InvalidArgument
from s7comm.type import DataType

logging.basicConfig(level=logging.WARNING)


@pytest.mark.util
class TestNumbers(unittest.TestCase):
    def test_big_endian(self) -> None:
        self.assertEqual(encode_value(0x1234, DataType.WORD), b"\x12\x34")
        self.assertEqual(encode_value(-2, DataType.INT), b"\xff\xfe")
        self.assertEqual(encode_value(0x01020304, DataType.DWORD), b"\x01\x02\x03\x04")
        self.assertEqual(encode_value(-1, DataType.DINT), b"\xff\xff\xff\xff")
        self.assertEqual(encode_value(1.0, DataType.REAL), b"\x3f\x80\x00\x00")
        self.assertEqual(encode_value(1.0, DataType.LREAL), struct.pack(">d", 1.0))

    def test_decode_at_offset(self) -> None:
        data = b"\x00\x00\xff\x9c"
        self.assertEqual(decode_value(data, DataType.INT, 2), -100)
        self.assertEqual(decode_value(data, DataType.WORD, 2), 0xFF9C)
        self.assertEqual(decode_value(data, DataType.BYTE, 3), 0x9C)

    def test_out_of_range(self) -> None:
        self.assertRaises(InvalidArgument, encode_value, 256, DataType.BYTE)
        self.assertRaises(InvalidArgument, encode_value, -1, DataType.WORD)
        self.assertRaises(InvalidArgument, encode_value, 2**31, DataType.DINT)
        self.assertRaises(InvalidArgument, encode_value, "12", DataType.INT)

    def test_decode_beyond_data(self) -> None:
        self.assertRaises(InvalidArgument, decode_value, b"\x00\x00\x00", DataType.REAL)
        self.assertRaises(InvalidArgument, decode_value, b"\x00\x00", DataType.INT, 1)


@pytest.mark.util
class TestBool(unittest.TestCase):
    def test_decode(self) -> None:
        data = b"\x00\x05"
        self.assertTrue(decode_bool(data, 1, 0))
        self.assertFalse(decode_bool(data, 1, 1))
        self.assertTrue(decode_bool(data, 1, 2))
        self.assertTrue(decode_value(data, DataType.BOOL, 1, 2))

    def test_set_bool_keeps_other_bits(self) -> None:
        buffer = bytearray(b"\x81")
        set_bool(buffer, 0, 3, True)
        self.assertEqual(buffer, bytearray(b"\x89"))
        set_bool(buffer, 0, 7, False)
        self.assertEqual(buffer, bytearray(b"\x09"))

    def test_invalid_bit(self) -> None:
        self.assertRaises(InvalidArgument, decode_bool, b"\x00", 0, 8)
        self.assertRaises(InvalidArgument, set_bool, bytearray(1), 0, -1, True)

    def test_encode(self) -> None:
        self.assertEqual(encode_value(True, DataType.BOOL), b"\x01")
        self.assertEqual(encode_value(0, DataType.BOOL), b"\x00")


@pytest.mark.util
class TestText(unittest.TestCase):
    def test_char(self) -> None:
        self.assertEqual(encode_value("A", DataType.CHAR), b"A")
        self.assertEqual(decode_char(b"xAy", 1), "A")
        self.assertRaises(InvalidArgument, encode_value, "AB", DataType.CHAR)
        self.assertRaises(InvalidArgument, encode_value, "é", DataType.CHAR)

    def test_string(self) -> None:
        self.assertEqual(encode_string("abc"), b"\xfe\x03abc")
        self.assertEqual(encode_string("abc", 10), b"\x0a\x03abc")
        self.assertEqual(encode_string(""), b"\xfe\x00")
        self.assertEqual(decode_string(b"\x0a\x03abc"), "abc")
        self.assertEqual(decode_string(b"..\x04\x02hi", 2), "hi")

    def test_string_limits(self) -> None:
        self.assertEqual(len(encode_string("x" * 254)), 256)
        self.assertRaises(InvalidArgument, encode_string, "x" * 255)
        self.assertRaises(InvalidArgument, encode_string, "abc", 2)
        self.assertRaises(InvalidArgument, encode_string, "abc", 255)
        self.assertRaises(InvalidArgument, encode_string, "ü")
        self.assertRaises(InvalidArgument, encode_string, 12)

    def test_invalid_string_header(self) -> None:
        self.assertRaises(InvalidArgument, decode_string, b"\x00\x00")
        self.assertRaises(InvalidArgument, decode_string, b"\xff\x01a")
        self.assertRaises(InvalidArgument, decode_string, b"\x02\x03abc")
        self.assertRaises(InvalidArgument, decode_string, b"\x04\x03ab")


@pytest.mark.util
class TestTime(unittest.TestCase):
    def test_time(self) -> None:
        self.assertEqual(encode_time(timedelta(seconds=1)), b"\x00\x00\x03\xe8")
        self.assertEqual(encode_time(-1), b"\xff\xff\xff\xff")
        self.assertEqual(decode_time(b"\xff\xff\xfc\x18"), timedelta(seconds=-1))
        self.assertRaises(InvalidArgument, encode_time, timedelta(days=25))
        self.assertRaises(InvalidArgument, encode_time, 1.5)

    def test_date(self) -> None:
        self.assertEqual(encode_date(EPOCH), b"\x00\x00")
        self.assertEqual(encode_date(date(1990, 1, 2)), b"\x00\x01")
        self.assertEqual(decode_date(b"\x00\x01"), date(1990, 1, 2))
        self.assertRaises(InvalidArgument, encode_date, date(1989, 12, 31))
        self.assertRaises(InvalidArgument, encode_date, "2020-01-01")

    def test_time_of_day(self) -> None:
        noon = timedelta(hours=12)
        self.assertEqual(encode_time_of_day(noon), struct.pack(">I", 43_200_000))
        self.assertEqual(decode_time_of_day(struct.pack(">I", 43_200_000)), noon)
        self.assertRaises(InvalidArgument, encode_time_of_day, timedelta(days=1))
        self.assertRaises(InvalidArgument, encode_time_of_day, -1)

    def test_dispatch(self) -> None:
        self.assertEqual(decode_value(encode_value(date(2000, 6, 1), DataType.DATE), DataType.DATE), date(2000, 6, 1))
        value = timedelta(minutes=5)
        self.assertEqual(decode_value(encode_value(value, DataType.TIME_OF_DAY), DataType.TIME_OF_DAY), value)
