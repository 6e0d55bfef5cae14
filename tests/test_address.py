import logging
import unittest

import pytest

from s7comm.address import format_address, parse_address, parse_bit, parse_byte
from s7comm.error import AddressFormatError, InvalidArgument
from s7comm.item import RequestItem
from s7comm.type import Area, VariableType

logging.basicConfig(level=logging.WARNING)


@pytest.mark.address
class TestParseByte(unittest.TestCase):
    def test_db_byte(self) -> None:
        item = parse_byte("DB1.10")
        self.assertEqual(item, RequestItem(Area.DB, 1, 10, 0, 1, VariableType.BYTE))

    def test_db_with_size_prefix(self) -> None:
        for address in ("DB5.DBB20", "DB5.DBW20", "DB5.DBD20", "db5.dbb20", "  DB5.20 "):
            item = parse_byte(address, 4)
            self.assertEqual((item.area, item.db_number, item.byte_address, item.count), (Area.DB, 5, 20, 4))

    def test_size_prefix_does_not_set_length(self) -> None:
        self.assertEqual(parse_byte("MW4"), RequestItem(Area.MK, 0, 4, 0, 1, VariableType.BYTE))
        self.assertEqual(parse_byte("MD4", 2), parse_byte("M4", 2))
        self.assertEqual(parse_byte("MB4", 2, VariableType.WORD).variable_type, VariableType.WORD)

    def test_areas(self) -> None:
        expected = {
            "I3": Area.PE,
            "E3": Area.PE,
            "IB3": Area.PE,
            "Q3": Area.PA,
            "A3": Area.PA,
            "QW3": Area.PA,
            "M3": Area.MK,
            "MD3": Area.MK,
        }
        for address, area in expected.items():
            item = parse_byte(address)
            self.assertEqual(item.area, area, address)
            self.assertEqual(item.db_number, 0)
            self.assertEqual(item.byte_address, 3)

    def test_v_memory_is_db1(self) -> None:
        item = parse_byte("VW100", 2)
        self.assertEqual((item.area, item.db_number, item.byte_address), (Area.DB, 1, 100))

    def test_variable_type(self) -> None:
        item = parse_byte("DB1.0", 3, VariableType.WORD)
        self.assertEqual(item.variable_type, VariableType.WORD)
        self.assertEqual(item.byte_length, 6)

    def test_timers_and_counters(self) -> None:
        timer = parse_byte("T5", 2)
        self.assertEqual((timer.area, timer.byte_address, timer.variable_type), (Area.TM, 5, VariableType.TIMER))
        self.assertEqual(timer.address, 5)
        self.assertEqual(timer.byte_length, 4)
        for address in ("C3", "Z3"):
            counter = parse_byte(address)
            self.assertEqual((counter.area, counter.variable_type), (Area.CT, VariableType.COUNTER))

    def test_timer_type_needs_timer_address(self) -> None:
        self.assertRaises(AddressFormatError, parse_byte, "M0", 1, VariableType.TIMER)

    def test_bit_suffix_rejected(self) -> None:
        self.assertRaises(AddressFormatError, parse_byte, "M0.1")
        self.assertRaises(AddressFormatError, parse_byte, "DB1.DBX0.1")

    def test_bit_type_rejected(self) -> None:
        self.assertRaises(AddressFormatError, parse_byte, "M0", 1, VariableType.BIT)

    def test_count_must_be_positive(self) -> None:
        self.assertRaises(InvalidArgument, parse_byte, "DB1.0", 0)
        self.assertRaises(InvalidArgument, parse_byte, "DB1.0", -3)


@pytest.mark.address
class TestParseBit(unittest.TestCase):
    def test_memory_bit(self) -> None:
        item = parse_bit("M0.0")
        self.assertEqual(item, RequestItem(Area.MK, 0, 0, 0, 1, VariableType.BIT))
        self.assertEqual(item.address, 0)

    def test_db_bit(self) -> None:
        item = parse_bit("DB1.DBX2.3")
        self.assertEqual((item.area, item.db_number, item.byte_address, item.bit_address), (Area.DB, 1, 2, 3))
        self.assertEqual(item.address, (2 << 3) | 3)

    def test_bit_bounds(self) -> None:
        self.assertEqual(parse_bit("Q1.7").bit_address, 7)
        self.assertRaises(AddressFormatError, parse_bit, "M0.8")

    def test_missing_bit(self) -> None:
        self.assertRaises(AddressFormatError, parse_bit, "M0")

    def test_timer_not_bit_addressable(self) -> None:
        self.assertRaises(AddressFormatError, parse_bit, "T1")


@pytest.mark.address
class TestInvalidAddresses:
    @pytest.mark.parametrize(
        "address",
        ["", "   ", "X1", "DB.1", "DB", "DBX1.0", "M", "M-1", "M0.-1", "DB1", "DB1.", "T", "MX.1", "M1.2.3"],
    )
    def test_rejected(self, address: str) -> None:
        with pytest.raises(AddressFormatError):
            parse_address(address)

    def test_not_a_string(self) -> None:
        with pytest.raises(AddressFormatError):
            parse_address(10)  # type: ignore[arg-type]

    def test_address_error_is_invalid_argument(self) -> None:
        with pytest.raises(InvalidArgument):
            parse_bit("M0.9")


@pytest.mark.address
class TestFormatAddress:
    @pytest.mark.parametrize("address", ["DB1.10", "DB1.DBW4", "M0", "MW12", "I3", "QB7", "V100", "T5", "C3"])
    def test_byte_round_trip(self, address: str) -> None:
        item = parse_byte(address)
        assert parse_byte(format_address(item)) == item

    @pytest.mark.parametrize("address", ["M0.0", "DB1.DBX2.3", "I1.7", "Q0.4", "V10.1"])
    def test_bit_round_trip(self, address: str) -> None:
        item = parse_bit(address)
        assert parse_bit(format_address(item)) == item

    def test_canonical_forms(self) -> None:
        assert format_address(parse_byte("db1.dbw10")) == "DB1.10"
        assert format_address(parse_bit("E0.1")) == "I0.1"
        assert format_address(parse_byte("Z4")) == "C4"

    def test_instance_db_has_no_string_form(self) -> None:
        with pytest.raises(AddressFormatError):
            format_address(RequestItem(Area.DI, 2, 0))
