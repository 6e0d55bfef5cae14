import struct

import pytest
from click.testing import CliRunner

from fake_plc import FakePLC
from s7comm.__main__ import convert_value, main
from s7comm.type import DataType


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def invoke(runner: CliRunner, plc: FakePLC, *args: str):
    return runner.invoke(main, list(args), obj={"socket_factory": plc.factory})


@pytest.mark.cli
class TestCommandLine:
    def test_help(self, runner: CliRunner) -> None:
        result = runner.invoke(main, ["-h"])
        assert result.exit_code == 0
        assert "read" in result.output
        assert "control" in result.output

    def test_read_bytes(self, runner: CliRunner, plc: FakePLC) -> None:
        plc.area(0x84, 1)[10:13] = b"\x01\xab\xff"
        result = invoke(runner, plc, "read", "DB1.10", "-n", "3")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[-1] == "01 ab ff"

    def test_read_bit(self, runner: CliRunner, plc: FakePLC) -> None:
        plc.area(0x83)[0] = 1
        result = invoke(runner, plc, "read", "M0.0")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[-1] == "True"

    def test_read_typed_array(self, runner: CliRunner, plc: FakePLC) -> None:
        plc.area(0x84, 1)[0:8] = struct.pack(">ff", 1.5, -2.0)
        result = invoke(runner, plc, "read", "DB1.0", "-t", "real", "-n", "2")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[-2:] == ["1.5", "-2.0"]

    def test_write(self, runner: CliRunner, plc: FakePLC) -> None:
        result = invoke(runner, plc, "write", "--type", "INT", "--", "DB1.4", "-1234")
        assert result.exit_code == 0, result.output
        assert plc.area(0x84, 1)[4:6] == struct.pack(">h", -1234)

    def test_write_bit(self, runner: CliRunner, plc: FakePLC) -> None:
        result = invoke(runner, plc, "write", "Q0.2", "on")
        assert result.exit_code == 0, result.output
        assert plc.area(0x82)[0] == 0b100

    def test_write_invalid_value(self, runner: CliRunner, plc: FakePLC) -> None:
        result = invoke(runner, plc, "write", "DB1.0", "abc", "-t", "INT")
        assert result.exit_code == 2
        assert "not a valid INT" in result.output
        assert plc.requests == []

    def test_control(self, runner: CliRunner, plc: FakePLC) -> None:
        result = invoke(runner, plc, "control", "stop")
        assert result.exit_code == 0, result.output
        assert "stop: acknowledged" in result.output
        assert len(plc.jobs(0x29)) == 1

    def test_invalid_address(self, runner: CliRunner, plc: FakePLC) -> None:
        result = invoke(runner, plc, "read", "XYZ")
        assert result.exit_code == 1
        assert "Error" in result.output

    def test_unreachable(self, runner: CliRunner, plc: FakePLC) -> None:
        plc.refuse_connects = 2
        result = invoke(runner, plc, "read", "M0")
        assert result.exit_code == 1
        assert "Error" in result.output


@pytest.mark.cli
class TestConvertValue:
    def test_values(self) -> None:
        assert convert_value("yes", DataType.BOOL) is True
        assert convert_value("0x10", DataType.WORD) == 16
        assert convert_value("2.5", DataType.REAL) == 2.5
        assert convert_value("hello", DataType.STRING) == "hello"
        assert convert_value("1500", DataType.TIME) == 1500
        assert str(convert_value("2024-01-31", DataType.DATE)) == "2024-01-31"
