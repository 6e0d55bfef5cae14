"""
The :code:`__main__` module is used as an entrypoint when calling the module from the terminal using python -m flag.
It contains a small command line client to read, write and control a PLC.

Its :code:`main()` function is also exported as a console entrypoint. Every
option can also be given as an environment variable, e.g. ``S7COMM_HOST``.
"""

import logging
from datetime import date
from typing import Any

try:
    import click
except ImportError as e:
    print(e)
    print("Try using 'pip install python-s7comm[cli]'")
    exit()

from s7comm import __version__
from s7comm.address import parse_address
from s7comm.client import Client
from s7comm.datatypes import decode_value
from s7comm.error import S7Error
from s7comm.type import ControlOperation, DataType, PlcType

logger = logging.getLogger("s7comm.cli")

_TRUE = ("1", "true", "on", "yes")
_FALSE = ("0", "false", "off", "no")


def convert_value(text: str, data_type: DataType) -> Any:
    """Turn a command line value into the Python value of ``data_type``."""
    try:
        if data_type is DataType.BOOL:
            if text.lower() in _TRUE:
                return True
            if text.lower() in _FALSE:
                return False
            raise ValueError(f"expected one of {', '.join(_TRUE + _FALSE)}")
        if data_type in (DataType.REAL, DataType.LREAL):
            return float(text)
        if data_type in (DataType.CHAR, DataType.STRING):
            return text
        if data_type is DataType.DATE:
            return date.fromisoformat(text)
        # integers, TIME and TIME_OF_DAY in milliseconds
        return int(text, 0)
    except ValueError as e:
        raise click.BadParameter(f"{text!r} is not a valid {data_type.name}: {e}", param_hint="VALUE")


def _data_type(address: str, name: str) -> DataType:
    if name:
        return DataType(name.upper())
    try:
        bit = parse_address(address).bit_address
    except S7Error as e:
        raise click.ClickException(str(e))
    return DataType.BOOL if bit is not None else DataType.BYTE


_TYPE_CHOICE = click.Choice([t.value for t in DataType], case_sensitive=False)


@click.group(context_settings={"auto_envvar_prefix": "S7COMM"})
@click.option("--host", default="127.0.0.1", show_default=True, help="PLC address.")
@click.option("-p", "--port", default=102, show_default=True, help="TCP port of the PLC.")
@click.option("--rack", type=int, default=None, help="Rack number, defaults per PLC type.")
@click.option("--slot", type=int, default=None, help="Slot number, defaults per PLC type.")
@click.option(
    "--plc-type",
    type=click.Choice([t.value for t in PlcType], case_sensitive=False),
    default=PlcType.S1200.value,
    show_default=True,
    help="PLC family.",
)
@click.option("--pdu-length", type=int, default=None, help="PDU length to request.")
@click.option("--timeout", type=float, default=3.0, show_default=True, help="Timeout in seconds.")
@click.option("-v", "--verbose", is_flag=True, help="Also print debug-output.")
@click.version_option(__version__)
@click.help_option("-h", "--help")
@click.pass_context
def main(ctx, host, port, rack, slot, plc_type, pdu_length, timeout, verbose):
    """Read and write variables of a Siemens S7 PLC."""

    # setup logging
    if verbose:
        logging.basicConfig(format="[%(levelname)s]: %(message)s", level=logging.DEBUG)
    else:
        logging.basicConfig(format="[%(levelname)s]: %(message)s", level=logging.INFO)

    # extra Client keyword arguments may be handed in through the context object
    options = ctx.ensure_object(dict)
    try:
        client = Client(
            host,
            rack=rack,
            slot=slot,
            port=port,
            plc_type=PlcType(plc_type.upper()),
            pdu_length=pdu_length,
            timeout=timeout,
            **options,
        )
    except S7Error as e:
        raise click.ClickException(str(e))
    ctx.obj = client
    ctx.call_on_close(client.disconnect)


@main.command()
@click.argument("address")
@click.option("-t", "--type", "type_name", type=_TYPE_CHOICE, default=None, help="Decode the value as this type.")
@click.option("-n", "--count", type=click.IntRange(min=1), default=1, show_default=True, help="Number of elements.")
@click.pass_obj
def read(client, address, type_name, count):
    """Read ADDRESS, e.g. DB1.10, MW4 or M0.0."""
    data_type = _data_type(address, type_name)
    try:
        if data_type is DataType.BYTE and not type_name:
            click.echo(client.read_bytes(address, count).hex(" "))
        elif count == 1:
            click.echo(client.read_typed(address, data_type))
        elif data_type in (DataType.BOOL, DataType.STRING):
            raise click.UsageError(f"--count is not supported for {data_type.name}")
        else:
            size = data_type.size
            data = client.read_bytes(address, size * count)
            for index in range(count):
                click.echo(decode_value(data, data_type, index * size))
    except S7Error as e:
        raise click.ClickException(str(e))


@main.command()
@click.argument("address")
@click.argument("value")
@click.option("-t", "--type", "type_name", type=_TYPE_CHOICE, default=None, help="Encode the value as this type.")
@click.pass_obj
def write(client, address, value, type_name):
    """Write VALUE to ADDRESS."""
    data_type = _data_type(address, type_name)
    converted = convert_value(value, data_type)
    try:
        client.write_typed(address, data_type, converted)
    except S7Error as e:
        raise click.ClickException(str(e))
    logger.info(f"Wrote {converted!r} to {address}")


@main.command()
@click.argument("operation", type=click.Choice([op.value for op in ControlOperation], case_sensitive=False))
@click.option("--timeout", type=int, default=None, help="Milliseconds to wait for the acknowledgement.")
@click.pass_obj
def control(client, operation, timeout):
    """Run a control OPERATION on the CPU."""
    try:
        client.run_control_operation(ControlOperation(operation.lower()), timeout)
    except S7Error as e:
        raise click.ClickException(str(e))
    click.echo(f"{operation.lower()}: acknowledged")


if __name__ == "__main__":
    main()
