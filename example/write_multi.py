from s7comm import Client, DataItem, PlcType, ReturnCode, parse_byte
from s7comm.datatypes import encode_value
from s7comm.type import DataType

client = Client("192.168.100.100", rack=0, slot=2, plc_type=PlcType.S300)

int_values = [10, 20, 30, 40]
ints = b"".join(encode_value(value, DataType.INT) for value in int_values)

real = encode_value(42.5, DataType.REAL)

timers = bytes.fromhex("2999 1111")

items = [
    parse_byte("DB1.0", len(ints)),
    parse_byte("DB1.8", len(real)),
    parse_byte("T2", 2),  # two timers starting at T2
]
data_items = [DataItem.create(ints), DataItem.create(real), DataItem.create(timers)]

for item, code in zip(items, client.write_items(items, data_items)):
    print(item, "written" if code == ReturnCode.SUCCESS else f"refused ({code})")

print(client.read_typed("DB1.8", DataType.REAL))
print(client.read_bytes("T2", 2).hex(" "))

client.disconnect()
