"""
Example usage of the read_items function

Three variables of DB200 are read with a single request.
"""

from s7comm import Client, PlcType, parse_byte
from s7comm.datatypes import decode_value
from s7comm.type import DataType

client = Client("10.100.5.2", rack=0, slot=2, plc_type=PlcType.S300)

items = [
    parse_byte("DB200.16", 4),  # reading a REAL, 4 bytes
    parse_byte("DB200.12", 4),  # reading a REAL, 4 bytes
    parse_byte("DB200.2", 2),  # reading an INT, 2 bytes
]

results = client.read_items(items)

# the type to decode each item with
data_types = [DataType.REAL, DataType.REAL, DataType.INT]

result_values = []
for result, data_type in zip(results, data_types):
    # raises ItemAccessError when the PLC refused this item
    result.check()
    result_values.append(decode_value(result.data, data_type))
print(result_values)

client.disconnect()
