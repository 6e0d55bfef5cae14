"""
So how to change a bool value?

Use write_bit with the bit address. Only the addressed bit is written, the
other bits of the byte keep their value in the PLC.

The minimum amount of data being read or written to a plc is 1 bit.
"""

from s7comm import Area, Client, PlcType

plc = Client("192.168.200.24", rack=0, slot=3, plc_type=PlcType.S300)

# In this example boolean in DB 31 at byte 120 and bit 5 is changed. = 120.5
plc.write_bit("DB31.DBX120.5", True)
print(plc.read_bit("DB31.DBX120.5"))

# NOTE you could also use the read_area and write_area functions.
# then you can specify an area to read from:
data = plc.read_area(area=Area.MK, db_number=0, start=20, size=2)
data[1] |= 0x01
plc.write_area(area=Area.MK, db_number=0, start=20, data=data)

plc.disconnect()
