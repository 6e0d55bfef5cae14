"""
Read and update a structure in a DB through a layout.

The table below comes from the dataview of DB1. One line per field:
byte offset (byte.bit for booleans), name and datatype.
"""

from s7comm import Client, Layout, PlcType

rc_if_db_1_layout = """

4   RC_IF_ID    INT
6   RC_IF_NAME  STRING[16]

24.0    LockAct         BOOL    # interlocked or not
24.1    GrpErr          BOOL    # indicate error
24.2    RdyToStart      BOOL
24.3    RdyToReset      BOOL
24.5    AutAct          BOOL    # automatic operation
24.6    ManAct          BOOL    # manual operation

26      PV_LiUnit       INT
28      PV_Li           REAL
32      ScaleOut.High   REAL
36      ScaleOut.Low    REAL

# control fields

40.0    OpenAut         BOOL     # open / close
40.1    CloseAut        BOOL     # open / close

42      SP_Ext          REAL
46      BatchID         DWORD    # order number
50      Counters        ARRAY[4] OF INT
58      StartedAt       TOD
62      BatchName       STRING[32]  # product name / appears on screen
"""

layout = Layout.from_specification(rc_if_db_1_layout)
print(layout)

client = Client("192.168.200.24", rack=0, slot=2, plc_type=PlcType.S300)

row = client.read_layout("DB1.0", layout)
for name, value in row.items():
    print(f"{name:>16}: {value!r}")

# only the given fields are changed, the rest of the block is written back as read
client.write_layout("DB1.0", layout, {"OpenAut": True, "SP_Ext": 12.5, "BatchName": "batch 42"})

client.disconnect()
