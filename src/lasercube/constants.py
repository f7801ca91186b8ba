"""Shared constants for the LaserCube host driver.

USB identity, interface layout and wire sizes of the LaserCube / Laserdock
vector-laser DAC.  None of these are runtime-configurable: they are part of
the device's wire contract.
"""

import struct

# =========================================================================
# USB identity
# =========================================================================

USB_VENDOR_ID = 0x1FC9
USB_PRODUCT_ID = 0x04D8

# Configuration descriptor index walked for endpoints (first configuration)
CONFIGURATION_INDEX = 0

# Interface numbers
CONTROL_INTERFACE = 0   # bulk IN/OUT pair carrying the command protocol
DATA_INTERFACE = 1      # bulk OUT carrying sample batches

# =========================================================================
# Transfer sizes
# =========================================================================

# Every control response is exactly one full-speed bulk packet
RESPONSE_SIZE = 64

# Control response layout
STATUS_OFFSET = 1
STATUS_OK = 0
VALUE_OFFSET = 2

# Sample wire record: [rg:u16][b:u16][x:u16][y:u16], little-endian
SAMPLE_STRUCT = struct.Struct("<HHHH")
SAMPLE_SIZE = SAMPLE_STRUCT.size

# Maximum bulk packet on the data endpoint
BYTES_PER_BATCH = 64
SAMPLES_PER_BATCH = BYTES_PER_BATCH // SAMPLE_SIZE

# Blocking timeout for every control exchange and data write (ms)
TIMEOUT_MS = 1000

# =========================================================================
# Coordinates
# =========================================================================

# 12-bit DAC range
XY_MIN = 0
XY_MAX = 4095
