"""
Constants for ZX Spectrum +3 disk image utilities.
"""

# Disk geometry (single fixed format: 40 tracks, 9 sectors, single-sided)
TRACKS_PER_SIDE = 40
SECTORS_PER_TRACK = 9
SIDES_PER_DISK = 1
SECTOR_SIZE = 512
TRACK_SIZE = SECTORS_PER_TRACK * SECTOR_SIZE                      # 4608 bytes
TOTAL_SECTORS = TRACKS_PER_SIDE * SECTORS_PER_TRACK * SIDES_PER_DISK  # 360
TOTAL_SIZE = TOTAL_SECTORS * SECTOR_SIZE                          # 184320 bytes

# Allocation blocks
BLOCK_SIZE = 1024
SECTORS_PER_BLOCK = BLOCK_SIZE // SECTOR_SIZE   # 2
TOTAL_BLOCKS = TOTAL_SECTORS // SECTORS_PER_BLOCK  # 180
BOOT_BLOCKS = 1
DIRECTORY_BLOCKS = 2
RESERVED_BLOCKS = BOOT_BLOCKS + DIRECTORY_BLOCKS
RESERVED_SECTORS = RESERVED_BLOCKS * SECTORS_PER_BLOCK
DATA_CAPACITY = (TOTAL_BLOCKS - RESERVED_BLOCKS) * BLOCK_SIZE     # 181248 bytes
MAX_BLOCKS_PER_FILE = 256
MAX_IMPORT_SIZE = 8 * 1024 * 1024

# DSK container
DISK_SIGNATURE = b"EXTENDED CPC DSK File\r\nDisk-Info\r\n"
DISK_CREATOR = b"plus3 utility"
DISK_HEADER_SIZE = 256
TRACK_SIGNATURE = b"Track-Info\r\n"
TRACK_INFO_SIZE = 256
SECTOR_SIZE_CODE = 2       # 128 << 2 == 512
GAP3_LENGTH = 0x52
FILLER_BYTE = 0xE5
FIRST_SECTOR_ID = 1

# Boot sector
BOOT_SECTOR = 0
BOOT_CHECKSUM = 3
BOOT_CHECKSUM_FIDDLE = 15

# CP/M directory
DIR_ENTRY_SIZE = 32
DIR_START_SECTOR = BOOT_BLOCKS * SECTORS_PER_BLOCK   # sector 2
DIR_SECTORS = DIRECTORY_BLOCKS * SECTORS_PER_BLOCK   # 4 sectors
MAX_DIRECTORY_ENTRIES = DIR_SECTORS * SECTOR_SIZE // DIR_ENTRY_SIZE  # 64
ENTRY_UNUSED = 0x00
ENTRY_ACTIVE = 0x01
ENTRY_DELETED = 0xE5
RECORD_SIZE = 128
RECORDS_PER_EXTENT = 128
BLOCKS_PER_EXTENT = 16     # 8-bit block pointers
MAX_EXTENT = 31

# PLUS3DOS file header
HEADER_SIZE = 128
HEADER_SIGNATURE = b"PLUS3DOS"
HEADER_SOFT_EOF = 0x1A
HEADER_ISSUE = 1
HEADER_VERSION = 1

# Spectrum memory layout
SCREEN_SIZE = 6912
SCREEN_ADDRESS = 16384
NO_AUTOSTART = 0x8000

# Attribute bit (high bit of a name/extension byte)
ATTR_BIT = 0x80

# Valid 8.3 filename characters
VALID_FILENAME_CHARS = set("ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!#$%&'()-@^_`{}~ ")
