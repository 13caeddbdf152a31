"""
ZX Spectrum +3 Disk Image Utility

A Python package for creating, reading and modifying ZX Spectrum +3
floppy disk images (EXTENDED CPC DSK containers with a +3DOS
filesystem), including PLUS3DOS file headers and TAP conversion.
"""

from .constants import (
    BLOCK_SIZE,
    DATA_CAPACITY,
    HEADER_SIZE,
    MAX_BLOCKS_PER_FILE,
    MAX_DIRECTORY_ENTRIES,
    SECTOR_SIZE,
    SECTORS_PER_TRACK,
    TOTAL_BLOCKS,
    TOTAL_SECTORS,
    TRACKS_PER_SIDE,
)
from .exceptions import (
    AllocationError,
    CapacityError,
    DirectoryFullError,
    DiskError,
    DiskFullError,
    FileExistsError,
    FileNotFoundError,
    FileTooLargeError,
    FormatError,
    InvalidFilenameError,
    InvalidHeaderError,
    InvalidImageError,
    OutOfRangeError,
    Plus3Error,
    PolicyError,
    ReadOnlyError,
)
from .allocation import BlockAllocator, SectorAllocation
from .directory import Directory
from .disk import AllocationRecovery, DiskImage, DiskState, DiskUsage
from .fileio import Plus3File
from .formatter import OutputFormatter, sort_files
from .header import (
    CharArrayParams,
    CodeParams,
    FileType,
    NumericArrayParams,
    Plus3DosHeader,
    ProgramParams,
)
from .hostio import (
    ImportKind,
    export_basic,
    export_file,
    export_screen,
    export_to_host,
    import_basic,
    import_code,
    import_host_file,
    import_raw,
    import_screen,
    kind_for_path,
)
from .models import DirectoryEntry, FileAttributes, Plus3FileInfo
from .tap import TapFile, disk_to_tap, read_tap, tap_to_disk
from .utils import (
    disk_filename,
    has_wildcards,
    match_filename,
    normalize_filename,
    validate_filename,
)
from .verify import DiskCheck, ValidationLevel, Violation, verify_disk
from .creator import create_blank_image

__version__ = "1.0.0"

__all__ = [
    # Main disk image classes
    "DiskImage",
    "DiskState",
    "DiskUsage",
    "AllocationRecovery",
    "Directory",
    "Plus3File",
    "SectorAllocation",
    "BlockAllocator",
    # Data models
    "DirectoryEntry",
    "FileAttributes",
    "Plus3FileInfo",
    "Plus3DosHeader",
    "FileType",
    "ProgramParams",
    "NumericArrayParams",
    "CharArrayParams",
    "CodeParams",
    "TapFile",
    # Exceptions
    "Plus3Error",
    "DiskError",
    "AllocationError",
    "OutOfRangeError",
    "InvalidFilenameError",
    "FormatError",
    "InvalidImageError",
    "InvalidHeaderError",
    "CapacityError",
    "DiskFullError",
    "DirectoryFullError",
    "FileTooLargeError",
    "PolicyError",
    "ReadOnlyError",
    "FileExistsError",
    "FileNotFoundError",
    # Import/export
    "ImportKind",
    "import_basic",
    "import_code",
    "import_screen",
    "import_raw",
    "import_host_file",
    "kind_for_path",
    "export_file",
    "export_basic",
    "export_screen",
    "export_to_host",
    "read_tap",
    "tap_to_disk",
    "disk_to_tap",
    "create_blank_image",
    # Validation
    "DiskCheck",
    "ValidationLevel",
    "Violation",
    "verify_disk",
    # Utilities
    "validate_filename",
    "normalize_filename",
    "disk_filename",
    "has_wildcards",
    "match_filename",
    # Output
    "OutputFormatter",
    "sort_files",
    # Constants
    "SECTOR_SIZE",
    "SECTORS_PER_TRACK",
    "TRACKS_PER_SIDE",
    "TOTAL_SECTORS",
    "BLOCK_SIZE",
    "TOTAL_BLOCKS",
    "DATA_CAPACITY",
    "MAX_BLOCKS_PER_FILE",
    "MAX_DIRECTORY_ENTRIES",
    "HEADER_SIZE",
]
