"""
Custom exceptions for ZX Spectrum +3 disk image utilities.
"""


class Plus3Error(Exception):
    """Base exception for all +3 disk errors."""
    pass


class DiskError(Plus3Error):
    """Error reading/writing disk image."""
    pass


class AllocationError(DiskError):
    """Sector is already allocated."""
    pass


class OutOfRangeError(Plus3Error):
    """Track, sector, block or file position outside the valid range."""
    pass


class InvalidFilenameError(Plus3Error):
    """Filename does not conform to 8.3 format."""
    pass


# Format errors

class FormatError(Plus3Error):
    """Malformed on-disk structure."""
    pass


class InvalidImageError(FormatError):
    """Disk image container or geometry is invalid."""
    pass


class InvalidHeaderError(FormatError):
    """PLUS3DOS file header is invalid."""
    pass


# Capacity errors

class CapacityError(Plus3Error):
    """Not enough room for the requested operation."""
    pass


class DiskFullError(CapacityError):
    """Not enough free space on disk."""
    pass


class DirectoryFullError(CapacityError):
    """No free directory entries available."""
    pass


class FileTooLargeError(CapacityError):
    """File exceeds the maximum size a disk file can have."""
    pass


# Policy errors

class PolicyError(Plus3Error):
    """Operation not permitted on this file."""
    pass


class ReadOnlyError(PolicyError):
    """File is read-only."""
    pass


class FileExistsError(PolicyError):
    """File already exists in disk image."""
    pass


class FileNotFoundError(PolicyError):
    """File not found in disk image."""
    pass
