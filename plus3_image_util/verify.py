"""
Structural checks for ZX Spectrum +3 disk images.

DiskCheck collects every problem it finds as a Violation instead of
stopping at the first one. verify_disk wraps the list into a
VerificationResult for reporting.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

from .constants import (
    BLOCK_SIZE,
    BOOT_CHECKSUM,
    BOOT_SECTOR,
    FILLER_BYTE,
    HEADER_SIZE,
    MAX_EXTENT,
    RECORDS_PER_EXTENT,
    RESERVED_BLOCKS,
    RESERVED_SECTORS,
    SECTOR_SIZE,
    TOTAL_BLOCKS,
    TOTAL_SECTORS,
)
from .directory import Directory
from .disk import DiskImage
from .exceptions import Plus3Error
from .geometry import sector_to_block
from .header import Plus3DosHeader
from .logging_config import get_logger

logger = get_logger('verify')

_BLANK_SECTOR = bytes([FILLER_BYTE]) * SECTOR_SIZE


class ValidationLevel(Enum):
    BASIC = 'basic'     # container structure only
    STRICT = 'strict'   # plus filesystem consistency


class Severity(Enum):
    ERROR = 'error'
    WARNING = 'warning'


@dataclass(frozen=True)
class Violation:
    """One problem found on a disk image."""
    check: str
    message: str
    severity: Severity = Severity.ERROR

    def __str__(self) -> str:
        return f"[{self.check}] {self.message}"


class DiskCheck:
    """Runs the checks for one validation level against a DiskImage."""

    def __init__(self, disk: DiskImage, level: ValidationLevel = ValidationLevel.STRICT):
        self.disk = disk
        self.level = level
        self.violations: list[Violation] = []
        self.files_checked = 0
        self.block_owners: dict[int, list[str]] = defaultdict(list)

    def _add(self, check: str, message: str, severity: Severity = Severity.ERROR) -> None:
        self.violations.append(Violation(check, message, severity))

    def validate(self) -> list[Violation]:
        self.violations = []
        self.files_checked = 0
        self.block_owners = defaultdict(list)

        self._check_container()
        self._check_directory_region()
        if self.level is ValidationLevel.STRICT:
            self._check_boot_sector()
            self._check_entries()
            self._check_files()
            self._check_orphans()
            self._check_filler()

        logger.debug("%s: %d violation(s) at %s level",
                     self.disk.name, len(self.violations), self.level.value)
        return list(self.violations)

    # -------------------------------------------------------------------------
    # Basic checks
    # -------------------------------------------------------------------------

    def _check_container(self) -> None:
        for problem in self.disk.format_problems():
            self._add('format', problem)

    def _check_directory_region(self) -> None:
        try:
            Directory.from_bytes(self.disk.read_directory_region())
        except Plus3Error as e:
            self._add('directory', f"Directory region unreadable: {e}")

    # -------------------------------------------------------------------------
    # Strict checks
    # -------------------------------------------------------------------------

    def _check_boot_sector(self) -> None:
        checksum = self.disk.boot_checksum(self.disk.raw_sector(BOOT_SECTOR))
        if checksum != BOOT_CHECKSUM:
            self._add('boot', f"Boot sector checksum is {checksum}, expected {BOOT_CHECKSUM}")

    def _check_entries(self) -> None:
        """Per-entry field ranges, character set, duplicates and block numbers."""
        seen: set[tuple[str, int]] = set()
        for index, entry in self.disk.directory.live_entries():
            where = f"Entry {index} ({entry.full_name!r})"

            bad = [c for c in entry.name + entry.extension if not 0x20 <= ord(c) < 0x7F]
            if bad:
                self._add('charset', f"{where}: non-printable name characters")
            if entry.extent > MAX_EXTENT:
                self._add('extent', f"{where}: extent {entry.extent} exceeds {MAX_EXTENT}")
            if entry.record_count > RECORDS_PER_EXTENT:
                self._add('records',
                          f"{where}: record count {entry.record_count} exceeds {RECORDS_PER_EXTENT}")

            key = (entry.full_name.upper(), entry.extent)
            if key in seen:
                self._add('duplicate', f"{where}: duplicate entry for extent {entry.extent}")
            seen.add(key)

            for block in entry.blocks:
                if not RESERVED_BLOCKS <= block < TOTAL_BLOCKS:
                    self._add('blocks', f"{where}: block {block} out of range")
                    continue
                owners = self.block_owners[block]
                if owners:
                    self._add('blocks',
                              f"{where}: block {block} already used by {', '.join(owners)}")
                owners.append(entry.full_name)
                if self.disk.blocks.is_block_free(block):
                    self._add('allocation', f"{where}: block {block} is not marked allocated")

    def _check_files(self) -> None:
        """Size against allocated space, and any PLUS3DOS header."""
        for info in self.disk.list_files():
            self.files_checked += 1
            blocks = info.blocks
            needed = (info.file_size + BLOCK_SIZE - 1) // BLOCK_SIZE
            if len(blocks) < needed:
                self._add('size', f"{info.full_name}: {info.file_size} bytes "
                                  f"need {needed} blocks, only {len(blocks)} allocated")
                continue
            if len(blocks) > needed:
                self._add('size', f"{info.full_name}: {len(blocks)} blocks allocated "
                                  f"for {info.file_size} bytes", Severity.WARNING)
            if info.file_size >= HEADER_SIZE:
                self._check_file_header(info.full_name, info.file_size)

    def _check_file_header(self, name: str, size: int) -> None:
        try:
            with self.disk.open_file(name, read_only=True) as f:
                data = f.read_at(HEADER_SIZE, 0)
        except Plus3Error as e:
            self._add('file', f"{name}: cannot be read: {e}")
            return
        if not Plus3DosHeader.is_plus3dos(data):
            return
        header = Plus3DosHeader(data)
        for problem in header.problems():
            self._add('header', f"{name}: {problem}")
        if header.file_length > size:
            self._add('header', f"{name}: header length {header.file_length} exceeds "
                                f"directory size {size}", Severity.WARNING)

    def _check_orphans(self) -> None:
        """Allocated data blocks that no directory entry refers to."""
        orphans = sorted({
            sector_to_block(linear)
            for linear in range(RESERVED_SECTORS, TOTAL_SECTORS)
            if self.disk.allocation.is_allocated(linear)
            and sector_to_block(linear) not in self.block_owners
        })
        if orphans:
            shown = ', '.join(str(b) for b in orphans[:10])
            more = f" and {len(orphans) - 10} more" if len(orphans) > 10 else ''
            self._add('orphan', f"{len(orphans)} allocated block(s) not used by any file: "
                                f"{shown}{more}", Severity.WARNING)

    def _check_filler(self) -> None:
        """Unallocated sectors should still hold the format filler."""
        stale = [linear for linear in range(TOTAL_SECTORS)
                 if not self.disk.allocation.is_allocated(linear)
                 and self.disk.raw_sector(linear) != _BLANK_SECTOR]
        if stale:
            self._add('filler', f"{len(stale)} unallocated sector(s) hold data "
                                f"(first: sector {stale[0]})", Severity.WARNING)


# -----------------------------------------------------------------------------
# Reporting
# -----------------------------------------------------------------------------

@dataclass
class VerificationResult:
    """Results from disk verification."""
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)
    violations: list[Violation] = field(default_factory=list)

    # Statistics
    files_checked: int = 0
    entries_checked: int = 0
    blocks_in_use: int = 0
    free_blocks: int = 0

    def add_error(self, message: str):
        """Add an error (disk is invalid)."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning (disk usable but has issues)."""
        self.warnings.append(message)

    def add_info(self, message: str):
        self.info.append(message)


def verify_disk(disk: DiskImage, level: ValidationLevel = ValidationLevel.STRICT,
                verbose: bool = False) -> VerificationResult:
    """
    Verify a disk image.

    Args:
        disk: The image to check
        level: BASIC for container structure, STRICT for the filesystem too
        verbose: Include statistics in the info messages

    Returns:
        VerificationResult with findings
    """
    result = VerificationResult()
    result.add_info(f"Checking {disk.name} ({level.value})...")

    check = DiskCheck(disk, level)
    result.violations = check.validate()
    for violation in result.violations:
        if violation.severity is Severity.ERROR:
            result.add_error(str(violation))
        else:
            result.add_warning(str(violation))

    result.files_checked = check.files_checked
    result.entries_checked = len(disk.directory.live_entries())
    result.blocks_in_use = len(check.block_owners)
    result.free_blocks = disk.blocks.free_block_count()

    if verbose:
        result.add_info(f"Files checked: {result.files_checked}")
        result.add_info(f"Directory entries checked: {result.entries_checked}")
        result.add_info(f"Blocks in use: {result.blocks_in_use}")
    return result


def format_verification_result(result: VerificationResult) -> str:
    """Format verification result as human-readable string."""
    lines = ["Disk verification: PASSED" if result.is_valid else "Disk verification: FAILED", ""]

    if result.errors:
        lines.append(f"Errors ({len(result.errors)}):")
        lines.extend(f"  ERROR: {error}" for error in result.errors)
        lines.append("")

    if result.warnings:
        lines.append(f"Warnings ({len(result.warnings)}):")
        lines.extend(f"  WARNING: {warning}" for warning in result.warnings)
        lines.append("")

    lines.append("Summary:")
    lines.append(f"  Files checked: {result.files_checked}")
    lines.append(f"  Directory entries: {result.entries_checked}")
    lines.append(f"  Blocks in use: {result.blocks_in_use}")
    lines.append(f"  Free blocks: {result.free_blocks}")
    return '\n'.join(lines)
