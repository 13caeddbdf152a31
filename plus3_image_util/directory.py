"""
+3DOS directory: a fixed table of 32-byte CP/M entries kept in the
reserved directory sectors.
"""

from .constants import (
    DIR_ENTRY_SIZE,
    ENTRY_DELETED,
    MAX_DIRECTORY_ENTRIES,
    VALID_FILENAME_CHARS,
)
from .exceptions import (
    DirectoryFullError,
    DiskError,
    FileExistsError,
    FileNotFoundError,
)
from .logging_config import get_logger
from .models import DirectoryEntry, Plus3FileInfo
from .utils import normalize_filename, validate_filename

logger = get_logger('dir')


class Directory:
    """In-memory copy of the directory table."""

    def __init__(self, entries: list[DirectoryEntry] | None = None,
                 max_entries: int = MAX_DIRECTORY_ENTRIES):
        if entries is None:
            entries = [DirectoryEntry() for _ in range(max_entries)]
        if len(entries) != max_entries:
            raise DiskError(f"Directory must have {max_entries} entries, got {len(entries)}")
        self.entries = entries
        self.modified = False

    @classmethod
    def from_bytes(cls, data: bytes, max_entries: int = MAX_DIRECTORY_ENTRIES) -> 'Directory':
        """Parse the raw directory region."""
        size = max_entries * DIR_ENTRY_SIZE
        if len(data) < size:
            raise DiskError(f"Directory region too short: {len(data)} bytes (need {size})")
        entries = [DirectoryEntry.from_bytes(data[i:i + DIR_ENTRY_SIZE])
                   for i in range(0, size, DIR_ENTRY_SIZE)]
        return cls(entries, max_entries)

    def to_bytes(self) -> bytes:
        """Serialize the directory region."""
        return b''.join(entry.to_bytes() for entry in self.entries)

    def initialize(self) -> None:
        """Mark every slot deleted, as a freshly formatted disk has it."""
        blank = bytes([ENTRY_DELETED]) * DIR_ENTRY_SIZE
        self.entries = [DirectoryEntry.from_bytes(blank) for _ in self.entries]
        self.modified = True
        logger.debug("Directory initialized (%d slots)", len(self.entries))

    @property
    def is_initialized(self) -> bool:
        """False while every slot is still in the never-written state."""
        return any(not entry.is_unused for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def live_entries(self) -> list[tuple[int, DirectoryEntry]]:
        """All active entries with their slot index."""
        return [(i, e) for i, e in enumerate(self.entries) if e.is_active]

    def file_entries(self, name: str) -> list[tuple[int, DirectoryEntry]]:
        """Active entries of a file ordered by extent number."""
        full_name = normalize_filename(name)
        found = [(i, e) for i, e in self.live_entries() if e.matches(full_name)]
        found.sort(key=lambda item: item[1].extent)
        return found

    def find_file(self, name: str) -> tuple[DirectoryEntry, int]:
        """
        Find a file's first extent.

        Returns:
            (entry, slot index)

        Raises:
            FileNotFoundError: If no live entry has this name
        """
        found = self.file_entries(name)
        if not found:
            raise FileNotFoundError(f"File not found: {name}")
        index, entry = found[0]
        return entry, index

    def exists(self, name: str) -> bool:
        return bool(self.file_entries(name))

    @staticmethod
    def _aggregate(entries: list[DirectoryEntry], deleted: bool = False) -> list[Plus3FileInfo]:
        """Group entries into one record per file, sorted by name."""
        files: dict[str, list[DirectoryEntry]] = {}
        for entry in entries:
            files.setdefault(entry.full_name.upper(), []).append(entry)

        result = []
        for extents in files.values():
            extents.sort(key=lambda e: e.extent)
            first = extents[0]
            result.append(Plus3FileInfo(
                filename=first.filename,
                extension=first.ext,
                file_size=sum(e.size for e in extents),
                extents=extents,
                attributes=first.attributes,
                deleted=deleted,
            ))
        result.sort(key=lambda f: f.full_name)
        return result

    def list_files(self) -> list[Plus3FileInfo]:
        """Aggregate live entries into one record per file, sorted by name."""
        return self._aggregate([entry for _, entry in self.live_entries()])

    def list_deleted(self) -> list[Plus3FileInfo]:
        """
        Deleted files whose entries still hold a usable name.

        Slots never written since formatting are skipped, as are names
        shadowed by a live file.
        """
        live = {entry.full_name.upper() for _, entry in self.live_entries()}
        entries = [entry for entry in self.entries
                   if entry.is_deleted and entry.filename
                   and set(entry.name + entry.extension) <= VALID_FILENAME_CHARS
                   and entry.full_name.upper() not in live]
        return self._aggregate(entries, deleted=True)

    def free_slot_count(self) -> int:
        return sum(1 for entry in self.entries if not entry.is_active)

    # -------------------------------------------------------------------------
    # Modification
    # -------------------------------------------------------------------------

    def _find_free_slot(self) -> int:
        for index, entry in enumerate(self.entries):
            if not entry.is_active:
                return index
        raise DirectoryFullError("No free directory entries")

    def add_file(self, name: str) -> tuple[DirectoryEntry, int]:
        """
        Create the first extent of a new file in the first free slot.

        Raises:
            InvalidFilenameError: If name is not a valid 8.3 name
            FileExistsError: If a live file with this name exists
            DirectoryFullError: If no slot is unused or deleted
        """
        fname, fext = validate_filename(name)
        if self.exists(name):
            raise FileExistsError(f"File already exists: {normalize_filename(name)}")
        index = self._find_free_slot()
        entry = DirectoryEntry.new(fname, fext)
        self.entries[index] = entry
        self.modified = True
        logger.debug("Added %s in slot %d", entry.full_name, index)
        return entry, index

    def add_extent(self, primary: DirectoryEntry, extent: int) -> tuple[DirectoryEntry, int]:
        """Add a continuation extent for an existing file."""
        index = self._find_free_slot()
        entry = DirectoryEntry.new(primary.name, primary.extension, extent)
        entry.name_flags = primary.name_flags
        entry.ext_flags = primary.ext_flags
        self.entries[index] = entry
        self.modified = True
        logger.debug("Added extent %d of %s in slot %d", extent, entry.full_name, index)
        return entry, index

    def delete_file(self, name: str, no_recycle: bool = False) -> list[DirectoryEntry]:
        """
        Remove a file from the directory.

        By default every extent is marked 0xE5 and its other bytes kept.
        With no_recycle the slots are zeroed instead.

        Returns:
            Copies of the removed entries (for freeing their blocks)
        """
        found = self.file_entries(name)
        if not found:
            raise FileNotFoundError(f"File not found: {name}")

        removed = []
        for index, entry in found:
            removed.append(DirectoryEntry.from_bytes(entry.to_bytes()))
            if no_recycle:
                entry.clear()
            else:
                entry.status = ENTRY_DELETED
        self.modified = True
        logger.debug("Deleted %s (%d extent(s))", normalize_filename(name), len(found))
        return removed

    def remove_entry(self, entry: DirectoryEntry) -> None:
        """Zero a single slot (used when rolling back a new extent)."""
        entry.clear()
        self.modified = True

    def rename_file(self, old_name: str, new_name: str) -> None:
        found = self.file_entries(old_name)
        if not found:
            raise FileNotFoundError(f"File not found: {old_name}")
        fname, fext = validate_filename(new_name)
        if self.exists(new_name) and normalize_filename(new_name) != normalize_filename(old_name):
            raise FileExistsError(f"File already exists: {normalize_filename(new_name)}")
        for _, entry in found:
            entry.name = fname
            entry.extension = fext
        self.modified = True
