#!/usr/bin/env python3
"""
Comprehensive test suite for the ZX Spectrum +3 Disk Image Utility.

Run with: pytest test_plus3_image_util.py -v
"""

import json
import tempfile
from pathlib import Path

import pytest

# Import the module under test
from plus3_image_util import (
    # Constants
    BLOCK_SIZE, DATA_CAPACITY, HEADER_SIZE, MAX_BLOCKS_PER_FILE,
    MAX_DIRECTORY_ENTRIES, SECTOR_SIZE, SECTORS_PER_TRACK, TOTAL_SECTORS,
    TRACKS_PER_SIDE,
    # Exceptions
    AllocationError, DirectoryFullError, DiskError, DiskFullError,
    FileExistsError as Plus3FileExistsError,
    FileNotFoundError as Plus3FileNotFoundError,
    FileTooLargeError, FormatError, InvalidFilenameError, InvalidHeaderError,
    InvalidImageError, OutOfRangeError, Plus3Error, ReadOnlyError,
    # Classes
    AllocationRecovery, BlockAllocator, Directory, DirectoryEntry, DiskCheck,
    DiskImage, DiskState, FileAttributes, FileType, OutputFormatter,
    Plus3DosHeader, SectorAllocation, ValidationLevel,
    # Header variants
    CodeParams, NumericArrayParams, ProgramParams,
    # Functions
    create_blank_image, disk_filename, disk_to_tap, export_basic, export_file,
    export_screen, export_to_host, import_basic, import_code, import_host_file,
    import_raw, import_screen, match_filename, normalize_filename, read_tap,
    tap_to_disk, validate_filename, verify_disk,
)
from plus3_image_util.__main__ import main
from plus3_image_util.constants import (
    DISK_HEADER_SIZE, FILLER_BYTE, MAX_IMPORT_SIZE, NO_AUTOSTART,
    SCREEN_SIZE, TRACK_INFO_SIZE, TRACK_SIZE,
)
from plus3_image_util.formatter import sort_files
from plus3_image_util.geometry import (
    block_to_sector, byte_offset, image_offset, linear_to_physical,
    physical_to_linear, sector_to_block, track_bounds,
)
from plus3_image_util.hostio import (
    ImportKind, describe_file, kind_for_path, write_new_file,
)
from plus3_image_util.info import format_disk_info, get_disk_info
from plus3_image_util.tap import TapFile, tap_blocks
from plus3_image_util.verify import format_verification_result


# =============================================================================
# Test Configuration
# =============================================================================

IMAGE_SIZE = DISK_HEADER_SIZE + TRACKS_PER_SIDE * (TRACK_INFO_SIZE + TRACK_SIZE)
DATA_BLOCKS = DATA_CAPACITY // BLOCK_SIZE


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def blank_disk():
    """A freshly formatted in-memory image."""
    return DiskImage.create('test.dsk')


@pytest.fixture
def disk_file(temp_dir):
    """A freshly formatted image saved on the host."""
    path = temp_dir / "blank.dsk"
    create_blank_image(path)
    return path


# =============================================================================
# Helper Functions
# =============================================================================

def create_test_data(size: int) -> bytes:
    """Generate test data of a specific size."""
    pattern = b"TEST_DATA_PATTERN_"
    repetitions = (size // len(pattern)) + 1
    return (pattern * repetitions)[:size]


def basic_program() -> bytes:
    """A 29-byte tokenized program: 10 PRINT "HELLO" / 20 GO TO 10."""
    line10 = b'\x00\x0a\x0a\x00\xf5"HELLO"\x0d'
    line20 = b'\x00\x14\x0b\x00\xec10\x0e\x00\x00\x0a\x00\x00\x0d'
    return (line10 + line20).ljust(29, b'\x00')


def reload(disk: DiskImage, **kwargs) -> DiskImage:
    """Serialize and parse an image again."""
    return DiskImage.from_bytes(disk.to_bytes(), disk.name, **kwargs)


# =============================================================================
# Unit Tests: Geometry
# =============================================================================

class TestGeometry:
    """Test sector addressing helpers."""

    def test_roundtrip_all_coordinates(self):
        """Every valid (track, sector) survives linear conversion."""
        for track in range(TRACKS_PER_SIDE):
            for sector in range(SECTORS_PER_TRACK):
                linear = physical_to_linear(track, sector, 0)
                assert linear_to_physical(linear) == (track, sector, 0)

    def test_linear_index_formula(self):
        assert physical_to_linear(0, 0) == 0
        assert physical_to_linear(1, 0) == 9
        assert physical_to_linear(39, 8) == TOTAL_SECTORS - 1

    @pytest.mark.parametrize("track,sector,side", [
        (TRACKS_PER_SIDE, 0, 0),
        (0, SECTORS_PER_TRACK, 0),
        (0, 0, 1),
        (-1, 0, 0),
    ])
    def test_physical_out_of_range(self, track, sector, side):
        with pytest.raises(OutOfRangeError):
            physical_to_linear(track, sector, side)

    @pytest.mark.parametrize("linear", [-1, TOTAL_SECTORS])
    def test_linear_out_of_range(self, linear):
        with pytest.raises(OutOfRangeError):
            linear_to_physical(linear)

    def test_track_bounds(self):
        assert track_bounds(0) == (0, 8)
        assert track_bounds(1) == (9, 17)

    def test_offsets(self):
        assert byte_offset(1, 2) == 11 * SECTOR_SIZE
        assert image_offset(0, 0) == DISK_HEADER_SIZE + TRACK_INFO_SIZE
        assert image_offset(1, 2) == (DISK_HEADER_SIZE + (TRACK_INFO_SIZE + TRACK_SIZE)
                                      + TRACK_INFO_SIZE + 2 * SECTOR_SIZE)

    def test_blocks(self):
        assert block_to_sector(3) == 6
        assert sector_to_block(7) == 3
        with pytest.raises(OutOfRangeError):
            block_to_sector(180)


# =============================================================================
# Unit Tests: SectorAllocation
# =============================================================================

class TestSectorAllocation:
    """Test the sector allocation bitmap."""

    def test_allocate_free_restores_count(self):
        alloc = SectorAllocation()
        before = alloc.free_space_count()
        alloc.allocate(20, 5)
        assert alloc.free_space_count() == before - 5
        alloc.free(20, 5)
        assert alloc.free_space_count() == before

    def test_double_allocation_fails_atomically(self):
        """Overlapping allocation raises and leaves the bitmap unchanged."""
        alloc = SectorAllocation()
        alloc.allocate(10, 2)
        with pytest.raises(AllocationError):
            alloc.allocate(8, 3)
        assert not alloc.is_allocated(8)
        assert not alloc.is_allocated(9)
        assert alloc.allocated_count() == 2

    def test_free_is_idempotent(self):
        alloc = SectorAllocation()
        alloc.allocate(4)
        alloc.free(4)
        alloc.free(4)
        assert not alloc.is_allocated(4)

    def test_range_checks(self):
        alloc = SectorAllocation()
        with pytest.raises(OutOfRangeError):
            alloc.allocate(TOTAL_SECTORS - 1, 2)
        with pytest.raises(OutOfRangeError):
            alloc.is_allocated(TOTAL_SECTORS)
        with pytest.raises(OutOfRangeError):
            alloc.free(-1)

    def test_find_free_first_fit(self):
        alloc = SectorAllocation()
        alloc.allocate(0, 5)
        alloc.allocate(7)
        assert alloc.find_free(2) == 5
        assert alloc.find_free(3) == 8

    def test_find_free_disk_full(self):
        alloc = SectorAllocation()
        alloc.allocate(0, TOTAL_SECTORS)
        with pytest.raises(DiskFullError):
            alloc.find_free(1)

    def test_track_helpers(self):
        alloc = SectorAllocation()
        assert not alloc.is_track_allocated(2)
        alloc.allocate_track(2)
        assert alloc.track_allocation(2) == [True] * SECTORS_PER_TRACK
        alloc.free_track(2)
        assert not alloc.is_track_allocated(2)


# =============================================================================
# Unit Tests: BlockAllocator
# =============================================================================

class TestBlockAllocator:
    """Test block allocation on top of the sector bitmap."""

    def test_reserved_blocks(self):
        blocks = BlockAllocator(SectorAllocation())
        assert blocks.free_block_count() == DATA_BLOCKS
        for block in range(3):
            assert not blocks.is_block_free(block)

    def test_allocate_zero(self):
        blocks = BlockAllocator(SectorAllocation())
        assert blocks.allocate(0) == []

    def test_allocate_contiguous(self):
        blocks = BlockAllocator(SectorAllocation())
        assert blocks.allocate(3000) == [3, 4, 5]
        assert blocks.free_block_count() == DATA_BLOCKS - 3

    def test_allocate_too_large_claims_nothing(self):
        blocks = BlockAllocator(SectorAllocation())
        with pytest.raises(FileTooLargeError):
            blocks.allocate((MAX_BLOCKS_PER_FILE + 1) * BLOCK_SIZE)
        assert blocks.free_block_count() == DATA_BLOCKS

    def test_allocate_disk_full(self):
        blocks = BlockAllocator(SectorAllocation())
        with pytest.raises(DiskFullError):
            blocks.allocate((DATA_BLOCKS + 1) * BLOCK_SIZE)
        assert blocks.free_block_count() == DATA_BLOCKS

    def test_fragmented_fallback(self):
        """Without a contiguous run, free blocks are taken in order."""
        alloc = SectorAllocation()
        blocks = BlockAllocator(alloc)
        for block in range(4, 180, 2):
            alloc.allocate(block_to_sector(block), 2)
        assert blocks.allocate(2048) == [3, 5]

    def test_find_contiguous_only_free(self):
        alloc = SectorAllocation()
        blocks = BlockAllocator(alloc)
        for block in (4, 7, 8, 12, 30):
            alloc.allocate(block_to_sector(block), 2)
        for count in range(1, 12):
            start = blocks.find_contiguous_blocks(count)
            assert start is not None
            assert all(blocks.is_block_free(b) for b in range(start, start + count))

    def test_free_validates_first(self):
        blocks = BlockAllocator(SectorAllocation())
        allocated = blocks.allocate(1024)
        with pytest.raises(OutOfRangeError):
            blocks.free(allocated + [1])
        assert not blocks.is_block_free(allocated[0])
        with pytest.raises(OutOfRangeError):
            blocks.free([200])

    def test_defragment_copies_and_frees(self, blank_disk):
        alloc = blank_disk.allocation
        for block in (3, 4, 5):
            alloc.allocate(block_to_sector(block), 2)
        for block, fill in ((3, b'A'), (5, b'B')):
            first = block_to_sector(block)
            blank_disk.write_sector(first, fill * SECTOR_SIZE)
            blank_disk.write_sector(first + 1, fill.lower() * SECTOR_SIZE)

        new_blocks = blank_disk.blocks.defragment_file([3, 5])

        assert new_blocks == [6, 7]
        assert blank_disk.read_block(6) == b'A' * SECTOR_SIZE + b'a' * SECTOR_SIZE
        assert blank_disk.read_block(7) == b'B' * SECTOR_SIZE + b'b' * SECTOR_SIZE
        assert blank_disk.blocks.is_block_free(3)
        assert blank_disk.blocks.is_block_free(5)
        assert not blank_disk.blocks.is_block_free(4)

    def test_defragment_needs_disk(self):
        blocks = BlockAllocator(SectorAllocation())
        with pytest.raises(DiskError):
            blocks.defragment_file([3])


# =============================================================================
# Unit Tests: Filenames
# =============================================================================

class TestFilenames:
    """Test 8.3 filename helpers."""

    def test_validate_filename(self):
        assert validate_filename("game.bas") == ("GAME    ", "BAS")
        assert validate_filename("LOADER") == ("LOADER  ", "   ")

    @pytest.mark.parametrize("name", ["", "TOOLONGNAME.BAS", "GAME.BASIC", "A*B.BAS", "A?.B"])
    def test_invalid_filenames(self, name):
        with pytest.raises(InvalidFilenameError):
            validate_filename(name)

    def test_normalize_filename(self):
        assert normalize_filename("game.bas") == "GAME.BAS"
        assert normalize_filename("loader") == "LOADER"

    def test_disk_filename(self):
        assert disk_filename("games/Manic Miner.bas") == "MANIC_MI.BAS"
        assert disk_filename("loader.bin", "BAS") == "LOADER.BAS"
        assert disk_filename("README") == "README"

    def test_match_filename(self):
        assert match_filename("*.BAS", "GAME.BAS")
        assert match_filename("g?me.*", "GAME.BAS")
        assert not match_filename("*.BIN", "GAME.BAS")


# =============================================================================
# Unit Tests: DirectoryEntry and FileAttributes
# =============================================================================

class TestDirectoryEntry:
    """Test the 32-byte directory entry."""

    def make_entry_bytes(self) -> bytes:
        data = bytearray(32)
        data[0] = 0x01
        data[1:9] = b"GAME    "
        data[1] |= 0x80            # user flag 1
        data[9:12] = b"BAS"
        data[9] |= 0x80            # read-only
        data[12] = 0
        data[13] = 29
        data[15] = 2
        data[16:18] = bytes([3, 4])
        return bytes(data)

    def test_from_bytes(self):
        entry = DirectoryEntry.from_bytes(self.make_entry_bytes())
        assert entry.is_active
        assert entry.full_name == "GAME.BAS"
        assert entry.blocks == [3, 4]
        assert entry.size == 128 + 29
        assert entry.is_read_only
        assert entry.attributes.user_flags == (True, False, False, False)

    def test_to_bytes_roundtrip(self):
        data = self.make_entry_bytes()
        assert DirectoryEntry.from_bytes(data).to_bytes() == data

    def test_status(self):
        assert DirectoryEntry().is_unused
        deleted = DirectoryEntry.from_bytes(b'\xe5' * 32)
        assert deleted.is_deleted
        assert not deleted.is_active

    def test_attributes_roundtrip(self):
        entry = DirectoryEntry.new("GAME    ", "BAS")
        attrs = FileAttributes(read_only=True, archived=True,
                               user_flags=(True, False, False, True))
        attrs.apply_to(entry)
        assert entry.attributes == attrs
        assert attrs.attr_string() == "R-A1--4"
        restored = DirectoryEntry.from_bytes(entry.to_bytes())
        assert restored.attributes == attrs
        assert restored.full_name == "GAME.BAS"

    def test_apply_clears_reserved_bits(self):
        entry = DirectoryEntry.new("GAME    ", "BAS")
        entry.name_flags = 0xF0
        FileAttributes(user_flags=(False, True, False, False)).apply_to(entry)
        assert entry.name_flags == 0x02

    def test_modified(self):
        attrs = FileAttributes(archived=True).modified(['+R', '-A', '+2', 'bogus'])
        assert attrs == FileAttributes(read_only=True, user_flags=(False, True, False, False))


# =============================================================================
# Unit Tests: Directory
# =============================================================================

class TestDirectory:
    """Test the directory table."""

    def test_add_and_find(self):
        directory = Directory()
        entry, index = directory.add_file("game.bas")
        assert index == 0
        found, found_index = directory.find_file("GAME.BAS")
        assert found is entry
        assert found_index == 0

    def test_find_missing(self):
        with pytest.raises(Plus3FileNotFoundError):
            Directory().find_file("NOPE.BAS")

    def test_duplicate_name(self):
        directory = Directory()
        directory.add_file("GAME.BAS")
        with pytest.raises(Plus3FileExistsError):
            directory.add_file("game.bas")

    def test_directory_full(self):
        directory = Directory()
        for i in range(MAX_DIRECTORY_ENTRIES):
            directory.add_file(f"F{i}")
        assert directory.free_slot_count() == 0
        with pytest.raises(DirectoryFullError):
            directory.add_file("ONEMORE")

    def test_delete_preserves_bytes(self):
        directory = Directory()
        entry, index = directory.add_file("GAME.BAS")
        entry.blocks = [3, 4]
        before = entry.to_bytes()

        directory.delete_file("GAME.BAS")

        after = directory.entries[index].to_bytes()
        assert after[0] == 0xE5
        assert after[1:] == before[1:]
        with pytest.raises(Plus3FileNotFoundError):
            directory.find_file("GAME.BAS")

    def test_delete_no_recycle(self):
        directory = Directory()
        _, index = directory.add_file("GAME.BAS")
        directory.delete_file("GAME.BAS", no_recycle=True)
        assert directory.entries[index].to_bytes() == bytes(32)

    def test_deleted_slot_reused(self):
        directory = Directory()
        directory.add_file("A")
        directory.add_file("B")
        directory.delete_file("A")
        _, index = directory.add_file("C")
        assert index == 0

    def test_bytes_roundtrip(self):
        directory = Directory()
        directory.initialize()
        directory.add_file("GAME.BAS")
        data = directory.to_bytes()
        assert len(data) == MAX_DIRECTORY_ENTRIES * 32
        assert Directory.from_bytes(data).to_bytes() == data

    def test_list_files_aggregates_extents(self):
        directory = Directory()
        primary, _ = directory.add_file("BIG.BIN")
        primary.record_count = 128
        second, _ = directory.add_extent(primary, 1)
        second.record_count = 8
        files = directory.list_files()
        assert len(files) == 1
        assert files[0].file_size == 136 * 128
        assert len(files[0].extents) == 2

    def test_list_deleted(self):
        directory = Directory()
        directory.initialize()
        entry, _ = directory.add_file("OLD.BAS")
        entry.record_count = 2
        directory.add_file("KEEP.BIN")
        directory.add_file("GONE.BIN")
        directory.delete_file("OLD.BAS")
        directory.delete_file("GONE.BIN", no_recycle=True)

        deleted = directory.list_deleted()

        assert [f.full_name for f in deleted] == ["OLD.BAS"]
        assert deleted[0].deleted
        assert deleted[0].file_size == 256
        assert [f.full_name for f in directory.list_files()] == ["KEEP.BIN"]

    def test_list_deleted_skips_formatted_slots(self):
        directory = Directory()
        directory.initialize()
        assert directory.list_deleted() == []

    def test_rename(self):
        directory = Directory()
        directory.add_file("OLD.BAS")
        directory.rename_file("OLD.BAS", "NEW.BAS")
        assert directory.exists("NEW.BAS")
        assert not directory.exists("OLD.BAS")


# =============================================================================
# Unit Tests: PLUS3DOS Header
# =============================================================================

class TestPlus3DosHeader:
    """Test the 128-byte PLUS3DOS header."""

    def test_set_basic_header_validates(self):
        header = Plus3DosHeader()
        header.set_basic_header(FileType.PROGRAM, 29, 10, 29)
        header.update_checksum()
        header.validate()
        assert header.get_basic_header() == (0, 29, 10, 29)

    def test_any_mutation_fails_validation(self):
        header = Plus3DosHeader.for_code(100, 32768)
        header.validate()
        for offset in range(HEADER_SIZE):
            mutated = Plus3DosHeader(header.to_bytes())
            mutated.data[offset] ^= 0x01
            with pytest.raises(InvalidHeaderError):
                mutated.validate()

    def test_unknown_type(self):
        with pytest.raises(InvalidHeaderError):
            Plus3DosHeader().set_basic_header(7, 10)

    @pytest.mark.parametrize("length,param1,param2", [
        (0x10000, 0, 0), (0, -1, 0), (0, 0, 0x10000),
    ])
    def test_values_out_of_range(self, length, param1, param2):
        header = Plus3DosHeader()
        before = header.to_bytes()
        with pytest.raises(InvalidHeaderError):
            header.set_basic_header(FileType.CODE, length, param1, param2)
        assert header.to_bytes() == before

    def test_problems_accumulate(self):
        header = Plus3DosHeader.for_program(29, 10)
        header.data[0] = ord('X')
        header.data[9] = 2
        problems = header.problems()
        assert len(problems) == 3
        with pytest.raises(InvalidHeaderError, match="signature"):
            header.validate()

    def test_version(self):
        header = Plus3DosHeader.for_program(29)
        header.data[10] = 0
        header.update_checksum()
        assert header.is_valid
        header.data[10] = 2
        header.update_checksum()
        assert not header.is_valid

    def test_file_length_includes_header(self):
        assert Plus3DosHeader.for_program(29, 10).file_length == HEADER_SIZE + 29

    def test_params_variants(self):
        assert Plus3DosHeader.for_program(29, 10).params == ProgramParams(29, 10, 29)
        assert Plus3DosHeader.for_code(100, 32768).params == CodeParams(100, 32768)
        assert Plus3DosHeader.for_screen().params.is_screen

    def test_array_params(self):
        header = Plus3DosHeader()
        header.set_params(NumericArrayParams(10, variable_name=0x81))
        assert header.get_basic_header() == (FileType.NUMERIC_ARRAY, 10, 0x81, 0)
        assert header.params == NumericArrayParams(10, 0x81)

    def test_code_header_ignores_param2(self):
        header = Plus3DosHeader()
        header.set_basic_header(FileType.CODE, 10, 32768, 1234)
        assert header.get_basic_header() == (FileType.CODE, 10, 32768, 0)
        assert header.data[20:23] == bytes(3)

    def test_is_plus3dos(self):
        assert Plus3DosHeader.is_plus3dos(Plus3DosHeader().to_bytes())
        assert not Plus3DosHeader.is_plus3dos(b"PLUS3DOS")
        assert not Plus3DosHeader.is_plus3dos(bytes(128))


# =============================================================================
# Disk Image Tests
# =============================================================================

class TestDiskImage:
    """Test the in-memory disk image."""

    def test_create_empty_usage(self, blank_disk):
        usage = blank_disk.usage()
        assert usage.used_bytes == 0
        assert usage.free_bytes == usage.total_bytes == DATA_CAPACITY
        assert usage.file_count == 0
        assert blank_disk.state is DiskState.INITIALIZED

    def test_unformatted_state(self):
        disk = DiskImage()
        assert disk.state is DiskState.EMPTY
        assert disk.allocation.is_allocated(0)
        assert not disk.allocation.is_allocated(6)

    def test_sector_roundtrip(self, blank_disk):
        data = bytes(range(256)) * 2
        blank_disk.set_sector_data(5, 3, 0, data)
        assert blank_disk.get_sector_data(5, 3) == data
        assert blank_disk.allocation.is_allocated(physical_to_linear(5, 3))

    def test_sector_wrong_size(self, blank_disk):
        with pytest.raises(DiskError):
            blank_disk.set_sector_data(5, 3, 0, b"short")

    def test_read_unallocated_sector(self, blank_disk):
        with pytest.raises(DiskError):
            blank_disk.get_sector_data(10, 0)

    def test_sector_out_of_range(self, blank_disk):
        with pytest.raises(OutOfRangeError):
            blank_disk.get_sector_data(40, 0)

    def test_track_roundtrip(self, blank_disk):
        data = bytes(range(256)) * (TRACK_SIZE // 256)
        assert not blank_disk.allocation.is_track_allocated(12)

        blank_disk.set_track_data(12, 0, data)

        assert blank_disk.allocation.track_allocation(12) == [True] * SECTORS_PER_TRACK
        assert blank_disk.get_track_data(12) == data
        assert blank_disk.get_sector_data(12, 8) == data[8 * SECTOR_SIZE:]
        assert reload(blank_disk, recovery=AllocationRecovery.SCAN_TRACKS) \
            .get_track_data(12) == data

    def test_track_wrong_size(self, blank_disk):
        with pytest.raises(DiskError):
            blank_disk.set_track_data(12, 0, bytes(TRACK_SIZE - 1))
        assert not blank_disk.allocation.is_track_allocated(12)
        assert blank_disk.get_track_data(12) == bytes([FILLER_BYTE]) * TRACK_SIZE

    def test_serialized_size_and_roundtrip(self, blank_disk):
        import_raw(blank_disk, "DATA.BIN", create_test_data(3000))
        data = blank_disk.to_bytes()
        assert len(data) == IMAGE_SIZE
        assert not blank_disk.modified

        loaded = DiskImage.from_bytes(data)
        assert loaded.directory.to_bytes() == blank_disk.directory.to_bytes()
        assert export_file(loaded, "DATA.BIN") == create_test_data(3000)
        assert loaded.to_bytes() == data

    def test_boot_sector_checksum(self, blank_disk):
        assert DiskImage.boot_checksum(blank_disk.raw_sector(0)) == 3

    def test_invalid_signature(self, blank_disk):
        data = bytearray(blank_disk.to_bytes())
        data[0:8] = b"NOTADISK"
        with pytest.raises(InvalidImageError):
            DiskImage.from_bytes(bytes(data))

    def test_truncated(self, blank_disk):
        with pytest.raises(InvalidImageError):
            DiskImage.from_bytes(blank_disk.to_bytes()[:-1])

    def test_sector_order_follows_ids(self, blank_disk):
        """Sector data is placed by sector ID, not by position in the track."""
        for sector in range(SECTORS_PER_TRACK):
            blank_disk.set_sector_data(1, sector, 0, bytes([sector]) * SECTOR_SIZE)
        data = bytearray(blank_disk.to_bytes())

        info = DISK_HEADER_SIZE + (TRACK_INFO_SIZE + TRACK_SIZE)
        raw = info + TRACK_INFO_SIZE
        for position in range(SECTORS_PER_TRACK):
            sector = SECTORS_PER_TRACK - 1 - position
            data[info + 24 + position * 8 + 2] = sector + 1
            data[raw + position * SECTOR_SIZE:raw + (position + 1) * SECTOR_SIZE] = \
                bytes([sector]) * SECTOR_SIZE

        loaded = DiskImage.from_bytes(bytes(data), recovery=AllocationRecovery.SCAN_TRACKS)
        for sector in range(SECTORS_PER_TRACK):
            assert loaded.get_sector_data(1, sector) == bytes([sector]) * SECTOR_SIZE

    def test_bad_sector_ids(self, blank_disk):
        data = bytearray(blank_disk.to_bytes())
        data[DISK_HEADER_SIZE + 24 + 2] = 2    # duplicate ID 2
        with pytest.raises(InvalidImageError):
            DiskImage.from_bytes(bytes(data))

    def test_unallocated_tracks_saved_as_filler(self, blank_disk):
        blank_disk.tracks[20][:] = bytes(TRACK_SIZE)
        data = blank_disk.to_bytes()
        offset = image_offset(20, 0)
        assert data[offset:offset + TRACK_SIZE] == bytes([FILLER_BYTE]) * TRACK_SIZE
        assert blank_disk.tracks[20] == bytes([FILLER_BYTE]) * TRACK_SIZE

    def test_allocation_recovery(self, blank_disk):
        import_raw(blank_disk, "DATA.BIN", create_test_data(2048))
        data = bytearray(blank_disk.to_bytes())
        offset = image_offset(30, 0)
        data[offset] = 0x42

        by_directory = DiskImage.from_bytes(bytes(data))
        assert not by_directory.allocation.is_track_allocated(30)
        assert by_directory.blocks.free_block_count() == DATA_BLOCKS - 2

        by_scan = DiskImage.from_bytes(bytes(data), recovery=AllocationRecovery.SCAN_TRACKS)
        assert by_scan.allocation.is_track_allocated(30)

    def test_modified_flag(self, blank_disk):
        loaded = reload(blank_disk)
        assert not loaded.modified
        import_raw(loaded, "DATA.BIN", b"x")
        assert loaded.modified
        assert loaded.state is DiskState.POPULATED

    def test_delete_frees_space(self, blank_disk):
        size = 100 * BLOCK_SIZE
        import_raw(blank_disk, "BIG.BIN", create_test_data(size))
        with pytest.raises(DiskFullError):
            import_raw(blank_disk, "BIG2.BIN", create_test_data(size))

        blank_disk.delete_file("BIG.BIN")

        with pytest.raises(Plus3FileNotFoundError):
            blank_disk.find_file("BIG.BIN")
        import_raw(blank_disk, "BIG2.BIN", create_test_data(size))
        assert blank_disk.find_file("BIG2.BIN").file_size == size

    def test_delete_read_only(self, blank_disk):
        import_raw(blank_disk, "LOCKED.BIN", b"data")
        blank_disk.set_attributes("LOCKED.BIN", FileAttributes(read_only=True))
        with pytest.raises(ReadOnlyError):
            blank_disk.delete_file("LOCKED.BIN")
        blank_disk.delete_file("LOCKED.BIN", force=True)
        assert blank_disk.list_files() == []

    def test_defragment(self, blank_disk):
        import_raw(blank_disk, "A.BIN", create_test_data(BLOCK_SIZE))
        import_raw(blank_disk, "B.BIN", b"b" * BLOCK_SIZE)
        with blank_disk.open_file("A.BIN") as f:
            f.seek(0, 2)
            f.write(b"tail" * 256)
        assert blank_disk.find_file("A.BIN").blocks == [3, 5]

        new_blocks = blank_disk.defragment("A.BIN")

        assert new_blocks == [6, 7]
        assert blank_disk.find_file("A.BIN").blocks == [6, 7]
        assert export_file(blank_disk, "A.BIN") == create_test_data(BLOCK_SIZE) + b"tail" * 256
        assert blank_disk.blocks.is_block_free(3)

    def test_save_and_load_file(self, blank_disk, temp_dir):
        path = temp_dir / "out.dsk"
        import_raw(blank_disk, "DATA.BIN", b"hello")
        blank_disk.save_to_file(path)
        loaded = DiskImage.load_from_file(path)
        assert export_file(loaded, "DATA.BIN") == b"hello"

    def test_load_missing_file(self, temp_dir):
        with pytest.raises(DiskError):
            DiskImage.load_from_file(temp_dir / "missing.dsk")


# =============================================================================
# File Handle Tests
# =============================================================================

class TestPlus3File:
    """Test seekable file access."""

    def test_write_read(self, blank_disk):
        with blank_disk.open_file("DATA.BIN", create=True) as f:
            assert f.write(b"hello world") == 11
        with blank_disk.open_file("DATA.BIN") as f:
            assert f.read(5) == b"hello"
            assert f.tell() == 5
            assert f.read() == b" world"
            assert f.read() == b""

    def test_read_at_eof(self, blank_disk):
        with blank_disk.open_file("DATA.BIN", create=True) as f:
            f.write(b"abc")
            assert f.read_at(10, 1) == b"bc"
            assert f.read_at(10, 3) == b""
            assert f.read_at(10, 100) == b""

    def test_gap_zero_filled(self, blank_disk):
        with blank_disk.open_file("SPARSE.BIN", create=True) as f:
            f.write_at(b"X", 2000)
            assert f.size == 2001
        assert export_file(blank_disk, "SPARSE.BIN") == bytes(2000) + b"X"

    def test_read_only_handle(self, blank_disk):
        import_raw(blank_disk, "DATA.BIN", b"data")
        with blank_disk.open_file("DATA.BIN", read_only=True) as f:
            with pytest.raises(ReadOnlyError):
                f.write(b"more")
            assert f.size == 4
        assert export_file(blank_disk, "DATA.BIN") == b"data"

    def test_seek(self, blank_disk):
        with blank_disk.open_file("DATA.BIN", create=True) as f:
            f.write(b"0123456789")
            assert f.seek(-3, 2) == 7
            assert f.read() == b"789"
            assert f.seek(2) == 2
            assert f.seek(3, 1) == 5
            assert f.seek(100) == 100
            with pytest.raises(OutOfRangeError):
                f.seek(-1)

    def test_closed_handle(self, blank_disk):
        f = blank_disk.open_file("DATA.BIN", create=True)
        f.close()
        with pytest.raises(DiskError):
            f.read()

    def test_open_missing(self, blank_disk):
        with pytest.raises(Plus3FileNotFoundError):
            blank_disk.open_file("MISSING.BIN")

    def test_record_counts_on_close(self, blank_disk):
        with blank_disk.open_file("DATA.BIN", create=True) as f:
            f.write(create_test_data(300))
        entry, _ = blank_disk.directory.find_file("DATA.BIN")
        assert entry.record_count == 3
        assert entry.last_record_bytes == 300 - 256
        assert entry.size == 300

    def test_extent_spill(self, blank_disk):
        data = create_test_data(20 * BLOCK_SIZE + 5)
        import_raw(blank_disk, "BIG.BIN", data)
        info = blank_disk.find_file("BIG.BIN")
        assert len(info.extents) == 2
        assert [e.extent for e in info.extents] == [0, 1]
        assert len(info.extents[0].blocks) == 16
        assert len(info.extents[1].blocks) == 5
        assert info.file_size == len(data)

        loaded = reload(blank_disk)
        assert export_file(loaded, "BIG.BIN") == data

    def test_headered_file_opens_after_header(self, blank_disk):
        import_code(blank_disk, "CODE", b"\xc9" * 10, 32768)
        with blank_disk.open_file("CODE.BIN") as f:
            assert f.headered
            assert f.tell() == HEADER_SIZE
            assert f.data_size == 10
            assert f.read() == b"\xc9" * 10

    def test_header_updated_on_close(self, blank_disk):
        import_code(blank_disk, "CODE", b"\x00" * 10, 32768)
        with blank_disk.open_file("CODE.BIN") as f:
            f.seek(0, 2)
            f.write(b"\x01" * 5)
        with blank_disk.open_file("CODE.BIN", read_only=True) as f:
            assert f.header.file_length == HEADER_SIZE + 15
            assert f.header.is_valid

    def test_directory_full_rolls_back_blocks(self, blank_disk):
        for i in range(MAX_DIRECTORY_ENTRIES - 1):
            blank_disk.directory.add_file(f"F{i}")
        f = blank_disk.open_file("BIG.BIN", create=True)
        with pytest.raises(DirectoryFullError):
            f.write(create_test_data(17 * BLOCK_SIZE))
        assert blank_disk.blocks.free_block_count() == DATA_BLOCKS
        assert f.blocks == []


# =============================================================================
# Import/Export Tests
# =============================================================================

class TestHostIO:
    """Test import and export of each file kind."""

    def test_basic_scenario(self, blank_disk):
        """A 29-byte program with autostart line 10."""
        info = import_basic(blank_disk, "PROG", basic_program(), line=10)
        assert info.full_name == "PROG.BAS"
        assert [f.full_name for f in blank_disk.list_files()] == ["PROG.BAS"]
        assert info.records == 2
        assert info.file_size == HEADER_SIZE + 29

        with blank_disk.open_file("PROG.BAS", read_only=True) as f:
            assert f.header.file_type == FileType.PROGRAM
            assert f.header.params.autostart_line == 10
        assert describe_file(blank_disk, "PROG.BAS") == "Program LINE 10"

    @pytest.mark.parametrize("kind", ["basic", "code", "screen"])
    def test_roundtrip_strip_header(self, blank_disk, kind):
        match kind:
            case "basic":
                data = basic_program()
                info = import_basic(blank_disk, "FILE", data)
            case "code":
                data = create_test_data(5000)
                info = import_code(blank_disk, "FILE", data, 40000)
            case _:
                data = create_test_data(SCREEN_SIZE)
                info = import_screen(blank_disk, "FILE", data)
        assert export_file(blank_disk, info.full_name, strip_header=True) == data
        assert len(export_file(blank_disk, info.full_name)) == HEADER_SIZE + len(data)

    def test_raw_roundtrip(self, blank_disk):
        data = create_test_data(777)
        import_raw(blank_disk, "raw data.bin", data)
        assert export_file(blank_disk, "RAW_DATA.BIN", strip_header=True) == data

    def test_export_screen_and_basic(self, blank_disk):
        screen = create_test_data(SCREEN_SIZE)
        import_screen(blank_disk, "PIC", screen)
        import_basic(blank_disk, "PROG", basic_program())
        assert export_screen(blank_disk, "PIC.SCR") == screen
        assert export_basic(blank_disk, "PROG.BAS") == basic_program()
        with pytest.raises(FormatError):
            export_screen(blank_disk, "PROG.BAS")
        with pytest.raises(FormatError):
            export_basic(blank_disk, "PIC.SCR")

    def test_screen_wrong_size(self, blank_disk):
        with pytest.raises(FormatError):
            import_screen(blank_disk, "PIC", bytes(100))
        assert blank_disk.list_files() == []

    def test_too_large_creates_no_entry(self, blank_disk):
        with pytest.raises(FileTooLargeError):
            import_raw(blank_disk, "HUGE.BIN", bytes(MAX_IMPORT_SIZE + 1))
        assert blank_disk.directory.live_entries() == []

    def test_block_limit_creates_no_entry(self, blank_disk):
        with pytest.raises(FileTooLargeError):
            import_raw(blank_disk, "BIG.BIN", bytes((MAX_BLOCKS_PER_FILE + 1) * BLOCK_SIZE))
        assert blank_disk.directory.live_entries() == []
        assert blank_disk.blocks.free_block_count() == DATA_BLOCKS

    def test_disk_full_removes_partial_file(self, blank_disk):
        with pytest.raises(DiskFullError):
            import_raw(blank_disk, "BIG.BIN", bytes((DATA_BLOCKS + 1) * BLOCK_SIZE))
        assert blank_disk.directory.live_entries() == []
        assert blank_disk.blocks.free_block_count() == DATA_BLOCKS

    def test_overwrite(self, blank_disk):
        import_raw(blank_disk, "DATA.BIN", b"one")
        with pytest.raises(Plus3FileExistsError):
            import_raw(blank_disk, "DATA.BIN", b"two")
        import_raw(blank_disk, "DATA.BIN", b"two", overwrite=True)
        assert export_file(blank_disk, "DATA.BIN") == b"two"
        assert len(blank_disk.list_files()) == 1

    def test_overwrite_disk_full_keeps_original(self, blank_disk):
        original = create_test_data(800)
        import_raw(blank_disk, "KEEP.BIN", original)
        import_raw(blank_disk, "FILL.BIN", bytes(150 * BLOCK_SIZE))
        free_before = blank_disk.blocks.free_block_count()

        with pytest.raises(DiskFullError):
            import_raw(blank_disk, "KEEP.BIN", bytes(100 * BLOCK_SIZE), overwrite=True)

        assert export_file(blank_disk, "KEEP.BIN") == original
        assert blank_disk.blocks.free_block_count() == free_before

    def test_overwrite_directory_full_keeps_original(self, blank_disk):
        for i in range(MAX_DIRECTORY_ENTRIES - 1):
            import_raw(blank_disk, f"F{i}.BIN", b"x")
        import_raw(blank_disk, "KEEP.BIN", b"keep")
        assert blank_disk.directory.free_slot_count() == 0

        # 17 blocks need a second extent
        with pytest.raises(DirectoryFullError):
            import_raw(blank_disk, "KEEP.BIN", bytes(17 * BLOCK_SIZE), overwrite=True)

        assert export_file(blank_disk, "KEEP.BIN") == b"keep"
        assert len(blank_disk.list_files()) == MAX_DIRECTORY_ENTRIES

    def test_overwrite_reuses_old_blocks(self, blank_disk):
        import_raw(blank_disk, "KEEP.BIN", bytes(100 * BLOCK_SIZE))
        import_raw(blank_disk, "FILL.BIN", bytes(70 * BLOCK_SIZE))
        assert blank_disk.blocks.free_block_count() == DATA_BLOCKS - 170

        data = create_test_data(105 * BLOCK_SIZE)
        import_raw(blank_disk, "KEEP.BIN", data, overwrite=True)

        assert export_file(blank_disk, "KEEP.BIN") == data
        assert blank_disk.blocks.free_block_count() == DATA_BLOCKS - 175

    def test_overwrite_read_only(self, blank_disk):
        import_raw(blank_disk, "LOCKED.BIN", b"one")
        blank_disk.set_attributes("LOCKED.BIN", FileAttributes(read_only=True))
        with pytest.raises(ReadOnlyError):
            import_raw(blank_disk, "LOCKED.BIN", b"two", overwrite=True)
        assert export_file(blank_disk, "LOCKED.BIN") == b"one"

    @pytest.mark.parametrize("host_name,data,disk_name,description", [
        ("prog.bas", basic_program(), "PROG.BAS", "Program"),
        ("loader.bin", b"\xc9", "LOADER.BIN", "Bytes 32768,1"),
        ("pic.scr", bytes(SCREEN_SIZE), "PIC.SCR", "Bytes 16384,6912"),
        ("notes.txt", b"text", "NOTES.TXT", "Headerless"),
    ])
    def test_host_file_kind_from_extension(self, blank_disk, temp_dir, host_name, data,
                                           disk_name, description):
        source = temp_dir / host_name
        source.write_bytes(data)
        info = import_host_file(blank_disk, source)
        assert info.full_name == disk_name
        assert describe_file(blank_disk, disk_name) == description
        assert export_file(blank_disk, disk_name, strip_header=True) == data

    def test_kind_for_path(self):
        assert kind_for_path("GAME.BAS") is ImportKind.BASIC
        assert kind_for_path("dir/loader.Bin") is ImportKind.CODE
        assert kind_for_path("title.scr") is ImportKind.SCREEN
        assert kind_for_path("README") is ImportKind.RAW

    def test_host_file_roundtrip(self, blank_disk, temp_dir):
        source = temp_dir / "Loader.bin"
        source.write_bytes(create_test_data(1234))
        info = import_host_file(blank_disk, source, ImportKind.CODE, load_address=0x8000)
        assert info.full_name == "LOADER.BIN"

        target = temp_dir / "out.bin"
        assert export_to_host(blank_disk, "LOADER.BIN", target, strip_header=True) == 1234
        assert target.read_bytes() == source.read_bytes()

    def test_host_file_missing(self, blank_disk, temp_dir):
        with pytest.raises(DiskError):
            import_host_file(blank_disk, temp_dir / "missing.bin")

    def test_export_to_directory_fails(self, blank_disk, temp_dir):
        import_raw(blank_disk, "DATA.BIN", b"data")
        with pytest.raises(DiskError):
            export_to_host(blank_disk, "DATA.BIN", temp_dir)
        assert temp_dir.is_dir()


# =============================================================================
# TAP Conversion Tests
# =============================================================================

class TestTap:
    """Test tape image conversion."""

    def test_roundtrip(self, blank_disk):
        code = create_test_data(300)
        import_basic(blank_disk, "PROG", basic_program(), line=10)
        import_code(blank_disk, "CODE", code, 32768)

        tap = disk_to_tap(blank_disk)
        files = read_tap(tap)
        assert [f.name for f in files] == ["CODE", "PROG"]
        assert files[1].param1 == 10

        target = DiskImage.create()
        imported = tap_to_disk(target, tap)
        assert [f.full_name for f in imported] == ["CODE.BIN", "PROG.BAS"]
        assert export_basic(target, "PROG.BAS") == basic_program()
        assert export_file(target, "CODE.BIN", strip_header=True) == code
        with target.open_file("PROG.BAS", read_only=True) as f:
            assert f.header.params == ProgramParams(29, 10, 29)
        with target.open_file("CODE.BIN", read_only=True) as f:
            assert f.header.params == CodeParams(300, 32768)

    def test_block_layout(self):
        tap = tap_blocks(TapFile(FileType.CODE, "X", b"\x01\x02", 16384, NO_AUTOSTART))
        assert tap[0:3] == b"\x13\x00\x00"     # 19-byte header block, flag 0
        assert tap[21:24] == b"\x04\x00\xff"    # data block: flag, 2 bytes, checksum
        assert tap[-1] == 0xFF ^ 0x01 ^ 0x02

    def test_checksum_mismatch(self):
        tap = bytearray(tap_blocks(TapFile(FileType.CODE, "X", b"data", 0)))
        tap[-1] ^= 0xFF
        with pytest.raises(FormatError):
            read_tap(bytes(tap))

    def test_truncated(self):
        tap = tap_blocks(TapFile(FileType.CODE, "X", b"data", 0))
        with pytest.raises(FormatError):
            read_tap(tap[:-2])

    def test_header_without_data(self):
        tap = tap_blocks(TapFile(FileType.CODE, "X", b"data", 0))
        with pytest.raises(FormatError):
            read_tap(tap[:21])

    def test_headerless_disk_file(self, blank_disk):
        import_raw(blank_disk, "RAW.BIN", b"data")
        with pytest.raises(FormatError):
            disk_to_tap(blank_disk, ["RAW.BIN"])

    def test_arrays_skipped(self, blank_disk):
        tap = tap_blocks(TapFile(FileType.NUMERIC_ARRAY, "A", b"\x00" * 6, 0x81 << 8))
        assert tap_to_disk(blank_disk, tap) == []

    def test_array_name_in_tape_header(self, blank_disk):
        header = Plus3DosHeader.for_params(NumericArrayParams(6, variable_name=0x81))
        write_new_file(blank_disk, "A.DAT", b"\x00" * 6, header)

        tap = disk_to_tap(blank_disk)

        assert tap[2 + 1 + 13:2 + 1 + 15] == b"\x00\x81"
        files = read_tap(tap)
        assert files[0].file_type == FileType.NUMERIC_ARRAY
        assert files[0].param1 == 0x81 << 8
        assert files[0].param2 == 0


# =============================================================================
# Validator Tests
# =============================================================================

class TestVerify:
    """Test structural validation."""

    def test_fresh_image_strict(self, blank_disk):
        assert DiskCheck(blank_disk, ValidationLevel.STRICT).validate() == []

    def test_populated_after_reload(self, blank_disk):
        import_basic(blank_disk, "PROG", basic_program(), line=10)
        import_raw(blank_disk, "BIG.BIN", create_test_data(20 * BLOCK_SIZE))
        import_screen(blank_disk, "PIC", create_test_data(SCREEN_SIZE))
        loaded = reload(blank_disk)
        assert DiskCheck(loaded).validate() == []

    def test_boot_checksum(self, blank_disk):
        blank_disk.write_sector(0, bytes(SECTOR_SIZE))
        checks = [v.check for v in DiskCheck(blank_disk).validate()]
        assert checks == ['boot']
        assert DiskCheck(blank_disk, ValidationLevel.BASIC).validate() == []

    def test_format_problems(self, blank_disk):
        blank_disk.header.tracks = 41
        violations = DiskCheck(blank_disk, ValidationLevel.BASIC).validate()
        assert [v.check for v in violations] == ['format']

    def test_shared_block(self, blank_disk):
        import_raw(blank_disk, "A.BIN", b"a")
        import_raw(blank_disk, "B.BIN", b"b")
        entry, _ = blank_disk.directory.find_file("B.BIN")
        entry.blocks = [3]
        checks = {v.check for v in DiskCheck(blank_disk).validate()}
        assert 'blocks' in checks

    def test_entry_ranges(self, blank_disk):
        import_raw(blank_disk, "A.BIN", b"a")
        entry, _ = blank_disk.directory.find_file("A.BIN")
        entry.extent = 40
        entry.record_count = 200
        checks = {v.check for v in DiskCheck(blank_disk).validate()}
        assert {'extent', 'records'} <= checks

    def test_duplicate_entry(self, blank_disk):
        import_raw(blank_disk, "A.BIN", b"a")
        entry, index = blank_disk.directory.find_file("A.BIN")
        blank_disk.directory.entries[index + 1] = DirectoryEntry.from_bytes(entry.to_bytes())
        checks = {v.check for v in DiskCheck(blank_disk).validate()}
        assert 'duplicate' in checks

    def test_size_exceeds_blocks(self, blank_disk):
        import_raw(blank_disk, "A.BIN", b"a")
        entry, _ = blank_disk.directory.find_file("A.BIN")
        entry.record_count = 20
        checks = {v.check for v in DiskCheck(blank_disk).validate()}
        assert 'size' in checks

    def test_orphaned_block(self, blank_disk):
        blank_disk.allocation.allocate(block_to_sector(50), 2)
        violations = DiskCheck(blank_disk).validate()
        assert [v.check for v in violations] == ['orphan']

    def test_stale_unallocated_sector(self, blank_disk):
        blank_disk.tracks[10][0] = 0x00
        violations = DiskCheck(blank_disk).validate()
        assert [v.check for v in violations] == ['filler']

    def test_corrupt_file_header(self, blank_disk):
        import_code(blank_disk, "CODE", b"\xc9" * 10, 32768)
        entry, _ = blank_disk.directory.find_file("CODE.BIN")
        first = block_to_sector(entry.blocks[0])
        sector = bytearray(blank_disk.read_sector(first))
        sector[20] ^= 0xFF
        blank_disk.write_sector(first, bytes(sector))
        checks = {v.check for v in DiskCheck(blank_disk).validate()}
        assert 'header' in checks

    def test_verify_disk_result(self, blank_disk):
        result = verify_disk(blank_disk, verbose=True)
        assert result.is_valid
        assert result.errors == []
        assert "PASSED" in format_verification_result(result)

        blank_disk.write_sector(0, bytes(SECTOR_SIZE))
        result = verify_disk(blank_disk)
        assert not result.is_valid
        assert "FAILED" in format_verification_result(result)


# =============================================================================
# Creation and Info Tests
# =============================================================================

class TestCreateAndInfo:
    """Test blank image creation and the info report."""

    def test_create_blank_image(self, temp_dir):
        path = temp_dir / "new.dsk"
        create_blank_image(path)
        assert path.stat().st_size == IMAGE_SIZE
        loaded = DiskImage.load_from_file(path)
        assert loaded.state is DiskState.INITIALIZED
        assert DiskCheck(loaded).validate() == []

    def test_create_existing(self, disk_file):
        with pytest.raises(DiskError):
            create_blank_image(disk_file)
        create_blank_image(disk_file, force=True)

    def test_disk_info(self, blank_disk):
        import_raw(blank_disk, "DATA.BIN", create_test_data(1500))
        info = get_disk_info(blank_disk)
        assert info['file_count'] == 1
        assert info['used_bytes'] == 2 * BLOCK_SIZE
        assert info['free_blocks'] == DATA_BLOCKS - 2
        text = format_disk_info(info, verbose=True)
        assert "ZX Spectrum +3" in text
        assert "Technical Details" in text


# =============================================================================
# Output Formatter Tests
# =============================================================================

class TestOutputFormatter:
    """Test OutputFormatter class."""

    def test_success_json_mode(self, capsys):
        formatter = OutputFormatter(json_mode=True)
        formatter.success("Done", count=5)
        output = json.loads(capsys.readouterr().out)
        assert output == {"status": "success", "message": "Done", "count": 5}

    def test_error_text_mode(self, capsys):
        OutputFormatter().error("Something went wrong")
        captured = capsys.readouterr()
        assert "Error: Something went wrong" in captured.err

    @pytest.mark.parametrize("style,expected", [
        ("dos", "PROG     BAS"),
        ("cpm", "A: CODE     BIN : PROG     BAS"),
        ("ls", "-rw--    1      157 PROG.BAS"),
    ])
    def test_list_styles(self, blank_disk, capsys, style, expected):
        import_basic(blank_disk, "PROG", basic_program())
        import_code(blank_disk, "CODE", b"\xc9", 32768)
        OutputFormatter().list_files(blank_disk.list_files(), "test.dsk", style=style)
        out = capsys.readouterr().out
        assert expected in out
        assert "2 file(s)" in out

    def test_list_json(self, blank_disk, capsys):
        import_raw(blank_disk, "DATA.BIN", b"data")
        OutputFormatter(json_mode=True).list_files(blank_disk.list_files(), "test.dsk")
        output = json.loads(capsys.readouterr().out)
        assert output["files"][0]["name"] == "DATA.BIN"
        assert output["files"][0]["size"] == 4
        assert output["files"][0]["type"] == "Code"
        assert output["files"][0]["deleted"] is False

    def test_type_column(self, blank_disk, capsys):
        import_basic(blank_disk, "PROG", basic_program())
        import_screen(blank_disk, "PIC", bytes(SCREEN_SIZE))
        import_raw(blank_disk, "NOTES.TXT", b"text")
        OutputFormatter().list_files(blank_disk.list_files(), "test.dsk")
        lines = capsys.readouterr().out.splitlines()
        assert any("NOTES" in line and line.rstrip().endswith("Data") for line in lines)
        assert any("PIC" in line and "Screen$" in line for line in lines)
        assert any("PROG" in line and "BASIC" in line for line in lines)

    def test_deleted_marker(self, blank_disk, capsys):
        import_raw(blank_disk, "OLD.BIN", b"old")
        import_raw(blank_disk, "NEW.BIN", b"new")
        blank_disk.delete_file("OLD.BIN")
        files = blank_disk.list_files() + blank_disk.list_deleted()
        OutputFormatter().list_files(files, "test.dsk", style="ls")
        out = capsys.readouterr().out
        assert "OLD.BIN (deleted)" in out
        assert "NEW.BIN (deleted)" not in out
        assert "1 file(s)" in out

    @pytest.mark.parametrize("key,reverse,expected", [
        ("name", False, ["A.BIN", "B.SCR", "C.BAS"]),
        ("name", True, ["C.BAS", "B.SCR", "A.BIN"]),
        ("size", False, ["C.BAS", "A.BIN", "B.SCR"]),
        ("type", False, ["C.BAS", "A.BIN", "B.SCR"]),
    ])
    def test_sort_files(self, blank_disk, key, reverse, expected):
        import_raw(blank_disk, "A.BIN", bytes(500))
        import_raw(blank_disk, "B.SCR", bytes(900))
        import_raw(blank_disk, "C.BAS", bytes(10))
        files = sort_files(blank_disk.list_files(), key, reverse)
        assert [f.full_name for f in files] == expected


# =============================================================================
# CLI Tests
# =============================================================================

class TestCLI:
    """Test command-line interface."""

    def test_create(self, temp_dir, capsys):
        path = temp_dir / "new.dsk"
        assert main(["create", str(path)]) == 0
        assert path.exists()
        assert main(["create", str(path)]) == 1
        assert "already exists" in capsys.readouterr().err
        assert main(["create", "-f", str(path)]) == 0

    def test_add_list_extract(self, disk_file, temp_dir, capsys):
        source = temp_dir / "prog.bas"
        source.write_bytes(basic_program())
        assert main(["add", str(disk_file), str(source), "-k", "basic", "--line", "10"]) == 0

        capsys.readouterr()
        assert main(["list", "--json", str(disk_file)]) == 0
        output = json.loads(capsys.readouterr().out)
        assert [f["name"] for f in output["files"]] == ["PROG.BAS"]

        target = temp_dir / "out.bas"
        assert main(["extract", str(disk_file), "PROG.BAS", "-o", str(target),
                     "--strip-header"]) == 0
        assert target.read_bytes() == basic_program()

    def test_add_kind_from_extension(self, disk_file, temp_dir):
        source = temp_dir / "prog.bas"
        source.write_bytes(basic_program())
        assert main(["add", str(disk_file), str(source)]) == 0
        disk = DiskImage.load_from_file(disk_file)
        assert describe_file(disk, "PROG.BAS") == "Program LINE 10"

    def test_list_sort_and_deleted(self, disk_file, capsys):
        disk = DiskImage.load_from_file(disk_file)
        import_raw(disk, "BIG.BIN", bytes(3000))
        import_raw(disk, "SMALL.BIN", bytes(10))
        import_raw(disk, "OLD.BIN", bytes(20))
        disk.delete_file("OLD.BIN")
        disk.save_to_file(disk_file)
        capsys.readouterr()

        assert main(["list", "--json", "--sort", "size", "--reverse", str(disk_file)]) == 0
        output = json.loads(capsys.readouterr().out)
        assert [f["name"] for f in output["files"]] == ["BIG.BIN", "SMALL.BIN"]

        assert main(["list", "--json", "--deleted", str(disk_file)]) == 0
        output = json.loads(capsys.readouterr().out)
        assert [(f["name"], f["deleted"]) for f in output["files"]] == [
            ("BIG.BIN", False), ("OLD.BIN", True), ("SMALL.BIN", False)]

    def test_extract_wildcard_to_directory(self, disk_file, temp_dir):
        disk = DiskImage.load_from_file(disk_file)
        import_raw(disk, "A.BIN", b"a")
        import_raw(disk, "B.BIN", b"b")
        disk.save_to_file(disk_file)
        out_dir = temp_dir / "out"
        out_dir.mkdir()
        assert main(["extract", str(disk_file), "*.BIN", "-o", str(out_dir)]) == 0
        assert (out_dir / "A.BIN").read_bytes() == b"a"
        assert (out_dir / "B.BIN").read_bytes() == b"b"

    def test_attr_and_delete(self, disk_file, temp_dir, capsys):
        source = temp_dir / "data.bin"
        source.write_bytes(b"data")
        assert main(["add", str(disk_file), str(source)]) == 0
        assert main(["attr", str(disk_file), "DATA.BIN", "+R", "+2"]) == 0
        assert DiskImage.load_from_file(disk_file).get_attributes("DATA.BIN").read_only

        assert main(["delete", str(disk_file), "DATA.BIN"]) == 1
        assert "read-only" in capsys.readouterr().err
        assert main(["delete", str(disk_file), "DATA.BIN", "--force"]) == 0
        assert DiskImage.load_from_file(disk_file).list_files() == []

    def test_info_and_verify(self, disk_file, capsys):
        assert main(["info", str(disk_file)]) == 0
        assert "ZX Spectrum +3" in capsys.readouterr().out
        assert main(["verify", str(disk_file)]) == 0
        assert "PASSED" in capsys.readouterr().out
        assert main(["verify", "--basic", "--json", str(disk_file)]) == 0
        assert json.loads(capsys.readouterr().out)["valid"] is True

    def test_missing_image(self, temp_dir, capsys):
        assert main(["list", str(temp_dir / "missing.dsk")]) == 1
        assert "Error:" in capsys.readouterr().err

    def test_tape_conversion(self, temp_dir):
        source = DiskImage.create()
        import_code(source, "CODE", create_test_data(100), 32768)
        tap_path = temp_dir / "game.tap"
        tap_path.write_bytes(disk_to_tap(source))

        image = temp_dir / "game.dsk"
        assert main(["tap2dsk", str(tap_path), str(image)]) == 0
        disk = DiskImage.load_from_file(image)
        assert export_file(disk, "CODE.BIN", strip_header=True) == create_test_data(100)

        out_tap = temp_dir / "out.tap"
        assert main(["dsk2tap", str(image), str(out_tap)]) == 0
        assert out_tap.read_bytes() == tap_path.read_bytes()


# =============================================================================
# Error Hierarchy Tests
# =============================================================================

class TestExceptions:
    """Test the error taxonomy."""

    def test_hierarchy(self):
        for error in (DiskError, AllocationError, OutOfRangeError, InvalidFilenameError,
                      InvalidImageError, InvalidHeaderError, DiskFullError,
                      DirectoryFullError, FileTooLargeError, ReadOnlyError,
                      Plus3FileExistsError, Plus3FileNotFoundError):
            assert issubclass(error, Plus3Error)
        assert issubclass(InvalidHeaderError, FormatError)
        assert issubclass(AllocationError, DiskError)


# =============================================================================
# Run Tests
# =============================================================================

if __name__ == "__main__":
    pytest.main([__file__, "-v"])
