"""
Command handlers for the ZX Spectrum +3 disk image utility.

Each handler takes the parsed argparse namespace and an OutputFormatter
and returns the process exit status.
"""

from pathlib import Path

from .creator import create_blank_image
from .disk import AllocationRecovery, DiskImage
from .exceptions import FileNotFoundError, Plus3Error
from .formatter import OutputFormatter, sort_files
from .hostio import ImportKind, export_to_host, import_host_file
from .info import format_disk_info, get_disk_info
from .logging_config import get_logger
from .tap import disk_to_tap, tap_to_disk
from .utils import has_wildcards, match_filename, remove_partial
from .verify import ValidationLevel, format_verification_result, verify_disk

logger = get_logger('cli')


def _load(args) -> DiskImage:
    recovery = AllocationRecovery.SCAN_TRACKS if getattr(args, 'scan_tracks', False) \
        else AllocationRecovery.DIRECTORY
    return DiskImage.load_from_file(args.image, recovery)


def _resolve_names(disk: DiskImage, patterns: list[str]) -> list[str]:
    """Expand wildcard patterns against the directory, keeping plain names as given."""
    names = []
    for pattern in patterns:
        if not has_wildcards(pattern):
            names.append(pattern)
            continue
        matched = [f.full_name for f in disk.list_files() if match_filename(pattern, f.full_name)]
        if not matched:
            raise FileNotFoundError(f"No files match {pattern}")
        names.extend(matched)
    return names


def cmd_create(args, formatter: OutputFormatter) -> int:
    """Handle the 'create' command."""
    try:
        create_blank_image(args.output, force=getattr(args, 'force', False))
        formatter.success(f"Created +3 disk image: {args.output}", image=args.output)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_info(args, formatter: OutputFormatter) -> int:
    """Handle the 'info' command."""
    try:
        disk = _load(args)
        info = get_disk_info(disk)
        if formatter.json_mode:
            formatter.success("Disk information", **info)
        else:
            print(format_disk_info(info, verbose=getattr(args, 'verbose', False)))
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_list(args, formatter: OutputFormatter) -> int:
    """Handle the 'list' command."""
    try:
        disk = _load(args)
        files = disk.list_files()
        if getattr(args, 'deleted', False):
            files += disk.list_deleted()
        pattern = getattr(args, 'pattern', None)
        if pattern:
            files = [f for f in files if match_filename(pattern, f.full_name)]
        if not getattr(args, 'all', False):
            files = [f for f in files if not f.attributes.system]
        files = sort_files(files, getattr(args, 'sort', 'name'),
                           reverse=getattr(args, 'reverse', False))
        formatter.list_files(files, args.image, style=args.style,
                             free_bytes=disk.usage().free_bytes)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_add(args, formatter: OutputFormatter) -> int:
    """Handle the 'add' command: import host files and save the image."""
    kind = ImportKind(args.kind)
    if args.name and len(args.files) > 1:
        formatter.error("--name can only be used with a single file")
        return 1

    try:
        disk = _load(args)
        added = []
        for host_file in args.files:
            info = import_host_file(
                disk, host_file, kind,
                name=args.name,
                line=args.line,
                load_address=args.address,
                overwrite=args.force,
            )
            added.append(info.full_name)
            if not formatter.json_mode:
                print(f"  {host_file} -> {info.full_name} ({info.file_size} bytes)")
        disk.save_to_file(args.image)
        formatter.success(f"Added {len(added)} file(s) to {args.image}", files=added)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_extract(args, formatter: OutputFormatter) -> int:
    """Handle the 'extract' command: copy disk files to the host."""
    try:
        disk = _load(args)
        names = _resolve_names(disk, args.files)
        output = Path(args.output) if args.output else Path('.')
        to_directory = output.is_dir() or len(names) > 1

        extracted = []
        for name in names:
            target = output / disk.find_file(name).full_name if to_directory else output
            size = export_to_host(disk, name, target, strip_header=args.strip_header)
            extracted.append(str(target))
            if not formatter.json_mode:
                print(f"  {name} -> {target} ({size} bytes)")
        formatter.success(f"Extracted {len(extracted)} file(s)", files=extracted)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_delete(args, formatter: OutputFormatter) -> int:
    """Handle the 'delete' command."""
    try:
        disk = _load(args)
        names = _resolve_names(disk, args.files)
        for name in names:
            disk.delete_file(name, no_recycle=args.no_recycle, force=args.force)
        disk.save_to_file(args.image)
        formatter.success(f"Deleted {', '.join(names)}", deleted=names)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_attr(args, formatter: OutputFormatter) -> int:
    """Handle the 'attr' command - view or modify file attributes."""
    modifications = args.modifications or []
    try:
        disk = _load(args)
        current = disk.get_attributes(args.file)
        name = disk.find_file(args.file).full_name

        if not modifications:
            if formatter.json_mode:
                formatter.success(
                    f"Attributes for {name}",
                    file=name,
                    attributes=current.attr_string(),
                    read_only=current.read_only,
                    system=current.system,
                    archived=current.archived,
                    user_flags=list(current.user_flags),
                )
            else:
                print(f"{name}: {current.attr_string()}")
            return 0

        updated = current.modified(modifications)
        disk.set_attributes(name, updated)
        disk.save_to_file(args.image)
        if formatter.json_mode:
            formatter.success(
                f"Updated attributes for {name}",
                file=name,
                old_attributes=current.attr_string(),
                new_attributes=updated.attr_string(),
            )
        else:
            print(f"{name}: {current.attr_string()} -> {updated.attr_string()}")
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_verify(args, formatter: OutputFormatter) -> int:
    """Handle the 'verify' command. Returns 1 if any error was found."""
    level = ValidationLevel.BASIC if args.basic else ValidationLevel.STRICT
    try:
        disk = _load(args)
        result = verify_disk(disk, level, verbose=getattr(args, 'verbose', False))
        if formatter.json_mode:
            formatter.success(
                "Verification complete",
                valid=result.is_valid,
                level=level.value,
                errors=result.errors,
                warnings=result.warnings,
                files_checked=result.files_checked,
                blocks_in_use=result.blocks_in_use,
            )
        else:
            print(format_verification_result(result))
        return 0 if result.is_valid else 1
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_tap2dsk(args, formatter: OutputFormatter) -> int:
    """Handle the 'tap2dsk' command: import a tape image into a disk image."""
    try:
        try:
            tap_data = Path(args.tap).read_bytes()
        except OSError as e:
            formatter.error(f"Cannot read {args.tap}: {e}")
            return 1

        if Path(args.image).exists():
            disk = _load(args)
        else:
            logger.info("Creating new image %s", args.image)
            disk = DiskImage.create(args.image)

        imported = tap_to_disk(disk, tap_data, overwrite=args.force)
        disk.save_to_file(args.image)
        names = [f.full_name for f in imported]
        formatter.success(f"Imported {len(names)} file(s) from {args.tap}", files=names)
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1


def cmd_dsk2tap(args, formatter: OutputFormatter) -> int:
    """Handle the 'dsk2tap' command: write disk files to a tape image."""
    output = Path(args.tap)
    try:
        disk = _load(args)
        names = _resolve_names(disk, args.files) if args.files else None
        data = disk_to_tap(disk, names)
        try:
            output.write_bytes(data)
        except OSError as e:
            remove_partial(output)
            formatter.error(f"Cannot write {output}: {e}")
            return 1
        formatter.success(f"Wrote {len(data)} bytes to {output}", tap=str(output))
        return 0
    except Plus3Error as e:
        formatter.error(str(e))
        return 1
