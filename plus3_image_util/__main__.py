"""
Entry point for the ZX Spectrum +3 Disk Image Utility.

Allows running as: python -m plus3_image_util
"""

import argparse
import sys

from . import __version__
from .commands import (
    cmd_add,
    cmd_attr,
    cmd_create,
    cmd_delete,
    cmd_dsk2tap,
    cmd_extract,
    cmd_info,
    cmd_list,
    cmd_tap2dsk,
    cmd_verify,
)
from .formatter import LIST_STYLES, SORT_KEYS, OutputFormatter
from .hostio import ImportKind
from .logging_config import level_from_flags, setup_logging


def _int_arg(text: str) -> int:
    """Integer in decimal, or hex/octal/binary with a 0x/0o/0b prefix."""
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {text}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='plus3_image_util',
        description='ZX Spectrum +3 disk image utility (.dsk)',
    )

    # Global options
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show detailed output')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Suppress non-essential output')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--json', action='store_true', help='Output in JSON format')

    image = argparse.ArgumentParser(add_help=False, parents=[common])
    image.add_argument('image', help='Disk image path')
    image.add_argument('--scan-tracks', action='store_true',
                       help='Treat every non-blank track as allocated when loading')

    subparsers = parser.add_subparsers(dest='command', required=True)

    # Create command
    create_parser = subparsers.add_parser('create', parents=[common],
                                          help='Create a new blank +3 disk image')
    create_parser.add_argument('output', help='Output file path for new disk image')
    create_parser.add_argument('-f', '--force', action='store_true',
                               help='Overwrite existing file')

    # Info command
    subparsers.add_parser('info', parents=[image], help='Show disk image information',
                          epilog='Use -v for technical details.')

    # List command
    list_parser = subparsers.add_parser('list', parents=[image], help='List files')
    list_parser.add_argument('pattern', nargs='?', help='Wildcard filter (e.g. *.BAS)')
    list_parser.add_argument('-s', '--style', choices=LIST_STYLES, default='dos',
                             help='Listing style (default: dos)')
    list_parser.add_argument('-a', '--all', action='store_true',
                             help='Include files with the system attribute')
    list_parser.add_argument('--sort', choices=SORT_KEYS, default='name',
                             help='Sort by name, size or type (default: name)')
    list_parser.add_argument('-r', '--reverse', action='store_true',
                             help='Reverse the sort order')
    list_parser.add_argument('-d', '--deleted', action='store_true',
                             help='Also show recoverable deleted files')

    # Add command
    add_parser = subparsers.add_parser('add', parents=[image], help='Add host files to the image')
    add_parser.add_argument('files', nargs='+', metavar='FILE', help='Host files to add')
    add_parser.add_argument('-k', '--kind', choices=[k.value for k in ImportKind],
                            default=ImportKind.AUTO.value,
                            help='Import as BASIC, code, screen or raw data '
                                 '(default: auto, by host extension)')
    add_parser.add_argument('-n', '--name', help='Name on disk (single file only)')
    add_parser.add_argument('--line', type=_int_arg, default=10,
                            help='BASIC autostart line (default: 10, 32768 for none)')
    add_parser.add_argument('--address', type=_int_arg, default=32768,
                            help='Code load address (default: 32768)')
    add_parser.add_argument('-f', '--force', action='store_true',
                            help='Replace existing files')

    # Extract command
    extract_parser = subparsers.add_parser('extract', parents=[image],
                                           help='Copy files from the image to the host')
    extract_parser.add_argument('files', nargs='+', metavar='FILE',
                                help='Files to extract (wildcards allowed)')
    extract_parser.add_argument('-o', '--output', help='Output file or directory')
    extract_parser.add_argument('--strip-header', action='store_true',
                                help='Remove the PLUS3DOS header')

    # Delete command
    delete_parser = subparsers.add_parser('delete', parents=[image], help='Delete files')
    delete_parser.add_argument('files', nargs='+', metavar='FILE',
                               help='Files to delete (wildcards allowed)')
    delete_parser.add_argument('--no-recycle', action='store_true',
                               help='Zero the directory entries instead of marking them deleted')
    delete_parser.add_argument('-f', '--force', action='store_true',
                               help='Delete read-only files')

    # Attr command
    attr_parser = subparsers.add_parser('attr', parents=[image],
                                        help='View or modify file attributes',
                                        epilog='Attributes: R=read-only, S=system, A=archived, '
                                               '1-4=user flags. Use -- before -X flags '
                                               '(e.g., attr disk.dsk FILE -- +R -A)')
    attr_parser.add_argument('file', help='File on disk')
    attr_parser.add_argument('modifications', nargs='*', metavar='MOD',
                             help='Attribute changes: +R +S +A +1..+4 to set, -R ... to clear')

    # Verify command
    verify_parser = subparsers.add_parser('verify', parents=[image],
                                          help='Verify disk image integrity')
    level = verify_parser.add_mutually_exclusive_group()
    level.add_argument('--strict', action='store_true',
                       help='Check the filesystem as well as the container (default)')
    level.add_argument('--basic', action='store_true',
                       help='Check the container structure only')

    # Tape conversion
    tap2dsk_parser = subparsers.add_parser('tap2dsk', parents=[common],
                                           help='Import a .tap tape image into a disk image')
    tap2dsk_parser.add_argument('tap', help='Tape image to read')
    tap2dsk_parser.add_argument('image', help='Disk image (created if missing)')
    tap2dsk_parser.add_argument('-f', '--force', action='store_true',
                                help='Replace existing files')

    dsk2tap_parser = subparsers.add_parser('dsk2tap', parents=[common],
                                           help='Write disk files to a .tap tape image')
    dsk2tap_parser.add_argument('image', help='Disk image path')
    dsk2tap_parser.add_argument('tap', help='Tape image to write')
    dsk2tap_parser.add_argument('files', nargs='*', metavar='FILE',
                                help='Files to convert (default: all)')

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(level=level_from_flags(args.verbose, args.quiet))
    formatter = OutputFormatter(json_mode=args.json)

    match args.command:
        case 'create':
            return cmd_create(args, formatter)
        case 'info':
            return cmd_info(args, formatter)
        case 'list':
            return cmd_list(args, formatter)
        case 'add':
            return cmd_add(args, formatter)
        case 'extract':
            return cmd_extract(args, formatter)
        case 'delete':
            return cmd_delete(args, formatter)
        case 'attr':
            return cmd_attr(args, formatter)
        case 'verify':
            return cmd_verify(args, formatter)
        case 'tap2dsk':
            return cmd_tap2dsk(args, formatter)
        case 'dsk2tap':
            return cmd_dsk2tap(args, formatter)
        case _:
            formatter.error(f"Unknown command: {args.command}")
            return 1


if __name__ == '__main__':
    sys.exit(main())
