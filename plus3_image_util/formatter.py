"""
Output formatting for ZX Spectrum +3 disk image utilities.
"""

import json
import sys
from typing import Literal

from .models import Plus3FileInfo

ListStyle = Literal['dos', 'cpm', 'ls']
LIST_STYLES = ('dos', 'cpm', 'ls')
SORT_KEYS = ('name', 'size', 'type')


def sort_files(files: list[Plus3FileInfo], key: str = 'name',
               reverse: bool = False) -> list[Plus3FileInfo]:
    """Order a listing by name, size or type label. Ties fall back to the name."""
    match key:
        case 'size':
            sort_key = lambda f: (f.file_size, f.full_name)
        case 'type':
            sort_key = lambda f: (f.type_label, f.full_name)
        case _:
            sort_key = lambda f: f.full_name
    return sorted(files, key=sort_key, reverse=reverse)


class OutputFormatter:
    """Handle output formatting (text or JSON)."""

    def __init__(self, json_mode: bool = False):
        self.json_mode = json_mode

    def success(self, message: str, **data) -> None:
        """Output success message."""
        if self.json_mode:
            output = {"status": "success", "message": message, **data}
            print(json.dumps(output))
        else:
            print(message)

    def error(self, message: str) -> None:
        """Output error message."""
        if self.json_mode:
            output = {"status": "error", "message": message}
            print(json.dumps(output))
        else:
            print(f"Error: {message}", file=sys.stderr)

    def list_files(self, files: list[Plus3FileInfo], path: str = "",
                   style: ListStyle = 'dos', free_bytes: int | None = None) -> None:
        """
        Output a file listing.

        Args:
            files: Files from DiskImage.list_files(), possibly with deleted
                   ones mixed in (the footer counts live files only)
            path: Image path shown in the heading
            style: 'dos' (one file per line), 'cpm' (four names per line,
                   like the +3 CAT/DIR) or 'ls' (long Unix-style listing)
            free_bytes: Free space shown in the footer, if known
        """
        if self.json_mode:
            file_list = [{
                "name": f.full_name,
                "size": f.file_size,
                "attr": f.attributes.attr_string(),
                "blocks": f.blocks,
                "extents": len(f.extents),
                "is_read_only": f.is_read_only,
                "type": f.type_label,
                "deleted": f.deleted,
            } for f in files]
            output = {"status": "success", "path": path, "files": file_list}
            if free_bytes is not None:
                output["free_bytes"] = free_bytes
            print(json.dumps(output))
            return

        match style:
            case 'cpm':
                self._list_cpm(files)
            case 'ls':
                self._list_ls(files)
            case _:
                self._list_dos(files, path)

        live = [f for f in files if not f.deleted]
        total_bytes = sum(f.file_size for f in live)
        print()
        footer = f"  {len(live)} file(s)  {total_bytes:,} bytes"
        if free_bytes is not None:
            footer += f"  ({free_bytes // 1024}K free)"
        print(footer)

    @staticmethod
    def _list_dos(files: list[Plus3FileInfo], path: str) -> None:
        print(f"Directory of {path or 'A:'}")
        print()
        for f in files:
            marker = "  (deleted)" if f.deleted else ""
            print(f"  {f.filename:<8} {f.extension:<3}  {f.file_size:>10,}  "
                  f"{f.attributes.attr_string()}  {f.type_label:<7}{marker}")

    @staticmethod
    def _list_cpm(files: list[Plus3FileInfo]) -> None:
        names = [f"{f.filename:<8} {f.extension:<3}" for f in files]
        for start in range(0, len(names), 4):
            print("A: " + " : ".join(names[start:start + 4]))

    @staticmethod
    def _list_ls(files: list[Plus3FileInfo]) -> None:
        for f in files:
            mode = '-r--' if f.is_read_only else '-rw-'
            system = 's' if f.attributes.system else '-'
            marker = " (deleted)" if f.deleted else ""
            print(f"{mode}{system} {len(f.blocks):>4} {f.file_size:>8} {f.full_name}{marker}")
