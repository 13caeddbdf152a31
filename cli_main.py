#!/usr/bin/env python3
"""
Entry point script for the CLI executable.
Used by PyInstaller to build a standalone binary.
"""

import sys
from plus3_image_util.__main__ import main

if __name__ == '__main__':
    sys.exit(main())
