#!/usr/bin/env python3
"""
Build script for mdepub, usable without installing the package.

Usage:
    python build.py path/to/book -s              Build book.yaml + sources
    python build.py path/to/book -s --validate   Build, then run epubcheck
    mdbook build | python build.py               Render context from stdin

Requires: ebooklib, Markdown, pymdown-extensions, Jinja2, requests, PyYAML
Optional: java + epubcheck (validation)
"""

import os
import sys
import traceback

# Ensure mdepub is importable from the scripts/ directory
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from mdepub.cli import main


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        log_path = "build_error.log"
        with open(log_path, "w") as f:
            traceback.print_exc(file=f)
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        print(f"Full traceback written to {log_path}", file=sys.stderr)
        sys.exit(1)
