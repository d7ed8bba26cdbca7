"""
Base builder class.

Subclasses implement `build()` and set `format_name` / `extension`.
Shared logic (output path, console reporting, resource lookup) lives here.
"""

import os
from abc import ABC, abstractmethod

from mdepub.errors import AssetOpenError
from mdepub.resolve import RESOURCE_CHAIN, candidates, resolve_path


class BaseBuilder(ABC):
    """
    Abstract base for format builders.

    Subclasses must define:
        format_name:  str    — human-readable name ("EPUB")
        extension:    str    — output file extension (".epub")
        build():      method — the actual build logic
    """

    format_name = None  # Override in subclass
    extension = None    # Override in subclass

    def __init__(self, config, book, output_dir=None, verbose=False, **kwargs):
        self.config = config
        self.book = book
        self.output_dir = output_dir or config.destination
        self.verbose = verbose
        self.kwargs = kwargs

    # ── Output path ────────────────────────────────────────

    @property
    def output_file(self):
        return os.path.join(self.output_dir, f"{self.config.output_name}{self.extension}")

    # ── Console ────────────────────────────────────────────

    def log(self, msg):
        if self.verbose:
            print(msg)

    def header(self):
        print(f"\n{'─' * 60}")
        print(f"  Building {self.format_name}: {self.config.title or '(untitled)'}")
        print(f"{'─' * 60}")

    # ── Resource resolution ────────────────────────────────

    def resolve(self, reference, what="resource"):
        """
        Resolve a configured resource path: as given → root/src → root.

        Raises AssetOpenError listing every path tried.
        """
        root, src = self.config.root, self.config.src
        path = resolve_path(RESOURCE_CHAIN, root, src, reference)
        if path:
            return path

        tried = ", ".join(p for _label, p in candidates(RESOURCE_CHAIN, root, src, reference))
        raise AssetOpenError(f"Cannot find {what} '{reference}' (tried: {tried})")

    def read(self, path):
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise AssetOpenError(f"Cannot read '{path}': {e}") from e

    # ── Abstract interface ─────────────────────────────────

    @abstractmethod
    def build(self):
        """
        Execute the build. Returns the output path; raises on failure.
        """
        ...
