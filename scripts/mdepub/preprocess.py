"""
Chapter preprocessors.

A preprocessor is a callable `(chapter, book)` that may rewrite
`chapter.content` in place before rendering. They run in the order
listed under `preprocessors:` in book.yaml.
"""

import logging
import os
import re

from mdepub.errors import ConfigError, ContentFileNotFound
from mdepub.resolve import chapter_dir

logger = logging.getLogger(__name__)

# {{#include path}}  {{#include path:3}}  {{#include path:3:10}}  {{#include path::10}}
INCLUDE_RE = re.compile(
    r"\{\{\s*#include\s+(?P<path>[^:}\s]+)(?::(?P<start>\d*))?(?::(?P<end>\d*))?\s*\}\}"
)


def include_files(chapter, book):
    """Replace {{#include file[:start[:end]]}} with the file's lines."""

    def _include(match):
        rel = match.group("path")
        full_path = os.path.join(book.source_dir, *chapter_dir(chapter.path).split("/"), rel)
        try:
            with open(full_path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as e:
            raise ContentFileNotFound(
                f"File '{rel}' included from '{chapter.path}' not found: {full_path}"
            ) from e

        start, end = match.group("start"), match.group("end")
        if start and end is None:
            # {{#include file:N}} → line N only
            lines = lines[int(start) - 1:int(start)]
        elif start is not None:
            lines = lines[int(start or 1) - 1:int(end) if end else None]

        logger.debug("Included %s into %s", rel, chapter.path)
        return "\n".join(lines)

    chapter.content = INCLUDE_RE.sub(_include, chapter.content)


PREPROCESSORS = {
    "include": include_files,
}


def load_preprocessors(names):
    """Look up configured preprocessor names, keeping their order."""
    result = []
    for name in names or []:
        try:
            result.append(PREPROCESSORS[name])
        except KeyError:
            raise ConfigError(
                f"Unknown preprocessor '{name}' (known: {', '.join(sorted(PREPROCESSORS))})"
            ) from None
    return result
