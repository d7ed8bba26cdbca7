"""
Book model and loading.

A Book is an ordered tree: top-level items are Chapters or Separators,
and every Chapter may own sub-chapters. The tree comes from one of:

    SUMMARY.md               nested list of [Name](path.md) links
    front/ chapters/ back/   section directories, naturally sorted
    *.md                     flat layout
    JSON render context      book handed over on stdin
"""

import copy
import logging
import os
import re

from mdepub.config import BookConfig
from mdepub.errors import ConfigError, ContentFileNotFound
from mdepub.resolve import assemble_inputs

logger = logging.getLogger(__name__)

SUMMARY_FILE = "SUMMARY.md"

LINK_RE = re.compile(r"^\[(?P<name>[^\]]+)\]\((?P<path>[^)]*)\)$")
ITEM_RE = re.compile(r"^(?P<indent>[ \t]*)[-*+][ \t]+(?P<rest>.*)$")
HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)
RULE_RE = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")


class Chapter:
    """
    One markdown document in the book tree.

    `number` is a tuple like (2, 1) for "2.1.", or None for unnumbered
    chapters. `path` is relative to the source directory; None marks a
    draft placeholder that is never rendered.
    """

    def __init__(self, name, content="", number=None, path=None, sub_items=None):
        self.name = name
        self.content = content
        self.number = tuple(number) if number else None
        self.path = path
        self.sub_items = sub_items if sub_items is not None else []

    @property
    def level(self):
        """Nesting depth from the chapter number; top level is 0."""
        return len(self.number) - 1 if self.number else 0

    @property
    def is_draft(self):
        return self.path is None

    def copy(self):
        """Deep copy, so preprocessors never touch the Book itself."""
        return copy.deepcopy(self)

    def __str__(self):
        if self.number:
            return f"{'.'.join(str(n) for n in self.number)}. {self.name}"
        return self.name

    def __repr__(self):
        return f"Chapter({self.name!r}, path={self.path!r}, number={self.number!r})"


class Separator:
    """A part title or horizontal rule between chapters. Never rendered."""

    def __init__(self, title=None):
        self.title = title

    def __repr__(self):
        return f"Separator({self.title!r})"


class Book:
    """
    Usage:
        book = load_book(config)
        for chapter in book.iter_chapters():
            print(chapter.path)
    """

    def __init__(self, root, src, items):
        self.root = os.path.abspath(root)
        self.src = src
        self.items = items

    @property
    def source_dir(self):
        return os.path.join(self.root, self.src)

    def iter_chapters(self):
        """Yield every real chapter, depth first in document order."""
        yield from _walk(self.items)


def _walk(items):
    for item in items:
        if not isinstance(item, Chapter):
            continue
        if not item.is_draft:
            yield item
        yield from _walk(item.sub_items)


# ── Loading from disk ──────────────────────────────────────────────────


def load_book(config):
    """Build the chapter tree for a loaded BookConfig."""
    source_dir = config.source_dir
    if not os.path.isdir(source_dir):
        raise ConfigError(f"Source directory not found: {source_dir}")

    summary = os.path.join(source_dir, SUMMARY_FILE)
    if os.path.exists(summary):
        logger.debug("Loading chapters from %s", summary)
        with open(summary, encoding="utf-8") as f:
            items = parse_summary(f.read())
        _load_contents(items, source_dir)
    else:
        logger.debug("No %s, assembling sections in %s", SUMMARY_FILE, source_dir)
        items = _chapters_from_sections(source_dir)

    return Book(config.root, config.src, items)


def parse_summary(text):
    """
    Parse SUMMARY.md into Chapters (without content) and Separators.

    The first heading is the summary's own title; later headings are
    part titles. Nested list items become sub-chapters.
    """
    items = []
    stack = []  # (indent, chapter) of the current list branch
    top_count = 0
    title_seen = False

    for lineno, line in enumerate(text.splitlines(), 1):
        stripped = line.strip()
        if not stripped:
            continue

        if stripped.startswith("#"):
            if not title_seen and not items:
                title_seen = True
            else:
                items.append(Separator(stripped.lstrip("#").strip()))
                stack = []
            continue

        if RULE_RE.match(stripped):
            items.append(Separator())
            stack = []
            continue

        item = ITEM_RE.match(line)
        if item:
            link = LINK_RE.match(item.group("rest").strip())
            if not link:
                raise ConfigError(
                    f"{SUMMARY_FILE} line {lineno}: expected a [name](path) link"
                )
            indent = len(item.group("indent").expandtabs(4))
            while stack and stack[-1][0] >= indent:
                stack.pop()

            if stack:
                parent = stack[-1][1]
                number = parent.number + (len(parent.sub_items) + 1,)
                chapter = _chapter_from_link(link, number)
                parent.sub_items.append(chapter)
            else:
                top_count += 1
                chapter = _chapter_from_link(link, (top_count,))
                items.append(chapter)
            stack.append((indent, chapter))
            continue

        link = LINK_RE.match(stripped)
        if link:
            # Prefix / suffix chapter outside the numbered list
            items.append(_chapter_from_link(link, None))
            stack = []

    return items


def _chapter_from_link(match, number):
    path = match.group("path").strip() or None
    if path:
        path = path.replace("\\", "/")
    return Chapter(match.group("name").strip(), number=number, path=path)


def _load_contents(items, source_dir):
    for item in items:
        if not isinstance(item, Chapter):
            continue
        if item.path is not None:
            item.content = _read_chapter(source_dir, item.path, item.name)
        _load_contents(item.sub_items, source_dir)


def _read_chapter(source_dir, path, name):
    full_path = os.path.join(source_dir, *path.split("/"))
    try:
        with open(full_path, encoding="utf-8") as f:
            return f.read()
    except OSError as e:
        raise ContentFileNotFound(
            f"Content file for chapter '{name}' not found: {full_path}"
        ) from e


def _chapters_from_sections(source_dir):
    items = []
    number = 0
    for section, full_path in assemble_inputs(source_dir):
        rel = os.path.relpath(full_path, source_dir).replace(os.sep, "/")
        with open(full_path, encoding="utf-8") as f:
            content = f.read()

        heading = HEADING_RE.search(content)
        name = heading.group(1) if heading else os.path.splitext(os.path.basename(rel))[0]

        chapter_number = None
        if section == "chapters":
            number += 1
            chapter_number = (number,)

        items.append(Chapter(name, content, chapter_number, rel))
    return items


# ── Loading from a render context ──────────────────────────────────────


def book_from_context(data):
    """
    Build (book, config, destination) from a JSON render context.

    Expected shape:
        {"root": "...",
         "book": {"sections": [{"Chapter": {...}}, "Separator", ...]},
         "config": {"book": {...}, "output": {"epub": {...}}},
         "destination": "..."}
    """
    if not isinstance(data, dict):
        raise ConfigError("Render context must be a JSON object")

    config = BookConfig.from_dict(data.get("config") or {}, data.get("root") or ".")
    sections = (data.get("book") or {}).get("sections") or []
    items = [_item_from_context(section) for section in sections]

    destination = data.get("destination")
    if destination:
        destination = os.path.join(config.root, destination)

    return Book(config.root, config.src, items), config, destination


def _item_from_context(section):
    if section == "Separator":
        return Separator()

    if isinstance(section, dict):
        if "PartTitle" in section:
            return Separator(section["PartTitle"])
        if "Chapter" in section:
            ch = section["Chapter"]
            return Chapter(
                ch.get("name", ""),
                ch.get("content") or "",
                ch.get("number"),
                ch.get("path"),
                [_item_from_context(sub) for sub in ch.get("sub_items") or []],
            )

    raise ConfigError(f"Unknown book item in render context: {section!r}")
