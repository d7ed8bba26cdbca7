"""
Path resolution and source-file discovery.

Every piece that turns a book-relative name into a file on disk (assets,
cover image, stylesheets, extra resources, chapter files) goes through
the candidate chains defined here.
"""

import glob
import os
import posixpath
import re
from urllib.parse import unquote, urlsplit


def natural_sort_key(s):
    """Sort strings with embedded numbers naturally (2.md before 10.md)."""
    return [
        int(text) if text.isdigit() else text.lower()
        for text in re.split(r"(\d+)", s)
    ]


# ── Candidate chains ───────────────────────────────────────────────────
#
# Each strategy: (label, fn(root, src, reference, chapter_dir) → path or None)
# Evaluated in order; the first existing file wins.


def _as_given(root, src, reference, chapter_dir):
    return reference


def _chapter_relative(root, src, reference, chapter_dir):
    if chapter_dir is None:
        return None
    return os.path.join(root, src, *chapter_dir.split("/"), reference)


def _source_relative(root, src, reference, chapter_dir):
    return os.path.join(root, src, reference)


def _root_relative(root, src, reference, chapter_dir):
    return os.path.join(root, reference)


# Images referenced from chapter content
ASSET_CHAIN = [
    ("chapter dir", _chapter_relative),
    ("root + src", _source_relative),
    ("root", _root_relative),
]

# Cover image and additional resources from config
RESOURCE_CHAIN = [
    ("as given", _as_given),
    ("root + src", _source_relative),
    ("root", _root_relative),
]

# Additional stylesheets
STYLESHEET_CHAIN = [
    ("root", _root_relative),
    ("as given", _as_given),
]


def candidates(chain, root, src, reference, chapter_dir=None):
    """List (label, path) candidates of a chain, skipping inapplicable ones."""
    result = []
    for label, strategy in chain:
        path = strategy(root, src or "", reference, chapter_dir)
        if path:
            result.append((label, os.path.normpath(path)))
    return result


def resolve_path(chain, root, src, reference, chapter_dir=None):
    """
    Resolve a reference through a candidate chain.

    Returns: absolute path of the first existing file, or None.
    """
    if not reference:
        return None

    for _label, path in candidates(chain, root, src, reference, chapter_dir):
        if os.path.isfile(path):
            return os.path.abspath(path)

    return None


def chapter_dir(chapter_path):
    """Directory of a book-relative chapter path, '' for top-level files."""
    return posixpath.dirname(chapter_path.replace("\\", "/"))


def relative_link(target, from_dir):
    """POSIX link from an archive directory to an archive file."""
    return posixpath.relpath(target, from_dir or ".")


# ── References ─────────────────────────────────────────────────────────

REMOTE = "remote"
LOCAL = "local"
SKIP = "skip"

REMOTE_SCHEMES = ("http", "https")


def classify(reference):
    """Classify an image reference as REMOTE, LOCAL or SKIP."""
    ref = reference.strip()
    if not ref or ref.startswith("#") or ref.startswith("//"):
        return SKIP

    parts = urlsplit(ref)
    if parts.scheme.lower() in REMOTE_SCHEMES and parts.netloc:
        return REMOTE
    # data:, mailto:, ftp: ... (a one-letter scheme is a Windows drive)
    if len(parts.scheme) > 1:
        return SKIP
    return LOCAL


def clean_local(reference):
    """Strip query/fragment and percent-escapes from a local reference."""
    ref = reference.strip().split("#", 1)[0].split("?", 1)[0]
    return unquote(ref).replace("\\", "/")


def asset_key(chapter_path, reference):
    """
    Cache key of a reference as seen from a chapter.

    Remote references are keyed by URL. Local ones are joined to the
    chapter's directory, so the same string in two directories gives two
    keys. Returns None for references that are not assets.
    """
    kind = classify(reference)
    if kind == REMOTE:
        return reference.strip()
    if kind == SKIP:
        return None

    ref = clean_local(reference)
    if not ref:
        return None
    if ref.startswith("/") or os.path.isabs(ref):
        return posixpath.normpath(ref)
    return posixpath.normpath(posixpath.join(chapter_dir(chapter_path or ""), ref))


# ── Source discovery ───────────────────────────────────────────────────

SECTIONS = ["front", "chapters", "back"]


def get_section_files(source_dir, section):
    """Get sorted markdown files from a section subdirectory."""
    section_dir = os.path.join(source_dir, section)
    if not os.path.isdir(section_dir):
        return []
    files = glob.glob(os.path.join(section_dir, "*.md"))
    files.sort(key=natural_sort_key)
    return files


def assemble_inputs(source_dir):
    """
    Assemble input files in section order: front → chapters → back.

    Falls back to *.md in the source dir if no subdirectories exist.
    SUMMARY.md and README.md are never chapters in the flat layout.

    Returns: list of (section, path) pairs.
    """
    files = []
    for section in SECTIONS:
        files.extend((section, f) for f in get_section_files(source_dir, section))

    if not files:
        flat = glob.glob(os.path.join(source_dir, "*.md"))
        flat = [f for f in flat if os.path.basename(f) not in ("SUMMARY.md", "README.md")]
        flat.sort(key=natural_sort_key)
        files = [("chapters", f) for f in flat]

    return files
