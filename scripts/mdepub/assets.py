"""
Asset discovery and resolution.

Every image referenced by any chapter is resolved once per build:

    remote (http/https)  fetched with requests; failures degrade to a
                         placeholder image plus a warning
    local                first hit of: chapter dir → root/src → root;
                         no hit is fatal (AssetOpenError)

Archive filenames:

    local    path relative to the source dir (or book root), so the
             chapter's own relative link keeps working
    remote   <sha256(url)[:16]><ext>
    missing  <sha256(url)[:16]>.png  (built-in placeholder image)

Anything that would escape the book or clash with another file falls
back to <sha256(path)[:16]><ext>.

The cover and additional resources keep their configured names (see
AssetResolver.reserve); an image pointing at one of them links to that
entry instead of embedding a second copy.
"""

import base64
import hashlib
import logging
import mimetypes
import os
import posixpath
from html import unescape
from urllib.parse import urlsplit

import requests

from mdepub.errors import AssetOpenError, RemoteAssetError
from mdepub.markdown_ext import IMG_SRC_RE
from mdepub.render import render_markdown
from mdepub.resolve import (
    ASSET_CHAIN,
    REMOTE,
    asset_key,
    candidates,
    chapter_dir,
    classify,
    clean_local,
    resolve_path,
)
from mdepub.stylesheet import STYLESHEET_NAME

logger = logging.getLogger(__name__)

DEFAULT_MIMETYPE = "application/octet-stream"

# Archive names the packager writes itself
RESERVED_NAMES = {STYLESHEET_NAME, "nav.xhtml", "toc.ncx", "content.opf"}

# 1x1 transparent PNG shown in place of unreachable remote images
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)
PLACEHOLDER_MIMETYPE = "image/png"


class Asset:
    """
    A resolved resource: either a file on disk (`location`) or fetched
    bytes (`content`).
    """

    def __init__(self, reference, key, filename, mimetype, location=None,
                 content=None, missing=False):
        self.reference = reference
        self.key = key
        self.filename = filename
        self.mimetype = mimetype
        self.location = location
        self.content = content
        self.missing = missing

    def read(self):
        """Return the asset bytes. Raises AssetOpenError for unreadable files."""
        if self.content is not None:
            return self.content
        try:
            with open(self.location, "rb") as f:
                return f.read()
        except OSError as e:
            raise AssetOpenError(
                f"Cannot read asset '{self.reference}' at {self.location}: {e}"
            ) from e

    def __repr__(self):
        return f"Asset({self.reference!r} → {self.filename!r}, {self.mimetype})"


def find_images(html_text):
    """Distinct <img src> values of an HTML string, in document order."""
    seen = []
    for match in IMG_SRC_RE.finditer(html_text):
        src = unescape(match.group(3)).strip()
        if src and src not in seen:
            seen.append(src)
    return seen


def digest(text):
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def guess_mimetype(name):
    return mimetypes.guess_type(name)[0] or DEFAULT_MIMETYPE


class AssetResolver:
    """
    Resolves every image of a book, once.

    Usage:
        resolver = AssetResolver(book, config)
        try:
            assets = resolver.find()       # key → Asset
            for asset in resolver.unique():
                ...
        finally:
            resolver.close()
    """

    def __init__(self, book, config, session=None):
        self.book = book
        self.config = config
        self.timeout = config.epub["fetch_timeout"]
        self.session = session if session is not None else requests.Session()
        self._owns_session = session is None

        self.cache = {}          # key → Asset
        self._by_filename = {}   # archive filename → Asset
        self._reserved = {}      # archive filename → Asset embedded by the packager
        self._by_location = {}   # real path on disk → Asset

    # ── Public API ─────────────────────────────────────────

    def find(self):
        """Scan the whole chapter tree. Returns: dict of key → Asset."""
        for chapter in self.book.iter_chapters():
            html_text = render_markdown(chapter.content)
            for reference in find_images(html_text):
                self.resolve(chapter, reference)

        logger.debug("Resolved %d asset(s)", len(self._by_filename))
        return dict(self.cache)

    def resolve(self, chapter, reference):
        """Resolve one reference seen in a chapter; None if not an asset."""
        key = asset_key(chapter.path, reference)
        if key is None:
            return None
        if key in self.cache:
            return self.cache[key]

        if classify(reference) == REMOTE:
            asset = self._fetch_remote(reference, key)
        else:
            asset = self._resolve_local(chapter, reference, key)

        self.cache[key] = asset
        return asset

    def reserve(self, filename, path):
        """
        Claim an archive name for a file the packager embeds itself (cover,
        additional resources). Content references reaching the same file
        link to that entry; other files never take its name.
        """
        asset = Asset(filename, filename, filename, guess_mimetype(path), location=path)
        self._reserved[filename] = asset
        self._by_location.setdefault(os.path.realpath(path), asset)
        return asset

    def unique(self):
        """Distinct assets, one per archive filename, in discovery order."""
        return list(self._by_filename.values())

    def close(self):
        if self._owns_session:
            self.session.close()

    # ── Remote ─────────────────────────────────────────────

    def _fetch_remote(self, url, key):
        stem = digest(url)
        logger.debug("Fetching %s", url)
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            error = RemoteAssetError(url, e)
            logger.warning("%s; using placeholder image %s.png", error, stem)
            asset = Asset(
                url, key, f"{stem}.png", PLACEHOLDER_MIMETYPE,
                content=PLACEHOLDER_PNG, missing=True,
            )
            return self._register(asset)

        mimetype = _response_mimetype(response, url)
        filename = stem + _extension(url, mimetype)
        return self._register(Asset(url, key, filename, mimetype, content=response.content))

    # ── Local ──────────────────────────────────────────────

    def _resolve_local(self, chapter, reference, key):
        ref = clean_local(reference)
        directory = chapter_dir(chapter.path)
        full_path = resolve_path(
            ASSET_CHAIN, self.book.root, self.book.src, ref, directory
        )

        if not full_path:
            tried = ", ".join(
                path for _label, path in candidates(
                    ASSET_CHAIN, self.book.root, self.book.src, ref, directory
                )
            )
            raise AssetOpenError(
                f"Asset '{reference}' referenced from '{chapter.path}' not found "
                f"(tried: {tried})"
            )

        real = os.path.realpath(full_path)
        if real in self._by_location:
            return self._by_location[real]

        asset = Asset(
            reference, key, self._local_filename(full_path),
            guess_mimetype(full_path), location=full_path,
        )
        self._by_location[real] = asset
        logger.debug("Local asset %s → %s", reference, asset.filename)
        return self._register(asset)

    def _local_filename(self, full_path):
        name = None
        for base in (self.book.source_dir, self.book.root):
            rel = os.path.relpath(full_path, base)
            if not rel.startswith(os.pardir):
                name = rel.replace(os.sep, "/")
                break

        if (name is None or name in self._by_filename or name in self._reserved
                or name in RESERVED_NAMES):
            name = digest(full_path) + os.path.splitext(full_path)[1].lower()
        return name

    def _register(self, asset):
        self._by_filename[asset.filename] = asset
        return asset


def _response_mimetype(response, url):
    content_type = response.headers.get("Content-Type", "")
    mimetype = content_type.split(";", 1)[0].strip().lower()
    if not mimetype or mimetype == DEFAULT_MIMETYPE:
        mimetype = guess_mimetype(urlsplit(url).path)
    return mimetype


def _extension(url, mimetype):
    """URL extension when it agrees with the mimetype, else the mimetype's."""
    path = urlsplit(url).path
    ext = posixpath.splitext(path)[1].lower()
    if ext and guess_mimetype(path) == mimetype:
        return ext
    return mimetypes.guess_extension(mimetype) or ext
