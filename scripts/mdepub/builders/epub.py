"""
EPUB builder.

Pipeline: preprocessors → metadata → reserved names → asset scan →
chapters → cover → stylesheet → assets → additional resources →
navigation → write (→ epubcheck).

The archive is only written in the last step; any error before that
leaves no output behind.
"""

import logging
import os
import uuid

from ebooklib import epub

from mdepub.assets import AssetResolver, guess_mimetype
from mdepub.book import Book, Chapter
from mdepub.builders.base import BaseBuilder
from mdepub.epubcheck import validate_epub
from mdepub.errors import ArchiveError
from mdepub.render import ChapterRenderer
from mdepub.stylesheet import STYLESHEET_NAME, compose

logger = logging.getLogger(__name__)

GENERATOR = "mdepub"
DEFAULT_LANGUAGE = "en"
XHTML_MIMETYPE = "application/xhtml+xml"

WRITE_OPTIONS = {
    # Chapters are stored verbatim; no page-list scraping
    "epub3_pages": False,
}


class ChapterDocument(epub.EpubHtml):
    """An XHTML chapter stored exactly as rendered."""

    def __init__(self, file_name, content, title, level):
        super().__init__(file_name=file_name, media_type=XHTML_MIMETYPE, title=title)
        self.content = content
        self.level = level

    def get_content(self, default=None):
        return self.content


class EpubBuilder(BaseBuilder):
    """
    Usage:
        builder = EpubBuilder(config, book, preprocessors=[include_files])
        path = builder.build()
    """

    format_name = "EPUB"
    extension = ".epub"

    def __init__(self, config, book, output_dir=None, verbose=False,
                 preprocessors=(), **kwargs):
        super().__init__(config, book, output_dir, verbose, **kwargs)
        self.preprocessors = list(preprocessors)

        epub_config = config.epub
        template = None
        if epub_config["template"]:
            template_path = self.resolve(epub_config["template"], "template")
            template = self.read(template_path).decode("utf-8")
        self.renderer = ChapterRenderer(template, epub_config["curly_quotes"])

        self.archive = epub.EpubBook()
        self.assets = {}
        self.chapters = []
        self.toc = []
        self._entries = set()

    # ── Entry point ────────────────────────────────────────

    def build(self):
        self.header()
        logger.info("Generating EPUB for %s", self.book.root)

        book = self.prepare()
        resolver = AssetResolver(book, self.config)
        try:
            self.populate_metadata()
            self.reserve_resources(resolver)
            self.assets = resolver.find()
            self.add_chapters(book.items, self.toc)
            self.add_cover_image()
            self.embed_stylesheet()
            self.embed_assets(resolver.unique())
            self.embed_additional_resources()
            path = self.write()
        finally:
            resolver.close()

        print(f"  ✓ {path}")

        if self.kwargs.get("validate"):
            validate_epub(path, verbose=self.verbose)

        return path

    def prepare(self):
        """
        Copy the chapter tree and run the preprocessors over every real
        chapter, in configured order. Assets are scanned and chapters
        rendered from this copy; self.book is never modified.
        """
        items = [item.copy() if isinstance(item, Chapter) else item for item in self.book.items]
        book = Book(self.book.root, self.book.src, items)
        for chapter in book.iter_chapters():
            for preprocessor in self.preprocessors:
                preprocessor(chapter, self.book)
        return book

    def reserve_resources(self, resolver):
        """
        Claim the cover and additional resource names before asset naming,
        so content images pointing at the same files reuse those entries.
        """
        epub_config = self.config.epub
        configured = [(r, "resource") for r in epub_config["additional_resources"]]
        if epub_config["cover_image"]:
            configured.insert(0, (epub_config["cover_image"], "cover image"))

        for reference, what in configured:
            resolver.reserve(_entry_name(reference), self.resolve(reference, what))

    # ── 1. Metadata ────────────────────────────────────────

    def populate_metadata(self):
        config = self.config
        book = self.archive

        book.set_identifier(self.identifier())
        book.add_metadata(None, "meta", "", {"name": "generator", "content": GENERATOR})

        if config.title:
            book.set_title(config.title)
        else:
            logger.warning("No title configured; every EPUB document should have a title")

        if config.description:
            book.add_metadata("DC", "description", config.description)

        if config.authors:
            book.add_author(", ".join(config.authors))

        book.set_language(config.language or DEFAULT_LANGUAGE)

        if config.series:
            book.add_metadata(
                None, "meta", config.series,
                {"property": "belongs-to-collection", "id": "series"},
            )
            book.add_metadata(
                None, "meta", "series", {"refines": "#series", "property": "collection-type"}
            )
            if config.series_number:
                book.add_metadata(
                    None, "meta", str(config.series_number),
                    {"refines": "#series", "property": "group-position"},
                )

    def identifier(self):
        """Stable book id, so rebuilding unchanged sources is reproducible."""
        seed = "|".join([self.config.title or ""] + list(self.config.authors))
        return f"urn:uuid:{uuid.uuid5(uuid.NAMESPACE_URL, 'mdepub:' + seed)}"

    # ── 3. Chapters ────────────────────────────────────────

    def add_chapters(self, items, toc):
        """Depth-first over the tree; drafts and separators are skipped."""
        for item in items:
            if not isinstance(item, Chapter):
                continue

            if item.is_draft:
                logger.debug("Skipping draft chapter %r", item.name)
                self.add_chapters(item.sub_items, toc)
                continue

            document = self.add_chapter(item)
            children = []
            self.add_chapters(item.sub_items, children)
            if children:
                toc.append((epub.Section(document.title, document.file_name), children))
            else:
                toc.append(document)

    def add_chapter(self, chapter):
        rendered = self.renderer.render(chapter, self.assets)
        file_name = os.path.splitext(chapter.path)[0] + ".html"

        document = ChapterDocument(
            file_name, rendered.encode("utf-8"), str(chapter), chapter.level
        )
        self.add_entry(document)
        self.chapters.append(document)
        logger.debug("Added chapter %s (level %d)", file_name, chapter.level)
        return document

    # ── 4. Cover ───────────────────────────────────────────

    def add_cover_image(self):
        cover = self.config.epub["cover_image"]
        if not cover:
            return

        path = self.resolve(cover, "cover image")
        self.log(f"  Cover: {path}")
        name = _entry_name(cover)
        self._claim(name)
        self.archive.set_cover(name, self.read(path), create_page=False)
        self.archive.get_item_with_id("cover-img").media_type = guess_mimetype(path)

    # ── 5. Stylesheet ──────────────────────────────────────

    def embed_stylesheet(self):
        self.add_entry(epub.EpubItem(
            uid="stylesheet",
            file_name=STYLESHEET_NAME,
            media_type="text/css",
            content=compose(self.config),
        ))

    # ── 6. Assets ──────────────────────────────────────────

    def embed_assets(self, assets):
        for asset in assets:
            logger.debug("Embedding asset %s (%s)", asset.filename, asset.mimetype)
            self.add_entry(epub.EpubItem(
                file_name=asset.filename,
                media_type=asset.mimetype,
                content=asset.read(),
            ))
        self.log(f"  Assets: {len(assets)}")

    # ── 7. Additional resources ────────────────────────────

    def embed_additional_resources(self):
        for resource in self.config.epub["additional_resources"]:
            path = self.resolve(resource, "resource")
            name = _entry_name(resource)
            logger.debug("Embedding resource %s from %s", name, path)
            self.add_entry(epub.EpubItem(
                file_name=name,
                media_type=guess_mimetype(path),
                content=self.read(path),
            ))

    # ── 8. Navigation and write ────────────────────────────

    def write(self):
        book = self.archive
        book.toc = self.toc
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav"] + self.chapters

        os.makedirs(self.output_dir, exist_ok=True)
        path = self.output_file
        try:
            epub.write_epub(path, book, WRITE_OPTIONS)
        except Exception as e:
            raise ArchiveError(f"Failed to write {path}: {e}") from e

        if not os.path.exists(path):
            raise ArchiveError(f"EPUB writer produced no output at {path}")
        logger.info("EPUB written to %s", path)
        return path

    # ── Archive entries ────────────────────────────────────

    def add_entry(self, item):
        self._claim(item.file_name)
        self.archive.add_item(item)
        return item

    def _claim(self, file_name):
        if file_name in self._entries:
            raise ArchiveError(f"Duplicate archive entry: {file_name}")
        self._entries.add(file_name)


def _entry_name(reference):
    return reference.replace("\\", "/")
