"""
mdepub — markdown book to EPUB.

Public API:
    from mdepub.config import BookConfig
    from mdepub.book import load_book, book_from_context
    from mdepub.builders import EpubBuilder
    from mdepub.assets import AssetResolver
    from mdepub.render import ChapterRenderer
    from mdepub.stylesheet import compose
    from mdepub.epubcheck import validate_epub
"""

__version__ = "0.4.0"
