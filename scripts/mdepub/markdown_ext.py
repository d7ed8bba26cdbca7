"""
Python-Markdown extensions used by the chapter renderer.

    QuoteExtension          curly quotes outside code (see quotes.py)
    ImageSourceExtension    rewrites <img src> to archive filenames
    XhtmlAttributeExtension expands bare boolean attributes (checked, ...)

Strikethrough and task lists come from pymdown-extensions.
"""

from html import escape, unescape
import re

from markdown.extensions import Extension
from markdown.postprocessors import Postprocessor
from markdown.treeprocessors import Treeprocessor

from mdepub.quotes import QuoteConverter


IMG_SRC_RE = re.compile(r"(<img\b[^>]*?\bsrc=)([\"'])(.*?)\2", re.IGNORECASE | re.DOTALL)
INPUT_TAG_RE = re.compile(r"<input\b[^>]*>", re.IGNORECASE)
BARE_ATTRIBUTE_RE = re.compile(r"(\s)(checked|disabled|readonly)(?=[\s/>])", re.IGNORECASE)


# ── Curly quotes ───────────────────────────────────────────────────────


class QuoteProcessor(Treeprocessor):
    def __init__(self, md, enabled):
        super().__init__(md)
        self.enabled = enabled

    def run(self, root):
        QuoteConverter(self.enabled).apply(root)


class QuoteExtension(Extension):
    def __init__(self, enabled=True, **kwargs):
        self.enabled = enabled
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        md.treeprocessors.register(QuoteProcessor(md, self.enabled), "curly_quotes", 15)


# ── Image sources ──────────────────────────────────────────────────────


class ImageSourcePostprocessor(Postprocessor):
    """Rewrite image sources after raw HTML has been restored."""

    def __init__(self, md, rewrite):
        super().__init__(md)
        self.rewrite = rewrite

    def run(self, text):
        return rewrite_image_sources(text, self.rewrite)


class ImageSourceExtension(Extension):
    """
    Usage:
        ImageSourceExtension(lambda src: new_src_or_None)
    """

    def __init__(self, rewrite, **kwargs):
        self.rewrite = rewrite
        super().__init__(**kwargs)

    def extendMarkdown(self, md):
        rewrite = self.rewrite
        if rewrite is not None:
            # Below raw_html (30) so stashed <img> tags are visible too
            md.postprocessors.register(
                ImageSourcePostprocessor(md, rewrite), "image_source", 5
            )


def rewrite_image_sources(html_text, rewrite):
    """
    Apply `rewrite(src)` to every <img src> in an HTML string.

    `rewrite` receives the unescaped source and returns the replacement,
    or None to keep the original.
    """
    def _sub(match):
        prefix, quote, src = match.groups()
        replacement = rewrite(unescape(src))
        if replacement is None:
            return match.group(0)
        return f"{prefix}{quote}{escape(replacement, quote=True)}{quote}"

    return IMG_SRC_RE.sub(_sub, html_text)


# ── XHTML attributes ───────────────────────────────────────────────────


class XhtmlAttributePostprocessor(Postprocessor):
    """pymdownx.tasklist stashes `<input ... disabled checked/>` as raw HTML."""

    def run(self, text):
        return expand_bare_attributes(text)


class XhtmlAttributeExtension(Extension):
    def extendMarkdown(self, md):
        # Below raw_html (30), which restores the stashed checkboxes
        md.postprocessors.register(XhtmlAttributePostprocessor(md), "xhtml_attributes", 6)


def expand_bare_attributes(html_text):
    """`<input disabled/>` → `<input disabled="disabled"/>`, as XML requires."""
    def _tag(match):
        return BARE_ATTRIBUTE_RE.sub(
            lambda m: f'{m.group(1)}{m.group(2)}="{m.group(2).lower()}"', match.group(0)
        )

    return INPUT_TAG_RE.sub(_tag, html_text)
