"""
Chapter rendering: markdown → XHTML body → Jinja2 template.

The template is compiled once per build; each chapter is rendered with
{title, body, stylesheet}, where `stylesheet` climbs back from the
chapter's directory to the shared stylesheet.css.
"""

import logging

import markdown
from jinja2 import Environment, StrictUndefined, TemplateError, TemplateSyntaxError
from markupsafe import Markup

from mdepub.errors import ContentFileNotFound, TemplateParseError, TemplateRenderError
from mdepub.markdown_ext import (
    ImageSourceExtension,
    QuoteExtension,
    XhtmlAttributeExtension,
)
from mdepub.resolve import asset_key, chapter_dir, relative_link
from mdepub.stylesheet import STYLESHEET_NAME

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head>
  <meta charset="UTF-8" />
  <title>{{ title }}</title>
  <link rel="stylesheet" type="text/css" href="{{ stylesheet }}" />
</head>
<body>
{{ body }}
</body>
</html>
"""

MARKDOWN_EXTENSIONS = [
    "tables",
    "footnotes",
    "fenced_code",
    "sane_lists",
    "pymdownx.tilde",
    "pymdownx.tasklist",
]

EXTENSION_CONFIGS = {
    # ~~x~~ only; ~x~ stays literal text
    "pymdownx.tilde": {"subscript": False},
}


def new_markdown(curly_quotes=False, rewrite=None):
    """
    A Markdown converter with tables, footnotes, strikethrough and task
    lists enabled. `rewrite` maps image sources (see ImageSourceExtension).
    """
    extensions = MARKDOWN_EXTENSIONS + [
        XhtmlAttributeExtension(),
        QuoteExtension(enabled=curly_quotes),
    ]
    if rewrite is not None:
        extensions.append(ImageSourceExtension(rewrite))
    return markdown.Markdown(
        extensions=extensions,
        extension_configs=EXTENSION_CONFIGS,
        output_format="xhtml",
    )


def render_markdown(text, curly_quotes=False, rewrite=None):
    return new_markdown(curly_quotes, rewrite).convert(text)


def stylesheet_path(chapter_path):
    """'../' once per directory of the chapter path, then stylesheet.css."""
    depth = len([part for part in chapter_dir(chapter_path).split("/") if part])
    return "/".join([".."] * depth + [STYLESHEET_NAME])


class ChapterRenderer:
    """
    Usage:
        renderer = ChapterRenderer(template=None, curly_quotes=True)
        html = renderer.render(chapter, assets)
    """

    def __init__(self, template=None, curly_quotes=False):
        self.curly_quotes = curly_quotes
        self.env = Environment(autoescape=True, undefined=StrictUndefined)
        try:
            self.template = self.env.from_string(template or DEFAULT_TEMPLATE)
        except TemplateSyntaxError as e:
            raise TemplateParseError(
                f"Chapter template is invalid (line {e.lineno}): {e.message}"
            ) from e

    def render(self, chapter, assets=None):
        """Render one chapter to a complete XHTML document string."""
        if chapter.path is None:
            raise ContentFileNotFound(
                f"Content file was not found for chapter '{chapter.name}'"
            )

        logger.debug("Rendering %s", chapter.path)
        rewrite = None
        if assets:
            def rewrite(src):
                return asset_link(assets, chapter.path, src)

        body = render_markdown(chapter.content, self.curly_quotes, rewrite)
        context = {
            "title": chapter.name,
            "body": Markup(body),
            "stylesheet": stylesheet_path(chapter.path),
        }

        try:
            return self.template.render(**context)
        except TemplateError as e:
            raise TemplateRenderError(
                f"Template failed for chapter '{chapter.name}': {e}"
            ) from e


def asset_link(assets, chapter_path, src):
    """Link from a chapter to the archive file of an asset, or None."""
    key = asset_key(chapter_path, src)
    asset = assets.get(key) if key is not None else None
    if asset is None:
        return None
    return relative_link(asset.filename, chapter_dir(chapter_path))
