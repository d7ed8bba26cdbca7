"""
Stylesheet composition.

One stylesheet.css is shared by every chapter: the built-in default
(when enabled) followed by each configured stylesheet, in order.
"""

import logging

from mdepub.errors import CssOpenError, StylesheetReadError
from mdepub.resolve import STYLESHEET_CHAIN, resolve_path

logger = logging.getLogger(__name__)

STYLESHEET_NAME = "stylesheet.css"

DEFAULT_CSS = """\
body {
  margin: 0 5pt;
  line-height: 1.4;
  text-align: justify;
  hyphens: auto;
}

h1, h2, h3, h4, h5, h6 {
  text-align: left;
  line-height: 1.2;
  page-break-after: avoid;
  hyphens: none;
}

h1 { font-size: 1.6em; margin: 1.5em 0 1em; }
h2 { font-size: 1.3em; margin: 1.3em 0 0.8em; }
h3 { font-size: 1.1em; margin: 1.1em 0 0.6em; }

p { margin: 0 0 0.8em; }

img {
  max-width: 100%;
  height: auto;
}

pre, code {
  font-family: monospace;
  font-size: 0.9em;
}

pre {
  white-space: pre-wrap;
  padding: 0.5em;
  border: 1px solid #ccc;
  page-break-inside: avoid;
}

blockquote {
  margin: 0.8em 1.5em;
  font-style: italic;
}

table {
  border-collapse: collapse;
  margin: 0.8em 0;
}

th, td {
  border: 1px solid #999;
  padding: 0.2em 0.5em;
}

li.task-list-item {
  list-style-type: none;
}

.footnote {
  font-size: 0.85em;
}
""".encode("utf-8")


def compose(config):
    """
    Concatenate the default stylesheet and configured stylesheets.

    Returns: bytes. Raises CssOpenError / StylesheetReadError naming
    the offending path.
    """
    epub = config.epub
    stylesheet = bytearray()

    if epub["use_default_css"]:
        stylesheet.extend(DEFAULT_CSS)

    for css in epub["additional_css"]:
        full_path = resolve_path(STYLESHEET_CHAIN, config.root, config.src, css)
        if not full_path:
            raise CssOpenError(css)

        logger.debug("Adding stylesheet %s", full_path)
        try:
            with open(full_path, "rb") as f:
                stylesheet.extend(f.read())
        except OSError as e:
            raise StylesheetReadError(full_path) from e

    logger.debug("Composed stylesheet: %d bytes", len(stylesheet))
    return bytes(stylesheet)
