"""
Command-line entry point.

Usage:
    mdepub                     Read a JSON render context from stdin
    mdepub path/to/book -s     Standalone: load book.yaml + sources from disk
    mdepub -s --validate       Build, then run epubcheck
"""

import argparse
import json
import logging
import sys

from mdepub.book import book_from_context, load_book
from mdepub.builders import EpubBuilder
from mdepub.config import BookConfig
from mdepub.errors import ConfigError, MdepubError
from mdepub.preprocess import load_preprocessors

logger = logging.getLogger("mdepub")


# ── Render context ─────────────────────────────────────────────────────


def load_context(args, stdin=None):
    """Returns (book, config, destination) from disk or from stdin."""
    if args.standalone:
        logger.debug("Loading book from %s", args.root)
        config = BookConfig.load(args.root)
        return load_book(config), config, None

    logger.info("Reading render context from stdin")
    try:
        data = json.load(stdin or sys.stdin)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Render context on stdin is not valid JSON: {e}") from e
    return book_from_context(data)


# ── Build ──────────────────────────────────────────────────────────────


def run(args, stdin=None):
    book, config, destination = load_context(args, stdin)
    config.summary()

    builder = EpubBuilder(
        config,
        book,
        output_dir=args.output_dir or destination,
        verbose=args.verbose,
        preprocessors=load_preprocessors(config.preprocessors),
        validate=args.validate,
    )
    path = builder.build()
    logger.info("Book is ready: %s", path)
    return path


# ── Argument Parser ────────────────────────────────────────────────────


def build_parser():
    parser = argparse.ArgumentParser(
        prog="mdepub",
        description="Render a markdown book as an EPUB",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  %(prog)s -s                       Build the book in the current directory
  %(prog)s -s path/to/book -v       Same, with debug output
  %(prog)s -s --validate            Build and run epubcheck
  mdbook build | %(prog)s           Read the render context from stdin
        """,
    )
    parser.add_argument("root", nargs="?", default=".", help="The book to render (default: .)")
    parser.add_argument(
        "-s", "--standalone", action="store_true",
        help="Run standalone (load book.yaml) instead of reading a render context from stdin",
    )
    parser.add_argument("--output-dir", help="Override output directory")
    parser.add_argument("--validate", action="store_true", help="Run epubcheck after building")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


def configure_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── Main ───────────────────────────────────────────────────────────────


def main(argv=None, stdin=None):
    """Returns the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        run(args, stdin)
    except MdepubError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nCancelled.", file=sys.stderr)
        return 1
    return 0


def cli():
    sys.exit(main())
