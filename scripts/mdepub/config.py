"""
Book configuration: load, validate, and provide defaults for book.yaml.

The same shape is accepted from a JSON render context, where the book
fields may sit under `book:` and the EPUB options under `output: epub:`.
"""

import copy
import os
import re

import yaml

from mdepub.errors import ConfigError


CONFIG_FILE = "book.yaml"

# Defaults applied if missing
DEFAULTS = {
    "title": None,
    "authors": [],
    "description": None,
    "language": "en",
    "src": "src",
    "series": None,
    "series_number": None,
    "preprocessors": ["include"],
    "epub": {},
}

# Defaults within the epub section
EPUB_DEFAULTS = {
    "use_default_css": True,
    "additional_css": [],
    "additional_resources": [],
    "cover_image": None,
    "curly_quotes": False,
    "template": None,
    "fetch_timeout": 30,
    "filename": None,
    "destination": None,
}

LIST_FIELDS = ["additional_css", "additional_resources"]


def _normalize_keys(mapping):
    """mdbook-style dashed keys (curly-quotes) → snake_case."""
    return {str(k).replace("-", "_"): v for k, v in mapping.items()}


def slugify(text):
    slug = re.sub(r"[^\w]+", "_", text.strip().lower(), flags=re.UNICODE)
    return slug.strip("_")


class BookConfig:
    """
    Loaded, validated book configuration.

    Usage:
        config = BookConfig.load(root)
        config.title                  # "DummyBook" or None
        config.epub["curly_quotes"]   # False
        config.get("series")          # None if not set
    """

    def __init__(self, data, root):
        self._data = data
        self.root = os.path.abspath(root)

    @classmethod
    def load(cls, root):
        """Load and validate book.yaml from a book root. Missing file → defaults."""
        yaml_path = os.path.join(root, CONFIG_FILE)
        if not os.path.exists(yaml_path):
            return cls.from_dict({}, root)

        try:
            with open(yaml_path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"{yaml_path} is not valid YAML: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"{CONFIG_FILE} must be a YAML mapping, got {type(data).__name__}")

        return cls.from_dict(data, root)

    @classmethod
    def from_dict(cls, data, root):
        """Validate a raw mapping and apply defaults."""
        data = copy.deepcopy(data)

        # mdbook layout: {"book": {...}, "output": {"epub": {...}}}
        if isinstance(data.get("book"), dict):
            book = data.pop("book")
            output = data.pop("output", None) or {}
            data = dict(book, **data)
            if isinstance(output.get("epub"), dict):
                data.setdefault("epub", output["epub"])

        data = _normalize_keys(data)

        # Single author shorthand
        if "author" in data and not data.get("authors"):
            data["authors"] = [data.pop("author")]
        data.pop("author", None)
        if isinstance(data.get("authors"), str):
            data["authors"] = [data["authors"]]

        for key, default in DEFAULTS.items():
            if data.get(key) is None:
                data[key] = copy.copy(default)

        if not isinstance(data["epub"], dict):
            raise ConfigError(f"'epub' must be a mapping, got {type(data['epub']).__name__}")
        data["epub"] = _normalize_keys(data["epub"])

        for key, default in EPUB_DEFAULTS.items():
            if data["epub"].get(key) is None:
                data["epub"][key] = copy.copy(default)

        cls._validate(data)
        return cls(data, root)

    @staticmethod
    def _validate(data):
        if not isinstance(data["authors"], list):
            raise ConfigError("'authors' must be a list of names")
        if not isinstance(data["preprocessors"], list):
            raise ConfigError("'preprocessors' must be a list of names")

        epub = data["epub"]
        for key in LIST_FIELDS:
            value = epub[key]
            if isinstance(value, str):
                epub[key] = [value]
            elif not isinstance(value, list):
                raise ConfigError(f"'epub.{key}' must be a list of paths")

        try:
            epub["fetch_timeout"] = float(epub["fetch_timeout"])
        except (TypeError, ValueError):
            raise ConfigError(
                f"'epub.fetch_timeout' must be a number, got {epub['fetch_timeout']!r}"
            ) from None
        if epub["fetch_timeout"] <= 0:
            raise ConfigError("'epub.fetch_timeout' must be positive")

    # ── Attribute access ───────────────────────────────────

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"BookConfig has no field '{name}'")

    def get(self, key, default=None):
        return self._data.get(key, default)

    def __getitem__(self, key):
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    # ── Convenience ────────────────────────────────────────

    @property
    def source_dir(self):
        """Absolute path of the markdown source directory."""
        return os.path.join(self.root, self.src)

    @property
    def destination(self):
        """Output directory: epub.destination or <root>/book/epub."""
        dest = self.epub["destination"]
        if dest:
            return os.path.join(self.root, dest)
        return os.path.join(self.root, "book", "epub")

    @property
    def output_name(self):
        """Output basename without extension."""
        if self.epub["filename"]:
            return self.epub["filename"]
        return slugify(self.title or "") or "book"

    def summary(self):
        """Print a short config summary."""
        print(f"\n  Book:   {self.title or '(untitled)'}")
        if self.authors:
            print(f"  Author: {', '.join(self.authors)}")
        print(f"  Source: {self.source_dir}")
        if self.get("series"):
            print(f"  Series: {self.series}")
