"""
Exception hierarchy for the EPUB build.

Everything raised on purpose derives from MdepubError so the CLI can
report it without a traceback. RemoteAssetError is the only class that
is recovered from (inside the asset resolver); the rest abort the build.
"""


class MdepubError(Exception):
    """Base class for all build errors."""
    pass


class ConfigError(MdepubError):
    """Raised when book.yaml or the render context is invalid."""
    pass


class RenderError(MdepubError):
    """Raised when a chapter cannot be rendered."""
    pass


class ContentFileNotFound(RenderError):
    """Raised when a real chapter has no source file."""
    pass


class AssetOpenError(MdepubError):
    """Raised when a local resource cannot be found or read."""
    pass


class CssOpenError(MdepubError):
    """Raised when a stylesheet path does not resolve to a file."""

    def __init__(self, path):
        super().__init__(f"Cannot open stylesheet '{path}'")
        self.path = path


class StylesheetReadError(MdepubError):
    """Raised when a stylesheet exists but cannot be read."""

    def __init__(self, path):
        super().__init__(f"Cannot read stylesheet '{path}'")
        self.path = path


class TemplateParseError(MdepubError):
    """Raised when the chapter template has a syntax error."""
    pass


class TemplateRenderError(MdepubError):
    """Raised when the chapter template fails against its context."""
    pass


class ArchiveError(MdepubError):
    """Raised for container-level failures (duplicate entries, write errors)."""
    pass


class RemoteAssetError(MdepubError):
    """Raised when a remote asset cannot be fetched."""

    def __init__(self, url, reason):
        super().__init__(f"Cannot fetch '{url}': {reason}")
        self.url = url
        self.reason = reason
