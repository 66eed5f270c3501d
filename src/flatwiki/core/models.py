"""Data models for FlatWiki."""

from enum import Enum
from urllib.parse import quote, urlencode

from pydantic import BaseModel


class ParserMode(str, Enum):
    """Markup syntax used to render page content."""

    MARKDOWN = "markdown"
    MEDIAWIKI = "mediawiki"

    @classmethod
    def resolve(cls, value: object) -> "ParserMode":
        """Map a configured value to a mode; anything unknown is MediaWiki."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.MEDIAWIKI


class PageNameError(ValueError):
    """Raised for page names that are not a single safe path component."""


def normalize_name(raw: str) -> str:
    """Convert a page name parameter to its file identifier.

    Raises:
        PageNameError: If the result is empty or could escape the page directory.
    """
    name = raw.strip().replace(" ", "_")
    if not name:
        raise PageNameError("Page name is empty")
    # "#" would be read as a URL fragment in the page's own links
    if any(c in name for c in "/\\\x00#"):
        raise PageNameError(f"Invalid page name: {raw!r}")
    if name.startswith("."):
        raise PageNameError(f"Invalid page name: {raw!r}")
    return name


def show_url(name: str) -> str:
    """Return the view URL for a page name, with any ``#fragment`` kept."""
    name, _, fragment = name.partition("#")
    url = "/show?" + urlencode({"page": name.strip().replace(" ", "_")})
    if fragment:
        url += "#" + quote(fragment.strip().replace(" ", "_"))
    return url


class Page(BaseModel):
    """Represents a wiki page.

    ``content`` is None when no file backs the page, which keeps a missing
    page distinct from an existing empty one.
    """

    name: str
    content: str | None = None

    @classmethod
    def from_param(cls, raw: str, content: str | None = None) -> "Page":
        """Build a page from a request parameter."""
        return cls(name=normalize_name(raw), content=content)

    @property
    def title(self) -> str:
        """Display title derived from name."""
        return self.name.replace("_", " ")

    @property
    def url(self) -> str:
        return show_url(self.name)

    @property
    def exists(self) -> bool:
        return self.content is not None

    def __str__(self) -> str:
        return self.name
