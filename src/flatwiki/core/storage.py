"""Storage abstraction for wiki pages."""

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from flatwiki.core.models import Page, PageNameError, normalize_name

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Abstract base class for page storage."""

    @abstractmethod
    async def get_page(self, name: str) -> Page:
        """Get a page by name. Content is None if not found."""
        ...

    @abstractmethod
    async def save_page(self, name: str, content: str) -> Page:
        """Save a page. Creates if doesn't exist."""
        ...

    @abstractmethod
    async def delete_page(self, name: str) -> bool:
        """Delete a page. Returns True if deleted, False if not found."""
        ...

    @abstractmethod
    async def list_pages(self, exclude: Iterable[str] = ()) -> list[str]:
        """List all page names."""
        ...

    @abstractmethod
    def page_exists(self, name: str) -> bool:
        """Check if a page exists."""
        ...

    @abstractmethod
    async def search_pages(self, query: str) -> list[dict]:
        """Search pages by name and content.

        Returns list of dicts with keys: name, title, snippet, match_type.
        Name matches are sorted first.
        """
        ...


class FileStorage(Storage):
    """Flat-file storage implementation.

    Each page is one file in ``base_path`` named exactly after the page
    identifier, with no extension. Files starting with a dot are ignored.
    """

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_path(self, name: str) -> Path:
        """Get full path for a page."""
        path = self.base_path / normalize_name(name)
        if path.resolve().parent != self.base_path.resolve():
            raise PageNameError(f"Invalid page name: {name!r}")
        return path

    def _iter_files(self) -> Iterable[Path]:
        for path in self.base_path.iterdir():
            if path.is_file() and not path.name.startswith("."):
                yield path

    def _read(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    async def get_page(self, name: str) -> Page:
        """Get a page by name."""
        path = self._get_path(name)
        return Page(name=path.name, content=self._read(path))

    async def save_page(self, name: str, content: str) -> Page:
        """Save a page, replacing the file in one step."""
        path = self._get_path(name)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=".tmp-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Saved page %s (%d chars)", path.name, len(content))
        return Page(name=path.name, content=content)

    async def delete_page(self, name: str) -> bool:
        """Delete a page."""
        path = self._get_path(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted page %s", path.name)
        return True

    async def list_pages(self, exclude: Iterable[str] = ()) -> list[str]:
        """List all page names, skipping any in ``exclude``."""
        skip = set(exclude)
        return sorted(p.name for p in self._iter_files() if p.name not in skip)

    def page_exists(self, name: str) -> bool:
        """Check if a page exists.

        Synchronous so it can be handed to the renderers as a link callback.
        Unsafe names are reported as missing.
        """
        try:
            return self._get_path(name).is_file()
        except PageNameError:
            return False

    async def search_pages(self, query: str) -> list[dict]:
        """Search pages by name and content."""
        if not query:
            return []

        query_lower = query.lower()
        name_matches = []
        content_matches = []

        for path in self._iter_files():
            name = path.name
            body = self._read(path)
            if body is None:
                continue
            title = name.replace("_", " ")

            if query_lower in name.lower() or query_lower in title.lower():
                snippet = body.strip()[:150].replace("\n", " ")
                name_matches.append(
                    {
                        "name": name,
                        "title": title,
                        "snippet": snippet,
                        "match_type": "name",
                    }
                )
            elif query_lower in body.lower():
                # Find snippet around match
                idx = body.lower().index(query_lower)
                start = max(0, idx - 50)
                end = min(len(body), idx + len(query) + 100)
                snippet = body[start:end].replace("\n", " ").strip()
                if start > 0:
                    snippet = "..." + snippet
                if end < len(body):
                    snippet = snippet + "..."
                content_matches.append(
                    {
                        "name": name,
                        "title": title,
                        "snippet": snippet,
                        "match_type": "content",
                    }
                )

        # Name matches first, then content matches, both sorted by name
        name_matches.sort(key=lambda x: x["name"].lower())
        content_matches.sort(key=lambda x: x["name"].lower())
        return name_matches + content_matches
