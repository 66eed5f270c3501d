"""Page content parsers.

``ContentParser`` picks a renderer for the configured ``ParserMode`` on
every call, so changing ``settings.parser`` takes effect immediately.
"""

import logging
import re
from typing import TYPE_CHECKING, Callable
from xml.etree.ElementTree import Element

from markdown import Markdown
from markdown.extensions import Extension
from markdown.inlinepatterns import InlineProcessor, SimpleTagInlineProcessor

from flatwiki.core.mediawiki import LINK_RE, MediaWikiRenderer
from flatwiki.core.models import ParserMode, show_url

if TYPE_CHECKING:
    from flatwiki.config import Settings

logger = logging.getLogger(__name__)

PageExists = Callable[[str], bool]
Renderer = Callable[[str, PageExists | None], str]


# Pattern for wiki links: [[PageName]] or [[PageName|Display Text]]
WIKI_LINK_PATTERN = LINK_RE.pattern

# Pattern for strikethrough: ~~text~~
# Group 2 must contain the text (SimpleTagInlineProcessor expectation)
STRIKETHROUGH_PATTERN = r"(~~)(.*?)~~"


class StrikethroughExtension(Extension):
    """Markdown extension for ~~strikethrough~~ text."""

    def extendMarkdown(self, md: Markdown) -> None:
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(STRIKETHROUGH_PATTERN, "del"),
            "strikethrough",
            50,
        )


class WikiLinkInlineProcessor(InlineProcessor):
    """Inline processor for wiki links."""

    def __init__(self, pattern: str, md: Markdown, page_exists: PageExists):
        super().__init__(pattern, md)
        self.page_exists = page_exists

    def handleMatch(self, m: re.Match, data: str) -> tuple[Element | None, int, int]:
        """Convert wiki link match to HTML anchor element."""
        target = m.group(1).strip()
        display_text = m.group(2)
        if display_text:
            display_text = display_text.strip()
        else:
            display_text = target

        el = Element("a")
        el.text = display_text
        el.set("href", show_url(target))

        page_name = target.split("#", 1)[0]
        if not page_name or self.page_exists(page_name):
            el.set("class", "wiki-link")
        else:
            el.set("class", "wiki-link wiki-link-missing")

        return el, m.start(0), m.end(0)


class WikiLinkExtension(Extension):
    """Markdown extension for wiki links."""

    def __init__(self, page_exists: PageExists | None = None, **kwargs):
        self.page_exists = page_exists or (lambda x: True)
        super().__init__(**kwargs)

    def extendMarkdown(self, md: Markdown) -> None:
        wiki_link_processor = WikiLinkInlineProcessor(
            WIKI_LINK_PATTERN,
            md,
            self.page_exists,
        )
        md.inlinePatterns.register(wiki_link_processor, "wiki_link", 75)


def create_parser(page_exists: PageExists | None = None) -> Markdown:
    """Create a Markdown parser with wiki link support.

    Args:
        page_exists: Callback to check if a page exists.
                    Used to style missing page links differently.

    Returns:
        Configured Markdown parser instance.
    """
    return Markdown(
        extensions=[
            # Core formatting
            "extra",  # Includes: abbreviations, attr_list, def_list, fenced_code, footnotes, md_in_html, tables
            "sane_lists",
            "smarty",
            "toc",  # Heading ids
            # PyMdown extensions
            "pymdownx.tasklist",
            # Custom extensions
            StrikethroughExtension(),
            WikiLinkExtension(page_exists=page_exists),
        ]
    )


def render_markdown(text: str, page_exists: PageExists | None = None) -> str:
    """Render Markdown (plus wiki links) to HTML."""
    return create_parser(page_exists).convert(text)


def render_mediawiki(text: str, page_exists: PageExists | None = None) -> str:
    """Render MediaWiki markup to HTML."""
    return MediaWikiRenderer(page_exists).convert(text)


RENDERERS: dict[ParserMode, Renderer] = {
    ParserMode.MARKDOWN: render_markdown,
    ParserMode.MEDIAWIKI: render_mediawiki,
}


class ContentParser:
    """Convert raw page text to HTML using the configured markup syntax."""

    def __init__(self, settings: "Settings", page_exists: PageExists | None = None):
        self.settings = settings
        self.page_exists = page_exists

    @property
    def mode(self) -> ParserMode:
        return ParserMode.resolve(self.settings.parser)

    def __call__(self, text: str) -> str:
        mode = self.mode
        logger.debug("Rendering %d chars as %s", len(text), mode.value)
        return RENDERERS[mode](text, self.page_exists)

    parse = __call__


def extract_wiki_links(content: str) -> list[str]:
    """Extract all wiki links from content.

    Args:
        content: Page content with wiki links.

    Returns:
        List of page names referenced in wiki links.
    """
    matches = re.findall(WIKI_LINK_PATTERN, content)
    return [m[0].strip() for m in matches]
