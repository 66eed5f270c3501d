"""MediaWiki markup renderer.

Line-oriented converter for the common subset of MediaWiki syntax:
headings, paragraphs, bold/italic, internal and external links, nested
and definition lists, horizontal rules, preformatted blocks, ``<nowiki>``
and simple tables. Template calls and magic words are dropped. Anything
else is escaped and rendered as paragraph text.
"""

import re
from html import escape, unescape
from typing import Callable

from flatwiki.core.models import show_url

HEADING_RE = re.compile(r"^(=+)(.+?)(=+)\s*$")
HR_RE = re.compile(r"^-{4,}\s*$")
LIST_ITEM_RE = re.compile(r"^([*#;:]+)\s*(.*)$")
BOLD_ITALIC_RE = re.compile(r"'''''(.+?)'''''")
BOLD_RE = re.compile(r"'''(.+?)'''")
ITALIC_RE = re.compile(r"''(.+?)''")
LINK_RE = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")
EXTERNAL_LINK_RE = re.compile(
    r"\[((?:https?|ftp)://[^\s\]]+|mailto:[^\s\]]+)(?:\s+([^\]]+))?\]"
)
TEMPLATE_RE = re.compile(r"{{[^{}]*}}")
MAGIC_WORD_RE = re.compile(r"__(?:NO)?(?:TOC|FORCETOC|EDITSECTION)__")
NOWIKI_RE = re.compile(r"<nowiki>(.*?)</nowiki>", re.DOTALL | re.IGNORECASE)
CELL_ATTR_RE = re.compile(r"^\s*[\w-]+\s*=")
DEFINITION_SPLIT_RE = re.compile(r":(?!//)")

LIST_TAGS = {"*": ("ul", "li"), "#": ("ol", "li"), ";": ("dl", "dt"), ":": ("dl", "dd")}


class _Document:
    """Mutable state for a single conversion."""

    def __init__(self, renderer: "MediaWikiRenderer"):
        self.renderer = renderer
        self.out: list[str] = []
        self.paragraph: list[str] = []
        self.pre: list[str] = []
        # Each open list level is [list_tag, open_item_tag_or_None]
        self.lists: list[list] = []
        self.stash: list[str] = []

    def inline(self, text: str) -> str:
        return self.renderer.inline(text, self.stash)

    def flush_paragraph(self) -> None:
        if self.paragraph:
            text = "\n".join(self.paragraph)
            self.out.append(f"<p>{self.inline(text)}</p>\n")
            self.paragraph = []

    def flush_pre(self) -> None:
        if self.pre:
            body = "\n".join(self.inline(line) for line in self.pre)
            self.out.append(f"<pre>{body}</pre>\n")
            self.pre = []

    def close_lists(self, depth: int = 0) -> None:
        while len(self.lists) > depth:
            list_tag, item_tag = self.lists.pop()
            if item_tag:
                self.out.append(f"</{item_tag}>\n")
            self.out.append(f"</{list_tag}>\n")

    def flush(self) -> None:
        self.flush_paragraph()
        self.flush_pre()
        self.close_lists()

    def list_item(self, markers: str, body: str) -> None:
        self.flush_paragraph()
        self.flush_pre()

        wanted = [LIST_TAGS[m][0] for m in markers]
        common = 0
        while (
            common < min(len(self.lists), len(wanted))
            and self.lists[common][0] == wanted[common]
        ):
            common += 1

        if common == len(wanted):
            # Sibling item: reuse the list at the last level
            self.close_lists(common)
            level = self.lists[-1]
            if level[1]:
                self.out.append(f"</{level[1]}>\n")
            level[1] = None
        else:
            self.close_lists(common)
            for depth in range(common, len(markers)):
                list_tag, item_tag = LIST_TAGS[markers[depth]]
                self.out.append(f"<{list_tag}>\n")
                self.lists.append([list_tag, None])
                # Intermediate levels need an open item to hold the nested list
                if depth < len(markers) - 1:
                    self.out.append(f"<{item_tag}>")
                    self.lists[-1][1] = item_tag

        last = markers[-1]
        parts = DEFINITION_SPLIT_RE.split(body, 1) if last == ";" else [body]
        if len(parts) == 2:
            # "; term : definition" on one line; URL schemes are not split
            term, definition = parts
            self.out.append(f"<dt>{self.inline(term.strip())}</dt>\n")
            self.out.append(f"<dd>{self.inline(definition.strip())}")
            self.lists[-1][1] = "dd"
            return
        item_tag = LIST_TAGS[last][1]
        self.out.append(f"<{item_tag}>{self.inline(body)}")
        self.lists[-1][1] = item_tag

    def table(self, lines: list[str]) -> None:
        self.flush()
        caption = ""
        rows: list[list[tuple[str, str]]] = []
        row: list[tuple[str, str]] = []

        for raw in lines[1:]:
            line = raw.strip()
            if line.startswith("|}"):
                break
            if line.startswith("|+"):
                caption = line[2:].strip()
            elif line.startswith("|-"):
                if row:
                    rows.append(row)
                row = []
            elif line.startswith("!"):
                cells = re.split(r"!!|\|\|", line[1:])
                row.extend(("th", self._cell_text(c)) for c in cells)
            elif line.startswith("|"):
                cells = line[1:].split("||")
                row.extend(("td", self._cell_text(c)) for c in cells)
            elif row:
                tag, text = row[-1]
                row[-1] = (tag, f"{text}\n{line}".strip())
        if row:
            rows.append(row)

        html = ["<table>\n"]
        if caption:
            html.append(f"<caption>{self.inline(caption)}</caption>\n")
        for cells in rows:
            html.append("<tr>\n")
            for tag, text in cells:
                html.append(f"<{tag}>{self.inline(text)}</{tag}>\n")
            html.append("</tr>\n")
        html.append("</table>\n")
        self.out.append("".join(html))

    @staticmethod
    def _cell_text(cell: str) -> str:
        """Drop a leading ``attrs |`` section from a table cell."""
        if "|" in cell and "[[" not in cell.split("|", 1)[0]:
            attrs, text = cell.split("|", 1)
            if CELL_ATTR_RE.match(attrs):
                return text.strip()
        return cell.strip()


class MediaWikiRenderer:
    """Render MediaWiki markup to an HTML fragment.

    Headings are framed by newlines, as in ``"\\n<h2>Title</h2>\\n"``, and
    every other block ends with a newline.
    """

    def __init__(self, page_exists: Callable[[str], bool] | None = None):
        self.page_exists = page_exists or (lambda name: True)

    def convert(self, text: str) -> str:
        doc = _Document(self)
        # NUL marks stashed <nowiki> fragments, so it cannot come from the page
        text = text.replace("\x00", "")
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = NOWIKI_RE.sub(
            lambda m: self._stash(doc.stash, escape(m.group(1), quote=False)), text
        )
        for _ in range(10):
            stripped = TEMPLATE_RE.sub("", text)
            if stripped == text:
                break
            text = stripped
        text = MAGIC_WORD_RE.sub("", text)

        lines = text.split("\n")
        i = 0
        while i < len(lines):
            line = lines[i].rstrip()
            i += 1

            if line.lstrip().startswith("{|"):
                table = [line]
                while i < len(lines):
                    table.append(lines[i])
                    i += 1
                    if lines[i - 1].strip().startswith("|}"):
                        break
                doc.table(table)
                continue

            if not line.strip():
                doc.flush()
                continue

            heading = HEADING_RE.match(line)
            if heading:
                doc.flush()
                doc.out.append(self._heading(doc, *heading.groups()))
                continue

            if HR_RE.match(line):
                doc.flush()
                doc.out.append("<hr />\n")
                continue

            item = LIST_ITEM_RE.match(line)
            if item:
                doc.list_item(*item.groups())
                continue

            if line.startswith(" "):
                doc.flush_paragraph()
                doc.close_lists()
                doc.pre.append(line[1:])
                continue

            doc.flush_pre()
            doc.close_lists()
            doc.paragraph.append(line.strip())

        doc.flush()
        return "".join(doc.out)

    def _heading(self, doc: _Document, opening: str, text: str, closing: str) -> str:
        level = min(len(opening), len(closing), 6)
        # Unbalanced '=' stay part of the heading text
        text = "=" * (len(opening) - level) + text + "=" * (len(closing) - level)
        return f"\n<h{level}>{doc.inline(text.strip())}</h{level}>\n"

    @staticmethod
    def _stash(stash: list[str], html: str) -> str:
        stash.append(html)
        return f"\x00{len(stash) - 1}\x00"

    def _link(self, match: re.Match) -> str:
        target = unescape(match.group(1)).strip()
        label = match.group(2).strip() if match.group(2) else escape(target, quote=False)
        name = target.split("#", 1)[0]
        css = "wiki-link"
        if name and not self.page_exists(name):
            css = "wiki-link wiki-link-missing"
        return f'<a href="{escape(show_url(target))}" class="{css}">{label}</a>'

    def _external_link(self, match: re.Match) -> str:
        url = match.group(1)
        label = match.group(2).strip() if match.group(2) else url
        return f'<a href="{escape(unescape(url))}" class="external">{label}</a>'

    def inline(self, text: str, stash: list[str]) -> str:
        """Render inline markup in already block-split text."""
        text = escape(text, quote=False)
        text = LINK_RE.sub(self._link, text)
        text = EXTERNAL_LINK_RE.sub(self._external_link, text)
        text = BOLD_ITALIC_RE.sub(r"<strong><em>\1</em></strong>", text)
        text = BOLD_RE.sub(r"<strong>\1</strong>", text)
        text = ITALIC_RE.sub(r"<em>\1</em>", text)
        return re.sub("\x00(\\d+)\x00", lambda m: stash[int(m.group(1))], text)
