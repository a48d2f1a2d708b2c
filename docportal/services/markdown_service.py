"""
DocPortal — Markdown Conversion Service
=========================================

What:  Converts between the three representations a document goes through:
       markdown file text (with YAML frontmatter) ⇄ rendered HTML ⇄ editor HTML.
Why:   Documents live on disk as markdown, are served to readers as HTML and are
       edited in the browser as HTML. Every path between them lives here so
       documents, sync and the editor endpoints agree on the output.
How:   - python-frontmatter splits and writes the YAML header
       - Python-Markdown renders markdown (tables, fenced code with Pygments
         highlighting, heading ids, strikethrough, raw HTML passthrough)
       - BeautifulSoup walks the HTML to rewrite media and to turn editor HTML
         back into markdown
       - bleach allow-lists editor HTML before it is stored
Who:   DocumentService, SyncService, the /api/admin/markdown endpoints.

Media rewriting:
    A relative <img>/<video> src such as "diagram.png" is served from the docs
    tree, so it becomes "/docs-media/diagram.png". Absolute URLs, root-relative
    paths and data: URIs are left alone.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import bleach
import frontmatter
import markdown
import yaml
from bs4 import BeautifulSoup, Comment, NavigableString, Tag
from markdown.extensions import Extension
from markdown.extensions.codehilite import CodeHiliteExtension
from markdown.extensions.fenced_code import FencedCodeExtension
from markdown.extensions.tables import TableExtension
from markdown.extensions.toc import TocExtension
from markdown.inlinepatterns import SimpleTagInlineProcessor

from docportal.exceptions import ValidationError

logger = logging.getLogger(__name__)

MEDIA_URL_PREFIX = "/docs-media/"

# Responsive styling applied to every embedded image and video
MEDIA_CLASSES = [
    "max-w-full",
    "h-auto",
    "rounded-lg",
    "shadow-sm",
    "border",
    "border-slate-200",
    "dark:border-slate-700",
]

EXCERPT_LENGTH = 200
DEFAULT_BODY = "Your content here..."

# ── Editor HTML allow-list (bleach) ───────────────────────────────────────
ALLOWED_TAGS = sorted(
    set(bleach.ALLOWED_TAGS)
    | {
        "p", "br", "hr", "div", "span",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "pre", "code", "del", "s", "u", "mark", "sub", "sup",
        "img", "video", "source", "figure", "figcaption",
        "table", "thead", "tbody", "tfoot", "tr", "th", "td",
    }
)
ALLOWED_ATTRS = {
    "*": ["class", "id"],
    "a": ["href", "title", "target", "rel"],
    "img": ["src", "alt", "title", "width", "height"],
    "video": ["src", "controls", "width", "height", "poster", "preload", "loop", "muted"],
    "source": ["src", "type"],
    "th": ["colspan", "rowspan", "align"],
    "td": ["colspan", "rowspan", "align"],
    "ol": ["start"],
}
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

_BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "div", "dl", "figure", "footer",
    "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "ol", "p", "pre",
    "section", "table", "tbody", "td", "tfoot", "th", "thead", "tr", "ul", "video",
}
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_LANGUAGE_CLASS = re.compile(r"language-([\w+#-]+)")
# "[text](target" or "![alt](target" with no closing paren before end of line
_UNCLOSED_LINK = re.compile(r"(!?)\[[^\]\n]*\]\([^)\n]*$", re.MULTILINE)


@dataclass
class RenderedMarkdown:
    html: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class TocItem:
    id: str
    title: str
    level: int


class StrikethroughExtension(Extension):
    """Adds GitHub-style ~~strikethrough~~ rendered as <del>."""

    def extendMarkdown(self, md):
        md.inlinePatterns.register(
            SimpleTagInlineProcessor(r"(~{2})(.+?)\1", "del"), "strikethrough", 65
        )


def _markdown_extensions() -> list:
    return [
        FencedCodeExtension(),
        CodeHiliteExtension(css_class="highlight", guess_lang=False),
        TableExtension(),
        TocExtension(),
        StrikethroughExtension(),
        "sane_lists",
    ]


# ══════════════════════════════════════════════════════════════════════════
# Frontmatter
# ══════════════════════════════════════════════════════════════════════════

def split_frontmatter(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Split a markdown file into (metadata, body).

    Raises:
        ValidationError if the YAML header cannot be parsed.
    """
    try:
        post = frontmatter.loads(text or "")
    except (yaml.YAMLError, ValueError, TypeError) as e:
        logger.debug("Frontmatter parse failed: %s", e)
        raise ValidationError(
            message=f"Invalid frontmatter: {e}",
            field="raw_content",
        )
    return dict(post.metadata), post.content


def compose_document(body: str, meta: Optional[Dict[str, Any]] = None) -> str:
    """Serialise markdown body + metadata as a frontmatter document."""
    if not meta:
        return body or ""
    post = frontmatter.Post(body or "", **(meta or {}))
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def build_frontmatter_document(
    body: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    order: Optional[int] = None,
) -> str:
    meta = {
        "title": title or "Untitled",
        "description": description or "",
        "order": order if order is not None else 1,
    }
    return compose_document(body, meta)


# ══════════════════════════════════════════════════════════════════════════
# Markdown → HTML
# ══════════════════════════════════════════════════════════════════════════

def _is_relative_media(src: str) -> bool:
    return not (src.startswith("http") or src.startswith("/") or src.startswith("data:"))


def rewrite_media(html: str) -> str:
    """Point relative media at /docs-media/ and apply responsive styling."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["img", "video"]):
        src = tag.get("src")
        if not src:
            continue
        if _is_relative_media(src):
            tag["src"] = MEDIA_URL_PREFIX + src
        classes = tag.get("class") or []
        tag["class"] = classes + [c for c in MEDIA_CLASSES if c not in classes]
        if tag.name == "video":
            tag["controls"] = ""
    return str(soup)


def render_markdown(text: str) -> RenderedMarkdown:
    """
    Render a markdown file (frontmatter allowed) to HTML.

    Returns:
        RenderedMarkdown with the HTML and the parsed frontmatter.
    """
    meta, body = split_frontmatter(text)
    html = markdown.markdown(body, extensions=_markdown_extensions())
    return RenderedMarkdown(html=rewrite_media(html), meta=meta)


# ══════════════════════════════════════════════════════════════════════════
# HTML → Markdown
# ══════════════════════════════════════════════════════════════════════════

class _MarkdownWriter:
    """
    Walks an HTML tree and emits markdown.

    Output conventions:
        ATX headings, ``` fences carrying the language from a `language-xxx`
        class, _em_, **strong**, ~~del~~, "-" bullets, inline links, pipe
        tables with a separator after the first row, <video> kept as raw HTML.
    """

    def convert(self, html: str) -> str:
        soup = BeautifulSoup(html or "", "html.parser")
        text = self._children(soup)
        text = re.sub(r"\n{3,}", "\n\n", text)
        return text.strip()

    def _children(self, node: Tag) -> str:
        return "".join(self._node(child) for child in node.children)

    def _node(self, node) -> str:
        if isinstance(node, Comment):
            return ""
        if isinstance(node, NavigableString):
            return self._text(node)
        if not isinstance(node, Tag):
            return ""

        name = node.name
        if name in ("script", "style"):
            return ""
        if name in _HEADING_TAGS:
            level = int(name[1])
            return f"\n\n{'#' * level} {self._children(node).strip()}\n\n"
        if name == "p":
            return f"\n\n{self._children(node).strip()}\n\n"
        if name == "br":
            return "  \n"
        if name == "hr":
            return "\n\n---\n\n"
        if name in ("strong", "b"):
            return self._wrap(node, "**")
        if name in ("em", "i"):
            return self._wrap(node, "_")
        if name in ("del", "s", "strike"):
            return self._wrap(node, "~~")
        if name == "code":
            return f"`{node.get_text()}`"
        if name == "pre":
            return self._code_block(node)
        if name == "a":
            return self._link(node)
        if name == "img":
            return self._image(node)
        if name in ("ul", "ol"):
            return self._list(node)
        if name == "blockquote":
            inner = self._children(node).strip()
            quoted = "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
            return f"\n\n{quoted}\n\n"
        if name == "table":
            return self._table(node)
        if name == "video":
            return f"\n\n{node}\n\n"
        return self._children(node)

    def _text(self, node: NavigableString) -> str:
        text = str(node)
        if not text.strip():
            # Whitespace between block elements carries no meaning
            prev_sib, next_sib = node.previous_sibling, node.next_sibling
            if (
                prev_sib is None
                or next_sib is None
                or (isinstance(prev_sib, Tag) and prev_sib.name in _BLOCK_TAGS)
                or (isinstance(next_sib, Tag) and next_sib.name in _BLOCK_TAGS)
            ):
                return ""
        return re.sub(r"\s+", " ", text)

    def _wrap(self, node: Tag, marker: str) -> str:
        inner = self._children(node)
        if not inner.strip():
            return inner
        return f"{marker}{inner.strip()}{marker}"

    def _code_block(self, node: Tag) -> str:
        code = node.find("code")
        source = code if code is not None else node
        language = ""
        match = _LANGUAGE_CLASS.search(" ".join(source.get("class") or []))
        if match:
            language = match.group(1)
        body = source.get_text().rstrip("\n")
        return f"\n\n```{language}\n{body}\n```\n\n"

    def _link(self, node: Tag) -> str:
        inner = self._children(node).strip()
        href = node.get("href")
        if not href:
            return inner
        title = node.get("title")
        if title:
            return f'[{inner}]({href} "{title}")'
        return f"[{inner}]({href})"

    def _image(self, node: Tag) -> str:
        src = node.get("src")
        if not src:
            return ""
        alt = node.get("alt", "")
        title = node.get("title")
        if title:
            return f'![{alt}]({src} "{title}")'
        return f"![{alt}]({src})"

    def _list(self, node: Tag) -> str:
        ordered = node.name == "ol"
        try:
            index = int(node.get("start", 1))
        except (TypeError, ValueError):
            index = 1
        lines = []
        for item in node.find_all("li", recursive=False):
            marker = f"{index}." if ordered else "-"
            body = self._children(item).strip()
            body = re.sub(r"\n{2,}", "\n", body)
            indent = " " * (len(marker) + 1)
            body = body.replace("\n", "\n" + indent)
            lines.append(f"{marker} {body}")
            index += 1
        return "\n\n" + "\n".join(lines) + "\n\n"

    def _table(self, node: Tag) -> str:
        rows = node.find_all("tr")
        out = []
        for index, row in enumerate(rows):
            cells = row.find_all(["td", "th"])
            out.append("| " + " | ".join(cell.get_text().strip() for cell in cells) + " |")
            if index == 0:
                out.append("| " + " | ".join("---" for _ in cells) + " |")
        return "\n\n" + "\n".join(out) + "\n\n"


def html_to_markdown(html: str) -> str:
    return _MarkdownWriter().convert(html)


# ══════════════════════════════════════════════════════════════════════════
# Plain text, excerpts, sanitising, validation, TOC
# ══════════════════════════════════════════════════════════════════════════

# Tags whose edges separate words in extracted text
_TEXT_BREAK_TAGS = sorted(_BLOCK_TAGS | {"br", "dd", "dt", "figcaption"})


def html_to_plain_text(html: str) -> str:
    """
    Strip tags, decode entities and collapse whitespace (for search and excerpts).

    Only block boundaries become spaces; inline markup such as
    `<strong>un</strong>believable` or pygments spans keeps words whole.
    """
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_TEXT_BREAK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    text = soup.get_text()
    return re.sub(r"\s+", " ", text).strip()


def make_excerpt(html: str, length: int = EXCERPT_LENGTH) -> str:
    return html_to_plain_text(html)[:length]


def sanitize_html(html: str) -> str:
    """Allow-list HTML coming from the browser editor before it is stored."""
    return bleach.clean(
        html or "",
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRS,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )


def validate_markdown(text: str) -> Tuple[bool, List[str]]:
    """
    Check a markdown document for problems the editor should report.

    Returns:
        (is_valid, errors) where errors lists human-readable messages.
    """
    errors: List[str] = []
    try:
        split_frontmatter(text)
    except ValidationError as e:
        errors.append(e.message)

    for match in _UNCLOSED_LINK.finditer(text or ""):
        message = "Unclosed image link detected" if match.group(1) else "Unclosed link detected"
        if message not in errors:
            errors.append(message)

    return len(errors) == 0, errors


def extract_headings(html: str) -> Tuple[str, List[TocItem]]:
    """
    Build a table of contents from the headings in rendered HTML.

    Headings without an id get `heading-<index>` so the TOC can link to them.
    Returns the HTML with ids applied and the TOC entries in document order.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    items: List[TocItem] = []
    for index, heading in enumerate(soup.find_all(_HEADING_TAGS)):
        heading_id = heading.get("id") or f"heading-{index}"
        heading["id"] = heading_id
        items.append(
            TocItem(id=heading_id, title=heading.get_text().strip(), level=int(heading.name[1]))
        )
    return str(soup), items
