"""Display helpers shared by the list view, the detail page and the console menu."""

from __future__ import annotations

import markdown
from markupsafe import Markup

MARKDOWN_EXTENSIONS = ("extra", "sane_lists", "nl2br")
EMPTY_DETAIL_HTML = "<p>No additional information provided.</p>"


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == value


def format_currency(value, raw: bool = False) -> str:
    """Return ``$1234.50`` (or ``1234.50`` when raw); non-numbers render as ''."""

    if not _is_number(value):
        return ""
    formatted = f"{float(value):.2f}"
    return formatted if raw else f"${formatted}"


def format_quantity(value) -> str:
    # Blank quantity displays as the implicit multiplier.
    if not _is_number(value):
        return "1"
    if float(value).is_integer():
        return str(int(value))
    return f"{float(value):g}"


def _markdown_converter() -> markdown.Markdown:
    md = markdown.Markdown(extensions=list(MARKDOWN_EXTENSIONS))
    # Raw HTML blocks and inline tags stay as text and are escaped on output.
    md.preprocessors.deregister("html_block")
    md.inlinePatterns.deregister("html")
    return md


def render_markdown(text: str | None) -> Markup:
    """Convert markdown to HTML. Raw HTML in the source is rendered as text."""

    source = (text or "").strip()
    if not source:
        return Markup("")
    return Markup(_markdown_converter().convert(source))


def render_detail_html(md_content: str | None, legacy_html: str | None = None) -> Markup:
    """Markdown first, then the legacy pre-rendered column, then a placeholder."""

    rendered = render_markdown(md_content)
    if rendered:
        return rendered
    if legacy_html:
        return Markup(legacy_html)
    return Markup(EMPTY_DETAIL_HTML)
