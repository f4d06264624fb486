"""Plain-text rendering of HTML-only message bodies."""

import re

_DROP_BLOCKS = re.compile(
    r"<(script|style|head)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_LINE_BREAKS = re.compile(r"<\s*(br|/p|/div|/tr|/li|/h[1-6])\b[^>]*>", re.IGNORECASE)
_TAG = re.compile(r"<[^>]+>")
_NUMERIC_ENTITY = re.compile(r"&#(\d+);")
_HEX_ENTITY = re.compile(r"&#[xX]([0-9A-Fa-f]+);")
_WHITESPACE = re.compile(r"\s+")

NAMED_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
}


def _char(code: int, fallback: str) -> str:
    try:
        return chr(code)
    except (ValueError, OverflowError):
        return fallback


def html_to_text(html: str) -> str:
    """Strip tags, decode common entities and collapse whitespace."""
    if not html:
        return ""

    text = _DROP_BLOCKS.sub(" ", html)
    text = _LINE_BREAKS.sub(" ", text)
    text = _TAG.sub("", text)

    for entity, replacement in NAMED_ENTITIES.items():
        text = text.replace(entity, replacement)

    text = _NUMERIC_ENTITY.sub(lambda m: _char(int(m.group(1)), m.group(0)), text)
    text = _HEX_ENTITY.sub(lambda m: _char(int(m.group(1), 16), m.group(0)), text)

    # last so "&amp;lt;" stays "&lt;"
    text = text.replace("&amp;", "&")

    return _WHITESPACE.sub(" ", text).strip()
