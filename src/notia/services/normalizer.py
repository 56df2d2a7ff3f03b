"""
Text Normalizer

Turns a note's title and content into the canonical document string that
is embedded and stored in the similarity index, and cleans free text used
for keyword search.
"""

from __future__ import annotations

import re

from notia.models.note import TITLE_MAX_LENGTH

UNTITLED = "Untitled"

_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str | None) -> str:
    """
    Canonical form of a note body.

    Unifies line endings, drops trailing whitespace on every line and
    strips leading/trailing blank lines. Interior blank lines are kept:
    they carry paragraph structure.
    """
    if not text:
        return ""
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "\n".join(line.rstrip() for line in lines).strip("\n")


def normalize_query(text: str | None) -> str:
    """Collapse all whitespace runs to single spaces."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def derive_title(content: str | None) -> str:
    """First non-blank line of the content, or ``UNTITLED``."""
    for line in normalize_text(content).split("\n"):
        line = normalize_query(line)
        if line:
            return line[:TITLE_MAX_LENGTH]
    return UNTITLED


def compose_document(note_id: int, title: str | None, content: str | None) -> str | None:
    """
    Build the indexed document for a note.

    Format::

        Note ID: <id>
        Title: <title>

        <normalized content>

    Returns:
        The document, or None when the content is empty after
        normalization (an empty note contributes nothing to retrieval).
    """
    body = normalize_text(content)
    if not body.strip():
        return None
    heading = normalize_query(title) or derive_title(body)
    return f"Note ID: {note_id}\nTitle: {heading}\n\n{body}"
