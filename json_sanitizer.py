"""Clean up near-JSON text found inside mod archives before parsing it."""
from __future__ import annotations

import re
from enum import Enum
from typing import List

CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
LINE_COMMENT_RE = re.compile(r"//[^\n\r]*")
BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")

BOM = "\ufeff"

__all__ = ["TokenState", "escape_raw_newlines", "sanitize_json"]


class TokenState(Enum):
    OUTSIDE = "outside"
    INSIDE_STRING = "inside_string"
    ESCAPED = "escaped"


def escape_raw_newlines(text: str) -> str:
    """Escape literal line feeds inside string literals and drop carriage returns there.

    Characters outside string literals are copied unchanged.
    """
    out: List[str] = []
    state = TokenState.OUTSIDE
    for ch in text:
        if state is TokenState.OUTSIDE:
            out.append(ch)
            if ch == '"':
                state = TokenState.INSIDE_STRING
        elif state is TokenState.ESCAPED:
            out.append(ch)
            state = TokenState.INSIDE_STRING
        elif ch == "\\":
            out.append(ch)
            state = TokenState.ESCAPED
        elif ch == '"':
            out.append(ch)
            state = TokenState.OUTSIDE
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            continue
        else:
            out.append(ch)
    return "".join(out)


def sanitize_json(text: str) -> str:
    # Comment and comma passes run before the string-aware pass, so a value
    # such as "https://example.org" loses everything after the "//".
    cleaned = text.lstrip(BOM)
    cleaned = CONTROL_CHARS_RE.sub("", cleaned)
    cleaned = LINE_COMMENT_RE.sub("", cleaned)
    cleaned = BLOCK_COMMENT_RE.sub("", cleaned)
    cleaned = TRAILING_COMMA_RE.sub(r"\1", cleaned)
    return escape_raw_newlines(cleaned)
