"""Helpers for fenced code blocks in model output."""

import re
from dataclasses import dataclass

_FENCE_MARKERS = re.compile(r"```[a-zA-Z]*\n?|```")
_BLOCK = re.compile(r"```([a-zA-Z]*)[ \t]*\n?(.*?)```", re.DOTALL)


@dataclass(frozen=True)
class CodeBlock:
    syntax: str
    code: str


def strip_code_fences(text: str) -> str:
    """Remove every fence marker, keeping the fenced content."""
    return _FENCE_MARKERS.sub("", text)


def find_code_blocks(text: str) -> list[CodeBlock]:
    """Return fenced blocks in order of appearance.

    A trailing unterminated block (streams cut short) is closed implicitly.
    """
    if text.count("```") % 2 == 1:
        text = text + "```"
    return [
        CodeBlock(syntax=match.group(1).lower(), code=match.group(2))
        for match in _BLOCK.finditer(text)
    ]
