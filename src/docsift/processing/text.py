"""Whitespace normalization shared by the segmenters."""

import re

_FENCE_RE = re.compile(r"^(```|~~~)[^\n]*\n.*?^\1[ \t]*$", re.MULTILINE | re.DOTALL)
_PLACEHOLDER = "@@DOCSIFT_CODE_{}@@"
_PLACEHOLDER_RE = re.compile(r"@@DOCSIFT_CODE_(\d+)@@")


def clean_text(text: str) -> str:
    """Normalize line endings and whitespace.

    Tabs become two spaces, runs of horizontal whitespace collapse to one
    space, trailing spaces are dropped, at most one blank line is kept
    between paragraphs, and the result is trimmed.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", "  ")
    text = re.sub(r"[^\S\n]+", " ", text)
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def protect_code(text: str) -> tuple[str, list[str]]:
    """Swap fenced code blocks for placeholders so cleaning cannot touch them."""
    blocks: list[str] = []

    def stash(match: re.Match) -> str:
        blocks.append(match.group(0))
        return _PLACEHOLDER.format(len(blocks) - 1)

    return _FENCE_RE.sub(stash, text), blocks


def restore_code(text: str, blocks: list[str]) -> str:
    """Put code blocks stashed by :func:`protect_code` back verbatim."""
    if not blocks:
        return text

    def swap(match: re.Match) -> str:
        index = int(match.group(1))
        return blocks[index] if index < len(blocks) else match.group(0)

    return _PLACEHOLDER_RE.sub(swap, text)


def clean_preserving_code(text: str) -> str:
    protected, blocks = protect_code(text)
    return restore_code(clean_text(protected), blocks)
