"""
Block Parser — delimiter-separated slices of scratchpad content.

Appends join content with a block boundary marker so that tail and chop
can work in units of "what was appended".  Two spellings of the marker
exist; the newer one carries an HTML comment so it survives Markdown
rendering.  Both are recognized; at a shared offset the longer wins.

Block 0 is the text before the first delimiter.  A delimiter at the end
of the content yields a trailing empty block.

Author: Olivier Vitrac, PhD, HDR | olivier.vitrac@adservio.fr | Adservio
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

BLOCK_DELIMITER = "\n\n---\n<!--- block start --->\n"
LEGACY_BLOCK_DELIMITER = "\n\n---\n"

# Longest first: regex alternation tries branches left to right.
DELIMITERS = tuple(sorted((BLOCK_DELIMITER, LEGACY_BLOCK_DELIMITER),
                          key=len, reverse=True))
_DELIMITER_RE = re.compile("|".join(re.escape(d) for d in DELIMITERS))


@dataclass(frozen=True)
class Block:
    """One block: content[start:end], preceded by ``delimiter`` (None for block 0)."""

    index: int
    start: int
    end: int
    content: str
    delimiter: Optional[str] = None

    @property
    def is_first(self) -> bool:
        return self.index == 0


def parse(content: str) -> List[Block]:
    """Split content into ordered blocks.

    Empty content has no blocks; whitespace-only content is one block.
    """
    if not content:
        return []
    if not content.strip():
        return [Block(0, 0, len(content), content)]

    blocks: List[Block] = []
    start = 0
    delimiter: Optional[str] = None
    for m in _DELIMITER_RE.finditer(content):
        blocks.append(Block(len(blocks), start, m.start(),
                            content[start:m.start()], delimiter))
        start = m.end()
        delimiter = m.group(0)
    blocks.append(Block(len(blocks), start, len(content),
                        content[start:], delimiter))
    return blocks


def count(content: str) -> int:
    """Number of blocks in content."""
    return len(parse(content))


def join(blocks: List[Block]) -> str:
    """Rejoin contiguous blocks using the delimiter that originally preceded each.

    A block with no recorded delimiter (block 0 placed after another) is
    joined with the newer spelling.
    """
    if not blocks:
        return ""
    parts = [blocks[0].content]
    for block in blocks[1:]:
        parts.append(block.delimiter or BLOCK_DELIMITER)
        parts.append(block.content)
    return "".join(parts)


def block_range(content: str, n: int, from_end: bool = False) -> str:
    """First (or last) ``n`` blocks of content, rejoined.

    ``n <= 0`` gives empty text; ``n`` at or above the block count gives
    the whole content.
    """
    if n <= 0:
        return ""
    blocks = parse(content)
    if n >= len(blocks):
        return content
    selected = blocks[-n:] if from_end else blocks[:n]
    return join(selected)


def chop(content: str, n: int) -> str:
    """Remove the last ``n`` blocks.  ``n`` at or above the block count empties it."""
    if n <= 0:
        return content
    total = count(content)
    if n >= total:
        return ""
    return block_range(content, total - n)


def block_at_offset(content: str, offset: int) -> Optional[Block]:
    """The block whose span (delimiter excluded) contains character ``offset``.

    An offset inside a delimiter maps to the block that follows it.
    """
    blocks = parse(content)
    for block in blocks:
        if offset < block.start:
            return block
        if offset <= block.end:
            return block
    return blocks[-1] if blocks else None
