"""
Quote-, bracket- and paren-aware scanning helpers.

Every structural rewrite in the query pipeline goes through these helpers
instead of matching raw text, so that string literals, bracketed Access
identifiers, quoted PostgreSQL identifiers and comments are never rewritten
by accident and nested parentheses are respected.

Region kinds reported by :func:`scan`:

    ``'``   single-quoted string literal
    ``"``   double-quoted text (an Access string literal before the syntax
            pass, a quoted identifier after it)
    ``[``   bracketed Access identifier
    ``/``   ``/* ... */`` or ``-- ...`` comment
    None    plain SQL text
"""
import re
from typing import Callable, List, Optional, Tuple, Union

__all__ = [
    "scan",
    "literal_mask",
    "find_matching_paren",
    "enclosing_paren",
    "split_top_level",
    "find_top_level",
    "split_top_level_segments",
    "sub_outside_literals",
]

_CLOSERS = {"'": "'", '"': '"', '[': ']'}


def scan(text: str) -> Tuple[List[Optional[str]], List[int]]:
    """Return per-character ``(region kinds, paren depths)`` for *text*.

    Parentheses are reported at the depth *outside* of them, so an opening
    paren and its matching close paren share a depth value.
    """
    n = len(text)
    kinds: List[Optional[str]] = [None] * n
    depths: List[int] = [0] * n
    depth = 0
    i = 0
    while i < n:
        ch = text[i]
        if ch in _CLOSERS:
            close = _CLOSERS[ch]
            j = i + 1
            while j < n:
                if text[j] == close:
                    # '' and "" are escaped quotes, ]] has no special meaning
                    if close != ']' and j + 1 < n and text[j + 1] == close:
                        j += 2
                        continue
                    break
                j += 1
            end = min(j, n - 1)
            for k in range(i, end + 1):
                kinds[k] = ch
                depths[k] = depth
            i = end + 1
            continue
        if text.startswith('/*', i) or text.startswith('--', i):
            if ch == '/':
                j = text.find('*/', i + 2)
                end = n - 1 if j == -1 else j + 1
            else:
                j = text.find('\n', i)
                end = n - 1 if j == -1 else j - 1
            for k in range(i, end + 1):
                kinds[k] = '/'
                depths[k] = depth
            i = end + 1
            continue
        if ch == '(':
            depths[i] = depth
            depth += 1
        elif ch == ')':
            depth = max(depth - 1, 0)
            depths[i] = depth
        else:
            depths[i] = depth
        i += 1
    return kinds, depths


def literal_mask(text: str, brackets: bool = False) -> List[bool]:
    """True for every character inside a quoted region or comment.

    Bracketed identifiers are always scanned as opaque regions (so a quote
    inside ``[O'Brien]`` does not open a string) but are only masked when
    *brackets* is true.
    """
    kinds, _ = scan(text)
    masked = {"'", '"', '/'}
    if brackets:
        masked.add('[')
    return [kind in masked for kind in kinds]


def find_matching_paren(text: str, open_idx: int) -> int:
    """Index of the paren closing the one at *open_idx*, or -1."""
    if open_idx < 0 or open_idx >= len(text) or text[open_idx] != '(':
        return -1
    kinds, depths = scan(text)
    target = depths[open_idx]
    for i in range(open_idx + 1, len(text)):
        if kinds[i] is None and text[i] == ')' and depths[i] == target:
            return i
    return -1


def enclosing_paren(text: str, idx: int) -> int:
    """Index of the innermost unclosed paren containing position *idx*, or -1."""
    kinds, _ = scan(text)
    stack: List[int] = []
    for i in range(min(idx, len(text))):
        if kinds[i] is not None:
            continue
        if text[i] == '(':
            stack.append(i)
        elif text[i] == ')' and stack:
            stack.pop()
    return stack[-1] if stack else -1


def split_top_level(text: str, sep: str = ',') -> List[str]:
    """Split *text* on *sep* occurring outside parens and quoted regions."""
    kinds, depths = scan(text)
    items: List[str] = []
    start = 0
    for i, ch in enumerate(text):
        if ch == sep and kinds[i] is None and depths[i] == 0:
            items.append(text[start:i].strip())
            start = i + 1
    tail = text[start:].strip()
    if tail or items:
        items.append(tail)
    return items


def find_top_level(text: str, pattern: Union[str, re.Pattern], start: int = 0,
                   end: Optional[int] = None, flags: int = re.IGNORECASE) -> Optional[re.Match]:
    """First match of *pattern* that starts at paren depth 0 in plain text."""
    regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    kinds, depths = scan(text)
    stop = len(text) if end is None else end
    for match in regex.finditer(text, start, stop):
        pos = match.start()
        if pos < len(text) and kinds[pos] is None and depths[pos] == 0:
            return match
    return None


_UNION_RE = re.compile(r'\bUNION(?:\s+ALL)?\b', re.IGNORECASE)


def split_top_level_segments(text: str, pattern: Union[str, re.Pattern] = _UNION_RE) -> List[Tuple[int, int]]:
    """Spans of the parts of *text* separated by a top-level *pattern* (UNION by default)."""
    regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, re.IGNORECASE)
    kinds, depths = scan(text)
    spans: List[Tuple[int, int]] = []
    start = 0
    for match in regex.finditer(text):
        pos = match.start()
        if kinds[pos] is None and depths[pos] == 0:
            spans.append((start, pos))
            start = match.end()
    spans.append((start, len(text)))
    return spans


def sub_outside_literals(pattern: Union[str, re.Pattern], repl: Union[str, Callable[[re.Match], str]],
                         text: str, flags: int = 0, brackets: bool = False) -> str:
    """``re.sub`` that leaves matches starting inside a quoted region untouched."""
    regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    mask = literal_mask(text, brackets=brackets)

    def _replace(match: re.Match) -> str:
        if match.start() < len(mask) and mask[match.start()]:
            return match.group(0)
        if callable(repl):
            return repl(match)
        return match.expand(repl)

    return regex.sub(_replace, text)
