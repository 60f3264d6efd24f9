from __future__ import annotations

from typing import Callable

from .facets import ByteSpan, ScannedSpan

# Each matcher works on the decoded text and maps character positions to UTF-8
# byte offsets through a table built once per call. Everything the link and
# mention grammars accept is ASCII, so any non-ASCII character is a non-word
# character for boundary purposes.

_ASCII_ALNUM = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789")
_ASCII_LETTERS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
_ASCII_WORD = _ASCII_ALNUM | {"_"}

_LINK_DOMAIN_CHARS = _ASCII_ALNUM | frozenset("-@:%._+~#=")
_LINK_TLD_CHARS = _ASCII_ALNUM | frozenset("()")
_LINK_PATH_CHARS = _ASCII_ALNUM | frozenset("-()@:%_+.~#?&/=")
_LINK_PATH_END_CHARS = _ASCII_ALNUM | frozenset("-@%_+~#/=")
_LINK_SCHEMES = ("https://", "http://")
_LINK_MAX_DOMAIN = 256
_LINK_MAX_TLD = 6

_HANDLE_LABEL_CHARS = _ASCII_ALNUM | {"-"}
_HANDLE_MAX_LABEL = 63

_Matcher = Callable[[str, int], "int | None"]


def utf8_offsets(text: str) -> list[int]:
    """
    Byte offset of every character position in text, plus the total length.

    offsets[i] is where character i starts in text.encode("utf-8").
    """
    offsets = [0] * (len(text) + 1)
    total = 0
    for i, ch in enumerate(text):
        offsets[i] = total
        total += len(ch.encode("utf-8"))
    offsets[len(text)] = total
    return offsets


def _is_word(ch: str) -> bool:
    return ch in _ASCII_WORD


def _at_word_boundary(text: str, pos: int) -> bool:
    before = pos > 0 and _is_word(text[pos - 1])
    after = pos < len(text) and _is_word(text[pos])
    return before != after


def _run_end(text: str, pos: int, allowed: frozenset[str], limit: int | None = None) -> int:
    end = pos
    stop = len(text) if limit is None else min(len(text), pos + limit)
    while end < stop and text[end] in allowed:
        end += 1
    return end


def _match_link(text: str, pos: int) -> int | None:
    rest = pos
    for scheme in _LINK_SCHEMES:
        if text.startswith(scheme, pos):
            rest = pos + len(scheme)
            break
    else:
        return None

    # The domain body may itself contain dots; back off from the longest run
    # until a "." plus 1-6 label characters ends on a word boundary.
    domain_end = _run_end(text, rest, _LINK_DOMAIN_CHARS, _LINK_MAX_DOMAIN)
    for dot in range(domain_end, rest, -1):
        if dot >= len(text) or text[dot] != ".":
            continue
        tld_end = _run_end(text, dot + 1, _LINK_TLD_CHARS, _LINK_MAX_TLD)
        for end in range(tld_end, dot + 1, -1):
            if _at_word_boundary(text, end):
                return _extend_link_path(text, end)
    return None


def _extend_link_path(text: str, pos: int) -> int:
    run_end = _run_end(text, pos, _LINK_PATH_CHARS)
    for end in range(run_end, pos, -1):
        if text[end - 1] in _LINK_PATH_END_CHARS:
            return end
    return pos


def _dotted_label_end(text: str, pos: int) -> int | None:
    """End of "label." starting at pos (excluding the dot), or None."""
    if pos >= len(text) or text[pos] not in _ASCII_ALNUM:
        return None
    end = _run_end(text, pos, _HANDLE_LABEL_CHARS)
    if end - pos > _HANDLE_MAX_LABEL:
        return None
    if text[end - 1] == "-":
        return None
    if end >= len(text) or text[end] != ".":
        return None
    return end


def _final_label_end(text: str, pos: int) -> int | None:
    if pos >= len(text) or text[pos] not in _ASCII_LETTERS:
        return None
    end = _run_end(text, pos, _HANDLE_LABEL_CHARS, _HANDLE_MAX_LABEL)
    while text[end - 1] == "-":
        end -= 1
    return end


def _match_mention(text: str, pos: int) -> int | None:
    if not text.startswith("@", pos):
        return None

    # Label starts after each "label." in the greedy chain; the final label is
    # tried after the longest chain first, then after each shorter one.
    starts: list[int] = []
    cursor = pos + 1
    while True:
        end = _dotted_label_end(text, cursor)
        if end is None:
            break
        cursor = end + 1
        starts.append(cursor)

    for start in reversed(starts):
        end = _final_label_end(text, start)
        if end is not None:
            return end
    return None


def _scan_bounded(text: str, match: _Matcher, skip: int) -> list[ScannedSpan]:
    """
    Find non-overlapping matches that start the text or follow a non-word character.

    The boundary character belongs to the match for overlap purposes but is not
    reported; skip drops that many leading characters from the captured text.
    """
    offsets = utf8_offsets(text)
    out: list[ScannedSpan] = []
    consumed = 0
    pos = 0
    while pos < len(text):
        if pos == 0 or (pos - 1 >= consumed and not _is_word(text[pos - 1])):
            end = match(text, pos)
            if end is not None:
                out.append(
                    ScannedSpan(
                        span=ByteSpan(offsets[pos], offsets[end]),
                        text=text[pos + skip : end],
                    )
                )
                consumed = end
                pos = end
                continue
        pos += 1
    return out


def scan_links(text: str) -> list[ScannedSpan]:
    """Links beginning with http:// or https://, in text order."""
    return _scan_bounded(text, _match_link, skip=0)


def scan_mentions(text: str) -> list[ScannedSpan]:
    """
    Handle mentions such as "@alice.example", in text order.

    The span covers the "@" sign; the captured text is the bare handle.
    """
    return _scan_bounded(text, _match_mention, skip=1)


def scan_tags(text: str) -> list[ScannedSpan]:
    """Hashtags; both span and captured text exclude the "#"."""
    offsets = utf8_offsets(text)
    out: list[ScannedSpan] = []
    pos = 0
    while pos < len(text):
        if text[pos] != "#":
            pos += 1
            continue
        start = pos + 1
        end = start
        while end < len(text) and (text[end].isalnum() or text[end] == "_"):
            end += 1
        if end > start:
            out.append(ScannedSpan(span=ByteSpan(offsets[start], offsets[end]), text=text[start:end]))
        pos = max(end, start)
    return out
