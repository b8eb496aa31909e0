"""
Java-properties reader for preference export (.epf) files.

Handles comment lines, the three key/value separators, backslash escapes
and continuation lines. Header metadata is read from "# @name value"
comments at any position in the file.
"""

import re
from typing import Dict, Iterable, Iterator, List, Tuple

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}
_METADATA = re.compile(r"^\s*[#!]\s*@(\w+)\s*(.*?)\s*$")
_WHITESPACE = " \t\f"


def _logical_lines(lines: Iterable[str]) -> Iterator[str]:
    """Join continuation lines; skip blanks and comments."""
    buffer = ""
    continuing = False
    for raw in lines:
        line = raw.rstrip("\r\n")
        if continuing:
            line = line.lstrip(_WHITESPACE)
        elif not line.strip(_WHITESPACE) or line.lstrip(_WHITESPACE)[0] in "#!":
            continue
        else:
            line = line.lstrip(_WHITESPACE)

        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            buffer += line[:-1]
            continuing = True
            continue

        yield buffer + line
        buffer = ""
        continuing = False

    if continuing:
        yield buffer


def unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    while i < len(text):
        c = text[i]
        if c != "\\" or i + 1 == len(text):
            out.append(c)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4 or not all(d in "0123456789abcdefABCDEF" for d in digits):
                raise ValueError(f"Malformed \\uxxxx escape in: {text!r}")
            out.append(chr(int(digits, 16)))
            i += 6
            continue
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def _split_entry(line: str) -> Tuple[str, str]:
    i = 0
    while i < len(line):
        c = line[i]
        if c == "\\":
            i += 2
            continue
        if c in "=:" or c in _WHITESPACE:
            break
        i += 1
    key = line[:i]

    rest = line[i:].lstrip(_WHITESPACE)
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(_WHITESPACE)
    return unescape(key), unescape(rest)


def parse_properties(lines: Iterable[str]) -> Dict[str, str]:
    """Parse properties into an ordered dict. Later duplicates win."""
    entries: Dict[str, str] = {}
    for line in _logical_lines(lines):
        key, value = _split_entry(line)
        entries[key] = value
    return entries


def parse_metadata(lines: Iterable[str]) -> Dict[str, str]:
    """Collect "# @name value" header comments, keyed by lowercase name."""
    metadata: Dict[str, str] = {}
    for raw in lines:
        match = _METADATA.match(raw)
        if match:
            metadata[match.group(1).lower()] = match.group(2)
    return metadata


def decode_lines(data: bytes) -> List[str]:
    """Decode file bytes. Exports are written as Latin-1 or UTF-8."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    return text.splitlines()
