"""
Compile end-of-line patterns into the byte sequence written for each line break.

A pattern is any mix of literal characters and C-style escapes:

    c      the character 'c'
    \\a     alert (bell)
    \\b     backspace
    \\f     formfeed
    \\n     newline (line feed)
    \\r     carriage return
    \\t     horizontal tab
    \\v     vertical tab
    \\0     zero byte
    \\xhh   hexadecimal byte (one or two digits)
    \\\\     back-slash
"""

import os
from typing import Iterable, Iterator, NamedTuple, Union

BACKSLASH: int = ord("\\")

# Escape letter (lower case) -> byte value
NAMED_ESCAPES = {
    ord("a"): 0x07,
    ord("b"): 0x08,
    ord("f"): 0x0C,
    ord("n"): 0x0A,
    ord("r"): 0x0D,
    ord("t"): 0x09,
    ord("v"): 0x0B,
    BACKSLASH: BACKSLASH,
}

HEX_DIGITS: bytes = b"0123456789abcdefABCDEF"


class PatternError(ValueError):
    """Raised when an EOL pattern contains an invalid escape sequence."""

    def __init__(self, message: str, fragment: str = "") -> None:
        super().__init__(message)
        self.fragment = fragment


class EmptyPatternError(PatternError):
    """Raised when a pattern compiles to no bytes at all."""

    def __init__(self) -> None:
        super().__init__("No EOL sequence specified.")


class EscapeToken(NamedTuple):
    """One parsed unit of a pattern; always resolves to a single byte."""

    kind: str  # "literal", "named", "nul" or "hex"
    source: bytes
    value: int


def _as_bytes(pattern: Union[str, bytes]) -> bytes:
    # Command-line arguments arrive decoded; fsencode gives back the raw bytes.
    if isinstance(pattern, str):
        return os.fsencode(pattern)
    return bytes(pattern)


def _char_end(data: bytes, pos: int) -> int:
    """Index just past the UTF-8 character starting at pos."""
    if pos >= len(data):
        return pos
    lead: int = data[pos]
    if 0xC0 <= lead < 0xE0:
        width = 2
    elif 0xE0 <= lead < 0xF0:
        width = 3
    elif 0xF0 <= lead < 0xF8:
        width = 4
    else:
        width = 1
    return min(pos + width, len(data))


def _describe(fragment: bytes) -> str:
    # Bytes that are not valid UTF-8 show up as \xhh instead of surrogates
    return fragment.decode("utf-8", errors="backslashreplace")


def join_pattern(parts: Iterable[str]) -> str:
    """Concatenate pattern arguments in the order given."""
    return "".join(parts)


def tokenize_pattern(pattern: Union[str, bytes]) -> Iterator[EscapeToken]:
    """
    Yield the escape tokens of a pattern from left to right.

    Raises PatternError on the first malformed escape. Tokens before the
    error have already been yielded by then.
    """
    data: bytes = _as_bytes(pattern)
    length: int = len(data)
    pos: int = 0

    while pos < length:
        current: int = data[pos]

        if current != BACKSLASH:
            yield EscapeToken("literal", data[pos : pos + 1], current)
            pos += 1
            continue

        if pos + 1 >= length:
            raise PatternError("Unrecognized escape (\\).", "\\")

        letter: int = data[pos + 1]

        if letter == ord("0"):
            yield EscapeToken("nul", data[pos : pos + 2], 0)
            pos += 2

        elif letter in (ord("x"), ord("X")):
            start: int = pos
            pos += 2
            digits: bytes = data[pos : pos + 2]
            # Keep only the leading run of hex digits (at most two)
            if digits[:1] and digits[0] in HEX_DIGITS:
                if len(digits) == 2 and digits[1] not in HEX_DIGITS:
                    digits = digits[:1]
            else:
                fragment = _describe(data[start : _char_end(data, pos)])
                raise PatternError(
                    f"Invalid hex digit ({fragment}).", fragment
                )
            pos += len(digits)
            yield EscapeToken("hex", data[start:pos], int(digits, 16))

        else:
            value = NAMED_ESCAPES.get(ord(chr(letter).lower()))
            if value is None:
                fragment = _describe(data[pos : _char_end(data, pos + 1)])
                raise PatternError(
                    f"Unrecognized escape ({fragment}).", fragment
                )
            yield EscapeToken("named", data[pos : pos + 2], value)
            pos += 2


def compile_terminator(pattern: Union[str, bytes]) -> bytes:
    """Compile a pattern into the output terminator bytes."""
    terminator: bytes = bytes(token.value for token in tokenize_pattern(pattern))
    if not terminator:
        raise EmptyPatternError()
    return terminator
