#!/usr/bin/env python3
"""
EOLFilter

Read bytes from standard input and write them to standard output with every
line break (CR, LF, CRLF, LFCR or NUL) replaced by a user-specified sequence.
"""

import argparse
import enum
import logging
import os
import re
import stat
import sys
import time
from typing import BinaryIO, List, Optional

from tqdm import tqdm

from terminator import (
    EmptyPatternError,
    PatternError,
    compile_terminator,
    join_pattern,
)

# Define version
__version__ = "1.0.0"
__author__ = "tboy1337"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("EOLFilter")

CHUNK_SIZE: int = 8192

NUL: int = 0x00
CR: int = 0x0D
LF: int = 0x0A

_EOL_BYTE = re.compile(rb"[\x00\r\n]")

HELP_ALIASES = {"-h", "-?", "--help", "-help", "/h", "/?", "/help"}
VERSION_ALIASES = {"--version", "/version"}

ESCAPE_HELP = r"""
The EOL sequence may be any combination of the following:

    c      the character 'c'
    \a     alert (or bell)
    \b     backspace
    \f     formfeed
    \n     newline (or line feed)
    \r     carriage return
    \t     horizontal tab
    \v     vertical tab
    \0     zero byte
    \xhh   hexadecimal number
    \\     back-slash

Several arguments are joined into one sequence.

examples:
    eol '\n'          Unix line endings
    eol '\r\n'        DOS/Windows line endings
    eol '\n\0'        NUL after every line, for reading into C strings
    eol '\r\n\r\n'    double-space a DOS file
"""


class Pending(enum.Enum):
    """Line-break byte seen but not yet written out."""

    NONE = 0
    CR = 0x0D
    LF = 0x0A


class StreamError(Exception):
    """Raised when the input cannot be read or the output cannot be written."""


class StreamNormalizer:
    """
    Rewrites line breaks in a byte stream fed to it in chunks.

    CRLF and LFCR pairs collapse into one terminator, a run of identical
    CR or LF bytes gives one terminator per byte, and every NUL is a
    terminator of its own. All other bytes are copied unchanged.
    """

    def __init__(self, terminator: bytes, output: BinaryIO) -> None:
        if not terminator:
            raise EmptyPatternError()
        self.terminator: bytes = bytes(terminator)
        self.output: BinaryIO = output
        self.pending: Pending = Pending.NONE
        self.terminators_written: int = 0
        self.bytes_read: int = 0

    def _write(self, data: bytes) -> None:
        try:
            self.output.write(data)
        except OSError as e:
            raise StreamError(f"Write failed to output stream: {e}") from e

    def _write_eol(self) -> None:
        self._write(self.terminator)
        try:
            self.output.flush()
        except OSError as e:
            raise StreamError(f"Write failed to output stream: {e}") from e
        self.terminators_written += 1

    def _flush_pending(self) -> None:
        if self.pending is not Pending.NONE:
            self._write_eol()
            self.pending = Pending.NONE

    def _line_break(self, byte: int) -> None:
        if byte == NUL:
            self._flush_pending()
            self._write_eol()
            return

        seen = Pending(byte)
        if self.pending is Pending.NONE:
            self.pending = seen
        elif self.pending is seen:
            # Repeat of the held byte: emit for the held one, keep holding
            self._write_eol()
        else:
            # CRLF or LFCR pair
            self._write_eol()
            self.pending = Pending.NONE

    def feed(self, data: bytes) -> None:
        """Process the next chunk of input."""
        self.bytes_read += len(data)
        pos: int = 0
        for match in _EOL_BYTE.finditer(data):
            start: int = match.start()
            if start > pos:
                self._flush_pending()
                self._write(data[pos:start])
            self._line_break(data[start])
            pos = start + 1

        if pos < len(data):
            self._flush_pending()
            self._write(data[pos:])

    def finish(self) -> None:
        """Signal end of input; writes the terminator still held, if any."""
        self._flush_pending()
        try:
            self.output.flush()
        except OSError as e:
            raise StreamError(f"Write failed to output stream: {e}") from e


def _stream_size(stream: BinaryIO) -> Optional[int]:
    # Only regular files have a meaningful size for the progress bar
    try:
        info = os.fstat(stream.fileno())
    except (AttributeError, OSError, ValueError):
        return None
    if stat.S_ISREG(info.st_mode):
        return info.st_size
    return None


def _read_chunk(stream: BinaryIO) -> bytes:
    try:
        read1 = getattr(stream, "read1", None)
        if read1 is not None:
            return read1(CHUNK_SIZE)
        return stream.read(CHUNK_SIZE)
    except OSError as e:
        raise StreamError(f"Read error from stdin: {e}") from e


def normalize_stream(
    terminator: bytes,
    input_stream: BinaryIO,
    output_stream: BinaryIO,
    progress: bool = False,
) -> int:
    """Copy input to output rewriting line breaks; return terminators written."""
    normalizer = StreamNormalizer(terminator, output_stream)

    with tqdm(
        total=_stream_size(input_stream),
        desc="Normalizing",
        unit="B",
        unit_scale=True,
        file=sys.stderr,
        disable=not progress,
    ) as pbar:
        while True:
            chunk: bytes = _read_chunk(input_stream)
            if not chunk:
                break
            normalizer.feed(chunk)
            pbar.update(len(chunk))

    normalizer.finish()

    logger.debug(
        "Read %d bytes, wrote %d terminators",
        normalizer.bytes_read,
        normalizer.terminators_written,
    )
    return normalizer.terminators_written


def setup_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """Attach stderr (and optionally file) handlers to the EOLFilter logger."""
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser(version: str) -> argparse.ArgumentParser:
    """Create the command-line parser."""
    parser = _ArgumentParser(
        prog="eol",
        description="Convert standard input to the specified end-of-line style "
        "and write it to standard output",
        epilog=ESCAPE_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "pattern",
        nargs="*",
        help="EOL sequence to write for each line break (e.g. '\\r\\n')",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Show a progress bar on standard error",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Also append log messages to this file",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"EOLFilter v{version}",
        help="Show program version and exit",
    )
    return parser


def canonical_args(argv: List[str]) -> List[str]:
    """Map DOS-style and mixed-case help/version flags onto argparse's spelling."""
    args: List[str] = []
    for position, arg in enumerate(argv):
        if arg == "--":
            args.extend(argv[position:])
            break
        folded = arg.lower()
        if folded in HELP_ALIASES:
            args.append("--help")
        elif folded in VERSION_ALIASES:
            args.append("--version")
        else:
            args.append(arg)
    return args


def parse_command_line(
    parser: argparse.ArgumentParser, argv: List[str]
) -> argparse.Namespace:
    """
    Parse arguments, gathering every pattern piece wherever flags appear.

    argparse stops filling the pattern at the first flag; pieces after it
    come back as leftovers and are appended in order.
    """
    args, leftovers = parser.parse_known_args(canonical_args(argv))
    unknown = [arg for arg in leftovers if arg.startswith("-") and arg != "-"]
    if unknown:
        parser.error(f"unrecognized arguments: {' '.join(unknown)}")
    args.pattern = list(args.pattern or []) + leftovers
    return args


def main(argv: Optional[List[str]] = None) -> int:
    try:
        version: str = getattr(sys.modules[__name__], "__version__", "1.0.0")

        parser = build_parser(version)
        args = parse_command_line(
            parser, sys.argv[1:] if argv is None else list(argv)
        )

        setup_logging(args.verbose, args.log_file)
        logger.debug("EOLFilter v%s - End-Of-Line Converter", version)

        if not args.pattern:
            logger.error("No EOL sequence specified. Use --help for usage.")
            return 1

        try:
            terminator: bytes = compile_terminator(join_pattern(args.pattern))
        except EmptyPatternError as e:
            logger.error("%s Use --help for usage.", e)
            return 1
        except PatternError as e:
            logger.error("%s", e)
            parser.print_usage(sys.stderr)
            return 1

        logger.debug("Output terminator: %r", terminator)

        start_time: float = time.time()
        count: int = normalize_stream(
            terminator, sys.stdin.buffer, sys.stdout.buffer, progress=args.progress
        )
        logger.debug(
            "Done! Wrote %d line terminators in %.2f seconds.",
            count,
            time.time() - start_time,
        )
        return 0
    except StreamError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.warning("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.level <= logging.DEBUG:
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
