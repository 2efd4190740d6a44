"""Classify an unlabelled byte stream from its first bytes.

Producers that do not know what they are uploading (stdin, a file without a
usable suffix) peek at a bounded prefix, pick an extension for it and then
forward the complete stream. The prefix is the only part ever held in memory.
"""

import codecs
import itertools
import logging
from typing import BinaryIO, Iterator, Tuple

import filetype

PREFIX_BUDGET_BYTES = 1024 * 1024  # 1 MiB
READ_CHUNK_BYTES = 64 * 1024
TEXT_EXT = "txt"
UNKNOWN_EXT = "bin"

logger = logging.getLogger("filerelay.sniffing")


def _is_utf8(data: bytes, final: bool) -> bool:
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(data, final=final)
    except UnicodeDecodeError:
        return False
    return True


def guess_ext_from_bytes(data: bytes, final: bool = True) -> str:
    """Return the canonical extension for ``data``.

    Known binary signatures win, then UTF-8 text, then the generic binary
    extension. With ``final=False`` the data is treated as a truncated prefix,
    so a multi-byte character cut at the end does not rule out text.
    """

    kind = filetype.guess(data) if data else None
    if kind is not None:
        return kind.extension
    if _is_utf8(data, final):
        return TEXT_EXT
    return UNKNOWN_EXT


def peek(stream: BinaryIO, budget: int = PREFIX_BUDGET_BYTES) -> Tuple[bytes, bool]:
    """Read up to ``budget`` bytes. Returns the prefix and whether EOF was hit."""

    if budget < 1:
        raise ValueError("budget must be at least one byte")

    buffer = bytearray()
    while len(buffer) < budget:
        chunk = stream.read(min(READ_CHUNK_BYTES, budget - len(buffer)))
        if not chunk:
            return bytes(buffer), True
        buffer += chunk
    return bytes(buffer), False


def _remainder(stream: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    yield from iter(lambda: stream.read(chunk_size), b"")


def classify_and_rewrap(
    stream: BinaryIO,
    budget: int = PREFIX_BUDGET_BYTES,
    chunk_size: int = READ_CHUNK_BYTES,
) -> Tuple[str, Iterator[bytes]]:
    """Classify ``stream`` and return an iterator reproducing all of its bytes.

    The iterator yields the peeked prefix first and, only when the prefix did
    not reach end-of-stream, lazily continues with the rest of ``stream``.
    """

    prefix, exhausted = peek(stream, budget)
    ext = guess_ext_from_bytes(prefix, final=exhausted)
    logger.debug(
        "stream_classified ext=%s prefix_bytes=%d exhausted=%s",
        ext,
        len(prefix),
        exhausted,
    )

    head: Tuple[bytes, ...] = (prefix,) if prefix else ()
    if exhausted:
        return ext, iter(head)
    return ext, itertools.chain(head, _remainder(stream, chunk_size))
