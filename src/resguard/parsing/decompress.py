"""
Bounded decompression for untrusted compressed streams.

A few kilobytes of deflate can expand to gigabytes.  Checking the size
*after* decompressing is too late: the memory is already gone.  The
decompressor here asks the codec for at most ``remaining + 1`` bytes per
step, so output beyond the cap is never materialized, and it charges
every produced byte against the cap with an admission check.

Manifesto:
    - **Cap output, not input:** input size says nothing about output size
    - **Cap the ratio too:** a 1 GiB cap still lets a 10 KiB upload cost
      a gigabyte; ``max_ratio`` rejects that shape early
    - **Incremental:** ``feed()`` works on chunks so callers can stream

Architecture:
    ::

        BoundedDecompressor(codec, max_output, max_ratio)
          ├── feed(chunk) → bytes     ─ ExpansionLimitError past a limit
          ├── finish() → bytes        ─ InvalidArgumentError if truncated
          ├── input_bytes / output_bytes
          └── codecs: zlib, deflate, gzip, bz2, xz

        decompress_bytes(data, codec=None, ...)   ─ one-shot, codec sniffed
        iter_decompress(stream, codec, ...)       ─ streaming generator
        sniff_codec(data)                         ─ magic-number detection

Examples:
    >>> import gzip
    >>> decompress_bytes(gzip.compress(b"hello"), "gzip")
    b'hello'

    >>> decompress_bytes(gzip.compress(b"\\0" * 10_000_000), max_output=1024)
    Traceback (most recent call last):
    ...
    resguard.core.errors.ExpansionLimitError: ...

Guardrails:
    ❌ DON'T: ``zlib.decompress(untrusted)`` without a max_length
    ✅ DO: Stream through ``BoundedDecompressor`` with a cap from settings

Tags:
    decompression-bomb, zlib, gzip, bz2, lzma, amplification, resguard

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import bz2
import lzma
import zlib
from collections.abc import Callable, Iterator
from typing import IO, Any

from resguard.core.errors import ExpansionLimitError, InvalidArgumentError, LimitExceededError
from resguard.core.limits import check_admission
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
# Small inputs legitimately compress very well; the ratio is only
# enforced once this much output has been produced.
RATIO_FLOOR_BYTES = 64 * 1024

_FACTORIES: dict[str, Callable[[], Any]] = {
    "zlib": lambda: zlib.decompressobj(zlib.MAX_WBITS),
    "deflate": lambda: zlib.decompressobj(-zlib.MAX_WBITS),
    "gzip": lambda: zlib.decompressobj(16 + zlib.MAX_WBITS),
    "bz2": bz2.BZ2Decompressor,
    "xz": lambda: lzma.LZMADecompressor(),
}

CODECS = tuple(_FACTORIES)


def sniff_codec(data: bytes) -> str | None:
    """Guess the codec from the first bytes of a stream."""
    if data[:2] == b"\x1f\x8b":
        return "gzip"
    if data[:3] == b"BZh":
        return "bz2"
    if data[:6] == b"\xfd7zXZ\x00":
        return "xz"
    if len(data) >= 2 and data[0] == 0x78 and (data[0] * 256 + data[1]) % 31 == 0:
        return "zlib"
    return None


class BoundedDecompressor:
    """Incremental decompressor with output and ratio caps.

    Multi-member streams (concatenated gzip/bz2/xz members) are decoded
    member by member, all charged against the same caps.
    """

    def __init__(
        self,
        codec: str,
        *,
        max_output: int | None = None,
        max_ratio: int | None = None,
        ratio_floor: int = RATIO_FLOOR_BYTES,
    ):
        if codec not in _FACTORIES:
            raise InvalidArgumentError(f"Unknown codec {codec!r}; expected one of {list(CODECS)}")
        settings = get_settings()
        self.codec = codec
        self.max_output = max_output if max_output is not None else settings.max_decompressed_bytes
        self.max_ratio = max_ratio if max_ratio is not None else settings.max_compression_ratio
        self.ratio_floor = ratio_floor
        self.input_bytes = 0
        self.output_bytes = 0
        self._decoder = _FACTORIES[codec]()

    @property
    def eof(self) -> bool:
        return self._decoder.eof

    def _is_zlib(self) -> bool:
        return self.codec in ("zlib", "deflate", "gzip")

    def _has_pending_output(self) -> bool:
        if self._is_zlib():
            return bool(self._decoder.unconsumed_tail)
        return not self._decoder.eof and not self._decoder.needs_input

    def _pending_input(self) -> bytes:
        return self._decoder.unconsumed_tail if self._is_zlib() else b""

    def _account(self, produced: int) -> None:
        try:
            self.output_bytes = check_admission(
                self.output_bytes, self.max_output, produced, operation=f"decompress:{self.codec}"
            )
        except LimitExceededError as exc:
            raise ExpansionLimitError(
                f"Decompressed output exceeds {self.max_output} bytes",
                operation=f"decompress:{self.codec}",
                limit=self.max_output,
                observed=self.output_bytes + produced,
                cause=exc,
            ) from exc

        if self.output_bytes > self.ratio_floor and self.output_bytes > self.max_ratio * max(self.input_bytes, 1):
            logger.warning(
                "compression_ratio_exceeded",
                codec=self.codec,
                input_bytes=self.input_bytes,
                output_bytes=self.output_bytes,
                limit=self.max_ratio,
            )
            raise ExpansionLimitError(
                f"Compression ratio exceeds {self.max_ratio}:1",
                operation=f"decompress:{self.codec}",
                limit=self.max_ratio,
                observed=self.output_bytes // max(self.input_bytes, 1),
            )

    def feed(self, chunk: bytes) -> bytes:
        """Decompress ``chunk`` and return whatever output it produced."""
        self.input_bytes += len(chunk)
        pieces: list[bytes] = []
        data = chunk

        while True:
            if self._decoder.eof:
                trailing = self._decoder.unused_data + data
                if self.codec == "gzip":
                    # Zero padding after the last member, as gzip.decompress allows
                    trailing = trailing.lstrip(b"\x00")
                if not trailing:
                    break
                self._decoder = _FACTORIES[self.codec]()
                data = trailing

            # Ask for one byte past the cap so an overrun is detectable
            budget = self.max_output - self.output_bytes + 1
            try:
                piece = self._decoder.decompress(data, budget)
            except (zlib.error, lzma.LZMAError, OSError, EOFError) as exc:
                raise InvalidArgumentError(
                    f"Corrupt {self.codec} stream: {exc}",
                    operation=f"decompress:{self.codec}",
                    cause=exc,
                ) from exc
            self._account(len(piece))
            pieces.append(piece)

            if self._has_pending_output():
                data = self._pending_input()
                continue
            if self._decoder.eof and self._decoder.unused_data:
                data = b""
                continue
            break

        return b"".join(pieces)

    def finish(self) -> bytes:
        """Flush the decoder; the stream must be complete."""
        tail = b""
        if self._is_zlib():
            tail = self._decoder.flush()
            self._account(len(tail))
        if not self._decoder.eof:
            raise InvalidArgumentError(
                f"Truncated {self.codec} stream after {self.input_bytes} input bytes",
                operation=f"decompress:{self.codec}",
                observed=self.input_bytes,
            )
        return tail


def decompress_bytes(
    data: bytes,
    codec: str | None = None,
    *,
    max_output: int | None = None,
    max_ratio: int | None = None,
) -> bytes:
    """Decompress a complete in-memory payload under output and ratio caps."""
    codec = codec or sniff_codec(data)
    if codec is None:
        raise InvalidArgumentError("Could not detect compression codec", operation="decompress")
    decoder = BoundedDecompressor(codec, max_output=max_output, max_ratio=max_ratio)
    body = decoder.feed(data)
    return body + decoder.finish()


def iter_decompress(
    stream: IO[bytes],
    codec: str,
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_output: int | None = None,
    max_ratio: int | None = None,
) -> Iterator[bytes]:
    """Yield decompressed chunks read from ``stream``."""
    decoder = BoundedDecompressor(codec, max_output=max_output, max_ratio=max_ratio)
    while chunk := stream.read(chunk_size):
        out = decoder.feed(chunk)
        if out:
            yield out
    tail = decoder.finish()
    if tail:
        yield tail
    logger.debug(
        "decompressed",
        codec=codec,
        input_bytes=decoder.input_bytes,
        output_bytes=decoder.output_bytes,
    )


__all__ = [
    "CODECS",
    "BoundedDecompressor",
    "decompress_bytes",
    "iter_decompress",
    "sniff_codec",
]
