"""Scoped acquisition: every acquired resource is released on every exit path.

Manifesto:
    File handles, locks, streams and decompressors leak when a code path
    forgets to release them: an early return, an exception halfway
    through a write, a second resource that failed to open after the
    first one succeeded.  Scoped acquisition makes release structural
    instead of a matter of discipline.

    - **Exactly once:** ``release`` runs once per successful ``acquire``,
      whatever the action does
    - **Reverse order:** nested resources (a compressor writing into a
      file) are released innermost first
    - **Flush before close:** buffered output is flushed explicitly on
      the success path, and a failed flush is *reported*, never dropped
      because the close that followed went fine

ARCHITECTURE
────────────
::

    scoped(acquire, release, action)      ─ one resource, functional form
    ResourceScope                         ─ ExitStack with release bookkeeping
      ├── .enter(cm, label)               ─ context manager resource
      └── .push_release(res, fn, label)   ─ resource with a release function
    flushing(stream)                      ─ flush-then-close, FlushError on failure
    open_compressed_writer(path, codec)   ─ raw file + compressor, nested

Example::

    with open_compressed_writer("out.gz", codec="gzip") as out:
        out.write(payload)
    # compressor flushed and closed, then the file flushed and closed

Tags:
    resguard, execution, resources, context-manager, cleanup

Doc-Types:
    api-reference
"""

from __future__ import annotations

import bz2
import gzip
import lzma
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, ExitStack, contextmanager
from pathlib import Path
from typing import IO, Any, TypeVar

from resguard.core.errors import FlushError, InvalidArgumentError, ReleaseError
from resguard.core.logging import get_logger

logger = get_logger(__name__)

R = TypeVar("R")
T = TypeVar("T")


def _note_release_failure(primary: BaseException, release_exc: BaseException, label: str) -> None:
    logger.warning("release_failed_during_error", resource=label, error=str(release_exc))
    primary.add_note(f"while handling this error, releasing {label!r} also failed: {release_exc!r}")


def scoped(
    acquire: Callable[[], R],
    release: Callable[[R], Any],
    action: Callable[[R], T],
    *,
    label: str = "resource",
) -> T:
    """Acquire a resource, run ``action`` on it, release it exactly once.

    If ``action`` raises, its exception propagates; a release failure in
    that case is attached to it as a note.  If ``action`` succeeds and the
    release fails, the release failure propagates (``ReleaseError`` for
    I/O errors).
    """
    resource = acquire()
    try:
        result = action(resource)
    except BaseException as exc:
        try:
            release(resource)
        except Exception as release_exc:
            _note_release_failure(exc, release_exc, label)
        raise

    try:
        release(resource)
    except OSError as exc:
        raise ReleaseError(f"Failed to release {label}", operation="release", cause=exc) from exc
    return result


class ResourceScope:
    """Stack of acquired resources released in reverse acquisition order.

    Built on :class:`contextlib.ExitStack`: if one release fails the
    remaining releases still run and the failure propagates afterwards.
    ``released`` records labels in the order the releases completed.

    Example:
        >>> with ResourceScope("copy") as scope:
        ...     src = scope.enter(open("a.bin", "rb"), label="src")
        ...     dst = scope.enter(open("b.bin", "wb"), label="dst")
        ...     dst.write(src.read())
        >>> scope.released
        ['dst', 'src']
    """

    def __init__(self, name: str = "scope"):
        self.name = name
        self.acquired: list[str] = []
        self.released: list[str] = []
        self._stack = ExitStack()

    def __enter__(self) -> ResourceScope:
        self._stack.__enter__()
        return self

    def __exit__(self, *exc_info) -> bool:
        return self._stack.__exit__(*exc_info)

    def _record_release(self, label: str) -> None:
        self.released.append(label)
        logger.debug("resource_released", scope=self.name, resource=label)

    def enter(self, cm: AbstractContextManager[T], label: str | None = None) -> T:
        """Enter ``cm`` and schedule its exit for scope teardown."""
        label = label or type(cm).__name__
        cm_type = type(cm)
        resource = cm_type.__enter__(cm)
        exit_fn = cm_type.__exit__

        def _exit(exc_type, exc, tb):
            try:
                return exit_fn(cm, exc_type, exc, tb)
            finally:
                self._record_release(label)

        self._stack.push(_exit)
        self.acquired.append(label)
        return resource

    def push_release(self, resource: R, release: Callable[[R], Any], label: str | None = None) -> R:
        """Register an already-acquired resource with its release function."""
        label = label or type(resource).__name__

        def _release() -> None:
            try:
                release(resource)
            finally:
                self._record_release(label)

        self._stack.callback(_release)
        self.acquired.append(label)
        return resource

    def close(self) -> None:
        """Release everything now."""
        self._stack.close()


def _close_after_failure(stream: IO[Any], primary: BaseException, label: str) -> None:
    try:
        stream.close()
    except Exception as close_exc:
        _note_release_failure(primary, close_exc, label)


@contextmanager
def flushing(stream: IO[Any], label: str = "stream") -> Iterator[IO[Any]]:
    """Yield ``stream``; flush it on success, then close it in all cases.

    Raises:
        FlushError: the success-path flush failed (the stream is still closed)
        ReleaseError: the flush succeeded but closing failed
    """
    try:
        yield stream
    except BaseException as exc:
        _close_after_failure(stream, exc, label)
        raise

    try:
        stream.flush()
    except OSError as exc:
        logger.error("flush_failed", resource=label, error=str(exc))
        _close_after_failure(stream, exc, label)
        raise FlushError(f"Failed to flush {label}", operation="flush", cause=exc) from exc

    try:
        stream.close()
    except OSError as exc:
        raise ReleaseError(f"Failed to close {label}", operation="close", cause=exc) from exc


_COMPRESSORS: dict[str, Callable[[IO[bytes]], IO[bytes]]] = {
    "gzip": lambda raw: gzip.GzipFile(fileobj=raw, mode="wb"),
    "bz2": lambda raw: bz2.BZ2File(raw, mode="wb"),
    "xz": lambda raw: lzma.LZMAFile(raw, mode="wb"),
}


@contextmanager
def open_compressed_writer(path: str | Path, codec: str = "gzip") -> Iterator[IO[bytes]]:
    """Open ``path`` for writing through a compressor.

    The compressor wraps the raw file; on exit the compressor is flushed
    and closed first, then the raw file.
    """
    if codec not in _COMPRESSORS:
        raise InvalidArgumentError(f"Unknown codec {codec!r}; expected one of {sorted(_COMPRESSORS)}")

    with ResourceScope(f"write:{path}") as scope:
        raw = scope.enter(flushing(open(path, "wb"), label="file"), label="file")
        compressed = scope.enter(flushing(_COMPRESSORS[codec](raw), label=codec), label=codec)
        yield compressed


__all__ = ["scoped", "ResourceScope", "flushing", "open_compressed_writer"]
