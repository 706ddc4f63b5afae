"""Zip archive inspection with entry-count, size, ratio and path checks.

Archives multiply the decompression-bomb problem: thousands of small
members, members that each decompress 1000:1, or a central directory
that declares sizes adding up past any sane total.  ``inspect_zip`` reads
only the central directory and rejects those shapes before a single
member is decompressed; ``extract_member`` then reads a member with a
hard output cap in case the declared sizes lie.

Example::

    report = inspect_zip("upload.zip", max_total_bytes=512 * MIB)
    with zipfile.ZipFile("upload.zip") as zf:
        for entry in report.entries:
            data = extract_member(zf, entry.name)
"""

from __future__ import annotations

import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import IO

from resguard.core.errors import ExpansionLimitError, InvalidArgumentError, LimitExceededError
from resguard.core.limits import check_admission
from resguard.core.logging import get_logger
from resguard.core.settings import get_settings
from resguard.parsing.decompress import RATIO_FLOOR_BYTES

logger = get_logger(__name__)


@dataclass(frozen=True)
class ArchiveEntry:
    name: str
    compressed_size: int
    file_size: int

    @property
    def ratio(self) -> float:
        return self.file_size / max(self.compressed_size, 1)


@dataclass
class ArchiveReport:
    source: str
    entries: list[ArchiveEntry] = field(default_factory=list)
    total_compressed: int = 0
    total_uncompressed: int = 0

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "entry_count": self.entry_count,
            "total_compressed": self.total_compressed,
            "total_uncompressed": self.total_uncompressed,
        }


def check_member_name(name: str) -> None:
    """Reject member names that would escape the extraction directory."""
    normalized = name.replace("\\", "/")
    path = PurePosixPath(normalized)
    if (
        not normalized
        or normalized.startswith("/")
        or ".." in path.parts
        or (len(normalized) > 1 and normalized[1] == ":")
    ):
        raise InvalidArgumentError(f"Unsafe archive member name {name!r}", operation="inspect_zip")


def inspect_zip(
    source: str | Path | IO[bytes],
    *,
    max_entries: int | None = None,
    max_total_bytes: int | None = None,
    max_ratio: int | None = None,
) -> ArchiveReport:
    """Validate a zip archive's central directory.

    Raises:
        LimitExceededError: too many members
        ExpansionLimitError: declared total or a member's ratio is too large
        InvalidArgumentError: unsafe member name or not a zip file
    """
    settings = get_settings()
    max_entries = max_entries if max_entries is not None else settings.max_archive_entries
    max_total_bytes = max_total_bytes if max_total_bytes is not None else settings.max_decompressed_bytes
    max_ratio = max_ratio if max_ratio is not None else settings.max_compression_ratio

    label = str(source) if isinstance(source, (str, Path)) else getattr(source, "name", "<stream>")
    try:
        zf = zipfile.ZipFile(source)
    except zipfile.BadZipFile as exc:
        raise InvalidArgumentError(f"Not a zip archive: {label}", operation="inspect_zip", cause=exc) from exc

    with zf:
        infos = zf.infolist()
        if len(infos) > max_entries:
            logger.warning("archive_rejected", source=label, reason="entries", observed=len(infos), limit=max_entries)
            raise LimitExceededError(
                f"Archive has {len(infos)} members, limit is {max_entries}",
                operation="inspect_zip",
                limit=max_entries,
                observed=len(infos),
            )

        report = ArchiveReport(source=label)
        for info in infos:
            check_member_name(info.filename)
            entry = ArchiveEntry(info.filename, info.compress_size, info.file_size)

            try:
                report.total_uncompressed = check_admission(
                    report.total_uncompressed, max_total_bytes, info.file_size, operation="inspect_zip"
                )
            except LimitExceededError as exc:
                raise ExpansionLimitError(
                    f"Declared uncompressed size exceeds {max_total_bytes} bytes",
                    operation="inspect_zip",
                    limit=max_total_bytes,
                    observed=report.total_uncompressed + info.file_size,
                    cause=exc,
                ).with_context(resource=info.filename) from exc

            if entry.file_size > RATIO_FLOOR_BYTES and entry.ratio > max_ratio:
                logger.warning("archive_rejected", source=label, reason="ratio", member=info.filename)
                raise ExpansionLimitError(
                    f"Member {info.filename!r} has compression ratio {entry.ratio:.0f}:1",
                    operation="inspect_zip",
                    limit=max_ratio,
                    observed=round(entry.ratio),
                ).with_context(resource=info.filename)

            report.total_compressed += info.compress_size
            report.entries.append(entry)

    logger.debug("archive_inspected", **report.to_dict())
    return report


def extract_member(zf: zipfile.ZipFile, name: str, *, max_output: int | None = None) -> bytes:
    """Read one member, never producing more than ``max_output`` bytes."""
    check_member_name(name)
    cap = max_output if max_output is not None else get_settings().max_decompressed_bytes
    with zf.open(name) as member:
        data = member.read(cap + 1)
    if len(data) > cap:
        raise ExpansionLimitError(
            f"Member {name!r} decompresses past {cap} bytes",
            operation="extract_member",
            limit=cap,
        ).with_context(resource=name)
    return data


__all__ = ["ArchiveEntry", "ArchiveReport", "check_member_name", "inspect_zip", "extract_member"]
