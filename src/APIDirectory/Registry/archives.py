"""Safe handling of the tarballs and zip files fetched by acquisition drivers."""

from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterator, List, Optional, Tuple

from .errors import DriverError

__all__ = ["extract_tar_safe", "iter_zip_json"]

_MAX_COMPRESSION_RATIO = 100.0


def _validate_member_path(member_name: str, *, strip: int = 0) -> Optional[Path]:
    """Validate archive member paths to prevent traversal attacks.

    Returns ``None`` when stripping leading components leaves nothing.
    """

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise DriverError(f"Unsafe absolute path detected in archive: {member_name}")
    if any(part in {"", ".."} for part in relative.parts):
        raise DriverError(f"Unsafe path detected in archive: {member_name}")
    parts = [part for part in relative.parts if part != "."][strip:]
    if not parts:
        return None
    return Path(*parts)


def _check_compression_ratio(*, total_uncompressed: int, compressed_size: int, archive: Path) -> None:
    if compressed_size <= 0:
        return
    ratio = total_uncompressed / float(compressed_size)
    if ratio > _MAX_COMPRESSION_RATIO:
        raise DriverError(
            f"archive {archive} expands to {total_uncompressed} bytes, "
            f"exceeding {_MAX_COMPRESSION_RATIO}:1 compression ratio"
        )


def extract_tar_safe(
    tar_path: Path,
    destination: Path,
    *,
    strip: int = 0,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Extract a (compressed) tarball below ``destination``.

    ``strip`` drops that many leading path components from every member, the
    way ``tar --strip-components`` does.  Links and special files are skipped
    rather than materialised.
    """

    if not tar_path.exists():
        raise DriverError(f"TAR archive not found: {tar_path}")
    destination.mkdir(parents=True, exist_ok=True)
    extracted: List[Path] = []
    try:
        with tarfile.open(tar_path, mode="r:*") as archive:
            members = archive.getmembers()
            safe_members: List[Tuple[tarfile.TarInfo, Path]] = []
            total_uncompressed = 0
            for member in members:
                member_path = _validate_member_path(member.name, strip=strip)
                if member_path is None:
                    continue
                if member.isdir():
                    safe_members.append((member, member_path))
                    continue
                if not member.isfile():
                    if logger:
                        logger.warning(
                            "skipping non-regular archive member",
                            extra={"stage": "extract", "member": member.name},
                        )
                    continue
                total_uncompressed += int(member.size)
                safe_members.append((member, member_path))
            _check_compression_ratio(
                total_uncompressed=total_uncompressed,
                compressed_size=tar_path.stat().st_size,
                archive=tar_path,
            )
            for member, member_path in safe_members:
                target_path = destination / member_path
                if member.isdir():
                    target_path.mkdir(parents=True, exist_ok=True)
                    continue
                target_path.parent.mkdir(parents=True, exist_ok=True)
                extracted_file = archive.extractfile(member)
                if extracted_file is None:
                    raise DriverError(f"Failed to extract member: {member.name}")
                with extracted_file as source, target_path.open("wb") as target:
                    shutil.copyfileobj(source, target)
                if logger:
                    logger.debug("tar x", extra={"stage": "extract", "member": member.name})
                extracted.append(target_path)
    except tarfile.TarError as exc:
        raise DriverError(f"Failed to extract tar archive {tar_path}: {exc}") from exc
    if logger:
        logger.info(
            "extracted tar archive",
            extra={"stage": "extract", "archive": str(tar_path), "files": len(extracted)},
        )
    return extracted


def iter_zip_json(zip_path: Path) -> Iterator[Tuple[str, str]]:
    """Yield ``(member name, text)`` for ``.json`` members holding a JSON object."""

    try:
        with zipfile.ZipFile(zip_path) as archive:
            for member in archive.infolist():
                if member.is_dir() or not member.filename.endswith(".json"):
                    continue
                _validate_member_path(member.filename)
                text = archive.read(member).decode("utf-8", errors="replace")
                if text.startswith("{"):
                    yield member.filename, text
    except zipfile.BadZipFile as exc:
        raise DriverError(f"Failed to open zip archive {zip_path}: {exc}") from exc
