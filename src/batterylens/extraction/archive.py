"""
Turning uploaded files into ImageJobs.

Plain images become one job each. ZIP archives are expanded in memory:
every entry whose name ends in an image extension becomes a job,
directories and other files are ignored.
"""

from __future__ import annotations

import io
import posixpath
import zipfile

from batterylens.config import PipelineSettings, get_settings
from batterylens.exceptions import ArchiveError
from batterylens.logger import logger
from batterylens.models import ImageJob, make_job_id, to_data_uri
from batterylens.utils.timestamp import now_ms, zip_time_to_ms

__all__ = ["IMAGE_EXTENSIONS", "expand_archive", "is_archive", "is_image_name", "make_upload_job"]

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".webp")

# Resource-fork entries added by macOS archivers
_MACOS_METADATA_DIR = "__MACOSX/"


def is_image_name(name: str) -> bool:
    """Whether a file name has one of the accepted image extensions (case-insensitive)."""
    return name.lower().endswith(IMAGE_EXTENSIONS)


def is_archive(name: str, content_type: str | None = None) -> bool:
    """Whether an upload should be treated as a ZIP archive."""
    if name.lower().endswith(".zip"):
        return True
    return content_type in ("application/zip", "application/x-zip-compressed")


def make_upload_job(name: str, data: bytes, modified_ms: int | None = None) -> ImageJob:
    """Create a job for one uploaded image.

    Args:
        name: Original file name
        data: Image bytes
        modified_ms: File modification time in UNIX ms (defaults to now)
    """
    timestamp = modified_ms if modified_ms is not None else now_ms()
    return ImageJob(
        id=make_job_id(name, timestamp),
        name=name,
        preview=to_data_uri(data, name),
        timestamp=timestamp,
        data=data,
    )


def expand_archive(data: bytes, archive_name: str, settings: PipelineSettings | None = None) -> list[ImageJob]:
    """Expand a ZIP archive into image jobs.

    Args:
        data: Archive bytes
        archive_name: Uploaded archive file name (prefix of the job ids)
        settings: Size and entry limits (defaults to the global settings)

    Returns:
        One job per image entry, in archive order. The job name is the
        entry's base name and its timestamp the entry's modification time.

    Raises:
        ArchiveError: If the data is not a ZIP archive or exceeds the limits.
    """
    settings = settings or get_settings()

    if len(data) > settings.max_zip_size:
        raise ArchiveError(f"Archive {archive_name} is too large ({len(data)} bytes, max: {settings.max_zip_size})")

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise ArchiveError(f"{archive_name} is not a valid ZIP archive") from e

    jobs: list[ImageJob] = []
    with archive:
        entries = [
            info
            for info in archive.infolist()
            if not info.is_dir() and not info.filename.startswith(_MACOS_METADATA_DIR) and is_image_name(info.filename)
        ]

        if len(entries) > settings.max_zip_entries:
            raise ArchiveError(f"Archive {archive_name} has too many images ({len(entries)}, max: {settings.max_zip_entries})")

        total_size = sum(info.file_size for info in entries)
        if total_size > settings.max_zip_size:
            raise ArchiveError(f"Archive {archive_name} expands to {total_size} bytes (max: {settings.max_zip_size})")

        for info in entries:
            if info.file_size > settings.max_upload_size:
                logger.warning(f"Skipping {info.filename} in {archive_name}: {info.file_size} bytes exceeds the image size limit")
                continue
            try:
                content = archive.read(info)
            except (zipfile.BadZipFile, OSError) as e:
                raise ArchiveError(f"Could not read {info.filename} from {archive_name}: {e}") from e

            name = posixpath.basename(info.filename)
            jobs.append(
                ImageJob(
                    id=make_job_id(info.filename, archive=archive_name),
                    name=name,
                    preview=to_data_uri(content, name),
                    timestamp=zip_time_to_ms(info.date_time),
                    data=content,
                )
            )

    logger.info(f"Expanded {len(jobs)} images from {archive_name}")
    return jobs
