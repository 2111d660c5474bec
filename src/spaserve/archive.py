"""Local archive extraction into the cache."""

import logging
import os
import pathlib
import shlex
import subprocess
import tarfile
import typing as tp

import beartype

import spaserve.cache
import spaserve.errors
import spaserve.formats

logger = logging.getLogger(__name__)


@tp.runtime_checkable
class Extractor(tp.Protocol):
    """Extracts the full contents of an archive into a directory."""

    def execute(self, archive_fpath: pathlib.Path, dest_dpath: pathlib.Path) -> None: ...


class TarCommand:
    """Extract with the external `tar` tool."""

    def __init__(self, program: str = "tar") -> None:
        self.program = program

    @beartype.beartype
    def execute(self, archive_fpath: pathlib.Path, dest_dpath: pathlib.Path) -> None:
        """Run `tar xf` with all standard streams suppressed."""
        args = [self.program, "xf", str(archive_fpath), "-C", str(dest_dpath)]
        command = shlex.join(args)
        logger.debug("running %s", command)
        try:
            completed = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError as err:
            raise spaserve.errors.ExtractionError(
                message=f"Failed to run tar command `{command}`: {err}",
                hint="Is tar installed and on PATH?",
                command=command,
            ) from err

        if completed.returncode != 0:
            raise spaserve.errors.ExtractionError(
                message=f"tar command failed with exit status {completed.returncode}: `{command}`",
                hint="Run the command by hand to see tar's output.",
                command=command,
                returncode=completed.returncode,
            )


class TarStream:
    """Extract in-process with tarfile, for hosts without a tar binary.

    Handles uncompressed, gzip, bzip2 and xz tarballs only.
    """

    @beartype.beartype
    def execute(self, archive_fpath: pathlib.Path, dest_dpath: pathlib.Path) -> None:
        """Extract archive_fpath after validating member paths."""
        command = f"tarfile.open({str(archive_fpath)!r}).extractall({str(dest_dpath)!r})"
        dest_root = dest_dpath.resolve(strict=False)
        try:
            with tarfile.open(archive_fpath, "r:*") as tar:
                members = tar.getmembers()
                for member in members:
                    member_path = pathlib.PurePosixPath(member.name)
                    if member_path.is_absolute():
                        raise spaserve.errors.ExtractionError(
                            message=f"Unsafe path in archive: {member.name}",
                            hint="Archive contains absolute paths.",
                            command=command,
                        )
                    target_fpath = (dest_dpath / member.name).resolve(strict=False)
                    if not _is_within_directory(dest_root, target_fpath):
                        raise spaserve.errors.ExtractionError(
                            message=f"Unsafe path in archive: {member.name}",
                            hint="Archive contains path traversal entries.",
                            command=command,
                        )
                tar.extractall(dest_dpath, members=members, filter="data")
        except (tarfile.TarError, OSError) as err:
            raise spaserve.errors.ExtractionError(
                message=f"Failed to extract {archive_fpath}: {err}",
                hint="Only uncompressed, gzip, bzip2 and xz tarballs can be read in-process.",
                command=command,
            ) from err


@beartype.beartype
def resource_identity(
    archive_fpath: pathlib.Path, fmt: spaserve.formats.ArchiveFormat
) -> pathlib.Path:
    """Archive path without its extension and without drive or root markers.

    /src/app.tar.gz and /other/app.tar.gz map to src/app and other/app, so
    archives with the same name in different folders get different keys.
    """
    if not fmt.is_tar:
        raise spaserve.errors.UnsupportedFormatError.make(str(archive_fpath), str(fmt))
    if not archive_fpath.name:
        raise ValueError(f"Archive path has no file name: {archive_fpath}")
    head = fmt.strip(archive_fpath.name)
    parent = archive_fpath.parent
    parent_parts = parent.parts[1:] if parent.anchor else parent.parts
    identity = pathlib.Path(*(part for part in parent_parts if part != ".."), head)
    logger.debug("resource path: %s", identity)
    return identity


@beartype.beartype
def extract_archive_to(
    archive_fpath: pathlib.Path,
    fmt: spaserve.formats.ArchiveFormat,
    dest_dpath: pathlib.Path,
    extractor: Extractor | None = None,
) -> None:
    """Extract a tar-flavored archive into dest_dpath."""
    if not fmt.is_tar:
        raise spaserve.errors.UnsupportedFormatError.make(str(archive_fpath), str(fmt))
    if extractor is None:
        extractor = TarCommand()
    extractor.execute(archive_fpath, dest_dpath)


@beartype.beartype
def extract(
    archive_path: str,
    fmt: spaserve.formats.ArchiveFormat,
    cache: spaserve.cache.Cache,
    extractor: Extractor | None = None,
) -> pathlib.Path:
    """Extract a local archive into the cache and return the directory."""
    if not fmt.is_tar:
        raise spaserve.errors.UnsupportedFormatError.make(archive_path, str(fmt))

    try:
        full_archive_fpath = pathlib.Path(archive_path).resolve(strict=True)
    except OSError as err:
        raise spaserve.errors.NotFoundError(
            message=f"Archive not found: {archive_path}",
            hint="Check the serve path in your config.",
            path=pathlib.Path(archive_path),
        ) from err

    identity = resource_identity(full_archive_fpath, fmt)
    extracted_dpath = cache.resource(
        spaserve.cache.CacheNamespace.ARCHIVE, os.fsencode(identity)
    )
    logger.debug("path for extracted archive: %s", extracted_dpath)
    extract_archive_to(full_archive_fpath, fmt, extracted_dpath, extractor)
    return extracted_dpath


@beartype.beartype
def _is_within_directory(base_dpath: pathlib.Path, target_fpath: pathlib.Path) -> bool:
    """Return True if target_fpath is within base_dpath."""
    try:
        target_fpath.relative_to(base_dpath)
    except ValueError:
        return False
    return True
