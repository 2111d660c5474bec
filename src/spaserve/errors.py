"""User-facing errors with actionable context.

Errors are messages for humans. Each error should answer:
1. What went wrong?
2. What was the context?
3. What can the user do about it?

Every error raised while resolving a source is fatal: the CLI reports it and
exits instead of serving a partially resolved directory.
"""

import dataclasses
import pathlib

import beartype


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class SpaserveError(Exception):
    """Base error with structured context for user-facing messages."""

    message: str
    """What went wrong."""

    hint: str | None = None
    """What the user can do about it."""

    def __str__(self) -> str:
        parts = [self.message]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        return "\n".join(parts)


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class UnsupportedFormatError(SpaserveError):
    """Archive was recognized but cannot be extracted."""

    @staticmethod
    def make(source: str, format_name: str) -> "UnsupportedFormatError":
        """Create an UnsupportedFormatError for a non-tar archive."""
        return UnsupportedFormatError(
            message=f"Got {format_name} archive for {source}, only tar archives are supported",
            hint="Repack the application as .tar, .tar.gz, .tar.bz2, .tar.xz or similar.",
        )


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class NotFoundError(SpaserveError):
    """Requested resource was not found."""

    path: pathlib.Path | None = None
    """Missing path, if any."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class CacheError(SpaserveError):
    """A cache directory could not be cleared or created."""

    path: pathlib.Path = dataclasses.field(kw_only=True)
    """Cache path that failed."""

    cause: OSError | None = dataclasses.field(default=None, kw_only=True)
    """Underlying I/O error."""

    @staticmethod
    def make(action: str, path: pathlib.Path, cause: OSError) -> "CacheError":
        """Create a CacheError with default message and hint."""
        return CacheError(
            message=f"Failed to {action} cache path {path}: {cause.strerror or cause}",
            hint="Check permissions and free space, or set SPASERVE_CACHE to another directory.",
            path=path,
            cause=cause,
        )


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class ExtractionError(SpaserveError):
    """The extraction tool is missing or failed."""

    command: str = dataclasses.field(default="", kw_only=True)
    """Exact command that was run."""

    returncode: int | None = dataclasses.field(default=None, kw_only=True)
    """Exit status of the command, None if it could not be started."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class DownloadError(SpaserveError):
    """Downloading an archive failed."""

    url: str = dataclasses.field(kw_only=True)
    """Credential-free URL of the download."""

    status_code: int | None = dataclasses.field(default=None, kw_only=True)
    """HTTP status, None for transport errors."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class ConfigError(SpaserveError):
    """Configuration is missing or invalid."""

    path: pathlib.Path | None = None
    """Related path, if any."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class LockError(SpaserveError):
    """Another spaserve process is resolving into the same cache."""

    lock_fpath: pathlib.Path = dataclasses.field(kw_only=True)
    """Path to the lock file."""

    @staticmethod
    def make(lock_fpath: pathlib.Path) -> "LockError":
        """Create a LockError with default message and hint."""
        return LockError(
            message=f"Another spaserve process is using the cache (lock: {lock_fpath})",
            hint=f"Wait for it to finish, or delete {lock_fpath} if stale.",
            lock_fpath=lock_fpath,
        )
