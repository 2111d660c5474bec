"""Cache directory layout and key encoding."""

import enum
import logging
import os
import pathlib
import shutil
import urllib.parse

import beartype
import platformdirs

import spaserve.errors

logger = logging.getLogger(__name__)

# Bytes kept as-is besides the unreserved set; everything else is percent-encoded.
_SAFE_BYTES = "!$&'()+,"


class CacheNamespace(enum.Enum):
    """Top-level cache partitions."""

    ARCHIVE = "archive"
    HTTP = "http"

    @property
    def folder(self) -> str:
        return self.value


@beartype.beartype
def encode_key(data: bytes) -> str:
    """Encode raw bytes as a string usable as a single path segment."""
    return urllib.parse.quote(data, safe=_SAFE_BYTES)


@beartype.beartype
def get_cache_dpath() -> pathlib.Path:
    """Get the cache root, respecting SPASERVE_CACHE."""
    env_cache = os.environ.get("SPASERVE_CACHE")
    if env_cache:
        return pathlib.Path(env_cache)
    return pathlib.Path(platformdirs.user_cache_dir("spaserve"))


class Cache:
    """Cache rooted at an explicit directory.

    Every call to `resource` hands out an empty directory: whatever a previous
    run left at that key is removed first.
    """

    def __init__(self, root_dpath: pathlib.Path) -> None:
        self.root_dpath = root_dpath

    @classmethod
    def from_default(cls, root_dpath: pathlib.Path | None = None) -> "Cache":
        """Create the cache root (default location unless given) and wrap it."""
        if root_dpath is None:
            root_dpath = get_cache_dpath()
        logger.debug("cache folder: %s", root_dpath)
        try:
            root_dpath.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise spaserve.errors.CacheError.make("create", root_dpath, err) from err
        return cls(root_dpath)

    @beartype.beartype
    def path_for(self, namespace: CacheNamespace, *parts: bytes) -> pathlib.Path:
        """Return the path for a key without touching the filesystem."""
        dpath = self.root_dpath / namespace.folder
        for part in parts:
            dpath = dpath / encode_key(part)
        return dpath

    @beartype.beartype
    def resource(self, namespace: CacheNamespace, *parts: bytes) -> pathlib.Path:
        """Return an empty directory for the key, clearing any previous content."""
        dpath = self.path_for(namespace, *parts)
        _clear(dpath)
        try:
            dpath.mkdir(parents=True)
        except OSError as err:
            raise spaserve.errors.CacheError.make("create", dpath, err) from err
        logger.debug("cache resource: %s", dpath)
        return dpath


@beartype.beartype
def _clear(dpath: pathlib.Path) -> None:
    """Remove whatever exists at dpath."""
    try:
        if dpath.is_symlink() or dpath.is_file():
            dpath.unlink()
        elif dpath.is_dir():
            shutil.rmtree(dpath)
        else:
            return
    except OSError as err:
        raise spaserve.errors.CacheError.make("clear", dpath, err) from err
    logger.debug("cleared stale cache entry: %s", dpath)
