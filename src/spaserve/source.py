"""Source classification and resolution to a servable directory."""

import dataclasses
import logging
import pathlib

import beartype

import spaserve.archive
import spaserve.cache
import spaserve.formats
import spaserve.http

logger = logging.getLogger(__name__)


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Folder:
    """Plain directory, served as is."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Archive:
    """Archive on the local filesystem."""

    format: spaserve.formats.ArchiveFormat


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Http:
    """Archive hosted on an http(s) server."""

    format: spaserve.formats.ArchiveFormat


SourceKind = Folder | Archive | Http


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Source:
    """Configured application source and its classification."""

    kind: SourceKind
    app_path: str

    def describe(self) -> str:
        """Short human-readable classification."""
        match self.kind:
            case Folder():
                return "folder"
            case Archive(format=fmt):
                return f"archive ({fmt})"
            case Http(format=fmt):
                return f"http ({fmt})"

    @beartype.beartype
    def setup(
        self,
        cache: spaserve.cache.Cache,
        base_path: str | None = None,
        *,
        fetcher: spaserve.http.HttpFetcher | None = None,
        extractor: spaserve.archive.Extractor | None = None,
    ) -> pathlib.Path:
        """Materialize the source and return the directory to serve."""
        match self.kind:
            case Folder():
                logger.info("serving from folder %s", self.app_path)
                return pathlib.Path(self.app_path)
            case Archive(format=fmt):
                logger.info("serving from archive at %s", self.app_path)
                dpath = spaserve.archive.extract(self.app_path, fmt, cache, extractor)
            case Http(format=fmt):
                logger.info(
                    "serving from archive located at %s",
                    spaserve.http.private_url(self.app_path),
                )
                dpath = spaserve.http.extract(
                    self.app_path, fmt, cache, fetcher, extractor
                )

        if base_path:
            dpath = dpath / base_path
        return dpath


@beartype.beartype
def detect(app_path: str) -> Source:
    """Classify app_path as an http archive, a local archive, or a folder."""
    kind: SourceKind
    if (fmt := spaserve.http.detect(app_path)) is not None:
        kind = Http(format=fmt)
    elif (fmt := spaserve.formats.detect(app_path)) is not None:
        kind = Archive(format=fmt)
    else:
        kind = Folder()
    return Source(kind=kind, app_path=app_path)


@beartype.beartype
def resolve(
    app_path: str,
    base_path: str | None,
    cache: spaserve.cache.Cache,
    *,
    fetcher: spaserve.http.HttpFetcher | None = None,
    extractor: spaserve.archive.Extractor | None = None,
) -> pathlib.Path:
    """Resolve app_path to the directory to serve."""
    source = detect(app_path)
    logger.debug("detected %s source", source.describe())
    return source.setup(cache, base_path, fetcher=fetcher, extractor=extractor)
