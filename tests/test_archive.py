"""Tests for local archive extraction."""

import io
import pathlib
import shutil
import tarfile

import pytest

import spaserve.archive
import spaserve.cache
import spaserve.errors
import spaserve.formats

needs_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar not installed")


def _write_app_tar(archive_fpath: pathlib.Path, mode: str = "w:gz") -> None:
    """Write a tar archive containing a tiny web application."""
    archive_fpath.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive_fpath, mode) as tar:
        for name, content in (
            ("index.html", b"<html></html>"),
            ("assets/main.js", b"console.log(1)"),
        ):
            info = tarfile.TarInfo(name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))


def _write_tar_path(archive_fpath: pathlib.Path, name: str) -> None:
    """Write a tar archive containing a single path entry."""
    with tarfile.open(archive_fpath, "w") as tar:
        info = tarfile.TarInfo(name)
        info.size = 0
        tar.addfile(info)


def _identity(path: str) -> pathlib.Path:
    fmt = spaserve.formats.detect(path)
    assert fmt is not None
    return spaserve.archive.resource_identity(pathlib.Path(path), fmt)


class RecordingExtractor:
    """Extractor that records calls and writes a marker file."""

    def __init__(self) -> None:
        self.calls: list[tuple[pathlib.Path, pathlib.Path]] = []

    def execute(self, archive_fpath: pathlib.Path, dest_dpath: pathlib.Path) -> None:
        self.calls.append((archive_fpath, dest_dpath))
        (dest_dpath / "index.html").write_text("extracted")


@pytest.mark.parametrize(
    "path, expected",
    [
        ("/foo.tar.gz", "foo"),
        ("/src/foo.tar.gz", "src/foo"),
        ("/usr/local/foo.tar.gz", "usr/local/foo"),
        ("/etc/foo.tgz", "etc/foo"),
        ("/dist/front/out/foo.tar.7z.001", "dist/front/out/foo"),
    ],
)
def test_resource_identity(path: str, expected: str) -> None:
    """resource_identity strips the suffix and the root marker."""
    assert _identity(path) == pathlib.Path(expected)


def test_resource_identity_keeps_parent_context() -> None:
    """Archives with the same name in different folders get different identities."""
    assert _identity("/src/app.tar.gz") != _identity("/other/app.tar.gz")


def test_resource_identity_rejects_non_tar() -> None:
    """resource_identity refuses formats tar cannot extract."""
    with pytest.raises(spaserve.errors.UnsupportedFormatError, match="zip"):
        _identity("/src/app.zip")


def test_extract_rejects_non_tar(tmp_path: pathlib.Path) -> None:
    """extract fails fast on recognized but unsupported formats."""
    archive_fpath = tmp_path / "app.zip"
    archive_fpath.write_bytes(b"PK")
    fmt = spaserve.formats.detect(archive_fpath.name)
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")

    with pytest.raises(spaserve.errors.UnsupportedFormatError, match="only tar archives"):
        spaserve.archive.extract(str(archive_fpath), fmt, cache, RecordingExtractor())
    assert not (tmp_path / "cache").exists()


def test_extract_missing_archive(tmp_path: pathlib.Path) -> None:
    """extract raises NotFoundError for a missing archive."""
    fmt = spaserve.formats.detect("app.tar.gz")
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")

    with pytest.raises(spaserve.errors.NotFoundError, match="Archive not found"):
        spaserve.archive.extract(
            str(tmp_path / "missing.tar.gz"), fmt, cache, RecordingExtractor()
        )


def test_extract_uses_identity_key(tmp_path: pathlib.Path) -> None:
    """extract keys the cache by the canonical, suffix-stripped path."""
    archive_fpath = tmp_path / "src" / "app.tar.gz"
    _write_app_tar(archive_fpath)
    fmt = spaserve.formats.detect(archive_fpath.name)
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")
    extractor = RecordingExtractor()

    dpath = spaserve.archive.extract(str(archive_fpath), fmt, cache, extractor)

    identity = spaserve.archive.resource_identity(archive_fpath.resolve(), fmt)
    expected = cache.path_for(spaserve.cache.CacheNamespace.ARCHIVE, str(identity).encode())
    assert dpath == expected
    assert extractor.calls == [(archive_fpath.resolve(), dpath)]
    assert (dpath / "index.html").read_text() == "extracted"


def test_extract_clears_previous_extraction(tmp_path: pathlib.Path) -> None:
    """Re-extracting removes files left by a previous run."""
    archive_fpath = tmp_path / "app.tar"
    _write_app_tar(archive_fpath, mode="w")
    fmt = spaserve.formats.detect(archive_fpath.name)
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")

    first = spaserve.archive.extract(str(archive_fpath), fmt, cache, RecordingExtractor())
    (first / "stale.txt").write_text("old")
    second = spaserve.archive.extract(str(archive_fpath), fmt, cache, RecordingExtractor())

    assert second == first
    assert not (second / "stale.txt").exists()


@needs_tar
def test_extract_with_tar_command(tmp_path: pathlib.Path) -> None:
    """extract runs tar and returns a directory with the archive contents."""
    archive_fpath = tmp_path / "app.tar.gz"
    _write_app_tar(archive_fpath)
    fmt = spaserve.formats.detect(archive_fpath.name)
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")

    dpath = spaserve.archive.extract(str(archive_fpath), fmt, cache)

    assert (dpath / "index.html").read_bytes() == b"<html></html>"
    assert (dpath / "assets" / "main.js").exists()


@needs_tar
def test_tar_command_failure_reports_command(tmp_path: pathlib.Path) -> None:
    """A failing tar run raises ExtractionError with the command and status."""
    archive_fpath = tmp_path / "broken.tar"
    archive_fpath.write_bytes(b"this is not a tarball")
    dest_dpath = tmp_path / "out"
    dest_dpath.mkdir()

    with pytest.raises(spaserve.errors.ExtractionError) as err:
        spaserve.archive.TarCommand().execute(archive_fpath, dest_dpath)
    assert err.value.returncode not in (None, 0)
    assert err.value.command.startswith("tar xf ")
    assert str(archive_fpath) in err.value.command


def test_tar_command_missing_binary(tmp_path: pathlib.Path) -> None:
    """A missing extraction tool raises ExtractionError without a status."""
    extractor = spaserve.archive.TarCommand(program="spaserve-no-such-tar")

    with pytest.raises(spaserve.errors.ExtractionError, match="Failed to run tar") as err:
        extractor.execute(tmp_path / "app.tar", tmp_path)
    assert err.value.returncode is None


@pytest.mark.parametrize("mode, name", [("w", "app.tar"), ("w:gz", "app.tgz"), ("w:xz", "app.tar.xz")])
def test_tar_stream_extracts(tmp_path: pathlib.Path, mode: str, name: str) -> None:
    """TarStream extracts tarballs in-process."""
    archive_fpath = tmp_path / name
    _write_app_tar(archive_fpath, mode=mode)
    fmt = spaserve.formats.detect(name)
    assert fmt is not None
    cache = spaserve.cache.Cache(tmp_path / "cache")

    dpath = spaserve.archive.extract(
        str(archive_fpath), fmt, cache, spaserve.archive.TarStream()
    )
    assert (dpath / "index.html").read_bytes() == b"<html></html>"


def test_tar_stream_rejects_absolute_paths(tmp_path: pathlib.Path) -> None:
    """TarStream rejects absolute paths."""
    archive_fpath = tmp_path / "abs.tar"
    _write_tar_path(archive_fpath, "/etc/passwd")
    dest_dpath = tmp_path / "out"
    dest_dpath.mkdir()

    with pytest.raises(spaserve.errors.ExtractionError, match="Unsafe path"):
        spaserve.archive.TarStream().execute(archive_fpath, dest_dpath)


def test_tar_stream_rejects_path_traversal(tmp_path: pathlib.Path) -> None:
    """TarStream rejects path traversal."""
    archive_fpath = tmp_path / "traversal.tar"
    _write_tar_path(archive_fpath, "../escape")
    dest_dpath = tmp_path / "out"
    dest_dpath.mkdir()

    with pytest.raises(spaserve.errors.ExtractionError, match="Unsafe path"):
        spaserve.archive.TarStream().execute(archive_fpath, dest_dpath)
    assert not (tmp_path / "escape").exists()


def test_extractors_satisfy_protocol() -> None:
    """Both extractors implement the Extractor protocol."""
    assert isinstance(spaserve.archive.TarCommand(), spaserve.archive.Extractor)
    assert isinstance(spaserve.archive.TarStream(), spaserve.archive.Extractor)
    assert isinstance(RecordingExtractor(), spaserve.archive.Extractor)
