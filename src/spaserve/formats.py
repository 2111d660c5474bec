"""Archive format detection from file name suffixes."""

import dataclasses
import enum

import beartype


class ArchiveFormatKind(enum.Enum):
    """Recognized compression and container kinds."""

    Z = "z"
    ZIP = "zip"
    GZIP = "gzip"
    BZIP2 = "bzip2"
    LZ = "lz"
    XZ = "xz"
    LZMA = "lzma"
    P7Z = "7z"
    TAR = "tar"
    TAR_Z = "tar.z"
    TAR_GZIP = "tar.gzip"
    TAR_BZIP2 = "tar.bzip2"
    TAR_LZ = "tar.lz"
    TAR_XZ = "tar.xz"
    TAR_LZMA = "tar.lzma"
    TAR_7Z = "tar.7z"
    TAR_ZSTD = "tar.zstd"
    RAR = "rar"
    ZSTD = "zstd"


TAR_KINDS = frozenset({
    ArchiveFormatKind.TAR,
    ArchiveFormatKind.TAR_Z,
    ArchiveFormatKind.TAR_GZIP,
    ArchiveFormatKind.TAR_BZIP2,
    ArchiveFormatKind.TAR_LZ,
    ArchiveFormatKind.TAR_XZ,
    ArchiveFormatKind.TAR_LZMA,
    ArchiveFormatKind.TAR_7Z,
    ArchiveFormatKind.TAR_ZSTD,
})

# Order matters: compound suffixes come before the suffixes they end with.
SUFFIXES: tuple[tuple[str, ArchiveFormatKind], ...] = (
    (".tar.z", ArchiveFormatKind.TAR_Z),
    (".tar.gz", ArchiveFormatKind.TAR_GZIP),
    (".tgz", ArchiveFormatKind.TAR_GZIP),
    (".tar.bz2", ArchiveFormatKind.TAR_BZIP2),
    (".tbz2", ArchiveFormatKind.TAR_BZIP2),
    (".tar.lz", ArchiveFormatKind.TAR_LZ),
    (".tar.xz", ArchiveFormatKind.TAR_XZ),
    (".txz", ArchiveFormatKind.TAR_XZ),
    (".tar.lzma", ArchiveFormatKind.TAR_LZMA),
    (".tlz", ArchiveFormatKind.TAR_LZMA),
    (".tar.7z", ArchiveFormatKind.TAR_7Z),
    (".tar.7z.001", ArchiveFormatKind.TAR_7Z),
    (".t7z", ArchiveFormatKind.TAR_7Z),
    (".tar.zst", ArchiveFormatKind.TAR_ZSTD),
    (".tar", ArchiveFormatKind.TAR),
    (".z", ArchiveFormatKind.Z),
    (".zip", ArchiveFormatKind.ZIP),
    (".gz", ArchiveFormatKind.GZIP),
    (".bz2", ArchiveFormatKind.BZIP2),
    (".lz", ArchiveFormatKind.LZ),
    (".xz", ArchiveFormatKind.XZ),
    (".lzma", ArchiveFormatKind.LZMA),
    (".7z", ArchiveFormatKind.P7Z),
    (".7z.001", ArchiveFormatKind.P7Z),
    (".rar", ArchiveFormatKind.RAR),
    (".zst", ArchiveFormatKind.ZSTD),
)

_SUFFIX_BYTES = tuple((suffix.encode("ascii"), kind) for suffix, kind in SUFFIXES)


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class ArchiveFormat:
    """Detected archive kind and the byte length of the suffix that matched."""

    kind: ArchiveFormatKind
    suffix_len: int
    """Bytes to strip from the name to drop the extension."""

    @property
    def is_tar(self) -> bool:
        return is_tar(self)

    def strip(self, name: str) -> str:
        """Drop the matched suffix from name."""
        data = _to_bytes(name)
        assert len(data) >= self.suffix_len, f"{name!r} is shorter than its suffix"
        return data[: len(data) - self.suffix_len].decode("utf-8", "surrogateescape")

    def __str__(self) -> str:
        return self.kind.value


@beartype.beartype
def detect(name: str) -> ArchiveFormat | None:
    """Detect the archive format of a file name or path, ignoring case."""
    lowered = _to_bytes(name).lower()
    for suffix, kind in _SUFFIX_BYTES:
        if lowered.endswith(suffix):
            return ArchiveFormat(kind=kind, suffix_len=len(suffix))
    return None


@beartype.beartype
def is_tar(fmt: ArchiveFormat) -> bool:
    """Return True if a tar-compatible tool can extract fmt."""
    return fmt.kind in TAR_KINDS


def _to_bytes(name: str) -> bytes:
    # bytes.lower() only touches ASCII, so suffix lengths stay byte-exact.
    return name.encode("utf-8", "surrogateescape")
