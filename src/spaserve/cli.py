"""CLI definition using tyro."""

import dataclasses
import logging
import pathlib
import sys
import typing as tp

import beartype
import filelock
import tyro

import spaserve.cache
import spaserve.config
import spaserve.errors
import spaserve.http
import spaserve.source

logger = logging.getLogger(__name__)

LogLevel = tp.Literal["OFF", "ERROR", "WARN", "INFO", "DEBUG", "TRACE"]

# stdlib logging has no level below DEBUG.
_LEVEL_NAMES = {"WARN": "WARNING", "TRACE": "DEBUG"}

_LOG_FORMAT = "%(levelname)-5s [%(asctime)s] %(name)s: %(message)s"


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Resolve:
    """Resolve the configured source and print the directory to serve."""

    config_fpath: tp.Annotated[pathlib.Path | None, tyro.conf.arg(name="config")] = None
    """Path to config file, defaults to Spa.toml."""

    serve: str | None = None
    """Serve this folder, archive or URL instead of reading the config file."""

    env_file: pathlib.Path | None = None
    """Env file with variables used in the serve path, defaults to .env."""

    log: LogLevel = "WARN"
    """Log level."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Detect:
    """Show how a source would be classified, without touching the cache."""

    source: tyro.conf.Positional[str]
    """Folder, archive or URL."""


@beartype.beartype
def setup_logging(level: LogLevel) -> None:
    """Send spaserve logs to stderr at the given level."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    pkg_logger = logging.getLogger("spaserve")
    pkg_logger.handlers[:] = [handler]
    pkg_logger.propagate = False
    if level == "OFF":
        pkg_logger.disabled = True
        return
    pkg_logger.disabled = False
    pkg_logger.setLevel(_LEVEL_NAMES.get(level, level))


@beartype.beartype
def run_resolve(cmd: Resolve) -> pathlib.Path:
    """Run the resolve command."""
    if cmd.serve is not None:
        logger.debug("using serve option instead of config file")
        config = spaserve.config.Config.from_folder(cmd.serve)
    else:
        config = spaserve.config.load_config(cmd.config_fpath)

    spaserve.config.load_env_file(cmd.env_file)
    app_path = spaserve.config.expand_path(config.server.serve)

    cache = spaserve.cache.Cache.from_default(config.server.cache_dir)
    fetcher = spaserve.http.HttpFetcher(timeout=config.server.timeout)

    lock_fpath = cache.root_dpath / ".lock"
    lock = filelock.FileLock(lock_fpath)
    try:
        lock.acquire(timeout=0)
    except filelock.Timeout:
        raise spaserve.errors.LockError.make(lock_fpath) from None

    try:
        dpath = spaserve.source.resolve(
            app_path, config.server.base_path, cache, fetcher=fetcher
        )
    finally:
        lock.release()

    logger.info(
        "serving from %s on http://%s:%d", dpath, config.server.host, config.server.port
    )
    print(dpath)
    return dpath


@beartype.beartype
def run_detect(cmd: Detect) -> None:
    """Run the detect command."""
    source = spaserve.source.detect(cmd.source)
    print(source.describe())


@beartype.beartype
def main() -> None:
    """Main entry point."""
    command = tyro.cli(Resolve | Detect)  # type: ignore[arg-type]

    try:
        match command:
            case Resolve() as cmd:
                setup_logging(cmd.log)
                run_resolve(cmd)
            case Detect() as cmd:
                run_detect(cmd)
    except spaserve.errors.SpaserveError as err:
        print(f"Error: {err}", file=sys.stderr)
        sys.exit(1)
