"""Config file loading and validation."""

import dataclasses
import logging
import os
import pathlib
import re
import tomllib

import beartype
import dotenv

import spaserve.errors

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FPATH = pathlib.Path("Spa.toml")

_SERVER_KEYS = {"serve", "folder", "base_path", "host", "port", "cache_dir", "timeout"}

_VAR_PATTERN = re.compile(r"\$(?:\{(\w+)\}|(\w+))")


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class ServerConfig:
    """The [server] table."""

    serve: str
    """Folder, local archive or http(s) archive URL to serve."""

    base_path: str | None = None
    """Sub-path inside the extracted archive that holds the application."""

    host: str = "127.0.0.1"
    """Interface for the HTTP server. Parsed and validated here, then passed through
    unchanged to the server bootstrap. Resolution only logs it."""

    port: int = 4242
    """Port for the HTTP server, passed through like host."""

    cache_dir: pathlib.Path | None = None
    """Cache root override, or None for the per-user cache."""

    timeout: float | None = None
    """Download timeout in seconds, or None to wait forever."""


@beartype.beartype
@dataclasses.dataclass(frozen=True)
class Config:
    """Validated config loaded from a TOML file."""

    server: ServerConfig

    config_fpath: pathlib.Path | None = None
    """File the config was loaded from, None if built from arguments."""

    @staticmethod
    def from_folder(serve: str) -> "Config":
        """Config that serves a single source with defaults."""
        return Config(server=ServerConfig(serve=serve))


@beartype.beartype
def load_config(config_fpath: pathlib.Path | None = None) -> Config:
    """Read and validate a config file (Spa.toml by default)."""
    if config_fpath is None:
        config_fpath = DEFAULT_CONFIG_FPATH
        logger.debug("loading config from default path `%s`", config_fpath)
    else:
        logger.debug("loading config from `%s`", config_fpath)

    if not config_fpath.exists():
        raise spaserve.errors.ConfigError(
            message=f"Config file does not exist: {config_fpath}",
            hint="Create it, pass another path, or use --serve.",
            path=config_fpath,
        )

    try:
        data = tomllib.loads(config_fpath.read_text())
    except tomllib.TOMLDecodeError as err:
        raise spaserve.errors.ConfigError(
            message=f"`{config_fpath}` is not a valid config file: {err}",
            path=config_fpath,
        ) from None

    return Config(server=_parse_server(data, config_fpath), config_fpath=config_fpath)


@beartype.beartype
def load_env_file(env_fpath: pathlib.Path | None = None) -> None:
    """Load variables from an env file, or from .env if present."""
    if env_fpath is None:
        logger.debug("loading .env")
        dotenv.load_dotenv(dotenv.find_dotenv(usecwd=True), override=False)
        return

    logger.debug("loading env file from %s", env_fpath)
    if not env_fpath.exists():
        raise spaserve.errors.ConfigError(
            message=f"Failed to load env file at `{env_fpath}`",
            hint="Check the --env-file path.",
            path=env_fpath,
        )
    dotenv.load_dotenv(env_fpath, override=False)


@beartype.beartype
def expand_path(path: str) -> str:
    """Expand ~ and $VAR or ${VAR} in path.

    Raises ConfigError when a variable is not set, rather than leaving it in place.
    """

    def lookup(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = os.environ.get(name)
        if value is None:
            raise spaserve.errors.ConfigError(
                message=f"Failed to expand path `{path}`: ${name} is not set",
                hint=f"Set {name} in the environment or in an env file.",
            )
        return value

    return _VAR_PATTERN.sub(lookup, os.path.expanduser(path))


@beartype.beartype
def _parse_server(data: dict[str, object], config_fpath: pathlib.Path) -> ServerConfig:
    """Validate the [server] table."""
    server = data.get("server")
    if not isinstance(server, dict):
        raise spaserve.errors.ConfigError(
            message=f"Missing [server] table in {config_fpath}",
            path=config_fpath,
        )

    unknown = sorted(set(server) - _SERVER_KEYS)
    if unknown:
        raise spaserve.errors.ConfigError(
            message=f"Unknown keys in [server]: {', '.join(unknown)}",
            hint=f"Allowed keys: {', '.join(sorted(_SERVER_KEYS))}",
            path=config_fpath,
        )

    serve = server.get("serve", server.get("folder"))
    if not isinstance(serve, str) or not serve:
        raise spaserve.errors.ConfigError(
            message=f"Missing 'serve' in [server] of {config_fpath}",
            hint="Set serve to a folder, a .tar.* archive or an http(s) URL.",
            path=config_fpath,
        )

    base_path = _get_optional(server, "base_path", str, config_fpath)
    host = _get_optional(server, "host", str, config_fpath)
    port = _get_optional(server, "port", int, config_fpath)
    cache_dir = _get_optional(server, "cache_dir", str, config_fpath)
    timeout = _get_optional(server, "timeout", (int, float), config_fpath)

    if port is not None and not 0 < port < 65536:
        raise spaserve.errors.ConfigError(
            message=f"Invalid port {port} in {config_fpath}",
            path=config_fpath,
        )

    return ServerConfig(
        serve=serve,
        base_path=base_path,
        host=host if host is not None else "127.0.0.1",
        port=port if port is not None else 4242,
        cache_dir=pathlib.Path(expand_path(cache_dir)) if cache_dir else None,
        timeout=float(timeout) if timeout is not None else None,
    )


def _get_optional(server: dict, key: str, types, config_fpath: pathlib.Path):
    value = server.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, types):
        raise spaserve.errors.ConfigError(
            message=f"Invalid type for '{key}' in {config_fpath}: {type(value).__name__}",
            path=config_fpath,
        )
    return value
