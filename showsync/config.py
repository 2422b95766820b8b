import os
import re
import tomllib
from pathlib import Path
from typing import Any

from showsync.canonicalize import DEFAULT_REGION_OFFSETS
from showsync.errors import ConfigError

_DEFAULT_CONFIG_PATH = Path("config.toml")
_DEFAULT_ENV_PATH = Path("secrets")

_TOKEN_VAR_RE = re.compile(r"^SHOWSYNC_([A-Z0-9_]+)_TOKEN$")


def load(path: Path = _DEFAULT_CONFIG_PATH, env_path: Path = _DEFAULT_ENV_PATH) -> dict[str, Any]:
    """Load config from TOML, then overlay any secrets from the secrets file."""
    try:
        with open(path, "rb") as f:
            cfg = tomllib.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid config file {path}: {exc}") from exc
    _load_env(env_path, cfg)
    return cfg


def _load_env(env_path: Path, cfg: dict) -> None:
    """
    Parse a .env-style secrets file and inject values into the config dict.

    Supported variable names:
      SHOWSYNC_<ENV>_TOKEN  -> cfg["secrets"]["tokens"]["<env>"]
                               e.g. SHOWSYNC_STAGE_TOKEN -> tokens["stage"]

    Shell environment variables take precedence over the file.
    """
    # Pick up anything already set in the shell first
    _apply_env_vars(cfg)

    if not env_path.exists():
        return

    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            # Shell environment takes precedence over the secrets file
            if key not in os.environ:
                os.environ[key] = value

    _apply_env_vars(cfg)


def _apply_env_vars(cfg: dict) -> None:
    tokens = cfg.setdefault("secrets", {}).setdefault("tokens", {})
    for key, value in os.environ.items():
        m = _TOKEN_VAR_RE.match(key)
        if m and value:
            tokens[m.group(1).lower().replace("_", "-")] = value


def get_database_path(cfg: dict) -> Path:
    return Path(cfg.get("database", {}).get("path", "data/shows.db"))


def get_region_offsets(cfg: dict) -> dict[str, int]:
    """Default UTC offsets per region, overridden by the [regions] table."""
    offsets = dict(DEFAULT_REGION_OFFSETS)
    for region, hours in cfg.get("regions", {}).items():
        if not isinstance(hours, int) or isinstance(hours, bool):
            raise ConfigError(f"[regions] {region} must be a whole number of hours, got {hours!r}")
        offsets[region.upper()] = hours
    return offsets


def get_venues(cfg: dict) -> dict[str, dict]:
    """Return the venues section, filtering to only enabled venues."""
    venues = cfg.get("venues", {})
    return {key: v for key, v in venues.items() if v.get("enabled", True)}


def get_environments(cfg: dict) -> dict[str, dict]:
    return cfg.get("environments", {})


def get_credentials(cfg: dict) -> dict[str, str]:
    """Bearer tokens per environment name, from SHOWSYNC_<ENV>_TOKEN variables."""
    return dict(cfg.get("secrets", {}).get("tokens", {}))
