"""Where fleetsync keeps its files on a machine.

Directories follow the XDG base directory conventions:

- config (``XDG_CONFIG_HOME``, default ~/.config/fleetsync): config.toml, theme.toml
- state (``XDG_STATE_HOME``, default ~/.local/state/fleetsync): receipts,
  puppy queue, usage ledger, history and the sync log
- cache (``XDG_CACHE_HOME``, default ~/.cache/fleetsync): downloaded packages

State must survive reboots; everything in the cache can be fetched again.
"""

import os
from pathlib import Path

APP_NAME = "fleetsync"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    """``$env_var/fleetsync``, or ``~/<fallback>/fleetsync`` if unset or empty."""
    base = os.environ.get(env_var)
    root = Path(base) if base else Path.home() / fallback
    return root / APP_NAME


def get_config_dir() -> Path:
    return _xdg_dir("XDG_CONFIG_HOME", ".config")


def get_state_dir() -> Path:
    return _xdg_dir("XDG_STATE_HOME", ".local/state")


def get_cache_dir() -> Path:
    return _xdg_dir("XDG_CACHE_HOME", ".cache")


def get_config_path() -> Path:
    """Default client configuration file."""
    return get_config_dir() / "config.toml"


def get_receipts_path() -> Path:
    """Receipt store: one receipt per installed title."""
    return get_state_dir() / "receipts.json"


def get_puppy_queue_path() -> Path:
    """Queue of reboot-required installs waiting for a puppies pass."""
    return get_state_dir() / "puppies.json"


def get_usage_path() -> Path:
    """Last foreground observation per expiration trigger."""
    return get_state_dir() / "usage.json"


def get_log_path() -> Path:
    """Rotating debug log written by every command."""
    return get_state_dir() / "sync.log"


def get_download_dir() -> Path:
    """Package files are downloaded here before the installer runs."""
    return get_cache_dir() / "downloads"


def _ensure_dir(path: Path, name: str) -> Path:
    """Create ``path`` and its parents if needed.

    Raises:
        RuntimeError: If the directory cannot be created; ``name`` is used
            in the message.
    """
    try:
        path.mkdir(parents=True, exist_ok=True)
    except PermissionError as e:
        msg = f"Cannot create {name} directory {path}: Permission denied"
        raise RuntimeError(msg) from e
    except OSError as e:
        msg = f"Cannot create {name} directory {path}: {e}"
        raise RuntimeError(msg) from e
    return path


def ensure_config_dir() -> Path:
    return _ensure_dir(get_config_dir(), "config")


def ensure_state_dir() -> Path:
    return _ensure_dir(get_state_dir(), "state")


def ensure_download_dir() -> Path:
    return _ensure_dir(get_download_dir(), "download")
