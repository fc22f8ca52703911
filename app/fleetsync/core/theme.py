"""Console colors for fleetsync output.

Colors come from the bundled ``data/theme.toml``; a ``theme.toml`` in the
user config directory may override any subset of them. Result tables style
each action and receipt state by name, so every name used in markup must
exist in the generated Rich theme.
"""

import logging
import re
import tomllib
from importlib import resources
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from rich.theme import Theme

from fleetsync.core.paths import get_config_dir

logger = logging.getLogger(__name__)

_HEX_DIGITS = re.compile(r"[0-9a-fA-F]+")


class ThemeColors(BaseModel):
    """Hex colors (``#RGB`` or ``#RRGGBB``) for every console style."""

    model_config = ConfigDict(extra="forbid")

    text: str = "#ffffff"
    muted: str = "#b2bec3"
    header: str = "#69B9A1"
    border: str = "#29526d"

    success: str = "#03b971"
    warning: str = "#f5b332"
    error: str = "#f53263"
    info: str = "#0ec1c8"

    # Result actions
    installed: str = "#c1ff62"
    removed: str = "#f53263"
    updated: str = "#0e8ac8"
    rolled_back: str = "#d44ebc"

    # Receipt and queue states
    frozen: str = "#7fa7d9"
    pilot: str = "#faf870"
    queued: str = "#f5b332"

    @field_validator("*", mode="before")
    @classmethod
    def check_hex(cls, value: object, info: Any) -> str:
        name = info.field_name
        if not isinstance(value, str):
            msg = f"{name}: color must be a string"
            raise ValueError(msg)
        color = value.strip()
        if not color.startswith("#"):
            msg = f"{name}: color must start with '#'"
            raise ValueError(msg)
        digits = color[1:]
        if len(digits) not in (3, 6):
            msg = f"{name}: color must be #RGB or #RRGGBB"
            raise ValueError(msg)
        if not _HEX_DIGITS.fullmatch(digits):
            msg = f"{name}: invalid hex color '{color}'"
            raise ValueError(msg)
        return color


def get_user_theme_path() -> Path:
    """Location of the optional user override file."""
    return get_config_dir() / "theme.toml"


def _load_toml_colors(path: Path) -> dict[str, str] | None:
    """Read the ``[colors]`` table of a theme file.

    Non-string entries are ignored.

    Returns:
        Color name to value, or None if the file is missing or unusable.
    """
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.warning("Ignoring theme file %s: %s", path, e)
        return None

    table = data.get("colors", {})
    if not isinstance(table, dict):
        logger.warning("Ignoring theme file %s: [colors] is not a table", path)
        return None
    return {name: value for name, value in table.items() if isinstance(value, str)}


def _bundled_colors() -> dict[str, str]:
    bundled = resources.files("fleetsync.data").joinpath("theme.toml")
    try:
        data = tomllib.loads(bundled.read_text(encoding="utf-8"))
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.error("Bundled theme is unreadable, using built-in colors: %s", e)
        return {}
    return {k: v for k, v in data.get("colors", {}).items() if isinstance(v, str)}


def load_theme() -> ThemeColors:
    """Bundled colors with user overrides applied.

    If any merged color is invalid the built-in defaults are used instead.
    """
    colors = _bundled_colors()
    user_path = get_user_theme_path()
    overrides = _load_toml_colors(user_path)
    if overrides:
        logger.debug("Applying %d theme overrides from %s", len(overrides), user_path)
        colors.update(overrides)

    try:
        return ThemeColors.model_validate(colors)
    except ValidationError as e:
        logger.warning("Invalid theme colors, using defaults: %s", e)
        return ThemeColors()


def get_rich_theme(colors: ThemeColors | None = None) -> Theme:
    """Build the Rich theme; loads the configured colors when none are given."""
    colors = colors or load_theme()
    styles = colors.model_dump()
    styles["error"] = f"bold {colors.error}"
    styles.update(
        {
            "bold_header": f"bold {colors.header}",
            "dim": colors.muted,
            "title.name": f"bold {colors.text}",
            "title.version": colors.muted,
        }
    )
    return Theme(styles)


_cached_theme: Theme | None = None


def get_theme() -> Theme:
    """The process-wide Rich theme, built on first use."""
    global _cached_theme
    if _cached_theme is None:
        _cached_theme = get_rich_theme()
    return _cached_theme
