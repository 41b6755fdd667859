"""Resolution of user overrides stored under ``<install>/local``.

Icons in ``local/icons`` replace the bundled favicon and stylesheets in
``local/css`` are linked from the dashboard after the built-in styles.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional

from .config import MaestroConfig

STATIC_DIR = Path(__file__).resolve().parent / "static"

FAVICON_MEDIA_TYPES = {
    "ico": "image/x-icon",
    "svg": "image/svg+xml",
    "png": "image/png",
}

_CSS_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*\.css$")


def resolve_favicon(config: MaestroConfig, extension: str = "svg") -> Optional[Path]:
    """Return the favicon to serve, preferring the user's copy over the bundled one."""
    if extension not in FAVICON_MEDIA_TYPES:
        return None
    name = f"favicon.{extension}"
    for candidate in (config.local_dir / "icons" / name, STATIC_DIR / name):
        if candidate.is_file():
            return candidate
    return None


def resolve_stylesheet(config: MaestroConfig, name: str) -> Optional[Path]:
    """Return a user stylesheet by file name; names with path components never resolve."""
    if not _CSS_NAME_PATTERN.match(name) or ".." in name:
        return None
    candidate = config.local_dir / "css" / name
    return candidate if candidate.is_file() else None


def custom_stylesheets(config: MaestroConfig) -> List[str]:
    """List user stylesheet names in load order."""
    css_dir = config.local_dir / "css"
    if not css_dir.is_dir():
        return []
    return sorted(
        entry.name for entry in css_dir.iterdir()
        if entry.is_file() and _CSS_NAME_PATTERN.match(entry.name)
    )
