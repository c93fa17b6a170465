from __future__ import annotations

import os
import subprocess
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path


def get_version() -> str:
    """Return TZBOT_VERSION, the short git commit, or the installed version."""
    env_version = os.getenv("TZBOT_VERSION")
    if env_version:
        return env_version

    try:
        out = subprocess.check_output(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=Path(__file__).parent,
            stderr=subprocess.DEVNULL,
        )
        return out.decode().strip()
    except (OSError, subprocess.CalledProcessError):
        pass

    try:
        return version("tzbot")
    except PackageNotFoundError:
        return "unknown"
