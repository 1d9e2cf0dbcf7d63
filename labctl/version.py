"""Version lookup for labctl.

Reads the VERSION file shipped beside the package and falls back to the
nearest git tag when running from a checkout without one.
"""

import subprocess
from pathlib import Path


def get_version() -> str:
    """Return the labctl version string (e.g. "0.3.0")."""
    version_file = Path(__file__).parent / "VERSION"
    if version_file.exists():
        try:
            version = version_file.read_text().strip()
            if version:
                return version
        except OSError:
            pass

    try:
        result = subprocess.run(
            ["git", "describe", "--tags", "--abbrev=0"],
            capture_output=True,
            text=True,
            timeout=5,
            cwd=Path(__file__).parent,
        )
        if result.returncode == 0:
            return result.stdout.strip().removeprefix("v")
    except (OSError, subprocess.SubprocessError):
        pass

    return "0.0.0"


__version__ = get_version()
