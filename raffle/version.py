"""
Version helpers for the Animica Raffle package.

Resolution order:
1) the installed distribution metadata (``animica-raffle``),
2) ``git describe`` of the surrounding checkout, turned into a PEP 440
   local version (``1.2.3.post4+gabc123``),
3) ``BASE_VERSION`` with a ``+dev`` suffix.
"""
from __future__ import annotations

import re
import subprocess
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version as _dist_version
from pathlib import Path
from typing import Optional

BASE_VERSION = "0.1.0"
DIST_NAME = "animica-raffle"

_DESCRIBE_RE = re.compile(
    r"^v(?P<tag>\d+\.\d+\.\d+(?:[abrc]\d+)?)-(?P<distance>\d+)-g(?P<commit>[0-9a-f]+)(?P<dirty>-dirty)?$"
)


def _describe(root: Path) -> Optional[str]:
    try:
        out = subprocess.check_output(
            ["git", "-C", str(root), "describe", "--tags", "--long", "--dirty", "--match", "v*"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return out.strip()


def pep440_from_describe(described: str) -> Optional[str]:
    """Map ``v1.2.3-4-gabc123[-dirty]`` onto PEP 440; None if it does not parse."""
    m = _DESCRIBE_RE.match(described)
    if not m:
        return None
    tag, distance = m.group("tag"), int(m.group("distance"))
    dirty = bool(m.group("dirty"))
    if distance == 0 and not dirty:
        return tag
    local = "+g" + m.group("commit") + (".dirty" if dirty else "")
    return f"{tag}.post{distance}{local}"


@lru_cache(maxsize=1)
def get_version() -> str:
    try:
        return _dist_version(DIST_NAME)
    except PackageNotFoundError:
        pass

    described = _describe(Path(__file__).resolve().parent)
    if described:
        v = pep440_from_describe(described)
        if v:
            return v
    return f"{BASE_VERSION}+dev"


__version__ = get_version()
__all__ = ["__version__", "get_version", "pep440_from_describe", "BASE_VERSION"]
