"""Bump the build number of the app version: ``python scripts/increment_version.py [file]``."""

from __future__ import annotations

from pathlib import Path
import sys

root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from usm_tap.versioning import main


if __name__ == "__main__":
    sys.exit(main())
