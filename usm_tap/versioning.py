from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path


_WITH_BUILD = re.compile(
    r"""^(?P<prefix>\s*version\s*[:=]\s*["']?)(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)\+(?P<build>\d+)""",
    re.MULTILINE,
)
_WITHOUT_BUILD = re.compile(
    r"""^(?P<prefix>\s*version\s*[:=]\s*["']?)(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)(?=["']?\s*$)""",
    re.MULTILINE,
)


def bump_build(text: str) -> tuple[str, str]:
    """Increment the build number of the first ``version`` entry in ``text``.

    ``1.2.3+4`` becomes ``1.2.3+5``; ``1.2.3`` becomes ``1.2.3+1``.
    Returns the rewritten text and the new version string.
    """
    match = _WITH_BUILD.search(text)
    if match is not None:
        build = int(match.group("build")) + 1
    else:
        match = _WITHOUT_BUILD.search(text)
        if match is None:
            raise ValueError("Could not find version")
        build = 1

    version = f"{match.group('major')}.{match.group('minor')}.{match.group('patch')}+{build}"
    updated = f"{text[: match.start()]}{match.group('prefix')}{version}{text[match.end():]}"
    return updated, version


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Increment the build number of a version entry.")
    parser.add_argument("path", nargs="?", default="pubspec.yaml", help="file holding the version line")
    args = parser.parse_args(argv)

    path = Path(args.path)
    if not path.exists():
        print(f"Error: {path} not found", file=sys.stderr)
        return 1

    try:
        content, version = bump_build(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        print(f"Error: {exc} in {path}", file=sys.stderr)
        return 1

    path.write_text(content, encoding="utf-8")
    print(f"Version incremented to {version}")
    return 0
