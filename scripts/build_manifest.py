from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Ensure local src is importable when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mediacheck.manifest import MANIFEST_NAME, format_manifest
from mediacheck.md5 import hash_stream


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build an md5sum.txt manifest for a directory")
    parser.add_argument("--root", default=".", help="directory to hash")
    parser.add_argument("--output", default=None, help=f"defaults to <root>/{MANIFEST_NAME}")
    parser.add_argument("--no-total-bytes", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    root = Path(args.root)
    output_path = Path(args.output) if args.output else root / MANIFEST_NAME

    entries = []
    total = 0
    for path in sorted(p for p in root.rglob("*") if p.is_file()):
        if path.resolve() == output_path.resolve():
            continue
        digest, size = _hash_file(path)
        entries.append((digest, "./" + path.relative_to(root).as_posix()))
        total += size

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(
        format_manifest(entries, total_bytes=None if args.no_total_bytes else total)
    )
    print(f"manifest_saved={output_path} entries={len(entries)} total_bytes={total}")


def _hash_file(path: Path) -> tuple[str, int]:
    with path.open("rb") as f:
        digest, size = hash_stream(f)
    return digest.hex(), size


if __name__ == "__main__":
    main()
