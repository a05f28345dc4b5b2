from __future__ import annotations

import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import BinaryIO

from bucketfs_core.config import build_backend_params_from_env, load_backend_params
from bucketfs_core.domain.models import FileEntry
from bucketfs_core.errors import BucketFsError
from bucketfs_core.registry import BackendRegistry, get_registry
from bucketfs_core.store.backend import FilesystemBackend

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse object stores as a filesystem.")
    parser.add_argument("--config", type=Path, default=None, help="YAML file with backend params")
    parser.add_argument("--type", dest="backend_type", type=str, default=None)
    parser.add_argument("--verbose", action="store_true")

    sub = parser.add_subparsers(dest="command", required=True)
    ls = sub.add_parser("ls", help="list a directory")
    ls.add_argument("path", nargs="?", default="/")
    cat = sub.add_parser("cat", help="print a file to stdout")
    cat.add_argument("path")
    put = sub.add_parser("put", help="upload a local file (or - for stdin)")
    put.add_argument("source")
    put.add_argument("path")
    for name in ("mkdir", "rm", "touch"):
        cmd = sub.add_parser(name)
        cmd.add_argument("path")
    mv = sub.add_parser("mv", help="rename a file")
    mv.add_argument("source")
    mv.add_argument("target")
    return parser


def _load_params(args: argparse.Namespace) -> dict[str, str]:
    params = load_backend_params(args.config) if args.config else build_backend_params_from_env()
    if args.backend_type:
        params["type"] = args.backend_type
    return params


def _format_entry(entry: FileEntry) -> str:
    marker = "d" if entry.is_dir else "-"
    size = "" if entry.size is None else str(entry.size)
    name = f"{entry.name}/" if entry.is_dir else entry.name
    return f"{marker} {size:>12} {name}"


def _run(backend: FilesystemBackend, args: argparse.Namespace, stdout: BinaryIO) -> None:
    if args.command == "ls":
        for entry in backend.list_dir(args.path):
            stdout.write((_format_entry(entry) + "\n").encode("utf-8"))
    elif args.command == "cat":
        body = backend.read(args.path)
        try:
            shutil.copyfileobj(body, stdout)
        finally:
            body.close()
    elif args.command == "put":
        if args.source == "-":
            backend.write(args.path, sys.stdin.buffer)
        else:
            with open(args.source, "rb") as handle:
                backend.write(args.path, handle)
    elif args.command == "mkdir":
        backend.mkdir(args.path)
    elif args.command == "rm":
        backend.delete(args.path)
    elif args.command == "touch":
        backend.touch(args.path)
    elif args.command == "mv":
        backend.rename(args.source, args.target)


def main(
    argv: list[str] | None = None,
    *,
    registry: BackendRegistry | None = None,
    stdout: BinaryIO | None = None,
) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    stdout = stdout or sys.stdout.buffer
    registry = registry or get_registry()

    try:
        params = _load_params(args)
        backend = registry.create(params)
        _run(backend, args, stdout)
    except (BucketFsError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
