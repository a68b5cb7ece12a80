from __future__ import annotations

"""POSIX-style asset path helpers for the virtual file system."""

from dataclasses import dataclass, field
from typing import Iterable

_USDA_SUFFIXES = (".usda", ".usd")


def resolve_relative_path(base_path: str, relative_path: str) -> str:
    """Resolve ``relative_path`` against the directory of ``base_path``.

    A leading ``/`` marks an absolute path, which is returned unchanged.
    ``.`` segments are dropped and ``..`` pops one segment, never climbing
    above the root.
    """
    if relative_path.startswith("/"):
        return relative_path

    base_dir = base_path[: base_path.rfind("/") + 1] or "/"
    resolved: list[str] = []
    for segment in (base_dir + relative_path).split("/"):
        if not segment or segment == ".":
            continue
        if segment == "..":
            if resolved:
                resolved.pop()
            continue
        resolved.append(segment)
    return "/" + "/".join(resolved)


def get_directory(path: str) -> str:
    last_slash = path.rfind("/")
    if last_slash <= 0:
        return "/"
    return path[:last_slash]


def get_filename(path: str) -> str:
    return path.rsplit("/", 1)[-1]


def is_usda_file(path: str) -> bool:
    return path.lower().endswith(_USDA_SUFFIXES)


def normalize_path(path: str) -> str:
    """Absolute, collapsed form of a user-supplied workspace path."""
    if not path.strip():
        raise ValueError("path must not be empty")
    return resolve_relative_path("/", path.strip())


@dataclass
class FileTreeNode:
    name: str
    path: str
    is_directory: bool
    children: list["FileTreeNode"] = field(default_factory=list)


def build_file_tree(paths: Iterable[str]) -> list[FileTreeNode]:
    """Group flat absolute file paths into a directory tree, sorted by path."""
    root: list[FileTreeNode] = []
    directories: dict[str, FileTreeNode] = {}

    for file_path in sorted(paths):
        parts = [p for p in file_path.split("/") if p]
        level = root
        current = ""
        for i, part in enumerate(parts):
            current += "/" + part
            if i == len(parts) - 1:
                level.append(FileTreeNode(name=part, path=file_path, is_directory=False))
                continue
            directory = directories.get(current)
            if directory is None:
                directory = FileTreeNode(name=part, path=current, is_directory=True)
                directories[current] = directory
                level.append(directory)
            level = directory.children
    return root
