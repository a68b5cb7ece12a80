"""Persistent key-value storage of workspace files.

Files are kept in a single JSON document keyed by absolute path::

    {"version": 1, "files": {"/main.usda": {"path": ..., "content": ..., ...}}}

Every write replaces the document atomically (temp file + ``os.replace``).
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from .model import VirtualFile
from .paths import is_usda_file

logger = logging.getLogger("usdcompose.storage")

STORAGE_VERSION = 1


class FileStorage:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"ignoring unreadable file store {self.path}: {exc}")
            return {}
        files = document.get("files") if isinstance(document, dict) else None
        if not isinstance(files, dict):
            logger.warning(f"ignoring malformed file store {self.path}")
            return {}
        return files

    def _write(self, files: dict[str, dict]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {"version": STORAGE_VERSION, "files": files}
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save_file(self, file: VirtualFile) -> None:
        files = self._read()
        files[file.path] = file.to_dict()
        self._write(files)

    def save_all_files(self, files: Iterable[VirtualFile]) -> None:
        stored = self._read()
        for file in files:
            stored[file.path] = file.to_dict()
        self._write(stored)

    def load_files(self) -> list[VirtualFile]:
        loaded = []
        for path, record in sorted(self._read().items()):
            try:
                loaded.append(VirtualFile.from_dict({**record, "path": path}))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(f"skipping stored file {path!r}: {exc}")
        return loaded

    def delete_file(self, path: str) -> None:
        files = self._read()
        if files.pop(path, None) is not None:
            self._write(files)

    def clear(self) -> None:
        self._write({})


def load_directory(root: str | Path) -> dict[str, VirtualFile]:
    """Import every ``.usda``/``.usd`` file below ``root`` keyed by ``/rel/path``."""
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"not a directory: {root}")

    files: dict[str, VirtualFile] = {}
    for file_path in sorted(root.rglob("*")):
        if not file_path.is_file() or not is_usda_file(file_path.name):
            continue
        virtual_path = "/" + file_path.relative_to(root).as_posix()
        try:
            content = file_path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            # Binary crate files share the .usd suffix.
            logger.warning(f"skipping non-text file {file_path}")
            continue
        files[virtual_path] = VirtualFile(
            path=virtual_path,
            content=content,
            last_modified=file_path.stat().st_mtime,
        )
    logger.info(f"loaded {len(files)} files from {root}")
    return files
