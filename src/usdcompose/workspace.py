"""In-memory virtual file system with tabs, change listeners and composition."""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Iterable, Mapping, Optional

from .model import ParseError, VirtualFile
from .paths import normalize_path
from .resolver import CompositionResult, parse_and_resolve

logger = logging.getLogger("usdcompose.workspace")

Listener = Callable[[str, str], None]

DEFAULT_USDA_CONTENT = """#usda 1.0
(
    defaultPrim = "World"
)

def Xform "World"
{
}
"""

SAMPLE_MAIN_USDA = """#usda 1.0
(
    defaultPrim = "World"
    startTimeCode = 0
    endTimeCode = 48
)

def Xform "World"
{
    # Direct sphere with animation
    def Sphere "AnimatedSphere"
    {
        double radius.timeSamples = {
            0: 0.5,
            24: 1.5,
            48: 0.5,
        }
        double3 xformOp:translate.timeSamples = {
            0: (0, 0, 0),
            24: (2, 1, 0),
            48: (0, 0, 0),
        }
        color3f[] primvars:displayColor = [(1.0, 0.3, 0.2)]
        uniform token[] xformOpOrder = ["xformOp:translate"]
    }

    def "RefCube" (
        references = @./models/cube.usda@
    ) {
        double3 xformOp:translate = (-3, 0, 0)
        uniform token[] xformOpOrder = ["xformOp:translate"]
    }

    def "RefSphere" (
        references = @./models/shapes.usda@</Shapes/GreenSphere>
    ) {
        double3 xformOp:translate = (3, 0, 0)
        uniform token[] xformOpOrder = ["xformOp:translate"]
    }
}
"""

SAMPLE_CUBE_USDA = """#usda 1.0
(
    defaultPrim = "MyCube"
)

def Cube "MyCube"
{
    double size = 0.8
    color3f[] primvars:displayColor = [(0.2, 0.6, 1.0)]
}
"""

SAMPLE_SHAPES_USDA = """#usda 1.0
(
    defaultPrim = "Shapes"
)

def Xform "Shapes"
{
    def Sphere "GreenSphere"
    {
        double radius = 0.5
        color3f[] primvars:displayColor = [(0.2, 0.8, 0.3)]
    }

    def Sphere "YellowSphere"
    {
        double radius = 0.3
        double3 xformOp:translate = (0, 1, 0)
        color3f[] primvars:displayColor = [(1.0, 0.9, 0.2)]
        uniform token[] xformOpOrder = ["xformOp:translate"]
    }
}
"""


class Workspace:
    """Named USDA files plus editor state (open tabs and the active file).

    Listeners registered with :meth:`subscribe` receive ``(event, path)``
    after every mutation; events are ``created``, ``updated``, ``deleted``,
    ``renamed``, ``toggled`` and ``activated``.
    """

    def __init__(self, files: Iterable[VirtualFile] = ()):
        self._files: dict[str, VirtualFile] = {f.path: f for f in files}
        self.open_file_paths: list[str] = []
        self.active_file_path: Optional[str] = None
        self.errors: tuple[ParseError, ...] = ()
        self._listeners: list[Listener] = []

    @classmethod
    def with_samples(cls) -> "Workspace":
        workspace = cls(
            [
                VirtualFile(path="/main.usda", content=SAMPLE_MAIN_USDA),
                VirtualFile(path="/models/cube.usda", content=SAMPLE_CUBE_USDA),
                VirtualFile(path="/models/shapes.usda", content=SAMPLE_SHAPES_USDA),
            ]
        )
        workspace.open_file_paths = ["/main.usda"]
        workspace.active_file_path = "/main.usda"
        return workspace

    # -----------------------------------------------------------------
    # Listeners
    # -----------------------------------------------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, path: str) -> None:
        for listener in list(self._listeners):
            listener(event, path)

    # -----------------------------------------------------------------
    # File operations
    # -----------------------------------------------------------------
    @property
    def files(self) -> Mapping[str, VirtualFile]:
        return dict(self._files)

    def get_file(self, path: str) -> Optional[VirtualFile]:
        return self._files.get(path)

    def get_all_files(self) -> list[VirtualFile]:
        return list(self._files.values())

    def create_file(self, path: str, content: Optional[str] = None) -> VirtualFile:
        normalized = normalize_path(path)
        file = VirtualFile(
            path=normalized,
            content=DEFAULT_USDA_CONTENT if content is None else content,
        )
        self._files[normalized] = file
        if normalized not in self.open_file_paths:
            self.open_file_paths.append(normalized)
        self.active_file_path = normalized
        logger.debug(f"created {normalized}")
        self._notify("created", normalized)
        return file

    def update_file_content(self, path: str, content: str) -> None:
        file = self._files.get(path)
        if file is None:
            return
        self._files[path] = replace(file, content=content, is_dirty=True, last_modified=time.time())
        self._notify("updated", path)

    def delete_file(self, path: str) -> None:
        if self._files.pop(path, None) is None:
            return
        remaining = [p for p in self.open_file_paths if p != path]
        self.open_file_paths = remaining
        if self.active_file_path == path:
            self.active_file_path = remaining[-1] if remaining else None
        logger.debug(f"deleted {path}")
        self._notify("deleted", path)

    def rename_file(self, old_path: str, new_path: str) -> None:
        file = self._files.get(old_path)
        if file is None:
            return
        normalized = normalize_path(new_path)
        del self._files[old_path]
        self._files[normalized] = replace(
            file,
            path=normalized,
            name=normalized.rsplit("/", 1)[-1],
            last_modified=time.time(),
        )
        self.open_file_paths = [normalized if p == old_path else p for p in self.open_file_paths]
        if self.active_file_path == old_path:
            self.active_file_path = normalized
        logger.debug(f"renamed {old_path} -> {normalized}")
        self._notify("renamed", normalized)

    def toggle_file_active(self, path: str) -> None:
        file = self._files.get(path)
        if file is None:
            return
        self._files[path] = replace(file, active=not file.active)
        self._notify("toggled", path)

    def import_files(self, files: Mapping[str, VirtualFile] | Iterable[VirtualFile]) -> None:
        incoming = files.values() if isinstance(files, Mapping) else files
        for file in incoming:
            self._files[file.path] = file
            self._notify("created", file.path)

    def mark_saved(self, path: str) -> None:
        file = self._files.get(path)
        if file is not None and file.is_dirty:
            self._files[path] = replace(file, is_dirty=False)

    # -----------------------------------------------------------------
    # Tabs
    # -----------------------------------------------------------------
    def open_file(self, path: str) -> None:
        if path not in self.open_file_paths:
            self.open_file_paths.append(path)
        self.set_active_file(path)

    def close_file(self, path: str) -> None:
        self.open_file_paths = [p for p in self.open_file_paths if p != path]
        if self.active_file_path == path:
            self.set_active_file(self.open_file_paths[-1] if self.open_file_paths else None)

    def set_active_file(self, path: Optional[str]) -> None:
        self.active_file_path = path
        if path is not None:
            self._notify("activated", path)

    # -----------------------------------------------------------------
    # Composition
    # -----------------------------------------------------------------
    def compose(self, path: Optional[str] = None) -> CompositionResult:
        """Compose ``path`` (default: the active file) over a snapshot of all files."""
        target = path or self.active_file_path
        file = self._files.get(target) if target else None
        if file is None:
            self.errors = ()
            return CompositionResult()
        result = parse_and_resolve(file.content, file.path, dict(self._files))
        self.errors = result.errors
        return result

    def clear_errors(self) -> None:
        self.errors = ()
