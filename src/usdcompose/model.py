"""Scene data model shared by the parser, resolver and consumers."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional, Sequence

Vec3 = tuple[float, float, float]
TimeSamples = Mapping[float, float]
Vec3TimeSamples = Mapping[float, Vec3]


class PrimType(str, Enum):
    XFORM = "Xform"
    SPHERE = "Sphere"
    CUBE = "Cube"
    CYLINDER = "Cylinder"
    CONE = "Cone"
    # Display-only marker for an unresolved external pointer.
    REFERENCE = "Reference"

    @classmethod
    def from_keyword(cls, keyword: str | None) -> "PrimType":
        """Map a schema keyword from source text onto the closed type set.

        Missing or unknown keywords (``Scope``, ``Mesh``...) become ``Xform``
        so their subtree still composes as a plain transform group.
        """
        if not keyword:
            return cls.XFORM
        for member in (cls.XFORM, cls.SPHERE, cls.CUBE, cls.CYLINDER, cls.CONE):
            if member.value == keyword:
                return member
        return cls.XFORM


class ParseErrorType(str, Enum):
    MISSING_FILE = "missing_file"
    CIRCULAR_REFERENCE = "circular_reference"
    INVALID_PRIM_PATH = "invalid_prim_path"
    PARSE_ERROR = "parse_error"


@dataclass(frozen=True)
class AssetReference:
    """A reference or payload arc: ``@asset_path@</prim/path>``."""

    asset_path: str
    prim_path: Optional[str] = None


@dataclass(frozen=True)
class ParseError:
    """Non-fatal composition problem collected during resolution."""

    type: ParseErrorType
    message: str
    file_path: str
    line: Optional[int] = None

    def to_dict(self) -> dict:
        d = {"type": self.type.value, "message": self.message, "filePath": self.file_path}
        if self.line is not None:
            d["line"] = self.line
        return d


_SCALAR_FIELDS = ("radius", "size", "height")
_VECTOR_FIELDS = ("color", "position", "rotation", "scale")


@dataclass(frozen=True)
class Prim:
    """One node of a parsed or composed scene graph.

    Every attribute may carry a static value and/or time samples; readers
    prefer the samples when both exist. Rotation is stored in radians.
    """

    type: PrimType
    name: str
    active: Optional[bool] = None
    radius: Optional[float] = None
    radius_time_samples: Optional[TimeSamples] = None
    size: Optional[float] = None
    size_time_samples: Optional[TimeSamples] = None
    height: Optional[float] = None
    height_time_samples: Optional[TimeSamples] = None
    color: Optional[Vec3] = None
    color_time_samples: Optional[Vec3TimeSamples] = None
    position: Optional[Vec3] = None
    position_time_samples: Optional[Vec3TimeSamples] = None
    rotation: Optional[Vec3] = None
    rotation_time_samples: Optional[Vec3TimeSamples] = None
    scale: Optional[Vec3] = None
    scale_time_samples: Optional[Vec3TimeSamples] = None
    children: tuple["Prim", ...] = ()
    references: tuple[AssetReference, ...] = ()
    payloads: tuple[AssetReference, ...] = ()
    resolved_children: tuple["Prim", ...] = ()

    @property
    def all_children(self) -> tuple["Prim", ...]:
        return self.children + self.resolved_children

    @property
    def has_composition_arcs(self) -> bool:
        return bool(self.references or self.payloads)

    def time_sample_maps(self) -> tuple[Mapping, ...]:
        """All populated time-sample mappings on this prim (not its children)."""
        maps = []
        for name in _SCALAR_FIELDS + _VECTOR_FIELDS:
            samples = getattr(self, f"{name}_time_samples")
            if samples:
                maps.append(samples)
        return tuple(maps)

    def evolved(
        self,
        *,
        children: Sequence["Prim"] | None = None,
        resolved_children: Sequence["Prim"] | None = None,
    ) -> "Prim":
        return replace(
            self,
            children=tuple(children) if children is not None else self.children,
            resolved_children=(
                tuple(resolved_children)
                if resolved_children is not None
                else self.resolved_children
            ),
        )

    def clone(self) -> "Prim":
        """Structurally independent deep copy (time-sample dicts included)."""
        copied = {}
        for name in _SCALAR_FIELDS + _VECTOR_FIELDS:
            samples = getattr(self, f"{name}_time_samples")
            if samples is not None:
                copied[f"{name}_time_samples"] = dict(samples)
        return replace(
            self,
            children=tuple(child.clone() for child in self.children),
            resolved_children=tuple(child.clone() for child in self.resolved_children),
            **copied,
        )


def _new_file_id() -> str:
    return uuid.uuid4().hex[:13]


@dataclass(frozen=True)
class VirtualFile:
    """A named text file in the workspace, keyed by its absolute path."""

    path: str
    content: str
    active: bool = True
    name: str = ""
    id: str = field(default_factory=_new_file_id)
    is_dirty: bool = False
    last_modified: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            raise ValueError(f"VirtualFile path must be absolute: {self.path!r}")
        if not self.name:
            object.__setattr__(self, "name", self.path.rsplit("/", 1)[-1])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "path": self.path,
            "name": self.name,
            "content": self.content,
            "active": self.active,
            "is_dirty": self.is_dirty,
            "last_modified": self.last_modified,
        }

    @staticmethod
    def from_dict(data: Mapping) -> "VirtualFile":
        return VirtualFile(
            path=str(data["path"]),
            content=str(data.get("content", "")),
            active=bool(data.get("active", True)),
            name=str(data.get("name", "")),
            id=str(data.get("id") or _new_file_id()),
            is_dirty=bool(data.get("is_dirty", False)),
            last_modified=float(data.get("last_modified", time.time())),
        )
