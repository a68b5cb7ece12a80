from __future__ import annotations

"""Time-sample interpolation and per-frame evaluation of composed prims."""

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

from .model import Prim, PrimType, Vec3

DEFAULT_POSITION: Vec3 = (0.0, 0.0, 0.0)
DEFAULT_ROTATION: Vec3 = (0.0, 0.0, 0.0)
DEFAULT_SCALE: Vec3 = (1.0, 1.0, 1.0)
DEFAULT_COLOR: Vec3 = (0.6, 0.6, 0.6)

# Geometry defaults used when an attribute is not authored.
_DEFAULT_RADIUS = {PrimType.SPHERE: 1.0, PrimType.CYLINDER: 0.5, PrimType.CONE: 0.5}
_DEFAULT_HEIGHT = 1.0
_DEFAULT_SIZE = 1.0


def _bracket(times: np.ndarray, time: float) -> tuple[int, int, float]:
    """Indices of the samples surrounding ``time`` and the blend factor."""
    # NaN fails every comparison; it falls through to the first sample.
    if not time > times[0]:
        return 0, 0, 0.0
    if time >= times[-1]:
        last = len(times) - 1
        return last, last, 0.0
    upper = int(np.searchsorted(times, time, side="right"))
    lower = upper - 1
    span = times[upper] - times[lower]
    return lower, upper, float((time - times[lower]) / span)


def interpolate_scalar(samples: Mapping[float, float], time: float) -> float:
    """Linear interpolation, clamped to the first/last sample outside the range."""
    if not samples:
        return 0.0
    times = np.asarray(sorted(samples), dtype=np.float64)
    lower, upper, t = _bracket(times, time)
    v0 = float(samples[times[lower]])
    if lower == upper:
        return v0
    v1 = float(samples[times[upper]])
    return v0 + (v1 - v0) * t


def interpolate_vec3(samples: Mapping[float, Vec3], time: float) -> Vec3:
    if not samples:
        return (0.0, 0.0, 0.0)
    times = np.asarray(sorted(samples), dtype=np.float64)
    lower, upper, t = _bracket(times, time)
    v0 = np.asarray(samples[times[lower]], dtype=np.float64)
    if lower != upper:
        v1 = np.asarray(samples[times[upper]], dtype=np.float64)
        v0 = v0 + (v1 - v0) * t
    return (float(v0[0]), float(v0[1]), float(v0[2]))


def time_range(prims: Sequence[Prim]) -> tuple[float, float]:
    """Smallest and largest time code across all samples, or ``(0, 0)``."""
    times: list[float] = []

    def collect(prim: Prim) -> None:
        for samples in prim.time_sample_maps():
            times.extend(samples.keys())
        for child in prim.all_children:
            collect(child)

    for prim in prims:
        collect(prim)

    if not times:
        return (0.0, 0.0)
    return (float(min(times)), float(max(times)))


@dataclass(frozen=True)
class EvaluatedPrim:
    """Concrete values of one prim at one time, ready for drawing."""

    path: str
    type: PrimType
    name: str
    position: Vec3
    rotation: Vec3
    scale: Vec3
    color: Vec3
    radius: Optional[float] = None
    size: Optional[float] = None
    height: Optional[float] = None
    children: tuple["EvaluatedPrim", ...] = ()

    def to_dict(self) -> dict:
        d = {
            "path": self.path,
            "type": self.type.value,
            "name": self.name,
            "position": list(self.position),
            "rotation": list(self.rotation),
            "scale": list(self.scale),
            "color": list(self.color),
        }
        for key in ("radius", "size", "height"):
            value = getattr(self, key)
            if value is not None:
                d[key] = value
        d["children"] = [child.to_dict() for child in self.children]
        return d


def _scalar_at(static: Optional[float], samples, time: float) -> Optional[float]:
    if samples:
        return interpolate_scalar(samples, time)
    return static


def _vec3_at(static: Optional[Vec3], samples, time: float, default: Vec3) -> Vec3:
    if samples:
        return interpolate_vec3(samples, time)
    return static if static is not None else default


def evaluate_prim(prim: Prim, time: float, *, parent_path: str = "") -> EvaluatedPrim:
    """Evaluate ``prim`` and its subtree at ``time``.

    Time samples win over static values; unauthored values fall back to the
    renderer defaults for the prim's type.
    """
    path = f"{parent_path}/{prim.name}"
    radius = _scalar_at(prim.radius, prim.radius_time_samples, time)
    size = _scalar_at(prim.size, prim.size_time_samples, time)
    height = _scalar_at(prim.height, prim.height_time_samples, time)

    if prim.type in _DEFAULT_RADIUS and radius is None:
        radius = _DEFAULT_RADIUS[prim.type]
    if prim.type in (PrimType.CYLINDER, PrimType.CONE) and height is None:
        height = _DEFAULT_HEIGHT
    if prim.type is PrimType.CUBE and size is None:
        size = _DEFAULT_SIZE

    return EvaluatedPrim(
        path=path,
        type=prim.type,
        name=prim.name,
        position=_vec3_at(prim.position, prim.position_time_samples, time, DEFAULT_POSITION),
        rotation=_vec3_at(prim.rotation, prim.rotation_time_samples, time, DEFAULT_ROTATION),
        scale=_vec3_at(prim.scale, prim.scale_time_samples, time, DEFAULT_SCALE),
        color=_vec3_at(prim.color, prim.color_time_samples, time, DEFAULT_COLOR),
        radius=radius,
        size=size,
        height=height,
        children=tuple(evaluate_prim(child, time, parent_path=path) for child in prim.all_children),
    )


def evaluate_stage(prims: Sequence[Prim], time: float) -> tuple[EvaluatedPrim, ...]:
    return tuple(evaluate_prim(prim, time) for prim in prims)
