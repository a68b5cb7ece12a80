from __future__ import annotations

"""Export composed prims as a flat USDA layer or an OpenUSD stage."""

import math
import re
from typing import Mapping, Optional, Sequence

from .interpolation import time_range
from .model import Prim, PrimType, Vec3

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_]")
_INDENT = "    "


def _require_pxr():
    try:
        from pxr import Gf, Sdf, Usd, UsdGeom
    except ImportError as exc:  # pragma: no cover
        raise ImportError(
            "OpenUSD Python bindings are required. Install with: pip install usd-core"
        ) from exc
    return Gf, Sdf, Usd, UsdGeom


def _safe_name(raw: str) -> str:
    value = _SAFE_NAME_RE.sub("_", raw).strip("_")
    if not value:
        value = "item"
    if value[0].isdigit():
        value = f"n_{value}"
    return value


def _degrees(v: Vec3) -> Vec3:
    return (math.degrees(v[0]), math.degrees(v[1]), math.degrees(v[2]))


# =========================================================================
# Flat USDA text
# =========================================================================

def _num(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _vec(value: Vec3) -> str:
    return "(" + ", ".join(_num(c) for c in value) + ")"


def _quote(name: str) -> str:
    return '"' + name.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _write_samples(lines: list[str], pad: str, decl: str, samples: Mapping, fmt) -> None:
    lines.append(f"{pad}{decl}.timeSamples = {{")
    for t in sorted(samples):
        lines.append(f"{pad}{_INDENT}{_num(t)}: {fmt(samples[t])},")
    lines.append(f"{pad}}}")


def _write_prim(lines: list[str], prim: Prim, depth: int) -> None:
    pad = _INDENT * depth
    inner = _INDENT * (depth + 1)
    type_part = "" if prim.type is PrimType.REFERENCE else f"{prim.type.value} "
    header = f"{pad}def {type_part}{_quote(prim.name)}"
    if prim.active is False:
        header += " (\n" + f"{inner}active = false\n" + f"{pad})"
    lines.append(header)
    lines.append(f"{pad}{{")

    for attr in ("radius", "size", "height"):
        samples = getattr(prim, f"{attr}_time_samples")
        static = getattr(prim, attr)
        if samples:
            _write_samples(lines, inner, f"double {attr}", samples, _num)
        if static is not None:
            lines.append(f"{inner}double {attr} = {_num(static)}")

    if prim.color is not None:
        lines.append(f"{inner}color3f[] primvars:displayColor = [{_vec(prim.color)}]")

    op_order = []
    for field, op, type_name, convert in (
        ("position", "xformOp:translate", "double3", None),
        ("rotation", "xformOp:rotateXYZ", "float3", _degrees),
        ("scale", "xformOp:scale", "float3", None),
    ):
        samples = getattr(prim, f"{field}_time_samples")
        static = getattr(prim, field)
        fmt = (lambda v, c=convert: _vec(c(v))) if convert else _vec
        if samples:
            _write_samples(lines, inner, f"{type_name} {op}", samples, fmt)
        if static is not None:
            lines.append(f"{inner}{type_name} {op} = {fmt(static)}")
        if samples or static is not None:
            op_order.append(f'"{op}"')
    if op_order:
        lines.append(f"{inner}uniform token[] xformOpOrder = [{', '.join(op_order)}]")

    for child in prim.all_children:
        lines.append("")
        _write_prim(lines, child, depth + 1)

    lines.append(f"{pad}}}")


def flatten_to_usda(
    prims: Sequence[Prim],
    *,
    start: Optional[float] = None,
    end: Optional[float] = None,
) -> str:
    """Write a composed prim tree as a single self-contained USDA layer.

    Resolved children become ordinary children, rotations go back to
    degrees, and the time range defaults to the span of all samples.
    """
    sample_start, sample_end = time_range(prims)
    start = sample_start if start is None else start
    end = sample_end if end is None else end

    lines = ["#usda 1.0", "("]
    if prims:
        lines.append(f"{_INDENT}defaultPrim = {_quote(prims[0].name)}")
    if end > start:
        lines.append(f"{_INDENT}startTimeCode = {_num(start)}")
        lines.append(f"{_INDENT}endTimeCode = {_num(end)}")
    lines.append(")")

    for prim in prims:
        lines.append("")
        _write_prim(lines, prim, 0)
    lines.append("")
    return "\n".join(lines)


# =========================================================================
# OpenUSD stage
# =========================================================================

_SCHEMAS = {
    PrimType.XFORM: "Xform",
    PrimType.SPHERE: "Sphere",
    PrimType.CUBE: "Cube",
    PrimType.CYLINDER: "Cylinder",
    PrimType.CONE: "Cone",
    PrimType.REFERENCE: "Xform",
}


def _set_scalar(attr, static: Optional[float], samples: Optional[Mapping]) -> None:
    if samples:
        for t, value in sorted(samples.items()):
            attr.Set(float(value), float(t))
    elif static is not None:
        attr.Set(float(static))


def _define_prim(stage, prim: Prim, parent_path: str) -> None:
    Gf, _, _, UsdGeom = _require_pxr()

    path = f"{parent_path}/{_safe_name(prim.name)}"
    schema = getattr(UsdGeom, _SCHEMAS[prim.type])
    geom = schema.Define(stage, path)
    usd_prim = geom.GetPrim()

    if prim.type is PrimType.SPHERE:
        _set_scalar(geom.GetRadiusAttr(), prim.radius, prim.radius_time_samples)
    elif prim.type is PrimType.CUBE:
        _set_scalar(geom.GetSizeAttr(), prim.size, prim.size_time_samples)
    elif prim.type in (PrimType.CYLINDER, PrimType.CONE):
        _set_scalar(geom.GetRadiusAttr(), prim.radius, prim.radius_time_samples)
        _set_scalar(geom.GetHeightAttr(), prim.height, prim.height_time_samples)

    if prim.color is not None and _SCHEMAS[prim.type] != "Xform":
        geom.CreateDisplayColorAttr([Gf.Vec3f(*prim.color)])

    xformable = UsdGeom.Xformable(usd_prim)
    for static, samples, add_op, convert in (
        (prim.position, prim.position_time_samples, xformable.AddTranslateOp,
         lambda v: Gf.Vec3d(*v)),
        (prim.rotation, prim.rotation_time_samples, xformable.AddRotateXYZOp,
         lambda v: Gf.Vec3f(*_degrees(v))),
        (prim.scale, prim.scale_time_samples, xformable.AddScaleOp,
         lambda v: Gf.Vec3f(*v)),
    ):
        if samples:
            op = add_op()
            for t, value in sorted(samples.items()):
                op.Set(convert(value), float(t))
        elif static is not None:
            add_op().Set(convert(static))

    for child in prim.all_children:
        _define_prim(stage, child, path)

    # Deactivate last: nothing can be defined below an inactive prim.
    if prim.active is False:
        usd_prim.SetActive(False)


def prims_to_stage(prims: Sequence[Prim]) -> object:
    """Build an in-memory OpenUSD stage mirroring the composed prim tree."""
    _, _, Usd, UsdGeom = _require_pxr()

    stage = Usd.Stage.CreateInMemory()
    UsdGeom.SetStageUpAxis(stage, UsdGeom.Tokens.y)
    start, end = time_range(prims)
    if end > start:
        stage.SetStartTimeCode(start)
        stage.SetEndTimeCode(end)

    for prim in prims:
        _define_prim(stage, prim, "")
    if prims:
        stage.SetDefaultPrim(stage.GetPrimAtPath(f"/{_safe_name(prims[0].name)}"))
    return stage


def prims_to_usda(prims: Sequence[Prim]) -> str:
    stage = prims_to_stage(prims)
    return stage.GetRootLayer().ExportToString()
