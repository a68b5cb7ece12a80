"""Tests for flat USDA export and the optional OpenUSD stage export (openusd.py)."""
from __future__ import annotations

import math

import pytest

from usdcompose.model import Prim, PrimType
from usdcompose.openusd import flatten_to_usda, prims_to_stage, prims_to_usda
from usdcompose.parser import parse_usda
from usdcompose.workspace import Workspace

PLAIN_SCENE = """#usda 1.0
def Xform "World"
{
    def Sphere "Ball" (
        active = false
    )
    {
        double radius = 1.5
        color3f[] primvars:displayColor = [(1, 0.3, 0.2)]
        double3 xformOp:translate.timeSamples = {
            0: (0, 0, 0),
            10: (2, 1.25, -3),
        }
        float3 xformOp:scale = (2, 2, 2)
    }
    def Cylinder "Post"
    {
        double radius = 0.25
        double height.timeSamples = {
            5: 1,
            15: 4,
        }
    }
}
"""


def test_flatten_reparses_to_same_tree() -> None:
    prims = parse_usda(PLAIN_SCENE)
    assert parse_usda(flatten_to_usda(prims)) == prims


def test_flatten_writes_rotation_in_degrees() -> None:
    prim = Prim(type=PrimType.XFORM, name="R", rotation=(math.pi / 2, 0.0, 0.0))
    text = flatten_to_usda([prim])

    assert "float3 xformOp:rotateXYZ = (90" in text
    (reparsed,) = parse_usda(text)
    assert reparsed.rotation == pytest.approx(prim.rotation)


def test_flatten_layer_metadata() -> None:
    text = flatten_to_usda(parse_usda(PLAIN_SCENE))
    assert text.startswith("#usda 1.0\n(\n")
    assert 'defaultPrim = "World"' in text
    assert "startTimeCode = 0" in text
    assert "endTimeCode = 15" in text

    static = flatten_to_usda([Prim(type=PrimType.CUBE, name="C", size=1.0)])
    assert "startTimeCode" not in static


def test_flatten_inlines_resolved_children() -> None:
    result = Workspace.with_samples().compose()
    (world,) = parse_usda(flatten_to_usda(result.prims))

    ref_cube = world.children[1]
    assert ref_cube.references == ()
    assert ref_cube.children[0].name == "MyCube"
    assert ref_cube.children[0].size == pytest.approx(0.8)
    assert world.children[0].radius_time_samples == {0.0: 0.5, 24.0: 1.5, 48.0: 0.5}


def test_flatten_escapes_names() -> None:
    text = flatten_to_usda([Prim(type=PrimType.XFORM, name='odd"name')])
    assert parse_usda(text)[0].name == 'odd"name'


class TestStageExport:
    def test_stage_mirrors_composed_tree(self) -> None:
        pytest.importorskip("pxr")
        from pxr import UsdGeom

        result = Workspace.with_samples().compose()
        stage = prims_to_stage(result.prims)

        assert stage.GetDefaultPrim().GetPath().pathString == "/World"
        assert stage.GetStartTimeCode() == 0.0
        assert stage.GetEndTimeCode() == 48.0

        sphere = UsdGeom.Sphere(stage.GetPrimAtPath("/World/AnimatedSphere"))
        assert sphere
        assert sphere.GetRadiusAttr().Get(24.0) == pytest.approx(1.5)
        assert sphere.GetRadiusAttr().Get(12.0) == pytest.approx(1.0)

        cube = stage.GetPrimAtPath("/World/RefCube/MyCube")
        assert cube.IsA(UsdGeom.Cube)
        assert UsdGeom.Cube(cube).GetSizeAttr().Get() == pytest.approx(0.8)

    def test_rotation_is_written_in_degrees(self) -> None:
        pytest.importorskip("pxr")

        stage = prims_to_stage(
            [Prim(type=PrimType.CONE, name="Tip", rotation=(0.0, math.pi, 0.0), height=2.0)]
        )
        prim = stage.GetPrimAtPath("/Tip")

        assert tuple(prim.GetAttribute("xformOp:rotateXYZ").Get()) == pytest.approx((0.0, 180.0, 0.0))
        assert prim.GetAttribute("height").Get() == pytest.approx(2.0)

    def test_inactive_prims_keep_their_children(self) -> None:
        pytest.importorskip("pxr")

        parent = Prim(
            type=PrimType.XFORM,
            name="Off",
            active=False,
            children=(Prim(type=PrimType.SPHERE, name="Inner"),),
        )
        stage = prims_to_stage([parent])

        assert not stage.GetPrimAtPath("/Off").IsActive()
        assert stage.GetRootLayer().GetPrimAtPath("/Off/Inner") is not None

    def test_usda_text_export(self) -> None:
        pytest.importorskip("pxr")

        text = prims_to_usda(parse_usda(PLAIN_SCENE))
        assert 'def Xform "World"' in text
        assert 'def Cylinder "Post"' in text
