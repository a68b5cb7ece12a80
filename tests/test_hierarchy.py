from __future__ import annotations

from usdcompose.hierarchy import build_hierarchy, format_hierarchy
from usdcompose.model import AssetReference, Prim, PrimType
from usdcompose.workspace import Workspace


def test_composed_sample_hierarchy() -> None:
    result = Workspace.with_samples().compose()
    (world,) = build_hierarchy(result.prims)

    assert world.path == "/World"
    assert world.depth == 0
    sphere, ref_cube, ref_sphere = world.children
    assert sphere.path == "/World/AnimatedSphere"
    assert ref_cube.has_references
    assert [c.name for c in ref_cube.children] == ["MyCube"]
    assert ref_cube.children[0].depth == 2
    assert all(node.resolved for node in world.walk())


def test_unresolved_arcs_get_reference_rows_before_children() -> None:
    prim = Prim(
        type=PrimType.XFORM,
        name="Holder",
        references=(AssetReference("./missing.usda", "/Target"),),
        payloads=(AssetReference("./heavy.usda"),),
        children=(Prim(type=PrimType.SPHERE, name="Ball"),),
    )
    (node,) = build_hierarchy([prim])

    ref_row, payload_row, ball = node.children
    assert ref_row.type is PrimType.REFERENCE
    assert ref_row.name == "./missing.usda"
    assert ref_row.kind == "ref"
    assert ref_row.prim_path == "/Target"
    assert not ref_row.resolved
    assert payload_row.kind == "payload"
    assert ball.name == "Ball"
    assert node.has_references and node.has_payloads


def test_format_hierarchy() -> None:
    prim = Prim(
        type=PrimType.XFORM,
        name="Holder",
        references=(AssetReference("./missing.usda", "/Target"),),
        children=(Prim(type=PrimType.SPHERE, name="Ball"),),
    )
    text = format_hierarchy(build_hierarchy([prim]))

    assert text.splitlines() == [
        "+ Holder (Xform) [ref]",
        "  -> ./missing.usda (Reference) [ref -> /Target] unresolved",
        "  o Ball (Sphere)",
    ]


def test_format_empty_hierarchy() -> None:
    assert format_hierarchy([]) == "No prims"
