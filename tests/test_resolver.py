"""Tests for reference/payload composition (resolver.py)."""
from __future__ import annotations

import logging

import pytest

from usdcompose.model import ParseErrorType, Prim, PrimType, VirtualFile
from usdcompose.parser import parse_usda
from usdcompose.resolver import find_prim_by_path, parse_and_resolve

SHAPES = """
def Xform "Shapes"
{
    def Sphere "GreenSphere"
    {
        double radius = 0.5
    }
    def Sphere "YellowSphere"
    {
        double radius = 0.3
    }
}
"""


def _files(**contents: str) -> dict[str, VirtualFile]:
    """Map ``main="..."`` keyword pairs to ``/main.usda`` virtual files."""
    return {
        f"/{name}.usda": VirtualFile(path=f"/{name}.usda", content=content)
        for name, content in contents.items()
    }


def _compose(files: dict[str, VirtualFile], path: str = "/main.usda", **kwargs):
    return parse_and_resolve(files[path].content, path, files, **kwargs)


def test_main_and_cube_scenario() -> None:
    files = _files(
        main='def Sphere "S" { double radius = 1.0 }\ndef "Ref" (references = @./cube.usda@) {}\n',
        cube='def Cube "C" { double size = 2.0 }\n',
    )
    result = _compose(files)

    assert result.ok
    s, ref = result.prims
    assert s.name == "S"
    assert s.radius == 1.0
    assert ref.name == "Ref"
    assert len(ref.resolved_children) == 1
    assert ref.resolved_children[0].name == "C"
    assert ref.resolved_children[0].type is PrimType.CUBE
    assert ref.resolved_children[0].size == 2.0


class TestCycles:
    def test_direct_cycle_reports_exactly_one_error(self) -> None:
        files = _files(
            main='def "A" (references = @./b.usda@) {}\n',
            b='def "B" (references = @./main.usda@) {}\n',
        )
        result = _compose(files)

        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.type is ParseErrorType.CIRCULAR_REFERENCE
        assert error.file_path == "/b.usda"
        assert error.message.startswith("Circular reference detected")
        # The non-cyclic part still composes.
        assert result.prims[0].resolved_children[0].name == "B"

    def test_transitive_cycle(self) -> None:
        files = _files(
            main='def "A" (references = @./b.usda@) {}\n',
            b='def "B" (references = @./c.usda@) {}\n',
            c='def "C" (payload = @./main.usda@) {}\n',
        )
        result = _compose(files)

        assert [e.type for e in result.errors] == [ParseErrorType.CIRCULAR_REFERENCE]
        assert result.errors[0].message.startswith("Circular payload detected")

    def test_self_reference(self) -> None:
        files = _files(main='def "A" (references = @./main.usda@) {}\n')
        result = _compose(files)

        assert [e.type for e in result.errors] == [ParseErrorType.CIRCULAR_REFERENCE]
        assert result.errors[0].file_path == "/main.usda"

    def test_siblings_referencing_same_file_are_not_cycles(self) -> None:
        files = _files(
            main=(
                'def "First" (references = @./cube.usda@) {}\n'
                'def "Second" (references = @./cube.usda@) {}\n'
            ),
            cube='def Cube "C" { double size = 2.0 }\n',
        )
        result = _compose(files)

        assert result.ok
        first, second = result.prims
        assert first.resolved_children[0].name == "C"
        assert second.resolved_children[0].name == "C"
        assert first.resolved_children[0] is not second.resolved_children[0]


def test_missing_file_keeps_sibling_references() -> None:
    files = _files(
        main='def "A" (references = [@./nope.usda@, @./cube.usda@]) {}\n',
        cube='def Cube "C" {}\n',
    )
    result = _compose(files)

    assert len(result.errors) == 1
    error = result.errors[0]
    assert error.type is ParseErrorType.MISSING_FILE
    assert error.file_path == "/main.usda"
    assert "/nope.usda" in error.message
    assert [c.name for c in result.prims[0].resolved_children] == ["C"]


def test_inactive_file_is_skipped_silently() -> None:
    files = _files(
        main='def "A" (references = @./cube.usda@) {}\n',
        cube='def Cube "C" {}\n',
    )
    files["/cube.usda"] = VirtualFile(path="/cube.usda", content='def Cube "C" {}\n', active=False)
    result = _compose(files)

    assert result.ok
    assert result.prims[0].resolved_children == ()


class TestPrimPathTargets:
    def test_targets_named_prim(self) -> None:
        files = _files(main='def "A" (references = @./shapes.usda@</Shapes/GreenSphere>) {}\n', shapes=SHAPES)
        result = _compose(files)

        assert result.ok
        (target,) = result.prims[0].resolved_children
        assert target.name == "GreenSphere"
        assert target.radius == 0.5

    def test_invalid_prim_path(self) -> None:
        files = _files(main='def "A" (references = @./shapes.usda@</Shapes/Nope>) {}\n', shapes=SHAPES)
        result = _compose(files)

        assert [e.type for e in result.errors] == [ParseErrorType.INVALID_PRIM_PATH]
        assert "/Shapes/Nope" in result.errors[0].message
        assert result.prims[0].resolved_children == ()

    def test_duplicate_sibling_names_use_first_match(self, caplog) -> None:
        prims = parse_usda('def Xform "Root" {\n    def Sphere "X" {}\n    def Cube "X" {}\n}\n')
        with caplog.at_level(logging.WARNING, logger="usdcompose.resolver"):
            found = find_prim_by_path(prims, "/Root/X")

        assert found.type is PrimType.SPHERE
        assert "duplicate" in caplog.text

    def test_empty_path_finds_nothing(self) -> None:
        assert find_prim_by_path([Prim(type=PrimType.XFORM, name="A")], "/") is None


class TestActiveFiltering:
    def test_inactive_root_prim_is_dropped(self) -> None:
        files = _files(
            main=(
                'def Sphere "Hidden" (active = false) { double radius = 2 }\n'
                'def Sphere "Shown" (active = true) {}\n'
            )
        )
        result = _compose(files)
        assert [p.name for p in result.prims] == ["Shown"]

    def test_inactive_prims_in_referenced_files_are_dropped(self) -> None:
        files = _files(
            main='def "A" (references = @./cube.usda@) {}\n',
            cube='def Cube "Off" (active = false) {}\ndef Cube "On" {}\n',
        )
        result = _compose(files)
        assert [c.name for c in result.prims[0].resolved_children] == ["On"]

    def test_inactive_prims_still_take_part_in_cycle_detection(self) -> None:
        files = _files(
            main=(
                'def "Off" (\n'
                "    active = false\n"
                "    references = @./main.usda@\n"
                ") {}\n"
                'def Cube "On" {}\n'
            )
        )
        result = _compose(files)

        assert [e.type for e in result.errors] == [ParseErrorType.CIRCULAR_REFERENCE]
        assert result.errors[0].file_path == "/main.usda"
        assert [p.name for p in result.prims] == ["On"]

    def test_inactive_native_child_under_active_parent(self) -> None:
        files = _files(
            main=(
                'def Xform "Parent" {\n'
                '    def Sphere "Hidden" (active = false) { double radius = 3 }\n'
                '    def Cube "Kept" {}\n'
                "}\n"
            )
        )
        result = _compose(files)

        assert result.ok
        (parent,) = result.prims
        assert [c.name for c in parent.children] == ["Kept"]


def test_error_order_is_references_payloads_then_children() -> None:
    files = _files(
        main=(
            'def "A" (\n'
            "    references = @./r.usda@\n"
            "    payload = @./p.usda@\n"
            ") {\n"
            '    def "Child" (references = @./c.usda@) {}\n'
            "}\n"
        )
    )
    result = _compose(files)

    assert [e.message.split(":")[0] for e in result.errors] == [
        "Referenced file not found",
        "Payload file not found",
        "Referenced file not found",
    ]
    assert "./c.usda" in result.errors[2].message


class TestParseErrors:
    @staticmethod
    def _exploding_parser(text: str):
        if "BOOM" in text:
            raise ValueError("unexpected token")
        return parse_usda(text)

    def test_referenced_file_failure_is_recorded_against_referencing_file(self) -> None:
        files = _files(
            main='def "A" (references = @./bad.usda@) {}\ndef Cube "B" {}\n',
            bad="BOOM",
        )
        result = _compose(files, parser=self._exploding_parser)

        assert [e.type for e in result.errors] == [ParseErrorType.PARSE_ERROR]
        error = result.errors[0]
        assert error.file_path == "/main.usda"
        assert "./bad.usda" in error.message
        assert "unexpected token" in error.message
        assert [p.name for p in result.prims] == ["A", "B"]

    def test_root_failure_yields_empty_tree(self) -> None:
        result = parse_and_resolve("BOOM", "/main.usda", {}, parser=self._exploding_parser)

        assert result.prims == ()
        assert len(result.errors) == 1
        assert result.errors[0].type is ParseErrorType.PARSE_ERROR
        assert result.errors[0].file_path == "/main.usda"


def test_resolved_subtrees_are_independent_copies() -> None:
    files = _files(
        main='def "A" (references = @./anim.usda@) {}\ndef "B" (references = @./anim.usda@) {}\n',
        anim='def Sphere "S" {\n    double radius.timeSamples = {\n        0: 1,\n        10: 2,\n    }\n}\n',
    )
    a, b = _compose(files).prims
    sa, sb = a.resolved_children[0], b.resolved_children[0]

    assert sa == sb
    assert sa.radius_time_samples is not sb.radius_time_samples


@pytest.mark.stress
def test_deep_reference_chain() -> None:
    depth = 100
    files = {}
    for i in range(depth):
        content = f'def "L{i}" (references = @./f{i + 1}.usda@) {{}}\n'
        files[f"/f{i}.usda"] = VirtualFile(path=f"/f{i}.usda", content=content)
    files[f"/f{depth}.usda"] = VirtualFile(path=f"/f{depth}.usda", content='def Cube "Leaf" {}\n')

    result = parse_and_resolve(files["/f0.usda"].content, "/f0.usda", files)

    assert result.ok
    prim = result.prims[0]
    for _ in range(depth):
        prim = prim.resolved_children[0]
    assert prim.name == "Leaf"
