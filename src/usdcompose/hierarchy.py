"""Stage hierarchy rows for tree displays.

Prims that carry references or payloads but ended up with no resolved
children get one synthetic ``Reference`` row per pointer, so a broken arc is
still visible in the tree.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from .model import AssetReference, Prim, PrimType

_ICONS = {
    PrimType.XFORM: "+",
    PrimType.SPHERE: "o",
    PrimType.CUBE: "#",
    PrimType.CYLINDER: "|",
    PrimType.CONE: "^",
    PrimType.REFERENCE: "->",
}


@dataclass
class HierarchyNode:
    path: str
    name: str
    type: PrimType
    depth: int
    has_references: bool = False
    has_payloads: bool = False
    resolved: bool = True
    kind: Optional[str] = None  # "ref" / "payload" for unresolved rows
    prim_path: Optional[str] = None
    children: list["HierarchyNode"] = field(default_factory=list)

    def walk(self):
        yield self
        for child in self.children:
            yield from child.walk()


def _unresolved_row(arc: AssetReference, kind: str, parent_path: str, depth: int) -> HierarchyNode:
    return HierarchyNode(
        path=f"{parent_path}/{arc.asset_path}",
        name=arc.asset_path,
        type=PrimType.REFERENCE,
        depth=depth,
        resolved=False,
        kind=kind,
        prim_path=arc.prim_path,
    )


def _build_node(prim: Prim, depth: int, parent_path: str) -> HierarchyNode:
    path = f"{parent_path}/{prim.name}"
    node = HierarchyNode(
        path=path,
        name=prim.name,
        type=prim.type,
        depth=depth,
        has_references=bool(prim.references),
        has_payloads=bool(prim.payloads),
    )
    if prim.has_composition_arcs and not prim.resolved_children:
        node.children.extend(_unresolved_row(r, "ref", path, depth + 1) for r in prim.references)
        node.children.extend(_unresolved_row(p, "payload", path, depth + 1) for p in prim.payloads)
    node.children.extend(_build_node(child, depth + 1, path) for child in prim.all_children)
    return node


def build_hierarchy(prims: Sequence[Prim]) -> list[HierarchyNode]:
    return [_build_node(prim, 0, "") for prim in prims]


def format_hierarchy(nodes: Sequence[HierarchyNode], *, indent: str = "  ") -> str:
    if not nodes:
        return "No prims"
    lines = []
    for root in nodes:
        for node in root.walk():
            label = f"{indent * node.depth}{_ICONS[node.type]} {node.name} ({node.type.value})"
            if not node.resolved:
                target = f" -> {node.prim_path}" if node.prim_path else ""
                label += f" [{node.kind}{target}] unresolved"
            else:
                badges = [b for b, on in (("ref", node.has_references), ("payload", node.has_payloads)) if on]
                if badges:
                    label += " [" + ", ".join(badges) + "]"
            lines.append(label)
    return "\n".join(lines)
