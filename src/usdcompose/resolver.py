"""Reference/payload composition across workspace files.

Resolution is a pure function of the parsed prims and a ``ResolveContext``.
Each step returns its own errors instead of appending to a shared list, and
the merge order is fixed: a prim's reference errors, then its payload
errors, then its children's errors left to right.

The visited-path set is per branch: entering a referenced file extends a
*copy* of the set, so two siblings that reference the same file both
resolve and only a genuine cycle is reported.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Mapping, Optional, Sequence

from .model import AssetReference, ParseError, ParseErrorType, Prim, VirtualFile
from .parser import parse_usda
from .paths import resolve_relative_path

logger = logging.getLogger("usdcompose.resolver")

Parser = Callable[[str], Sequence[Prim]]


@dataclass(frozen=True)
class ResolveContext:
    current_file_path: str
    files: Mapping[str, VirtualFile]
    visited_paths: frozenset[str] = field(default_factory=frozenset)
    parser: Parser = parse_usda

    def entering(self, absolute_path: str) -> "ResolveContext":
        return replace(
            self,
            current_file_path=absolute_path,
            visited_paths=self.visited_paths | {absolute_path},
        )


@dataclass(frozen=True)
class CompositionResult:
    prims: tuple[Prim, ...] = ()
    errors: tuple[ParseError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


# Arc kind -> wording used in error messages.
_ARC_WORDING = {
    "reference": ("Circular reference detected", "Referenced file not found", "referenced file"),
    "payload": ("Circular payload detected", "Payload file not found", "payload file"),
}


def find_prim_by_path(prims: Sequence[Prim], path: str) -> Optional[Prim]:
    """Walk ``/A/B/C`` segment by segment through native children.

    Sibling names are not unique by construction; the first match wins at
    each segment and later duplicates are unreachable by path.
    """
    segments = [s for s in path.split("/") if s]
    if not segments:
        return None

    level: Sequence[Prim] = prims
    found: Optional[Prim] = None
    for segment in segments:
        matches = [p for p in level if p.name == segment]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                f"duplicate sibling prims named {segment!r} while looking up {path}; "
                "using the first one"
            )
        found = matches[0]
        level = found.children
    return found


def filter_active_prims(prims: Sequence[Prim]) -> tuple[Prim, ...]:
    """Drop every prim explicitly marked ``active = false``, at any depth."""
    return tuple(
        prim.evolved(
            children=filter_active_prims(prim.children),
            resolved_children=filter_active_prims(prim.resolved_children),
        )
        for prim in prims
        if prim.active is not False
    )


def _resolve_arc(
    arc: AssetReference,
    kind: str,
    context: ResolveContext,
) -> tuple[list[Prim], list[ParseError]]:
    circular_msg, missing_msg, parse_msg = _ARC_WORDING[kind]
    absolute_path = resolve_relative_path(context.current_file_path, arc.asset_path)

    if absolute_path in context.visited_paths:
        logger.info(f"{circular_msg}: {context.current_file_path} -> {absolute_path}")
        return [], [
            ParseError(
                type=ParseErrorType.CIRCULAR_REFERENCE,
                message=f"{circular_msg}: {context.current_file_path} -> {absolute_path}",
                file_path=context.current_file_path,
            )
        ]

    target = context.files.get(absolute_path)
    if target is None:
        logger.info(f"{missing_msg}: {arc.asset_path} (resolved to {absolute_path})")
        return [], [
            ParseError(
                type=ParseErrorType.MISSING_FILE,
                message=f"{missing_msg}: {arc.asset_path} (resolved to {absolute_path})",
                file_path=context.current_file_path,
            )
        ]

    if not target.active:
        logger.debug(f"skipping inactive file {absolute_path}")
        return [], []

    try:
        parsed = context.parser(target.content)
        nested = resolve_all(parsed, context.entering(absolute_path))
    except Exception as exc:
        logger.warning(f"failed to compose {absolute_path}: {exc}")
        return [], [
            ParseError(
                type=ParseErrorType.PARSE_ERROR,
                message=f"Failed to parse {parse_msg}: {arc.asset_path} - {exc}",
                file_path=context.current_file_path,
                line=getattr(exc, "line", None),
            )
        ]

    errors = list(nested.errors)
    if arc.prim_path:
        target_prim = find_prim_by_path(nested.prims, arc.prim_path)
        if target_prim is None:
            errors.append(
                ParseError(
                    type=ParseErrorType.INVALID_PRIM_PATH,
                    message=f"Prim path not found: {arc.prim_path} in {arc.asset_path}",
                    file_path=context.current_file_path,
                )
            )
            return [], errors
        logger.debug(f"composed {absolute_path}<{arc.prim_path}> into {context.current_file_path}")
        return [target_prim.clone()], errors

    logger.debug(f"composed {absolute_path} ({len(nested.prims)} root prims) into {context.current_file_path}")
    return [prim.clone() for prim in nested.prims], errors


def resolve_prim(prim: Prim, context: ResolveContext) -> tuple[Prim, list[ParseError]]:
    """Resolve one prim's arcs, then its native children, into a new prim."""
    resolved_children = list(prim.resolved_children)
    errors: list[ParseError] = []

    for kind, arcs in (("reference", prim.references), ("payload", prim.payloads)):
        for arc in arcs:
            spliced, arc_errors = _resolve_arc(arc, kind, context)
            resolved_children.extend(spliced)
            errors.extend(arc_errors)

    children = []
    for child in prim.children:
        resolved_child, child_errors = resolve_prim(child, context)
        children.append(resolved_child)
        errors.extend(child_errors)

    return prim.evolved(children=children, resolved_children=resolved_children), errors


def resolve_all(prims: Sequence[Prim], context: ResolveContext) -> CompositionResult:
    resolved = []
    errors: list[ParseError] = []
    for prim in prims:
        resolved_prim, prim_errors = resolve_prim(prim, context)
        resolved.append(resolved_prim)
        errors.extend(prim_errors)
    return CompositionResult(prims=tuple(resolved), errors=tuple(errors))


def parse_and_resolve(
    content: str,
    current_file_path: str,
    files: Mapping[str, VirtualFile],
    *,
    parser: Parser = parse_usda,
) -> CompositionResult:
    """Parse ``content`` and compose every reachable reference and payload.

    Never raises: a failure on the root content yields no prims and a single
    ``parse_error``. Prims with ``active = false`` are filtered out after all
    composition, so they still take part in cycle bookkeeping.
    """
    try:
        parsed = parser(content)
        context = ResolveContext(
            current_file_path=current_file_path,
            files=files,
            visited_paths=frozenset({current_file_path}),
            parser=parser,
        )
        result = resolve_all(parsed, context)
        return CompositionResult(
            prims=filter_active_prims(result.prims),
            errors=result.errors,
        )
    except Exception as exc:
        logger.exception(f"failed to compose {current_file_path}")
        return CompositionResult(
            prims=(),
            errors=(
                ParseError(
                    type=ParseErrorType.PARSE_ERROR,
                    message=f"Failed to parse USDA: {exc}",
                    file_path=current_file_path,
                    line=getattr(exc, "line", None),
                ),
            ),
        )
