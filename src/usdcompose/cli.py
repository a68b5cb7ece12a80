from __future__ import annotations

"""Command-line entry point: compose a directory of USDA files."""

import argparse
import json
import sys
from pathlib import Path

from .config import ComposeSettings, configure_logging
from .hierarchy import build_hierarchy, format_hierarchy
from .interpolation import evaluate_stage, time_range
from .model import Prim
from .openusd import flatten_to_usda
from .resolver import CompositionResult
from .storage import FileStorage, load_directory
from .workspace import Workspace


def _prim_to_dict(prim: Prim) -> dict:
    d: dict = {"type": prim.type.value, "name": prim.name}
    if prim.active is not None:
        d["active"] = prim.active
    for attr in ("radius", "size", "height", "color", "position", "rotation", "scale"):
        static = getattr(prim, attr)
        samples = getattr(prim, f"{attr}_time_samples")
        if static is not None:
            d[attr] = list(static) if isinstance(static, tuple) else static
        if samples:
            d[f"{attr}TimeSamples"] = {
                str(t): list(v) if isinstance(v, tuple) else v for t, v in sorted(samples.items())
            }
    if prim.references:
        d["references"] = [{"assetPath": r.asset_path, "primPath": r.prim_path} for r in prim.references]
    if prim.payloads:
        d["payloads"] = [{"assetPath": p.asset_path, "primPath": p.prim_path} for p in prim.payloads]
    d["children"] = [_prim_to_dict(c) for c in prim.children]
    d["resolvedChildren"] = [_prim_to_dict(c) for c in prim.resolved_children]
    return d


def _compose(args: argparse.Namespace) -> tuple[Workspace, CompositionResult]:
    workspace = Workspace(load_directory(args.root).values())
    if workspace.get_file(args.file) is None:
        raise SystemExit(f"no such file in {args.root}: {args.file}")
    if args.save:
        FileStorage(args.storage).save_all_files(workspace.get_all_files())
    workspace.open_file(args.file)
    return workspace, workspace.compose()


def _print_errors(result: CompositionResult) -> None:
    for error in result.errors:
        print(f"[{error.type.value}] {error.file_path}: {error.message}", file=sys.stderr)


def _cmd_compose(args: argparse.Namespace) -> int:
    _, result = _compose(args)
    if args.json:
        start, end = time_range(result.prims)
        print(json.dumps(
            {
                "prims": [_prim_to_dict(p) for p in result.prims],
                "errors": [e.to_dict() for e in result.errors],
                "timeRange": {"startFrame": start, "endFrame": end},
            },
            indent=2,
        ))
    else:
        print(format_hierarchy(build_hierarchy(result.prims)))
        _print_errors(result)
    return 1 if result.errors else 0


def _cmd_hierarchy(args: argparse.Namespace) -> int:
    _, result = _compose(args)
    print(format_hierarchy(build_hierarchy(result.prims)))
    _print_errors(result)
    return 1 if result.errors else 0


def _cmd_evaluate(args: argparse.Namespace) -> int:
    _, result = _compose(args)
    evaluated = evaluate_stage(result.prims, args.time)
    print(json.dumps({"time": args.time, "prims": [p.to_dict() for p in evaluated]}, indent=2))
    _print_errors(result)
    return 1 if result.errors else 0


def _cmd_flatten(args: argparse.Namespace) -> int:
    _, result = _compose(args)
    text = flatten_to_usda(result.prims)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        print(f"wrote flattened layer: {args.output}")
    else:
        print(text)
    _print_errors(result)
    return 1 if result.errors else 0


def _build_parser(settings: ComposeSettings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="usdcompose",
        description="Parse a USDA file and compose its references and payloads.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        help="logging level for the usdcompose loggers (default from USDCOMPOSE_LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("root", type=Path, help="directory whose .usda files form the workspace")
        p.add_argument(
            "--file",
            type=str,
            default=settings.default_file,
            help="workspace path of the file to compose, e.g. /main.usda",
        )
        p.add_argument(
            "--save",
            action="store_true",
            help="persist the loaded files to the file store before composing",
        )
        p.add_argument(
            "--storage",
            type=Path,
            default=settings.storage_path,
            help="file store used by --save (default from USDCOMPOSE_STORAGE_PATH)",
        )

    p = sub.add_parser("compose", help="print the composed tree and composition errors")
    add_common(p)
    p.add_argument("--json", action="store_true", help="emit prims and errors as JSON")
    p.set_defaults(handler=_cmd_compose)

    p = sub.add_parser("hierarchy", help="print the stage hierarchy")
    add_common(p)
    p.set_defaults(handler=_cmd_hierarchy)

    p = sub.add_parser("evaluate", help="evaluate animated values at one time code")
    add_common(p)
    p.add_argument("--time", type=float, required=True, help="time code to evaluate")
    p.set_defaults(handler=_cmd_evaluate)

    p = sub.add_parser("flatten", help="write the composed stage as one USDA layer")
    add_common(p)
    p.add_argument("-o", "--output", type=Path, default=None, help="output .usda path")
    p.set_defaults(handler=_cmd_flatten)

    return parser


def main(argv: list[str] | None = None) -> int:
    settings = ComposeSettings.from_env()
    parser = _build_parser(settings)
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    return args.handler(args)
