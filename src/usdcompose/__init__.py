"""usdcompose -- USDA parsing and reference/payload composition over a virtual file system.

Core modules:
  - model:          Data model (Prim, AssetReference, ParseError, VirtualFile)
  - lexer:          Tokenizer for the USDA subset
  - parser:         Recursive-descent parser producing Prim trees
  - resolver:       Reference/payload composition with cycle detection
  - paths:          POSIX asset path helpers and file tree grouping
  - interpolation:  Time-sample interpolation and per-frame evaluation
  - hierarchy:      Stage hierarchy rows for tree displays
  - openusd:        Flat USDA export and optional OpenUSD stage export

Workspace modules:
  - workspace:      In-memory file set with tabs and change listeners
  - storage:        JSON-backed persistence and directory import
  - config:         Environment settings and logging setup
"""

from .hierarchy import HierarchyNode, build_hierarchy, format_hierarchy
from .interpolation import (
    EvaluatedPrim,
    evaluate_prim,
    evaluate_stage,
    interpolate_scalar,
    interpolate_vec3,
    time_range,
)
from .model import (
    AssetReference,
    ParseError,
    ParseErrorType,
    Prim,
    PrimType,
    VirtualFile,
)
from .openusd import flatten_to_usda, prims_to_stage, prims_to_usda
from .parser import parse_usda
from .paths import (
    FileTreeNode,
    build_file_tree,
    get_directory,
    get_filename,
    is_usda_file,
    normalize_path,
    resolve_relative_path,
)
from .resolver import (
    CompositionResult,
    ResolveContext,
    filter_active_prims,
    find_prim_by_path,
    parse_and_resolve,
    resolve_all,
    resolve_prim,
)
from .storage import FileStorage, load_directory
from .workspace import Workspace

__all__ = [
    # model and composition
    "AssetReference",
    "CompositionResult",
    "EvaluatedPrim",
    "FileStorage",
    "FileTreeNode",
    "HierarchyNode",
    "ParseError",
    "ParseErrorType",
    "Prim",
    "PrimType",
    "ResolveContext",
    "VirtualFile",
    "Workspace",
    # functions
    "build_file_tree",
    "build_hierarchy",
    "evaluate_prim",
    "evaluate_stage",
    "filter_active_prims",
    "find_prim_by_path",
    "flatten_to_usda",
    "format_hierarchy",
    "get_directory",
    "get_filename",
    "interpolate_scalar",
    "interpolate_vec3",
    "is_usda_file",
    "load_directory",
    "normalize_path",
    "parse_and_resolve",
    "parse_usda",
    "prims_to_stage",
    "prims_to_usda",
    "resolve_all",
    "resolve_prim",
    "resolve_relative_path",
    "time_range",
]
