"""Recursive-descent parser for the USDA subset.

Grammar handled here (everything else is skipped, never raised)::

    layer      := [ "(" layer-metadata ")" ] statement*
    prim       := "def" [TypeName] STRING [ "(" metadata ")" ] [ "{" body "}" ]
    metadata   := ( [listOp] key "=" value | STRING )*
    body       := ( prim | attribute )*
    attribute  := qualifier* typeName ["[]"] attrName[".timeSamples"] ["=" value] ["(" ... ")"]
    value      := NUMBER | STRING | IDENT | ASSET [PATH] | PATH
                | "(" value,* ")" | "[" value,* "]" | "{" (value ":" value),* "}"

Nesting is decided by braces and parentheses only, so a ``{`` on its own
line, multi-line metadata and multi-line values all parse the same way as
their single-line forms.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Optional

from .lexer import Token, TokenKind, tokenize
from .model import AssetReference, Prim, PrimType

logger = logging.getLogger("usdcompose.parser")

_MISSING = object()

_OPENERS = {TokenKind.LPAREN, TokenKind.LBRACKET, TokenKind.LBRACE}
_CLOSERS = {TokenKind.RPAREN, TokenKind.RBRACKET, TokenKind.RBRACE}

_LIST_OPS = ("prepend", "append", "add", "delete", "reorder")
_QUALIFIERS = ("uniform", "custom", "varying", "config")

_SCALAR_ATTRS = ("radius", "size", "height")
_SCALAR_TYPES = ("double", "float")
# attribute name -> (Prim field, degrees-to-radians)
_VECTOR_ATTRS = {
    "xformOp:translate": ("position", False),
    "xformOp:rotateXYZ": ("rotation", True),
    "xformOp:scale": ("scale", False),
}
_VECTOR_TYPES = ("double3", "float3", "half3")
_COLOR_ATTR = "primvars:displayColor"
_COLOR_TYPE = "color3f[]"
_TIME_SAMPLES_SUFFIX = ".timeSamples"


def _to_float(value: Any) -> Optional[float]:
    """Numeric atom -> float; non-numeric atom -> NaN; containers -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return math.nan
    return None


def _to_vec3(value: Any, *, radians: bool = False) -> Optional[tuple[float, float, float]]:
    if not isinstance(value, (tuple, list)) or len(value) != 3:
        return None
    components = [_to_float(v) for v in value]
    if any(c is None for c in components):
        return None
    if radians:
        components = [math.radians(c) for c in components]
    return (components[0], components[1], components[2])


def _is_hashable_key(key: Any) -> bool:
    return not isinstance(key, (list, dict)) and not (
        isinstance(key, tuple) and any(isinstance(k, (list, dict)) for k in key)
    )


def _time_samples(value: Any, convert) -> Optional[dict]:
    if not isinstance(value, dict):
        return None
    samples = {}
    for raw_time, raw_value in value.items():
        time_code = _to_float(raw_time)
        if time_code is None or math.isnan(time_code):
            continue
        converted = convert(raw_value)
        if converted is not None:
            samples[time_code] = converted
    return samples


class _Metadata:
    __slots__ = ("active", "references", "payloads")

    def __init__(self) -> None:
        self.active: Optional[bool] = None
        self.references: list[AssetReference] = []
        self.payloads: list[AssetReference] = []


class _Parser:
    def __init__(self, text: str) -> None:
        self._tokens = tokenize(text)
        self._pos = 0

    # -----------------------------------------------------------------
    # Token cursor
    # -----------------------------------------------------------------
    def _peek(self, offset: int = 0) -> Token:
        index = min(self._pos + offset, len(self._tokens) - 1)
        return self._tokens[index]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.kind is not TokenKind.EOF:
            self._pos += 1
        return token

    def _at(self, kind: TokenKind) -> bool:
        return self._peek().kind is kind

    def _accept(self, kind: TokenKind) -> Optional[Token]:
        if self._at(kind):
            return self._advance()
        return None

    def _at_end(self) -> bool:
        return self._at(TokenKind.EOF)

    # -----------------------------------------------------------------
    # Recovery
    # -----------------------------------------------------------------
    def _skip_balanced(self) -> None:
        """Consume one bracketed group starting at the current opener."""
        depth = 0
        while not self._at_end():
            token = self._advance()
            if token.kind in _OPENERS:
                depth += 1
            elif token.kind in _CLOSERS:
                depth -= 1
                if depth <= 0:
                    return

    def _skip_statement(self) -> None:
        """Skip to the end of the current line, keeping brackets balanced.

        Stops before a ``}`` at nesting depth zero so the enclosing prim
        body still sees its own closing brace.
        """
        start = self._peek()
        depth = 0
        consumed = False
        while not self._at_end():
            token = self._peek()
            if depth == 0 and consumed and token.line != start.line:
                break
            if depth == 0 and token.kind is TokenKind.RBRACE:
                break
            self._advance()
            consumed = True
            if token.kind in _OPENERS:
                depth += 1
            elif token.kind in _CLOSERS and depth > 0:
                depth -= 1
        if consumed:
            logger.debug(f"skipped unrecognized statement at line {start.line}: {start.value!r}")

    def _finish_line(self, line: int) -> None:
        """Discard trailing tokens left on ``line`` after a statement."""
        token = self._peek()
        if token.kind is TokenKind.SEMICOLON:
            self._advance()
            return
        if token.line == line and token.kind not in (TokenKind.RBRACE, TokenKind.EOF):
            self._skip_statement()

    def _skip_spec_block(self) -> None:
        """Skip an ``over``/``class`` block including its metadata and body."""
        self._advance()
        while not self._at_end():
            if self._at(TokenKind.LBRACE):
                self._skip_balanced()
                return
            if self._at(TokenKind.RBRACE) or self._peek().is_ident("def", "over", "class"):
                return
            if self._at(TokenKind.LPAREN):
                self._skip_balanced()
            else:
                self._advance()

    # -----------------------------------------------------------------
    # Values
    # -----------------------------------------------------------------
    def _parse_value(self) -> Any:
        token = self._peek()
        kind = token.kind
        if kind is TokenKind.NUMBER:
            self._advance()
            return float(token.value)
        if kind is TokenKind.STRING or kind is TokenKind.ASSET:
            self._advance()
            if kind is TokenKind.ASSET:
                self._accept(TokenKind.PATH)
            return token.value
        if kind is TokenKind.PATH:
            self._advance()
            return token.value
        if kind is TokenKind.IDENT:
            self._advance()
            if token.value == "true":
                return True
            if token.value == "false":
                return False
            if token.value == "None":
                return None
            return token.value
        if kind is TokenKind.LPAREN:
            return tuple(self._parse_sequence(TokenKind.RPAREN))
        if kind is TokenKind.LBRACKET:
            return self._parse_sequence(TokenKind.RBRACKET)
        if kind is TokenKind.LBRACE:
            return self._parse_dictionary()
        if kind in _CLOSERS or kind is TokenKind.EOF:
            return _MISSING
        self._advance()
        return _MISSING

    def _parse_sequence(self, closer: TokenKind) -> list:
        self._advance()
        items = []
        while not self._at_end() and not self._at(closer):
            if self._accept(TokenKind.COMMA):
                continue
            before = self._pos
            value = self._parse_value()
            if self._pos == before:
                # Mismatched closer inside the group.
                self._advance()
                continue
            if value is not _MISSING:
                items.append(value)
        self._accept(closer)
        return items

    def _parse_dictionary(self) -> dict:
        self._advance()
        entries = {}
        while not self._at_end() and not self._at(TokenKind.RBRACE):
            if self._accept(TokenKind.COMMA) or self._accept(TokenKind.SEMICOLON):
                continue
            before = self._pos
            # Typed dictionary entries: ``string key = "value"``.
            if self._peek().kind is TokenKind.IDENT and self._peek(1).kind is TokenKind.IDENT:
                self._advance()
            key = self._parse_value()
            if self._accept(TokenKind.COLON) or self._accept(TokenKind.EQUALS):
                value = self._parse_value()
                if key is not _MISSING and value is not _MISSING and _is_hashable_key(key):
                    entries[key] = value
            if self._pos == before:
                self._advance()
        self._accept(TokenKind.RBRACE)
        return entries

    def _parse_asset_references(self) -> list[AssetReference]:
        refs: list[AssetReference] = []
        if self._at(TokenKind.LBRACKET):
            self._advance()
            while not self._at_end() and not self._at(TokenKind.RBRACKET):
                if self._at(TokenKind.ASSET):
                    refs.extend(self._parse_single_reference())
                elif self._at(TokenKind.LPAREN) or self._at(TokenKind.LBRACE):
                    # Per-arc clauses such as ``(offset = 10)``.
                    self._skip_balanced()
                elif self._at(TokenKind.RBRACE) or self._at(TokenKind.RPAREN):
                    break
                else:
                    self._advance()
            self._accept(TokenKind.RBRACKET)
            return refs
        if self._at(TokenKind.ASSET):
            return self._parse_single_reference()
        self._parse_value()
        return refs

    def _parse_single_reference(self) -> list[AssetReference]:
        asset = self._advance()
        prim_path = self._accept(TokenKind.PATH)
        if not asset.value:
            return []
        return [
            AssetReference(
                asset_path=asset.value,
                prim_path=prim_path.value if prim_path is not None and prim_path.value else None,
            )
        ]

    # -----------------------------------------------------------------
    # Metadata
    # -----------------------------------------------------------------
    def _parse_metadata(self) -> _Metadata:
        metadata = _Metadata()
        self._advance()
        while not self._at_end() and not self._at(TokenKind.RPAREN):
            token = self._peek()
            if token.kind is not TokenKind.IDENT:
                if token.kind in _OPENERS:
                    self._skip_balanced()
                elif token.kind in (TokenKind.RBRACE, TokenKind.RBRACKET):
                    break
                else:
                    self._advance()
                continue

            list_op = None
            if token.value in _LIST_OPS and self._peek(1).kind is TokenKind.IDENT:
                list_op = self._advance().value
            key = self._advance().value
            if not self._accept(TokenKind.EQUALS):
                continue

            if key == "active":
                value = self._parse_value()
                if isinstance(value, bool):
                    metadata.active = value
            elif key == "references" and list_op != "delete":
                metadata.references.extend(self._parse_asset_references())
            elif key in ("payload", "payloads") and list_op != "delete":
                metadata.payloads.extend(self._parse_asset_references())
            else:
                self._parse_value()
        self._accept(TokenKind.RPAREN)
        return metadata

    # -----------------------------------------------------------------
    # Prims and attributes
    # -----------------------------------------------------------------
    def parse_layer(self) -> list[Prim]:
        if self._at(TokenKind.LPAREN):
            self._skip_balanced()

        prims: list[Prim] = []
        while not self._at_end():
            token = self._peek()
            if token.is_ident("def"):
                prim = self._parse_prim()
                if prim is not None:
                    prims.append(prim)
            elif token.is_ident("over", "class"):
                self._skip_spec_block()
            elif token.kind is TokenKind.RBRACE:
                logger.debug(f"stray '}}' at line {token.line}")
                self._advance()
            else:
                self._skip_statement()
        return prims

    def _parse_prim(self) -> Optional[Prim]:
        keyword = self._advance()
        type_name = None
        if self._at(TokenKind.IDENT):
            type_name = self._advance().value
        if not self._at(TokenKind.STRING):
            logger.debug(f"malformed prim declaration at line {keyword.line}")
            self._skip_statement()
            return None
        name = self._advance().value

        metadata = _Metadata()
        if self._at(TokenKind.LPAREN):
            metadata = self._parse_metadata()

        fields: dict[str, Any] = {}
        children: list[Prim] = []
        if self._accept(TokenKind.LBRACE):
            self._parse_body(fields, children)
            self._accept(TokenKind.RBRACE)

        return Prim(
            type=PrimType.from_keyword(type_name),
            name=name,
            active=metadata.active,
            children=tuple(children),
            references=tuple(metadata.references),
            payloads=tuple(metadata.payloads),
            **fields,
        )

    def _parse_body(self, fields: dict[str, Any], children: list[Prim]) -> None:
        while not self._at_end() and not self._at(TokenKind.RBRACE):
            token = self._peek()
            if token.is_ident("def"):
                child = self._parse_prim()
                if child is not None:
                    children.append(child)
            elif token.is_ident("over", "class"):
                self._skip_spec_block()
            elif token.kind is TokenKind.IDENT:
                self._parse_attribute(fields)
            else:
                self._skip_statement()

    def _parse_attribute(self, fields: dict[str, Any]) -> None:
        start = self._peek()
        while self._peek().is_ident(*_QUALIFIERS) and self._peek(1).line == start.line:
            self._advance()

        type_token = self._advance()
        type_name = type_token.value
        if self._at(TokenKind.LBRACKET) and self._peek(1).kind is TokenKind.RBRACKET:
            self._advance()
            self._advance()
            type_name += "[]"

        name_token = self._peek()
        if name_token.kind is not TokenKind.IDENT or name_token.line != start.line:
            self._finish_line(type_token.line)
            return
        self._advance()

        if not self._at(TokenKind.EQUALS) or self._peek().line != start.line:
            if self._at(TokenKind.LPAREN):
                self._skip_balanced()
            self._finish_line(name_token.line)
            return
        self._advance()
        value = self._parse_value()
        end_line = self._tokens[self._pos - 1].line
        if self._at(TokenKind.LPAREN) and self._peek().line == end_line:
            self._skip_balanced()
            end_line = self._tokens[self._pos - 1].line
        self._finish_line(end_line)

        if value is not _MISSING:
            self._apply_attribute(fields, type_name, name_token.value, value)

    def _apply_attribute(
        self,
        fields: dict[str, Any],
        type_name: str,
        attr_name: str,
        value: Any,
    ) -> None:
        time_sampled = attr_name.endswith(_TIME_SAMPLES_SUFFIX)
        base = attr_name[: -len(_TIME_SAMPLES_SUFFIX)] if time_sampled else attr_name

        if base in _SCALAR_ATTRS and type_name in _SCALAR_TYPES:
            if time_sampled:
                samples = _time_samples(value, _to_float)
                if samples is not None:
                    fields[f"{base}_time_samples"] = samples
            else:
                scalar = _to_float(value)
                if scalar is not None:
                    fields[base] = scalar
            return

        if base in _VECTOR_ATTRS and type_name in _VECTOR_TYPES:
            field_name, radians = _VECTOR_ATTRS[base]
            if time_sampled:
                samples = _time_samples(value, lambda v: _to_vec3(v, radians=radians))
                if samples is not None:
                    fields[f"{field_name}_time_samples"] = samples
            else:
                vector = _to_vec3(value, radians=radians)
                if vector is not None:
                    fields[field_name] = vector
            return

        if base == _COLOR_ATTR and type_name == _COLOR_TYPE and not time_sampled:
            if isinstance(value, list) and len(value) == 1:
                color = _to_vec3(value[0])
                if color is not None:
                    fields["color"] = color


def parse_usda(text: str) -> list[Prim]:
    """Parse one file's text into its root prims.

    Malformed input never raises: unknown statements are skipped and
    non-numeric values where numbers are expected become NaN.
    """
    return _Parser(text).parse_layer()
