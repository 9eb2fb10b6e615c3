"""Tests for context.extractor — default React/TypeScript extraction."""

import pytest

from ctxgraph.context.errors import ExtractionFailure
from ctxgraph.context.extractor import (
    ReactExtractor,
    extract_exports,
    extract_imports,
    extract_props,
    extract_state,
    infer_literal_type,
    normalize_prop_type,
    normalize_type_text,
    strip_comments,
)
from ctxgraph.context.models import (
    ArrayType,
    ContractKind,
    ExportKind,
    FunctionType,
    LiteralUnionType,
    ObjectType,
    SimpleType,
)

BUTTON = b"""/**
 * Primary action button.
 */
import React from "react";
import { cx } from "../utils/cx";

interface ButtonProps {
  label: string;
  variant?: "primary" | "secondary";
  size?: number | undefined;
  items: string[];
  onClick?: () => void;
  onHover(event: MouseEvent): void;
}

export function Button({ label, variant, onClick }: ButtonProps) {
  const [pressed, setPressed] = useState(false);
  const [count, setCount] = useState<number>(0);
  return <button className="px-4 py-2 bg-blue-500 md:flex" onClick={onClick}>{label}</button>;
}
"""


# ===== Type normalization =====


class TestNormalizeTypeText:
    def test_collapses_whitespace(self):
        assert normalize_type_text("  Record<string,\n   number>  ") == "Record<string, number>"

    def test_drops_undefined_from_union(self):
        assert normalize_type_text("string | undefined") == "string"

    def test_leading_pipe(self):
        assert normalize_type_text('| "a" | "b"') == '"a" | "b"'


class TestNormalizePropType:
    def test_literal_union(self):
        prop = normalize_prop_type('"primary" | "secondary"', optional=True)
        assert prop == LiteralUnionType(literals=["primary", "secondary"], optional=True)

    def test_numeric_and_boolean_literals(self):
        prop = normalize_prop_type("1 | 2 | true", optional=False)
        assert isinstance(prop, LiteralUnionType)
        assert prop.literals == ["1", "2", "true"]

    def test_function(self):
        prop = normalize_prop_type("(value: string) => void", optional=False)
        assert prop == FunctionType(signature="(value: string) => void")

    def test_object(self):
        assert isinstance(normalize_prop_type("{ id: string }", optional=False), ObjectType)

    def test_arrays(self):
        assert normalize_prop_type("string[]", optional=False) == ArrayType(element="string")
        assert normalize_prop_type("Array<User>", optional=False) == ArrayType(element="User")

    def test_simple(self):
        assert normalize_prop_type("number | undefined", optional=True) == SimpleType(
            name="number", optional=True
        )


class TestInferLiteralType:
    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ('"x"', "string"),
            ("42", "number"),
            ("false", "boolean"),
            ("null", "null"),
            ("[]", "array"),
            ("{}", "object"),
            ("", "undefined"),
            ("() => 1", "function"),
            ("compute()", "unknown"),
        ],
    )
    def test_inference(self, expression: str, expected: str):
        assert infer_literal_type(expression) == expected


# ===== Structural extraction =====


class TestStripComments:
    def test_removes_comments_keeps_strings(self):
        code = 'const a = "http://x"; // trailing\n/* block */const b = 1;'
        stripped = strip_comments(code)
        assert "trailing" not in stripped
        assert "block" not in stripped
        assert '"http://x"' in stripped


class TestExtractImports:
    def test_static_reexport_and_dynamic(self):
        code = (
            'import React from "react";\n'
            "import type { X } from './types';\n"
            'import "./side-effect";\n'
            'export { y } from "./y";\n'
            'const Lazy = lazy(() => import("./Lazy"));\n'
        )
        assert extract_imports(code) == ["./Lazy", "./side-effect", "./types", "./y", "react"]


class TestExtractExports:
    def test_default(self):
        assert extract_exports("export default function App() {}").kind == ExportKind.DEFAULT

    def test_named(self):
        exports = extract_exports("export const a = 1;\nexport function b() {}\nexport { c as d };")
        assert exports.kind == ExportKind.NAMED
        assert exports.named == ["a", "b", "d"]

    def test_none(self):
        assert extract_exports("const a = 1;").kind == ExportKind.NONE


class TestExtractProps:
    def test_props_and_events(self):
        code = strip_comments(BUTTON.decode())
        props, emits = extract_props(code)

        assert set(props) == {"label", "variant", "size", "items"}
        assert props["label"] == SimpleType(name="string")
        assert props["size"] == SimpleType(name="number", optional=True)
        assert props["items"] == ArrayType(element="string")
        assert set(emits) == {"onClick", "onHover"}
        assert emits["onClick"] == FunctionType(signature="() => void", optional=True)
        assert emits["onHover"].signature == "(event: MouseEvent) => void"

    def test_multiline_union(self):
        code = 'type TagProps = {\n  tone:\n    | "info"\n    | "warn";\n};'
        props, _ = extract_props(code)
        assert props["tone"] == LiteralUnionType(literals=["info", "warn"])


class TestExtractState:
    def test_use_state_types(self):
        state = extract_state(strip_comments(BUTTON.decode()))
        assert state == {
            "count": SimpleType(name="number"),
            "pressed": SimpleType(name="boolean"),
        }


# ===== ReactExtractor =====


class TestReactExtractor:
    """End-to-end extraction of one file."""

    def test_component_contract(self):
        contract = ReactExtractor().extract("src/components/Button.tsx", BUTTON)

        assert contract.kind == ContractKind.COMPONENT
        assert contract.entry_id == "src/components/Button.tsx"
        assert contract.exports.named == ["Button"]
        assert contract.version.imports == ["../utils/cx", "react"]
        assert contract.version.hooks == ["useState"]
        assert contract.version.functions == ["Button"]
        assert "Interactive" in contract.description or "button" in contract.description.lower()
        assert contract.file_hash.startswith("uif:")
        assert contract.semantic_hash.startswith("uif:")

    def test_header_snippet(self):
        contract = ReactExtractor(include_code="header").extract("Button.tsx", BUTTON)
        assert contract.snippet is not None
        assert "Primary action button" in contract.snippet

    def test_no_snippet(self):
        assert ReactExtractor(include_code="none").extract("Button.tsx", BUTTON).snippet is None

    def test_full_snippet(self):
        contract = ReactExtractor(include_code="full").extract("Button.tsx", BUTTON)
        assert contract.snippet == BUTTON.decode()

    def test_style_only_when_requested(self):
        assert ReactExtractor().extract("Button.tsx", BUTTON).style is None

        style = ReactExtractor(include_style=True).extract("Button.tsx", BUTTON).style
        assert style is not None
        assert style.tailwind["spacing"] == ["px-4", "py-2"]
        assert style.tailwind["colors"] == ["bg-blue-500"]
        assert style.tailwind["breakpoints"] == ["md"]

    def test_hook_kind(self):
        source = b"import { useState } from 'react';\nexport function useToggle() {\n  const [on, setOn] = useState(false);\n  return on;\n}\n"
        contract = ReactExtractor().extract("src/hooks/useToggle.ts", source)
        assert contract.kind == ContractKind.HOOK
        assert contract.version.hooks == ["useState"]

    def test_api_routes(self):
        source = b"import express from 'express';\nconst app = express();\napp.get('/users', handler);\napp.post('/users', create);\n"
        contract = ReactExtractor().extract("server/routes.ts", source)
        assert contract.kind == ContractKind.API
        assert contract.backend is not None
        assert contract.backend.framework == "express"
        assert [(r.method, r.path) for r in contract.backend.routes] == [
            ("GET", "/users"),
            ("POST", "/users"),
        ]

    def test_cosmetic_edits_keep_semantic_hash(self):
        extractor = ReactExtractor()
        original = extractor.extract("Button.tsx", BUTTON)
        reformatted = BUTTON.replace(b"  label: string;", b"  // the visible text\n  label:   string;")
        edited = extractor.extract("Button.tsx", reformatted)

        assert edited.file_hash != original.file_hash
        assert edited.semantic_hash == original.semantic_hash

    def test_interface_edit_changes_semantic_hash(self):
        extractor = ReactExtractor()
        original = extractor.extract("Button.tsx", BUTTON)
        edited = extractor.extract("Button.tsx", BUTTON.replace(b"label: string", b"label?: string"))
        assert edited.semantic_hash != original.semantic_hash

    def test_invalid_utf8_raises(self):
        with pytest.raises(ExtractionFailure) as exc_info:
            ReactExtractor().extract("bad.ts", b"\xff\xfe\xfa")
        assert exc_info.value.entry_id == "bad.ts"

    def test_binary_raises(self):
        with pytest.raises(ExtractionFailure):
            ReactExtractor().extract("bin.js", b"abc\x00def")
