"""Shared test fixtures."""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from ctxgraph.context.extractor import build_contract
from ctxgraph.context.models import Contract, LogicSignature, SimpleType, VersionFingerprint

FIXED_TIME = datetime(2026, 1, 1, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _captured_logs() -> Iterator[list[dict]]:
    """Keep structlog output off stdout and expose emitted events."""
    structlog.reset_defaults()
    with capture_logs() as logs:
        yield logs


@pytest.fixture
def log_events(_captured_logs: list[dict]) -> list[dict]:
    return _captured_logs


@pytest.fixture
def fixed_time() -> datetime:
    return FIXED_TIME


@pytest.fixture
def write_files() -> Callable[[Path, dict[str, str]], Path]:
    """Write a {relative path: content} mapping under a root."""

    def _write(root: Path, files: dict[str, str]) -> Path:
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root

    return _write


@pytest.fixture
def make_contract() -> Callable[..., Contract]:
    """Build a contract from imports and prop names, hashes included."""

    def _make(
        entry_id: str,
        imports: list[str] | None = None,
        props: list[str] | None = None,
        content: str | None = None,
    ) -> Contract:
        signature = LogicSignature(props={name: SimpleType(name="string") for name in props or []})
        version = VersionFingerprint(imports=sorted(imports or []))
        return build_contract(
            entry_id,
            content if content is not None else f"// {entry_id}\n",
            logic_signature=signature,
            version=version,
        )

    return _make


COMPONENT_SOURCES: dict[str, str] = {
    "src/App.tsx": """import React from "react";
import { Button } from "./components/Button";
import { Card } from "./components/Card";

export default function App() {
  return (
    <div>
      <Card title="hi" />
      <Button label="go" />
    </div>
  );
}
""",
    "src/components/Button.tsx": """import React from "react";
import { cx } from "../utils/cx";

interface ButtonProps {
  label: string;
  variant?: "primary" | "secondary";
  onClick?: () => void;
}

export function Button({ label, variant, onClick }: ButtonProps) {
  return <button className={cx(variant)} onClick={onClick}>{label}</button>;
}
""",
    "src/components/Card.tsx": """import React, { useState } from "react";

interface CardProps {
  title: string;
}

export function Card({ title }: CardProps) {
  const [open, setOpen] = useState(false);
  return <section onClick={() => setOpen(!open)}>{title}</section>;
}
""",
    "src/utils/cx.ts": """export function cx(...names: Array<string | undefined>) {
  return names.filter(Boolean).join(" ");
}
""",
}


@pytest.fixture
def component_project(tmp_path: Path, write_files: Callable[[Path, dict[str, str]], Path]) -> Path:
    """A small React project: App -> Button, Card; Button -> cx."""
    return write_files(tmp_path, COMPONENT_SOURCES)
