"""Tests for context.builder — full project builds."""

from pathlib import Path

import pytest

from ctxgraph.context.builder import build_project, extract_all, run_extractor, select_roots
from ctxgraph.context.config import ContextConfig
from ctxgraph.context.errors import ExtractionFailure
from ctxgraph.context.extractor import ReactExtractor


class CrashingExtractor(ReactExtractor):
    """ReactExtractor that raises ValueError for files named Bad.tsx."""

    def extract(self, entry_id: str, contents: bytes):
        if entry_id.endswith("Bad.tsx"):
            raise ValueError("analyzer crashed")
        return super().extract(entry_id, contents)


class TestExtractAll:
    """Parallel extraction."""

    def test_results_sorted_regardless_of_completion(self, component_project: Path):
        ids = ["src/utils/cx.ts", "src/App.tsx", "src/components/Card.tsx"]
        contracts, failures = extract_all(component_project, ids, ReactExtractor(), workers=3)

        assert [c.entry_id for c in contracts] == sorted(ids)
        assert failures == []

    def test_failures_collected(self, tmp_path: Path, log_events):
        (tmp_path / "ok.ts").write_text("export const a = 1;\n")
        (tmp_path / "bad.ts").write_bytes(b"\xff\xfe")

        contracts, failures = extract_all(tmp_path, ["bad.ts", "gone.ts", "ok.ts"], ReactExtractor())

        assert [c.entry_id for c in contracts] == ["ok.ts"]
        assert [f.entry_id for f in failures] == ["bad.ts", "gone.ts"]
        assert sum(1 for e in log_events if e["event"] == "extraction_failed") == 2

    def test_crashing_extractor_does_not_abort(self, tmp_path: Path, log_events):
        (tmp_path / "Bad.tsx").write_text("export const Bad = () => null;\n")
        (tmp_path / "Good.tsx").write_text("export const Good = () => null;\n")

        contracts, failures = extract_all(tmp_path, ["Bad.tsx", "Good.tsx"], CrashingExtractor(), workers=2)

        assert [c.entry_id for c in contracts] == ["Good.tsx"]
        assert [(f.entry_id, f.reason) for f in failures] == [("Bad.tsx", "ValueError: analyzer crashed")]
        assert any(e["event"] == "extraction_failed" and e["entry_id"] == "Bad.tsx" for e in log_events)


class TestRunExtractor:
    def test_foreign_exception_becomes_failure(self):
        with pytest.raises(ExtractionFailure) as exc_info:
            run_extractor(CrashingExtractor(), "Bad.tsx", b"export const a = 1;\n")

        assert exc_info.value.entry_id == "Bad.tsx"
        assert exc_info.value.reason == "ValueError: analyzer crashed"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_extraction_failure_passes_through(self):
        with pytest.raises(ExtractionFailure) as exc_info:
            run_extractor(ReactExtractor(), "bin.ts", b"\x00")

        assert exc_info.value.entry_id == "bin.ts"
        assert exc_info.value.reason == "binary content"


class TestBuildProject:
    """Discover, extract, connect and pack."""

    def test_component_project(self, component_project: Path, fixed_time):
        result = build_project(component_project, created_at=fixed_time)

        assert result.store.ids() == [
            "src/App.tsx",
            "src/components/Button.tsx",
            "src/components/Card.tsx",
            "src/utils/cx.ts",
        ]
        assert result.graph.roots == ["src/App.tsx"]
        assert list(result.bundles) == ["src/App.tsx"]

        bundle = result.bundles["src/App.tsx"]
        assert bundle.node_ids() == [
            "src/App.tsx",
            "src/components/Button.tsx",
            "src/components/Card.tsx",
        ]
        assert [m.name for m in bundle.meta.missing] == ["react"]

    def test_depth_from_config(self, component_project: Path, fixed_time):
        result = build_project(component_project, ContextConfig(depth=2), created_at=fixed_time)
        assert "src/utils/cx.ts" in result.bundles["src/App.tsx"].node_ids()

    def test_explicit_roots(self, component_project: Path, fixed_time):
        config = ContextConfig(roots=["./src/components/Button.tsx"])
        result = build_project(component_project, config, created_at=fixed_time)
        assert list(result.bundles) == ["src/components/Button.tsx"]

    def test_deterministic(self, component_project: Path, fixed_time):
        first = build_project(component_project, created_at=fixed_time)
        second = build_project(component_project, ContextConfig(workers=1), created_at=fixed_time)
        assert first.sorted_bundles() == second.sorted_bundles()

    def test_select_roots_default(self, component_project: Path):
        result = build_project(component_project)
        assert select_roots(result.graph, ContextConfig()) == ["src/App.tsx"]

    def test_crashing_extractor_reported(self, tmp_path: Path, fixed_time):
        (tmp_path / "Bad.tsx").write_text("export const Bad = () => null;\n")
        (tmp_path / "Good.tsx").write_text('import { Bad } from "./Bad";\nexport const Good = () => null;\n')

        result = build_project(tmp_path, ContextConfig(), CrashingExtractor(), created_at=fixed_time)

        assert result.store.ids() == ["Good.tsx"]
        assert [f.entry_id for f in result.failures] == ["Bad.tsx"]
        assert "ValueError" in result.failures[0].reason
        assert list(result.bundles) == ["Good.tsx"]
