"""Tests for report payloads, artifact names and the console summary."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest
from rich.console import Console

from changescope.analyzer import AnalysisResult
from changescope.analyzers.breaking_changes import BreakingReason, BreakingStatus, BreakingChangeRecord
from changescope.analyzers.dependents import build_dependency_graph
from changescope.analyzers.impact_graph_builder import AffectedModule, ImpactGraph
from changescope.analyzers.module_attribution import ImpactScope, ModuleCategory, ModuleDescriptor
from changescope.analyzers.test_correlation import CorrelationStatus, TestCorrelation
from changescope.core.models import (
    Branch, BranchPair, ChangedFile, ChangeSet, ChangeStatus, CommitRange, FileSet, MrReference,
    WorkingTree
)
from changescope.report import ReportAssembler

DAY = date(2026, 10, 19)
APP = ModuleDescriptor("app", ("app/**",), ModuleCategory.UI)


@pytest.fixture
def result() -> AnalysisResult:
    request = BranchPair(source="feature/PLAYER-12", target="release_250")
    change_set = ChangeSet.from_files(
        [ChangedFile("app/Player.kt", ChangeStatus.MODIFIED, 4, 2),
         ChangedFile("app/New.kt", ChangeStatus.RENAMED, 0, 0, old_path="app/Old.kt")],
        request.describe(),
        resolved_from="release_250",
        resolved_to="feature/PLAYER-12",
        compare_base="abc123",
        head_revision="def456",
        request=request,
    )
    dependents = {"app/Player.kt": frozenset({"app/Z.kt", "app/A.kt"}), "app/New.kt": frozenset()}
    graph = ImpactGraph(
        scope=ImpactScope.SINGLE_MODULE,
        affected_modules=(AffectedModule(APP, ("app/Player.kt", "app/New.kt"), ImpactScope.SINGLE_MODULE),),
        affected_features=frozenset({"Playback", "Home"}),
        dependents=dependents,
        breaking_changes=frozenset({
            BreakingChangeRecord("app/Player.kt", BreakingReason.REMOVED, "Player.stop",
                                 "function Player.stop no longer declared"),
            BreakingChangeRecord("app/Player.kt", BreakingReason.SIGNATURE_CHANGED, "Player.play",
                                 "(a:List[Int]) -> ()"),
        }),
        breaking_status={"app/Player.kt": BreakingStatus.BREAKING, "app/New.kt": BreakingStatus.UNKNOWN},
        test_correlation={
            "app/Player.kt": TestCorrelation("app/PlayerTest.kt", CorrelationStatus.PRESENT_BUT_UNMODIFIED),
            "app/New.kt": TestCorrelation(None, CorrelationStatus.MISSING),
        },
        warnings=("dependent search failed for app/[x].kt: boom",),
        dependency_graph=build_dependency_graph(dependents),
    )
    return AnalysisResult(request=request, change_set=change_set, graph=graph,
                          classified_by="branch_pair")


def test_payload_is_json_serialisable(result) -> None:
    payload = ReportAssembler().to_payload(result, datetime(2026, 10, 19, tzinfo=timezone.utc))

    assert json.loads(json.dumps(payload)) == payload
    assert payload["generated_at"] == "2026-10-19T00:00:00+00:00"
    assert payload["request"] == {
        "kind": "branch_pair",
        "description": "branch feature/PLAYER-12 against release_250",
        "classified_by": "branch_pair",
    }
    assert payload["change_set"]["files"][1] == {
        "path": "app/New.kt", "status": "renamed", "lines_added": 0, "lines_removed": 0,
        "old_path": "app/Old.kt",
    }
    impact = payload["impact"]
    assert impact["scope"] == "single_module"
    assert impact["modules"] == [{"name": "app", "category": "ui", "files": ["app/Player.kt", "app/New.kt"]}]
    assert impact["features"] == ["Home", "Playback"]
    assert impact["dependents"]["app/Player.kt"] == ["app/A.kt", "app/Z.kt"]
    assert [record["symbol"] for record in impact["breaking_changes"]] == ["Player.play", "Player.stop"]
    assert impact["test_correlation"]["app/New.kt"] == {"existing_test_path": None, "status": "missing"}
    assert impact["is_breaking"] is True
    assert impact["dependency_graph"] == {
        "nodes": 4,
        "edges": [
            {"from": "app/A.kt", "to": "app/Player.kt", "type": "textual"},
            {"from": "app/Z.kt", "to": "app/Player.kt", "type": "textual"},
        ],
    }


@pytest.mark.parametrize(
    "request_, change_set, expected",
    [
        (BranchPair(source="feature/PLAYER-12", target="release_250"), None,
         "impact_feature-PLAYER-12_vs_release_250_20261019"),
        (Branch(name="bug/TV-1"),
         ChangeSet.from_files([ChangedFile("a.py", ChangeStatus.MODIFIED)], "x",
                              resolved_from="hotfix_100", resolved_to="bug/TV-1"),
         "impact_bug-TV-1_vs_hotfix_100_20261019"),
        (MrReference(mr_number=16), None, "impact_mr-16_20261019"),
        (CommitRange(from_ref="HEAD~3", to_ref="HEAD"), None, "impact_HEAD-3_vs_HEAD_20261019"),
        (FileSet(paths=("a.py",)), None, "impact_files_20261019"),
        (WorkingTree(),
         ChangeSet.from_files([ChangedFile("a.py", ChangeStatus.MODIFIED)], "x",
                              resolved_from="HEAD", resolved_to="working tree"),
         "impact_working-tree_20261019"),
    ],
)
def test_artifact_names(request_, change_set, expected) -> None:
    assert ReportAssembler().artifact_name(request_, change_set, on_date=DAY) == expected


def test_render_summary_lists_modules_files_and_breaking_changes(result) -> None:
    console = Console(record=True, width=160)

    ReportAssembler().render_summary(result, console)

    text = console.export_text()
    assert "Affected modules" in text
    assert "app/Player.kt" in text
    assert "Player.stop" in text
    assert "(a:List[Int]) -> ()" in text
    assert "app/[x].kt" in text
    assert "missing" in text
    assert "Dependency edges" in text
