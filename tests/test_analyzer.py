"""Tests for the classify -> resolve -> build orchestration."""

from __future__ import annotations

import pytest

from changescope.analyzer import ImpactAnalyzer
from changescope.analyzers.module_attribution import FeatureMapping, ModuleCategory, ModuleDescriptor
from changescope.config import AnalysisConfiguration, ProjectConfig
from changescope.core.models import BranchPair, ChangedFile, ChangeStatus, MrReference
from changescope.errors import ResolutionError, ResolutionErrorKind


@pytest.fixture
def project(tmp_path) -> ProjectConfig:
    return ProjectConfig(
        root=tmp_path,
        modules=[ModuleDescriptor("app", ("app/**",), ModuleCategory.UI)],
        features=FeatureMapping({"app": frozenset({"Home"})}),
        merge_requests={16: {"source": "feature/x", "target": "main"}},
    )


@pytest.fixture
def repo(fake_vcs):
    source = fake_vcs.add_revision("feature/x", {"app/Home.py": "def show():\n    pass\n"})
    target = fake_vcs.add_revision("main", {"app/Home.py": "def show(x):\n    pass\n"})
    fake_vcs.merge_bases[(target, source)] = target
    fake_vcs.add_diff(target, source, [ChangedFile("app/Home.py", ChangeStatus.MODIFIED, 1, 1)],
                      three_dot=True)
    fake_vcs.branch = "feature/x"
    return fake_vcs


def test_analyze_free_text(repo, project) -> None:
    phases = []
    analyzer = ImpactAnalyzer(repo, project, on_phase=phases.append)

    result = analyzer.analyze("feature/x vs main")

    assert result.request == BranchPair(source="feature/x", target="main")
    assert result.classified_by == "branch_pair"
    assert result.change_set.paths == ["app/Home.py"]
    assert result.graph.module_names == ["app"]
    assert result.graph.affected_features == {"Home"}
    assert phases == ["classification", "resolution", "graph_building", "finalizing"]
    assert analyzer.progress.completed_phases[-1] == "graph_building"


def test_mr_table_from_project(repo, project) -> None:
    result = ImpactAnalyzer(repo, project).analyze("MR !16")

    assert result.request == MrReference(mr_number=16)
    assert result.change_set.resolved_to == "feature/x"


def test_empty_text_uses_current_branch(repo, project) -> None:
    repo.add_revision("release_3")
    release = repo.refs["release_3"]
    repo.merge_bases[(release, repo.refs["feature/x"])] = release

    with pytest.raises(ResolutionError) as excinfo:
        ImpactAnalyzer(repo, project).analyze("")

    # Auto-detection picked release_3, which has no diff registered.
    assert excinfo.value.kind is ResolutionErrorKind.NO_CHANGES
    assert excinfo.value.context["from"] == "release_3"


def test_configuration_switches_off_analyses(repo, project) -> None:
    config = AnalysisConfiguration(include_dependents=False, include_breaking_changes=False,
                                   include_test_correlation=False)

    result = ImpactAnalyzer(repo, project, config).analyze_request(
        BranchPair(source="feature/x", target="main"))

    assert result.classified_by == "explicit"
    assert result.graph.dependents == {}
    assert result.graph.breaking_status == {}
    assert result.graph.test_correlation == {}
