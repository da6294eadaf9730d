"""Tests for the textual dependents search and the dependency graph."""

from __future__ import annotations

import pytest

from changescope.analyzers.dependents import TextualDependentsFinder, build_dependency_graph
from changescope.core.change_set_resolver import ChangeSetResolver
from changescope.core.models import BranchPair, ChangedFile, ChangeSet, ChangeStatus
from changescope.vcs.gateway import GitRepositoryGateway


@pytest.fixture
def finder(fake_vcs) -> TextualDependentsFinder:
    fake_vcs.working_tree.update({
        "app/Player.kt": "class Player\n",
        "app/Screen.kt": "val p = Player()\n",
        "app/Other.kt": "val p = PlayerView()\n",
        "util/string_utils.py": "def trim(s): ...\n",
        "app/use.py": "from util import string_utils\n",
        "app/Legacy.java": "StringUtils.trim(x);\n",
        "docs/notes.md": "Player string_utils\n",
    })
    return TextualDependentsFinder(fake_vcs, ("*.kt", "*.py", "*.java"))


@pytest.mark.parametrize(
    "path, expected",
    [
        ("app/Player.kt", ["Player"]),
        ("util/string_utils.py", ["string_utils", "StringUtils"]),
        ("pkg/player/__init__.py", ["player"]),
        ("a/io.py", []),
        ("README.md", []),
        ("app/build.gradle", []),
    ],
)
def test_symbols_for(finder, path, expected) -> None:
    assert finder.symbols_for(path) == expected


def test_whole_word_matches_exclude_the_file_itself(finder) -> None:
    found = finder.find_dependents(ChangedFile("app/Player.kt", ChangeStatus.MODIFIED))

    assert found == {"app/Screen.kt"}


def test_snake_and_camel_case_symbols_are_both_searched(finder) -> None:
    found = finder.find_dependents(ChangedFile("util/string_utils.py", ChangeStatus.MODIFIED))

    assert found == {"app/use.py", "app/Legacy.java"}


def test_renamed_file_searches_old_name_too(finder) -> None:
    changed = ChangedFile("app/Video.kt", ChangeStatus.RENAMED, old_path="app/Player.kt")

    assert finder.find_dependents(changed) == {"app/Screen.kt"}


def test_file_without_symbols_searches_nothing(finder, fake_vcs) -> None:
    assert finder.find_dependents(ChangedFile("README.md", ChangeStatus.MODIFIED)) == frozenset()
    assert not [call for call in fake_vcs.calls if call[0] == "search_text"]


def test_dependency_graph_edges_point_at_changed_files() -> None:
    graph = build_dependency_graph({
        "app/Player.kt": frozenset({"app/Screen.kt", "app/Home.kt"}),
        "app/Home.kt": frozenset(),
    })

    assert set(graph.edges) == {("app/Screen.kt", "app/Player.kt"), ("app/Home.kt", "app/Player.kt")}
    assert graph.nodes["app/Home.kt"]["changed"] is True
    assert graph.nodes["app/Screen.kt"]["changed"] is False
    assert graph.edges["app/Screen.kt", "app/Player.kt"]["type"] == "textual"


def test_search_uses_the_change_set_head_revision(fake_vcs) -> None:
    fake_vcs.working_tree["app/Screen.kt"] = "val p = Player()\n"
    fake_vcs.trees["head"] = {"app/Player.kt": "class Player\n", "app/Home.kt": "Player(1)\n"}
    change_set = ChangeSet.from_files([ChangedFile("app/Player.kt", ChangeStatus.MODIFIED)],
                                      "test change", head_revision="head")

    found = TextualDependentsFinder(fake_vcs, ("*.kt",)).find_dependents(change_set.files[0], change_set)

    assert found == {"app/Home.kt"}
    assert ("search_text", "Player", "head") in fake_vcs.calls


def test_callers_added_on_an_unchecked_out_branch_are_found(git_repo) -> None:
    git_repo.commit("base", {"app/Player.kt": "class Player(val id: Int)\n"})
    git_repo.branch("feature/x")
    git_repo.checkout("feature/x")
    git_repo.commit("add screen", {
        "app/Player.kt": "class Player(val id: Int, val loop: Boolean)\n",
        "app/Screen.kt": "val p = Player(1, true)\n",
    })
    git_repo.checkout("main")
    vcs = GitRepositoryGateway(str(git_repo.root))
    change_set = ChangeSetResolver(vcs).resolve(BranchPair(source="feature/x", target="main"))
    player = next(changed for changed in change_set if changed.path == "app/Player.kt")

    found = TextualDependentsFinder(vcs, ("*.kt",)).find_dependents(player, change_set)

    assert found == {"app/Screen.kt"}
