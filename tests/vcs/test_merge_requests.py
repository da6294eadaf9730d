"""Tests for merge request metadata resolvers."""

from __future__ import annotations

import threading

import pytest

from changescope.core.models import MrReference
from changescope.errors import CollaboratorTimeout
from changescope.vcs.merge_requests import MrMetadata, MrResolver, StaticMrResolver, TimeoutMrResolver


def test_static_lookup_by_number_and_url() -> None:
    by_number = MrMetadata("feature/a", "main")
    by_url = MrMetadata("feature/b", "release_2")
    resolver = StaticMrResolver({
        "!16": by_number,
        "https://gitlab.example/-/merge_requests/20": by_url,
    })

    assert resolver.resolve_mr(MrReference(mr_number=16)) == by_number
    assert resolver.resolve_mr(MrReference(
        mr_number=20, mr_url="https://gitlab.example/-/merge_requests/20")) == by_url
    assert resolver.resolve_mr(MrReference(mr_number=99)) is None


def test_static_default_is_used_for_unknown_requests() -> None:
    default = MrMetadata("topic", "main")

    assert StaticMrResolver(default=default).resolve_mr(MrReference(mr_number=1)) == default


def test_from_config_reads_source_target_and_title() -> None:
    resolver = StaticMrResolver.from_config({
        16: {"source": "feature/x", "target": "main", "title": "Add seek bar"},
    })

    assert resolver.resolve_mr(MrReference(mr_number=16)) == MrMetadata(
        "feature/x", "main", "Add seek bar")


class _BlockingResolver(MrResolver):
    def __init__(self) -> None:
        self.release = threading.Event()

    def resolve_mr(self, reference):
        self.release.wait(5)
        return MrMetadata("late", "main")


def test_timeout_resolver_raises_collaborator_timeout() -> None:
    inner = _BlockingResolver()
    resolver = TimeoutMrResolver(inner, timeout=0.05)

    try:
        with pytest.raises(CollaboratorTimeout) as excinfo:
            resolver.resolve_mr(MrReference(mr_number=5))
    finally:
        inner.release.set()

    assert excinfo.value.collaborator == "merge request resolver"


def test_timeout_resolver_passes_results_through() -> None:
    inner = StaticMrResolver({"5": MrMetadata("a", "b")})

    assert TimeoutMrResolver(inner, timeout=1).resolve_mr(MrReference(mr_number=5)) == MrMetadata("a", "b")
