"""Impact Analyzer - Orchestrates classify, resolve and build for one change description."""

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from .analyzers.breaking_changes import DeclarationDiffDetector
from .analyzers.dependents import TextualDependentsFinder
from .analyzers.impact_graph_builder import ImpactGraph, ImpactGraphBuilder
from .analyzers.test_correlation import ConventionTestLocator
from .config import AnalysisConfiguration, ProjectConfig
from .core.change_set_resolver import ChangeSetResolver
from .core.input_classifier import ClassificationContext, InputClassifier
from .core.models import ChangeRequest, ChangeSet
from .log import get_logger
from .vcs.merge_requests import MrResolver, StaticMrResolver, TimeoutMrResolver

logger = get_logger(__name__)


@dataclass
class AnalysisProgress:
    """Tracks progress through analysis phases."""
    current_phase: str
    completed_phases: List[str]
    start_time: float
    phase_start_time: float

    @property
    def elapsed_time(self) -> float:
        return time.time() - self.start_time

    @property
    def phase_elapsed_time(self) -> float:
        return time.time() - self.phase_start_time


@dataclass(frozen=True)
class AnalysisResult:
    """The produced surface: originating request, resolved change set and impact graph."""
    request: ChangeRequest
    change_set: ChangeSet
    graph: ImpactGraph
    classified_by: str = "explicit"
    duration: float = 0.0


class ImpactAnalyzer:
    """Main orchestrator: classify -> resolve -> build."""

    def __init__(self, vcs, project: Optional[ProjectConfig] = None,
                 configuration: Optional[AnalysisConfiguration] = None,
                 mr_resolver: Optional[MrResolver] = None,
                 classifier: Optional[InputClassifier] = None,
                 on_phase: Optional[Callable[[str], None]] = None):
        self.vcs = vcs
        self.project = project or ProjectConfig(root=Path(getattr(vcs, "root", ".")))
        self.config = configuration or self.project.analysis
        self.classifier = classifier or InputClassifier()
        self.on_phase = on_phase

        if mr_resolver is None and self.project.merge_requests:
            mr_resolver = StaticMrResolver.from_config(self.project.merge_requests)
        if mr_resolver is not None and not isinstance(mr_resolver, TimeoutMrResolver):
            mr_resolver = TimeoutMrResolver(mr_resolver, self.config.mr_timeout)
        self.resolver = ChangeSetResolver(vcs, mr_resolver, self.project.base_policy)

        self.builder = ImpactGraphBuilder(
            dependents_finder=(TextualDependentsFinder(vcs, self.config.source_globs)
                               if self.config.include_dependents else None),
            breaking_detector=(DeclarationDiffDetector(vcs)
                               if self.config.include_breaking_changes else None),
            test_locator=(ConventionTestLocator(vcs, self.project.test_rules)
                          if self.config.include_test_correlation else None),
            max_workers=self.config.max_workers,
        )
        self._progress: Optional[AnalysisProgress] = None

    @property
    def progress(self) -> Optional[AnalysisProgress]:
        return self._progress

    def classification_context(self) -> ClassificationContext:
        is_file_like = getattr(self.vcs, "looks_like_path", None)
        if is_file_like is None:
            return ClassificationContext(current_branch=self.vcs.current_branch())
        return ClassificationContext(current_branch=self.vcs.current_branch(),
                                     is_file_like=is_file_like)

    def classify(self, text: str):
        """Return ``(rule_name, request)`` for ``text`` without resolving anything."""
        return self.classifier.explain(text, self.classification_context())

    def analyze(self, text: str, cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """Run the whole pipeline for a free-form change description."""
        self._start()
        self._update_progress("classification")
        rule, request = self.classify(text)
        logger.info("Interpreted %r as %s (rule %s)", text, request.describe(), rule)
        return self._run(request, rule, cancel_event)

    def analyze_request(self, request: ChangeRequest,
                        cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """Run resolution and graph building for an already classified request."""
        self._start()
        return self._run(request, "explicit", cancel_event)

    def _run(self, request: ChangeRequest, rule: str,
             cancel_event: Optional[threading.Event]) -> AnalysisResult:
        self._update_progress("resolution")
        change_set = self.resolver.resolve(request)

        self._update_progress("graph_building")
        graph = self.builder.build(change_set, self.project.modules, self.project.features,
                                   cancel_event=cancel_event)

        self._update_progress("finalizing")
        duration = self._progress.elapsed_time if self._progress else 0.0
        logger.info("Analysis of %d file(s) finished in %.2fs", len(change_set), duration)
        return AnalysisResult(request=request, change_set=change_set, graph=graph,
                              classified_by=rule, duration=duration)

    def _start(self):
        now = time.time()
        self._progress = AnalysisProgress(
            current_phase="initialization",
            completed_phases=[],
            start_time=now,
            phase_start_time=now,
        )

    def _update_progress(self, phase: str):
        """Update analysis progress."""
        if self._progress:
            self._progress.completed_phases.append(self._progress.current_phase)
            self._progress.current_phase = phase
            self._progress.phase_start_time = time.time()
        logger.debug("Phase %s", phase)
        if self.on_phase is not None:
            self.on_phase(phase)
