"""Impact Graph Builder - Aggregates per-file analysis into one immutable ImpactGraph."""

import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Set, Tuple

import networkx as nx

from ..core.models import ChangeSet, ChangedFile
from ..errors import AnalysisCancelled
from ..log import get_logger
from .breaking_changes import (
    BreakingAssessment, BreakingChangeDetector, BreakingChangeRecord, BreakingStatus
)
from .dependents import DependentsFinder, build_dependency_graph
from .module_attribution import (
    UNCLASSIFIED, FeatureMapping, ImpactScope, ModuleAttributor, ModuleCategory,
    ModuleDescriptor, classify_scope, validate_tables
)
from .test_correlation import CorrelationStatus, TestCorrelation, TestLocator

logger = get_logger(__name__)

_POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class AffectedModule:
    """A module touched by the change, with the files attributed to it."""
    descriptor: ModuleDescriptor
    files: Tuple[str, ...]
    scope: ImpactScope

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class ImpactGraph:
    """Resolved impact of one ChangeSet. Built wholesale, never mutated."""
    scope: ImpactScope
    affected_modules: Tuple[AffectedModule, ...]
    affected_features: FrozenSet[str]
    dependents: Mapping[str, FrozenSet[str]]
    breaking_changes: FrozenSet[BreakingChangeRecord]
    breaking_status: Mapping[str, BreakingStatus]
    test_correlation: Mapping[str, TestCorrelation]
    unclassified_files: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    dependency_graph: nx.DiGraph = field(default_factory=nx.DiGraph, compare=False, repr=False)

    @property
    def module_names(self) -> List[str]:
        return [module.name for module in self.affected_modules]

    @property
    def is_breaking(self) -> bool:
        return bool(self.breaking_changes)

    def missing_tests(self) -> List[str]:
        return [path for path, correlation in self.test_correlation.items()
                if correlation.status is CorrelationStatus.MISSING]


@dataclass
class FileAnalysis:
    """What one worker learned about one file."""
    path: str
    dependents: FrozenSet[str] = frozenset()
    breaking: Optional[BreakingAssessment] = None
    test: Optional[TestCorrelation] = None
    warnings: List[str] = field(default_factory=list)


class ImpactGraphBuilder:
    """Builds an ImpactGraph from a ChangeSet and the static module/feature tables."""

    def __init__(self, dependents_finder: Optional[DependentsFinder] = None,
                 breaking_detector: Optional[BreakingChangeDetector] = None,
                 test_locator: Optional[TestLocator] = None,
                 max_workers: int = 4):
        self.dependents_finder = dependents_finder
        self.breaking_detector = breaking_detector
        self.test_locator = test_locator
        self.max_workers = max(1, max_workers)

    def build(self, change_set: ChangeSet, modules: Sequence[ModuleDescriptor],
              features: Optional[FeatureMapping] = None,
              cancel_event: Optional[threading.Event] = None) -> ImpactGraph:
        """Attribute, scope and analyse every file; identical inputs give an identical graph."""
        features = features or FeatureMapping()
        cancel_event = cancel_event or threading.Event()
        validate_tables(modules, features)

        attribution = ModuleAttributor(modules).attribute(change_set.paths)
        attributed = list(dict.fromkeys(attribution.module_of.values()))
        scope = classify_scope(attributed, change_set.paths)
        logger.info("Scope %s across %d module(s)", scope.value, len(attributed))

        files_by_module = attribution.files_by_module()
        affected_modules = tuple(
            AffectedModule(descriptor, tuple(files_by_module[descriptor.name]), scope)
            for descriptor in attributed
        )
        affected_features = self._features(attributed, features, scope)

        analyses = self._analyze_files(change_set, cancel_event)

        dependents: Dict[str, FrozenSet[str]] = {}
        breaking_status: Dict[str, BreakingStatus] = {}
        breaking_records: Set[BreakingChangeRecord] = set()
        test_correlation: Dict[str, TestCorrelation] = {}
        warnings = list(attribution.warnings)
        for changed in change_set:
            analysis = analyses[changed.path]
            if self.dependents_finder is not None:
                dependents[changed.path] = analysis.dependents
            if analysis.breaking is not None:
                breaking_status[changed.path] = analysis.breaking.status
                breaking_records.update(analysis.breaking.records)
            if analysis.test is not None:
                test_correlation[changed.path] = analysis.test
            warnings.extend(analysis.warnings)

        return ImpactGraph(
            scope=scope,
            affected_modules=affected_modules,
            affected_features=affected_features,
            dependents=dependents,
            breaking_changes=frozenset(breaking_records),
            breaking_status=breaking_status,
            test_correlation=test_correlation,
            unclassified_files=attribution.unclassified,
            warnings=tuple(warnings),
            dependency_graph=build_dependency_graph(dependents),
        )

    @staticmethod
    def _features(attributed: Sequence[ModuleDescriptor], features: FeatureMapping,
                  scope: ImpactScope) -> FrozenSet[str]:
        affected: Set[str] = set()
        for descriptor in attributed:
            if descriptor is not UNCLASSIFIED:
                affected.update(features.features_for(descriptor.name))
        touches_shared = any(d.category is ModuleCategory.SHARED for d in attributed)
        if scope in (ImpactScope.CROSS_CUTTING, ImpactScope.BUILD_SYSTEM) or touches_shared:
            affected.update(features.cross_cutting_features)
        return frozenset(affected)

    def _analyze_files(self, change_set: ChangeSet,
                       cancel_event: threading.Event) -> Dict[str, FileAnalysis]:
        """Fan out per-file work; each worker returns a value merged here."""
        if cancel_event.is_set():
            raise AnalysisCancelled("analysis cancelled before per-file work started")

        results: Dict[str, FileAnalysis] = {}
        executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                      thread_name_prefix="impact-worker")
        cancelled = False
        try:
            future_to_path: Dict[Future, str] = {
                executor.submit(self._analyze_file, changed, change_set, cancel_event): changed.path
                for changed in change_set
            }
            pending = set(future_to_path)
            while pending:
                if cancel_event.is_set():
                    cancelled = True
                    raise AnalysisCancelled(
                        f"analysis cancelled with {len(pending)} file(s) outstanding")
                done, pending = wait(pending, timeout=_POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    analysis = future.result()
                    results[future_to_path[future]] = analysis
        except AnalysisCancelled:
            cancelled = True
            raise
        finally:
            executor.shutdown(wait=not cancelled, cancel_futures=cancelled)
        return results

    def _analyze_file(self, changed: ChangedFile, change_set: ChangeSet,
                      cancel_event: threading.Event) -> FileAnalysis:
        analysis = FileAnalysis(path=changed.path)

        if self.dependents_finder is not None:
            self._check_cancelled(cancel_event)
            try:
                analysis.dependents = self.dependents_finder.find_dependents(changed, change_set)
            except Exception as exc:
                self._degrade(analysis, "dependent search", exc)

        if self.breaking_detector is not None and self.breaking_detector.applies_to(changed):
            self._check_cancelled(cancel_event)
            try:
                analysis.breaking = self.breaking_detector.assess(changed, change_set)
            except Exception as exc:
                self._degrade(analysis, "breaking-change detection", exc)
                analysis.breaking = BreakingAssessment(BreakingStatus.UNKNOWN, note=str(exc))

        if self.test_locator is not None and self.test_locator.applies_to(changed):
            self._check_cancelled(cancel_event)
            try:
                analysis.test = self.test_locator.locate(changed, change_set)
            except Exception as exc:
                self._degrade(analysis, "test correlation", exc)
                analysis.test = TestCorrelation(None, CorrelationStatus.MISSING)

        return analysis

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event):
        if cancel_event.is_set():
            raise AnalysisCancelled("analysis cancelled")

    @staticmethod
    def _degrade(analysis: FileAnalysis, step: str, exc: Exception):
        message = f"{step} failed for {analysis.path}: {exc}"
        logger.warning(message)
        analysis.warnings.append(message)
