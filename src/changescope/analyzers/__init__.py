"""Impact analyzers: module attribution, dependents, breaking changes and test correlation."""

from .module_attribution import (
    ModuleCategory, ModuleDescriptor, FeatureMapping, ImpactScope, UNCLASSIFIED,
    ModuleAttributor, classify_scope, validate_tables
)
from .dependents import DependentsFinder, TextualDependentsFinder
from .breaking_changes import (
    BreakingStatus, BreakingReason, BreakingChangeRecord, BreakingChangeDetector,
    DeclarationDiffDetector
)
from .test_correlation import (
    CorrelationStatus, TestCorrelation, TestNamingRule, TestLocator, ConventionTestLocator
)
from .impact_graph_builder import AffectedModule, ImpactGraph, ImpactGraphBuilder

__all__ = [
    "ModuleCategory", "ModuleDescriptor", "FeatureMapping", "ImpactScope", "UNCLASSIFIED",
    "ModuleAttributor", "classify_scope", "validate_tables",
    "DependentsFinder", "TextualDependentsFinder",
    "BreakingStatus", "BreakingReason", "BreakingChangeRecord", "BreakingChangeDetector",
    "DeclarationDiffDetector",
    "CorrelationStatus", "TestCorrelation", "TestNamingRule", "TestLocator",
    "ConventionTestLocator",
    "AffectedModule", "ImpactGraph", "ImpactGraphBuilder",
]
