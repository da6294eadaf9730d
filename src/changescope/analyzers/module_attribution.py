"""Module Attribution - Maps changed paths onto the static module table and classifies scope."""

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import Dict, FrozenSet, Iterable, List, Mapping, Sequence, Tuple

from ..errors import ConfigurationError, ConfigurationErrorKind
from ..log import get_logger

logger = get_logger(__name__)


class ModuleCategory(Enum):
    UI = "ui"
    DOMAIN = "domain"
    SHARED = "shared"
    PLAYER = "player"
    DVB = "dvb"
    BUILD = "build"
    OTHER = "other"


# Categories that count as "one family" when deciding between multi-module and cross-cutting.
CATEGORY_FAMILY = {
    ModuleCategory.UI: "ui",
    ModuleCategory.DOMAIN: "domain",
    ModuleCategory.PLAYER: "media",
    ModuleCategory.DVB: "media",
    ModuleCategory.SHARED: "shared",
    ModuleCategory.BUILD: "build",
    ModuleCategory.OTHER: "other",
}


class ImpactScope(Enum):
    SINGLE_MODULE = "single_module"
    MULTI_MODULE = "multi_module"
    CROSS_CUTTING = "cross_cutting"
    BUILD_SYSTEM = "build_system"


def pattern_matches(path: str, pattern: str) -> bool:
    """Glob match with directory shorthands (``dir/``, ``dir/**``, ``**/name``)."""
    normalized = path.replace("\\", "/")
    if pattern.endswith("/**"):
        prefix = pattern[:-3]
        return normalized == prefix or normalized.startswith(f"{prefix}/")
    if pattern.endswith("/"):
        return normalized.startswith(pattern)
    if pattern.startswith("**/"):
        suffix = pattern[3:]
        return fnmatch(normalized, suffix) or fnmatch(normalized, pattern)
    if "/" in pattern or any(ch in pattern for ch in "*?["):
        return fnmatch(normalized, pattern)
    if normalized == pattern:
        return True
    return normalized.endswith(f"/{pattern}")


@dataclass(frozen=True)
class ModuleDescriptor:
    """A named module owning a set of path globs."""
    name: str
    path_patterns: Tuple[str, ...]
    category: ModuleCategory = ModuleCategory.OTHER

    def matches(self, path: str) -> bool:
        return any(pattern_matches(path, pattern) for pattern in self.path_patterns)


UNCLASSIFIED = ModuleDescriptor(name="Unclassified", path_patterns=(), category=ModuleCategory.OTHER)


@dataclass(frozen=True)
class FeatureMapping:
    """Module name -> user-facing features, plus features touched by any cross-cutting change."""
    module_features: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    cross_cutting_features: FrozenSet[str] = frozenset()

    def features_for(self, module_name: str) -> FrozenSet[str]:
        return frozenset(self.module_features.get(module_name, ()))


# Build and configuration files that make a change BUILD_SYSTEM regardless of module.
BUILD_CONVENTION_PATTERNS: Tuple[str, ...] = (
    "build.gradle",
    "build.gradle.kts",
    "settings.gradle",
    "settings.gradle.kts",
    "gradle.properties",
    "gradle/libs.versions.toml",
    "**/gradle/wrapper/*",
    "AndroidManifest.xml",
    ".gitlab-ci.yml",
    "Jenkinsfile",
    ".github/workflows/*",
    "pom.xml",
    "package.json",
    "setup.py",
    "setup.cfg",
    "pyproject.toml",
)


def is_build_convention(path: str) -> bool:
    return any(pattern_matches(path, pattern) for pattern in BUILD_CONVENTION_PATTERNS)


def validate_tables(modules: Sequence[ModuleDescriptor], features: FeatureMapping):
    """Fail fast on defects in the static tables, before any per-file work."""
    names: Dict[str, ModuleDescriptor] = {}
    owners: Dict[str, str] = {}
    for descriptor in modules:
        if not descriptor.name or not descriptor.name.strip():
            raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                     "module descriptor without a name")
        if descriptor.name == UNCLASSIFIED.name:
            raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                     f"module name {UNCLASSIFIED.name} is reserved")
        if descriptor.name in names:
            raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                     f"module {descriptor.name} is declared twice")
        if not descriptor.path_patterns:
            raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                     f"module {descriptor.name} declares no path patterns")
        names[descriptor.name] = descriptor

        for pattern in descriptor.path_patterns:
            key = pattern.strip().rstrip("/")
            if key.endswith("/**"):
                key = key[:-3]
            if key in owners and owners[key] != descriptor.name:
                raise ConfigurationError(
                    ConfigurationErrorKind.OVERLAPPING_MODULE_PATTERNS,
                    f"pattern {pattern!r} is declared by both {owners[key]} and {descriptor.name}",
                )
            owners[key] = descriptor.name

    unknown = sorted(set(features.module_features) - set(names))
    if unknown:
        raise ConfigurationError(
            ConfigurationErrorKind.MISSING_FEATURE_MAPPING,
            f"feature mapping refers to undeclared module(s): {', '.join(unknown)}",
        )


@dataclass(frozen=True)
class Attribution:
    """Result of attributing a set of paths to modules."""
    module_of: Mapping[str, ModuleDescriptor]
    warnings: Tuple[str, ...] = ()

    @property
    def unclassified(self) -> Tuple[str, ...]:
        return tuple(path for path, module in self.module_of.items() if module is UNCLASSIFIED)

    def files_by_module(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for path, module in self.module_of.items():
            grouped.setdefault(module.name, []).append(path)
        return grouped


class ModuleAttributor:
    """First matching descriptor wins; later matches are reported as overlap warnings."""

    def __init__(self, modules: Sequence[ModuleDescriptor]):
        self.modules = tuple(modules)

    def attribute(self, paths: Iterable[str]) -> Attribution:
        module_of: Dict[str, ModuleDescriptor] = {}
        warnings: List[str] = []
        for path in paths:
            matching = [module for module in self.modules if module.matches(path)]
            if not matching:
                module_of[path] = UNCLASSIFIED
                continue
            module_of[path] = matching[0]
            if len(matching) > 1:
                others = ", ".join(module.name for module in matching[1:])
                message = (f"{path} matches modules {matching[0].name}, {others}; "
                           f"attributed to {matching[0].name} by declaration order")
                logger.warning(message)
                warnings.append(message)
        return Attribution(module_of=module_of, warnings=tuple(warnings))


def classify_scope(modules: Iterable[ModuleDescriptor], paths: Iterable[str]) -> ImpactScope:
    """How widely the touched modules span."""
    distinct = {module.name: module for module in modules}
    if any(module.category is ModuleCategory.BUILD for module in distinct.values()):
        return ImpactScope.BUILD_SYSTEM
    if any(is_build_convention(path) for path in paths):
        return ImpactScope.BUILD_SYSTEM
    if len(distinct) <= 1:
        return ImpactScope.SINGLE_MODULE
    families = {CATEGORY_FAMILY[module.category] for module in distinct.values()}
    if len(families) == 1:
        return ImpactScope.MULTI_MODULE
    if any(module.category is ModuleCategory.SHARED for module in distinct.values()):
        return ImpactScope.CROSS_CUTTING
    return ImpactScope.MULTI_MODULE
