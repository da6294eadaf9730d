"""Configuration loading for changescope (.changescope.yml)."""

from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .analyzers.dependents import DEFAULT_SOURCE_GLOBS
from .analyzers.module_attribution import FeatureMapping, ModuleCategory, ModuleDescriptor
from .analyzers.test_correlation import DEFAULT_TEST_RULES, TestNamingRule
from .core.base_branch import BaseBranchPolicy
from .errors import ConfigurationError, ConfigurationErrorKind
from .log import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILENAME = ".changescope.yml"


@dataclass
class AnalysisConfiguration:
    """Configuration for impact analysis."""
    max_workers: int = 4
    vcs_timeout: float = 30.0  # seconds, per VCS command
    mr_timeout: float = 10.0  # seconds, whole merge request lookup
    source_globs: Tuple[str, ...] = tuple(DEFAULT_SOURCE_GLOBS)
    include_dependents: bool = True
    include_breaking_changes: bool = True
    include_test_correlation: bool = True

    def with_overrides(self, **overrides: Any) -> "AnalysisConfiguration":
        """Copy with every non-None override applied (CLI options win over the file)."""
        known = {item.name for item in fields(self)}
        applied = {key: value for key, value in overrides.items()
                   if value is not None and key in known}
        return replace(self, **applied)


@dataclass
class ProjectConfig:
    """Represents the static tables and settings defined in .changescope.yml."""
    root: Path
    modules: List[ModuleDescriptor] = field(default_factory=list)
    features: FeatureMapping = field(default_factory=FeatureMapping)
    base_policy: BaseBranchPolicy = field(default_factory=BaseBranchPolicy)
    test_rules: Tuple[TestNamingRule, ...] = DEFAULT_TEST_RULES
    merge_requests: Dict[Any, Dict[str, Any]] = field(default_factory=dict)
    analysis: AnalysisConfiguration = field(default_factory=AnalysisConfiguration)
    source: Optional[Path] = None


def load_config(config_path: Optional[Path] = None, root: Optional[Path] = None) -> ProjectConfig:
    """Load configuration; a missing default file yields built-in defaults."""
    root = (root or Path.cwd()).resolve()
    explicit = config_path is not None
    config_file = Path(config_path).expanduser() if explicit else root / DEFAULT_CONFIG_FILENAME
    if config_file.is_dir():
        config_file = config_file / DEFAULT_CONFIG_FILENAME

    if not config_file.exists():
        if explicit:
            raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                     f"configuration file {config_file} does not exist")
        logger.debug("No %s in %s, using defaults", DEFAULT_CONFIG_FILENAME, root)
        return ProjectConfig(root=root)

    data = _read_config(config_file)
    logger.info("Loaded configuration from %s", config_file)
    return ProjectConfig(
        root=root,
        modules=_parse_modules(data.get("modules")),
        features=FeatureMapping(
            module_features={
                str(name): frozenset(_as_str_list(value, f"features.{name}"))
                for name, value in _as_dict(data.get("features"), "features").items()
            },
            cross_cutting_features=frozenset(
                _as_str_list(data.get("cross_cutting_features"), "cross_cutting_features")
            ),
        ),
        base_policy=_parse_base_policy(data.get("base_branches")),
        test_rules=_parse_test_rules(data.get("test_conventions")),
        merge_requests=_parse_merge_requests(data.get("merge_requests")),
        analysis=_parse_analysis(data.get("analysis")),
        source=config_file,
    )


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                 f"failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE,
                                 f"{path.name} must contain a mapping at the root")
    return loaded


def _malformed(message: str) -> ConfigurationError:
    return ConfigurationError(ConfigurationErrorKind.MALFORMED_TABLE, message)


def _as_dict(value: Any, where: str) -> Dict[Any, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _malformed(f"{where} must be a mapping")
    return value


def _as_list(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise _malformed(f"{where} must be a list")
    return value


def _as_str_list(value: Any, where: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    return [str(item) for item in _as_list(value, where)]


def _parse_modules(value: Any) -> List[ModuleDescriptor]:
    modules = []
    for index, entry in enumerate(_as_list(value, "modules")):
        entry = _as_dict(entry, f"modules[{index}]")
        name = entry.get("name")
        if not name:
            raise _malformed(f"modules[{index}] has no name")
        category_name = str(entry.get("category", "other")).lower()
        try:
            category = ModuleCategory(category_name)
        except ValueError:
            allowed = ", ".join(item.value for item in ModuleCategory)
            raise _malformed(f"module {name}: unknown category {category_name!r} (expected {allowed})") from None
        modules.append(ModuleDescriptor(
            name=str(name),
            path_patterns=tuple(_as_str_list(entry.get("paths"), f"modules[{index}].paths")),
            category=category,
        ))
    return modules


def _parse_base_policy(value: Any) -> BaseBranchPolicy:
    data = _as_dict(value, "base_branches")
    if not data:
        return BaseBranchPolicy()
    _as_dict(data.get("families"), "base_branches.families")
    for index, entry in enumerate(_as_list(data.get("conventions"), "base_branches.conventions")):
        _as_dict(entry, f"base_branches.conventions[{index}]")
    return BaseBranchPolicy.from_dict(data)


def _parse_test_rules(value: Any) -> Tuple[TestNamingRule, ...]:
    entries = _as_list(value, "test_conventions")
    if not entries:
        return DEFAULT_TEST_RULES
    rules = []
    for index, entry in enumerate(entries):
        entry = _as_dict(entry, f"test_conventions[{index}]")
        if "source" not in entry or "test" not in entry:
            raise _malformed(f"test_conventions[{index}] needs both 'source' and 'test'")
        rules.append(TestNamingRule.from_dict(entry))
    return tuple(rules)


def _parse_merge_requests(value: Any) -> Dict[Any, Dict[str, Any]]:
    table = {}
    for key, entry in _as_dict(value, "merge_requests").items():
        entry = _as_dict(entry, f"merge_requests.{key}")
        if "source" not in entry or "target" not in entry:
            raise _malformed(f"merge_requests.{key} needs both 'source' and 'target'")
        table[key] = entry
    return table


def _parse_analysis(value: Any) -> AnalysisConfiguration:
    data = _as_dict(value, "analysis")
    config = AnalysisConfiguration()
    try:
        overrides = {
            "max_workers": int(data["max_workers"]) if "max_workers" in data else None,
            "vcs_timeout": float(data["vcs_timeout"]) if "vcs_timeout" in data else None,
            "mr_timeout": float(data["mr_timeout"]) if "mr_timeout" in data else None,
        }
    except (TypeError, ValueError) as exc:
        raise _malformed(f"analysis: {exc}") from exc
    if "source_globs" in data:
        overrides["source_globs"] = tuple(_as_str_list(data["source_globs"], "analysis.source_globs"))
    for flag in ("include_dependents", "include_breaking_changes", "include_test_correlation"):
        if flag in data:
            overrides[flag] = bool(data[flag])
    return config.with_overrides(**overrides)

