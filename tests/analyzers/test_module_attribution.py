"""Tests for module attribution, table validation and scope classification."""

from __future__ import annotations

import pytest

from changescope.analyzers.module_attribution import (
    UNCLASSIFIED, FeatureMapping, ImpactScope, ModuleAttributor, ModuleCategory, ModuleDescriptor,
    classify_scope, is_build_convention, pattern_matches, validate_tables
)
from changescope.errors import ConfigurationError, ConfigurationErrorKind

APP = ModuleDescriptor("app", ("app/**",), ModuleCategory.UI)
PLAYER = ModuleDescriptor("player", ("player/",), ModuleCategory.PLAYER)
DVB = ModuleDescriptor("dvb", ("dvb/**",), ModuleCategory.DVB)
CORE = ModuleDescriptor("core", ("core/**",), ModuleCategory.SHARED)
BUILD = ModuleDescriptor("build-logic", ("buildSrc/**",), ModuleCategory.BUILD)
ALL = [APP, PLAYER, DVB, CORE, BUILD]


@pytest.mark.parametrize(
    "path, pattern, expected",
    [
        ("app/src/A.kt", "app/**", True),
        ("app", "app/**", True),
        ("application/A.kt", "app/**", False),
        ("player/x/Y.kt", "player/", True),
        ("lib/gradle/wrapper/gradle-wrapper.properties", "**/gradle/wrapper/*", True),
        ("gradle/wrapper/gradle-wrapper.properties", "**/gradle/wrapper/*", True),
        ("app/build.gradle", "build.gradle", True),
        ("app/xbuild.gradle", "build.gradle", False),
        ("src/a/B.java", "src/*/B.java", True),
    ],
)
def test_pattern_matches(path, pattern, expected) -> None:
    assert pattern_matches(path, pattern) is expected


def _scope(*paths: str) -> ImpactScope:
    attribution = ModuleAttributor(ALL).attribute(paths)
    return classify_scope(attribution.module_of.values(), paths)


def test_single_module_scope() -> None:
    assert _scope("app/src/A.kt", "app/src/B.kt") is ImpactScope.SINGLE_MODULE


def test_same_family_is_multi_module() -> None:
    assert _scope("player/Player.kt", "dvb/Tuner.kt") is ImpactScope.MULTI_MODULE


def test_shared_module_with_other_family_is_cross_cutting() -> None:
    assert _scope("app/A.kt", "core/Util.kt") is ImpactScope.CROSS_CUTTING


def test_unrelated_families_without_shared_is_multi_module() -> None:
    assert _scope("app/A.kt", "player/P.kt") is ImpactScope.MULTI_MODULE


def test_build_module_forces_build_system() -> None:
    assert _scope("buildSrc/Deps.kt") is ImpactScope.BUILD_SYSTEM


def test_build_convention_file_forces_build_system() -> None:
    assert _scope("app/build.gradle") is ImpactScope.BUILD_SYSTEM
    assert is_build_convention("pyproject.toml")
    assert not is_build_convention("app/src/Build.kt")


def test_unmatched_paths_are_unclassified() -> None:
    attribution = ModuleAttributor(ALL).attribute(["README.md", "app/A.kt"])

    assert attribution.module_of["README.md"] is UNCLASSIFIED
    assert attribution.unclassified == ("README.md",)
    assert attribution.files_by_module() == {"Unclassified": ["README.md"], "app": ["app/A.kt"]}


def test_runtime_overlap_goes_to_first_declared_module() -> None:
    kotlin = ModuleDescriptor("kotlin", ("**/*.kt",))

    attribution = ModuleAttributor([APP, kotlin]).attribute(["app/A.kt"])

    assert attribution.module_of["app/A.kt"] is APP
    assert len(attribution.warnings) == 1
    assert "app/A.kt" in attribution.warnings[0]


def test_valid_tables_pass() -> None:
    validate_tables(ALL, FeatureMapping({"app": frozenset({"Home"})}))


@pytest.mark.parametrize(
    "modules, kind",
    [
        ([APP, ModuleDescriptor("other", ("app/",))], ConfigurationErrorKind.OVERLAPPING_MODULE_PATTERNS),
        ([APP, ModuleDescriptor("app", ("lib/**",))], ConfigurationErrorKind.MALFORMED_TABLE),
        ([ModuleDescriptor("empty", ())], ConfigurationErrorKind.MALFORMED_TABLE),
        ([ModuleDescriptor("Unclassified", ("x/**",))], ConfigurationErrorKind.MALFORMED_TABLE),
        ([ModuleDescriptor(" ", ("x/**",))], ConfigurationErrorKind.MALFORMED_TABLE),
    ],
)
def test_defective_module_tables(modules, kind) -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_tables(modules, FeatureMapping())

    assert excinfo.value.kind is kind


def test_feature_mapping_must_name_declared_modules() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        validate_tables([APP], FeatureMapping({"ghost": frozenset({"EPG"})}))

    assert excinfo.value.kind is ConfigurationErrorKind.MISSING_FEATURE_MAPPING
    assert "ghost" in str(excinfo.value)
