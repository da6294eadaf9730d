"""Base-branch auto-detection driven by a swappable naming-convention table."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BaseFamily:
    """A family of numbered base branches, e.g. ``release_250`` or ``hotfix/1.2``."""
    name: str
    glob: str
    suffix_pattern: str

    def version_of(self, branch: str) -> Optional[Tuple[int, ...]]:
        """Numeric version tuple of a candidate, or None if it is not in this family."""
        match = re.fullmatch(self.suffix_pattern, branch, flags=re.IGNORECASE)
        if not match:
            return None
        suffix = match.group("version")
        return tuple(int(part) for part in re.findall(r"\d+", suffix))


@dataclass(frozen=True)
class NamingConvention:
    """Maps branch-name prefixes to the base families to try, in order."""
    prefixes: Tuple[str, ...]
    families: Tuple[str, ...]

    def applies_to(self, branch: str) -> bool:
        lowered = branch.lower()
        for prefix in self.prefixes:
            prefix = prefix.lower()
            if lowered == prefix:
                return True
            if lowered.startswith(prefix) and lowered[len(prefix)] in "/-_":
                return True
        return False

    def describe(self) -> str:
        return f"{'|'.join(self.prefixes)} -> {' then '.join(self.families)}"


def _family(name: str) -> BaseFamily:
    return BaseFamily(
        name=name,
        glob=f"{name}*",
        suffix_pattern=rf"{name}[/_\-.]?(?P<version>\d+(?:[._\-]\d+)*)",
    )


@dataclass(frozen=True)
class BaseBranchPolicy:
    """Ordered conventions plus fallbacks used when a branch has no explicit target."""
    families: Mapping[str, BaseFamily] = field(default_factory=lambda: {
        "hotfix": _family("hotfix"),
        "release": _family("release"),
    })
    conventions: Tuple[NamingConvention, ...] = (
        NamingConvention(prefixes=("bug", "bugfix"), families=("hotfix", "release")),
        NamingConvention(prefixes=("task", "story"), families=("release",)),
    )
    default_families: Tuple[str, ...] = ("release",)
    fallbacks: Tuple[str, ...] = ("main", "master", "develop")

    def families_for(self, branch: str) -> Tuple[Optional[NamingConvention], Tuple[str, ...]]:
        for convention in self.conventions:
            if convention.applies_to(branch):
                return convention, convention.families
        return None, self.default_families

    def tried_description(self, branch: str) -> List[str]:
        """Human readable list of everything detection looks at for ``branch``."""
        convention, families = self.families_for(branch)
        tried = []
        if convention is not None:
            tried.append(f"convention {convention.describe()}")
        for name in families:
            family = self.families.get(name)
            if family is not None:
                tried.append(f"family {name} ({family.glob})")
        tried.append(f"fallbacks {', '.join(self.fallbacks)}")
        return tried

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BaseBranchPolicy":
        """Build a policy from the ``base_branches`` config section."""
        families: Dict[str, BaseFamily] = {}
        for name, spec in (data.get("families") or {}).items():
            spec = spec or {}
            default = _family(str(name))
            families[str(name)] = BaseFamily(
                name=str(name),
                glob=str(spec.get("glob", default.glob)),
                suffix_pattern=str(spec.get("pattern", default.suffix_pattern)),
            )
        conventions = tuple(
            NamingConvention(
                prefixes=tuple(str(prefix) for prefix in entry.get("prefixes", ())),
                families=tuple(str(family) for family in entry.get("families", ())),
            )
            for entry in data.get("conventions") or ()
        )
        defaults = cls()
        return cls(
            families=families or defaults.families,
            conventions=conventions or defaults.conventions,
            default_families=tuple(data.get("default_families") or defaults.default_families),
            fallbacks=tuple(data.get("fallbacks") or defaults.fallbacks),
        )


class BaseBranchDetector:
    """Selects the comparison base for a branch from existing branch names."""

    def __init__(self, policy: Optional[BaseBranchPolicy] = None):
        self.policy = policy or BaseBranchPolicy()

    def detect(self, branch: str, vcs) -> Optional[str]:
        """Return the best base branch for ``branch`` or None if nothing qualifies."""
        convention, family_names = self.policy.families_for(branch)
        if convention is not None:
            logger.debug("Branch %s follows convention %s", branch, convention.describe())

        for family_name in family_names:
            family = self.policy.families.get(family_name)
            if family is None:
                logger.warning("Naming convention refers to unknown base family %s", family_name)
                continue
            best = self._highest_in_family(branch, family, vcs.list_branches(family.glob))
            if best is not None:
                logger.info("Auto-detected base branch %s for %s (family %s)",
                            best, branch, family.name)
                return best

        for fallback in self.policy.fallbacks:
            if fallback != branch and vcs.resolve_ref(fallback) is not None:
                logger.info("Auto-detected base branch %s for %s (fallback)", fallback, branch)
                return fallback
        return None

    def _highest_in_family(self, branch: str, family: BaseFamily,
                           candidates: Sequence[str]) -> Optional[str]:
        versioned = []
        for candidate in candidates:
            if candidate == branch:
                continue
            version = family.version_of(candidate)
            if version is not None:
                versioned.append((version, candidate))
        if not versioned:
            return None
        # Ties on version (e.g. release_1 vs release-1) resolve by name for determinism.
        versioned.sort(key=lambda item: (item[0], item[1]))
        return versioned[-1][1]
