"""Breaking Changes - Compares public declarations before and after a change."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..core.models import ChangeSet, ChangeStatus, ChangedFile
from ..log import get_logger
from ..parsers.declaration_parser import (
    Declaration, UnparseableSource, language_for, parse_declarations
)

logger = get_logger(__name__)


class BreakingStatus(Enum):
    """Whether a change is breaking or non-breaking."""
    BREAKING = "breaking"
    NON_BREAKING = "non_breaking"
    UNKNOWN = "unknown"


class BreakingReason(Enum):
    REMOVED = "removed"
    VISIBILITY_REDUCED = "visibility_reduced"
    SIGNATURE_CHANGED = "signature_changed"


@dataclass(frozen=True)
class BreakingChangeRecord:
    """One public-interface alteration in one file."""
    file: str
    reason: BreakingReason
    symbol: str
    detail: str = ""


@dataclass(frozen=True)
class BreakingAssessment:
    status: BreakingStatus
    records: Tuple[BreakingChangeRecord, ...] = ()
    note: str = ""


APPLICABLE_STATUSES = frozenset({ChangeStatus.MODIFIED, ChangeStatus.RENAMED, ChangeStatus.DELETED})


class BreakingChangeDetector(ABC):
    """Strategy for deciding whether a changed file breaks its public interface."""

    def applies_to(self, changed: ChangedFile) -> bool:
        return changed.status in APPLICABLE_STATUSES

    @abstractmethod
    def assess(self, changed: ChangedFile, change_set: ChangeSet) -> BreakingAssessment:
        """Assess one file; never raises for unreadable or unsupported content."""


class DeclarationDiffDetector(BreakingChangeDetector):
    """Diffs the public declaration sets of the two revisions of a file."""

    def __init__(self, vcs):
        self.vcs = vcs

    def assess(self, changed: ChangedFile, change_set: ChangeSet) -> BreakingAssessment:
        if not change_set.has_prior_revision:
            return BreakingAssessment(BreakingStatus.UNKNOWN, note="no prior revision")

        before_path = changed.old_path or changed.path
        before_language = language_for(before_path)
        after_language = language_for(changed.path) or before_language
        if before_language is None:
            return BreakingAssessment(BreakingStatus.UNKNOWN, note="unsupported language")

        before = self.vcs.file_content_at(before_path, change_set.compare_base)
        if before is None:
            return BreakingAssessment(BreakingStatus.UNKNOWN, note=f"{before_path} unreadable")
        if changed.status is ChangeStatus.DELETED:
            after: Optional[str] = ""
        else:
            after = self.vcs.file_content_at(changed.path, change_set.head_revision)
        if after is None:
            return BreakingAssessment(BreakingStatus.UNKNOWN, note=f"{changed.path} unreadable")

        try:
            old_declarations = parse_declarations(before, before_language)
            new_declarations = parse_declarations(after, after_language)
        except UnparseableSource as exc:
            return BreakingAssessment(BreakingStatus.UNKNOWN, note=str(exc))

        records = compare_declarations(changed.path, old_declarations, new_declarations)
        logger.debug("%s: %d public declaration(s) before, %d breaking difference(s)",
                     changed.path, len(old_declarations), len(records))
        if records:
            return BreakingAssessment(BreakingStatus.BREAKING, tuple(records))
        return BreakingAssessment(BreakingStatus.NON_BREAKING)


def compare_declarations(path: str, before: Dict[str, Declaration],
                         after: Dict[str, Declaration]) -> List[BreakingChangeRecord]:
    """Breaking differences between two declaration maps; only exported symbols count."""
    records = []
    for name in sorted(before):
        old = before[name]
        if not old.visibility.is_exported:
            continue
        new = after.get(name)
        if new is None:
            records.append(BreakingChangeRecord(
                path, BreakingReason.REMOVED, name, f"{old.kind} {name} no longer declared"))
        elif new.visibility.rank < old.visibility.rank:
            records.append(BreakingChangeRecord(
                path, BreakingReason.VISIBILITY_REDUCED, name,
                f"{old.visibility.value} -> {new.visibility.value}"))
        elif new.signature != old.signature:
            records.append(BreakingChangeRecord(
                path, BreakingReason.SIGNATURE_CHANGED, name,
                f"{old.signature or '()'} -> {new.signature or '()'}"))
    return records
