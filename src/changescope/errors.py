"""Error taxonomy for change resolution, configuration and collaborator failures."""

from enum import Enum
from typing import Any, Dict, Optional


class ImpactAnalysisError(Exception):
    """Base class for every error the analysis pipeline raises on purpose."""


class ResolutionErrorKind(Enum):
    """Reasons a ChangeRequest could not be turned into a ChangeSet."""
    REF_NOT_FOUND = "ref_not_found"
    MR_NOT_FOUND = "mr_not_found"
    NO_CHANGES = "no_changes"
    AMBIGUOUS_BASE_BRANCH = "ambiguous_base_branch"
    PATH_NOT_FOUND = "path_not_found"
    VCS_FAILURE = "vcs_failure"


class ResolutionError(ImpactAnalysisError):
    """Raised when a change request cannot be resolved; aborts the whole run."""

    def __init__(self, kind: ResolutionErrorKind, request: Any, message: str,
                 context: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.request = request
        self.context = dict(context or {})
        describe = getattr(request, "describe", None)
        self.request_description = describe() if callable(describe) else str(request)
        super().__init__(f"[{kind.value}] {message} (request: {self.request_description})")


class ConfigurationErrorKind(Enum):
    """Defects in the static module/feature tables."""
    OVERLAPPING_MODULE_PATTERNS = "overlapping_module_patterns"
    MISSING_FEATURE_MAPPING = "missing_feature_mapping"
    MALFORMED_TABLE = "malformed_table"


class ConfigurationError(ImpactAnalysisError):
    """Raised once, before per-file work, when the static tables are unusable."""

    def __init__(self, kind: ConfigurationErrorKind, message: str):
        self.kind = kind
        super().__init__(f"[{kind.value}] {message}")


class CollaboratorTimeout(ImpactAnalysisError):
    """Raised when the VCS process or the MR metadata lookup does not answer in time."""

    def __init__(self, collaborator: str, timeout: float, detail: str = ""):
        self.collaborator = collaborator
        self.timeout = timeout
        message = f"{collaborator} did not respond within {timeout:g}s"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class VcsCommandError(ImpactAnalysisError):
    """A version-control query failed (single attempt, never retried)."""

    def __init__(self, command: str, detail: str):
        self.command = command
        self.detail = detail
        super().__init__(f"VCS command failed: {command}: {detail}")


class AnalysisCancelled(ImpactAnalysisError):
    """Raised when the caller cancels an in-flight impact graph build."""
