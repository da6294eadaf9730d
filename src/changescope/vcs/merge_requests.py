"""Merge request metadata collaborators.

Hosting APIs are never called from here; callers plug in whatever resolver their
environment provides. ``StaticMrResolver`` covers config tables and CLI options,
``TimeoutMrResolver`` bounds any resolver with a single top-level timeout.
"""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from ..core.models import MrReference
from ..errors import CollaboratorTimeout
from ..log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MrMetadata:
    """Branches and title of a merge request."""
    source_branch: str
    target_branch: str
    title: str = ""


class MrResolver(ABC):
    """Resolves an MrReference to its source and target branches."""

    @abstractmethod
    def resolve_mr(self, reference: MrReference) -> Optional[MrMetadata]:
        """Return metadata or None when the merge request is unknown."""


class StaticMrResolver(MrResolver):
    """Looks merge requests up in a fixed table keyed by number or URL."""

    def __init__(self, table: Optional[Mapping[Union[int, str], MrMetadata]] = None,
                 default: Optional[MrMetadata] = None):
        self._table: Dict[str, MrMetadata] = {}
        self.default = default
        for key, metadata in (table or {}).items():
            self._table[str(key).strip().lstrip("#!")] = metadata

    @classmethod
    def from_config(cls, entries: Mapping[Any, Mapping[str, Any]],
                    default: Optional[MrMetadata] = None) -> "StaticMrResolver":
        """Build from the ``merge_requests`` config section."""
        table = {}
        for key, entry in (entries or {}).items():
            table[key] = MrMetadata(
                source_branch=str(entry["source"]),
                target_branch=str(entry["target"]),
                title=str(entry.get("title", "")),
            )
        return cls(table, default)

    def resolve_mr(self, reference: MrReference) -> Optional[MrMetadata]:
        if reference.mr_url and reference.mr_url in self._table:
            return self._table[reference.mr_url]
        if reference.mr_number is not None and str(reference.mr_number) in self._table:
            return self._table[str(reference.mr_number)]
        return self.default


class TimeoutMrResolver(MrResolver):
    """Bounds another resolver's lookup time; a hang surfaces as CollaboratorTimeout."""

    def __init__(self, inner: MrResolver, timeout: float = 10.0):
        self.inner = inner
        self.timeout = timeout

    def resolve_mr(self, reference: MrReference) -> Optional[MrMetadata]:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="mr-lookup")
        try:
            future = executor.submit(self.inner.resolve_mr, reference)
            try:
                return future.result(timeout=self.timeout)
            except FutureTimeoutError as exc:
                logger.warning("Merge request lookup for %s timed out after %ss",
                               reference.describe(), self.timeout)
                raise CollaboratorTimeout("merge request resolver", self.timeout,
                                          reference.describe()) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
