"""Change requests, changed files and change sets shared by every pipeline stage."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class ChangeRequest:
    """Base of the tagged union produced by the input classifier."""

    @property
    def kind(self) -> str:
        return _KIND_BY_TYPE.get(type(self), "unknown")

    def describe(self) -> str:
        return self.kind


@dataclass(frozen=True)
class MrReference(ChangeRequest):
    """A merge/pull request, given either by number or by full URL."""
    host: Optional[str] = None
    mr_number: Optional[int] = None
    mr_url: Optional[str] = None

    def describe(self) -> str:
        if self.mr_url:
            return f"merge request {self.mr_url}"
        return f"merge request #{self.mr_number}"


@dataclass(frozen=True)
class BranchPair(ChangeRequest):
    """Explicit source branch compared against an explicit target branch."""
    source: str
    target: str

    def describe(self) -> str:
        return f"branch {self.source} against {self.target}"


@dataclass(frozen=True)
class FileSet(ChangeRequest):
    """Explicit list of file paths, in the order the user gave them."""
    paths: Tuple[str, ...]

    def describe(self) -> str:
        return f"files {', '.join(self.paths)}"


@dataclass(frozen=True)
class CommitRange(ChangeRequest):
    """Two-dot commit range; a single commit is ``CommitRange(ref^, ref)``."""
    from_ref: str
    to_ref: str

    @classmethod
    def single(cls, ref: str) -> "CommitRange":
        return cls(from_ref=f"{ref}^", to_ref=ref)

    def describe(self) -> str:
        return f"commits {self.from_ref}..{self.to_ref}"


@dataclass(frozen=True)
class WorkingTree(ChangeRequest):
    """Uncommitted changes, filtered by index state."""
    include_staged: bool = True
    include_unstaged: bool = True
    include_untracked: bool = True

    def describe(self) -> str:
        parts = [name for name, flag in (("staged", self.include_staged),
                                         ("unstaged", self.include_unstaged),
                                         ("untracked", self.include_untracked)) if flag]
        return f"working tree ({', '.join(parts) or 'nothing'})"


@dataclass(frozen=True)
class Branch(ChangeRequest):
    """A single branch; the comparison target is auto-detected unless given."""
    name: str
    explicit_target: Optional[str] = None

    def describe(self) -> str:
        if self.explicit_target:
            return f"branch {self.name} against {self.explicit_target}"
        return f"branch {self.name}"


_KIND_BY_TYPE = {
    MrReference: "mr_reference",
    BranchPair: "branch_pair",
    FileSet: "file_set",
    CommitRange: "commit_range",
    WorkingTree: "working_tree",
    Branch: "branch",
}


class ChangeStatus(Enum):
    """How a file changed between the two sides of a comparison."""
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


@dataclass(frozen=True)
class ChangedFile:
    """One changed path with its status and line deltas."""
    path: str
    status: ChangeStatus
    lines_added: int = 0
    lines_removed: int = 0
    old_path: Optional[str] = None  # only set for RENAMED

    def __post_init__(self):
        if self.status is ChangeStatus.RENAMED and not self.old_path:
            raise ValueError(f"Renamed file {self.path} requires old_path")
        if self.status is not ChangeStatus.RENAMED and self.old_path is not None:
            raise ValueError(f"old_path is only valid for renamed files ({self.path})")


@dataclass(frozen=True)
class ChangeSet:
    """Canonical, path-unique list of changed files regardless of where they came from."""
    files: Tuple[ChangedFile, ...]
    source_description: str
    resolved_from: Optional[str] = None
    resolved_to: Optional[str] = None
    compare_base: Optional[str] = None  # revision holding the "before" content
    head_revision: Optional[str] = None  # None means the working tree
    request: Optional[ChangeRequest] = field(default=None, compare=False)

    def __post_init__(self):
        seen = set()
        for changed in self.files:
            if changed.path in seen:
                raise ValueError(f"Duplicate path in change set: {changed.path}")
            seen.add(changed.path)

    @classmethod
    def from_files(cls, files: Iterable[ChangedFile], source_description: str,
                   **kwargs) -> "ChangeSet":
        """Build a change set keeping the first entry for every path."""
        return cls(files=tuple(dedupe_by_path(files)),
                   source_description=source_description, **kwargs)

    @property
    def paths(self) -> List[str]:
        return [changed.path for changed in self.files]

    @property
    def has_prior_revision(self) -> bool:
        return self.compare_base is not None

    def get(self, path: str) -> Optional[ChangedFile]:
        for changed in self.files:
            if changed.path == path:
                return changed
        return None

    def by_path(self) -> Dict[str, ChangedFile]:
        return {changed.path: changed for changed in self.files}

    def __contains__(self, path: object) -> bool:
        return any(changed.path == path for changed in self.files)

    def __iter__(self) -> Iterator[ChangedFile]:
        return iter(self.files)

    def __len__(self) -> int:
        return len(self.files)


def dedupe_by_path(files: Iterable[ChangedFile]) -> List[ChangedFile]:
    """Drop repeated paths, first occurrence wins, order preserved."""
    unique: Dict[str, ChangedFile] = {}
    for changed in files:
        unique.setdefault(changed.path, changed)
    return list(unique.values())
