"""Change Set Resolver - Turns a ChangeRequest into a canonical ChangeSet using the VCS gateway."""

from typing import Callable, Dict, List, Optional, Tuple, Type

from ..errors import ResolutionError, ResolutionErrorKind, VcsCommandError
from ..log import get_logger
from ..vcs.diff_parser import normalize_path
from .base_branch import BaseBranchDetector, BaseBranchPolicy
from .models import (
    ChangeRequest, MrReference, BranchPair, FileSet, CommitRange, WorkingTree, Branch,
    ChangeStatus, ChangedFile, ChangeSet
)

logger = get_logger(__name__)


class ChangeSetResolver:
    """Resolves every ChangeRequest variant; failures abort with a ResolutionError."""

    def __init__(self, vcs, mr_resolver=None, base_policy: Optional[BaseBranchPolicy] = None):
        self.vcs = vcs
        self.mr_resolver = mr_resolver
        self.base_detector = BaseBranchDetector(base_policy)
        self._handlers: Dict[Type[ChangeRequest], Callable[[ChangeRequest], ChangeSet]] = {
            FileSet: self._resolve_file_set,
            CommitRange: self._resolve_commit_range,
            WorkingTree: self._resolve_working_tree,
            MrReference: self._resolve_mr,
            BranchPair: self._resolve_branch_pair,
            Branch: self._resolve_branch,
        }

    def resolve(self, request: ChangeRequest) -> ChangeSet:
        """Resolve ``request``; an empty result is an error, never an empty ChangeSet."""
        handler = self._handlers.get(type(request))
        if handler is None:
            raise TypeError(f"Unsupported change request: {type(request).__name__}")

        logger.info("Resolving %s", request.describe())
        try:
            change_set = handler(request)
        except VcsCommandError as exc:
            raise ResolutionError(
                ResolutionErrorKind.VCS_FAILURE, request, str(exc), {"command": exc.command}
            ) from exc

        if not change_set.files:
            raise ResolutionError(
                ResolutionErrorKind.NO_CHANGES, request,
                f"{change_set.source_description} has no changed files",
                {"from": change_set.resolved_from, "to": change_set.resolved_to},
            )
        logger.info("Resolved %d changed file(s) from %s", len(change_set), change_set.source_description)
        return change_set

    # ------------------------------------------------------------------
    # Variants

    def _resolve_file_set(self, request: FileSet) -> ChangeSet:
        files: List[ChangedFile] = []
        missing: List[str] = []
        for raw_path in request.paths:
            path = normalize_path(raw_path)
            changed = self.vcs.path_status(path)
            if changed is None:
                if self.vcs.path_exists(path):
                    changed = ChangedFile(path=path, status=ChangeStatus.MODIFIED)
                elif self.vcs.path_in_history(path):
                    changed = ChangedFile(path=path, status=ChangeStatus.DELETED)
            if changed is None:
                missing.append(path)
                continue
            logger.debug("File %s resolved as %s", path, changed.status.value)
            files.append(changed)

        if missing:
            raise ResolutionError(
                ResolutionErrorKind.PATH_NOT_FOUND, request,
                f"path(s) not found in working tree or history: {', '.join(missing)}",
                {"paths": missing},
            )
        return ChangeSet.from_files(files, request.describe(), request=request)

    def _resolve_commit_range(self, request: CommitRange) -> ChangeSet:
        from_id, to_id = self._require_refs(request, request.from_ref, request.to_ref)
        files = self.vcs.diff_names(from_id, to_id, three_dot=False)
        return ChangeSet.from_files(
            files, request.describe(),
            resolved_from=request.from_ref,
            resolved_to=request.to_ref,
            compare_base=from_id,
            head_revision=to_id,
            request=request,
        )

    def _resolve_working_tree(self, request: WorkingTree) -> ChangeSet:
        files = self.vcs.working_tree_status(
            include_staged=request.include_staged,
            include_unstaged=request.include_unstaged,
            include_untracked=request.include_untracked,
        )
        # Staged entries come first, so they win over unstaged ones for the same path.
        return ChangeSet.from_files(files, request.describe(), resolved_from="HEAD",
                                    resolved_to="working tree", request=request)

    def _resolve_mr(self, request: MrReference) -> ChangeSet:
        if self.mr_resolver is None:
            raise ResolutionError(
                ResolutionErrorKind.MR_NOT_FOUND, request,
                "no merge request resolver is configured",
            )
        metadata = self.mr_resolver.resolve_mr(request)
        if metadata is None:
            raise ResolutionError(
                ResolutionErrorKind.MR_NOT_FOUND, request,
                "merge request could not be resolved to a source and target branch",
                {"mr_number": request.mr_number, "mr_url": request.mr_url},
            )
        logger.info("Merge request %s: %s -> %s", request.describe(),
                    metadata.source_branch, metadata.target_branch)
        description = request.describe()
        if metadata.title:
            description = f"{description} ({metadata.title})"
        return self._compare_branches(request, metadata.source_branch,
                                      metadata.target_branch, description)

    def _resolve_branch_pair(self, request: BranchPair) -> ChangeSet:
        return self._compare_branches(request, request.source, request.target, request.describe())

    def _resolve_branch(self, request: Branch) -> ChangeSet:
        if request.explicit_target:
            return self._compare_branches(request, request.name, request.explicit_target,
                                          request.describe())

        self._require_refs(request, request.name)
        base = self.base_detector.detect(request.name, self.vcs)
        if base is None:
            tried = self.base_detector.policy.tried_description(request.name)
            raise ResolutionError(
                ResolutionErrorKind.AMBIGUOUS_BASE_BRANCH, request,
                f"no base branch found for {request.name}; tried {'; '.join(tried)}",
                {"branch": request.name, "tried": tried},
            )
        return self._compare_branches(request, request.name, base,
                                      f"branch {request.name} against {base} (auto-detected)")

    # ------------------------------------------------------------------
    # Helpers

    def _compare_branches(self, request: ChangeRequest, source: str, target: str,
                          description: str) -> ChangeSet:
        """Three-dot comparison: what ``source`` adds since it diverged from ``target``."""
        source_id, target_id = self._require_refs(request, source, target)
        base = self.vcs.merge_base(target_id, source_id)
        if base is None:
            raise ResolutionError(
                ResolutionErrorKind.REF_NOT_FOUND, request,
                f"{source} and {target} share no common ancestor",
                {"source": source, "target": target},
            )
        files = self.vcs.diff_names(target_id, source_id, three_dot=True)
        return ChangeSet.from_files(
            files, description,
            resolved_from=target,
            resolved_to=source,
            compare_base=base,
            head_revision=source_id,
            request=request,
        )

    def _require_refs(self, request: ChangeRequest, *refs: str) -> Tuple[str, ...]:
        resolved = []
        for ref in refs:
            revision = self.vcs.resolve_ref(ref)
            if revision is None:
                raise ResolutionError(
                    ResolutionErrorKind.REF_NOT_FOUND, request,
                    f"ref {ref} does not exist", {"ref": ref},
                )
            resolved.append(revision)
        return tuple(resolved)
