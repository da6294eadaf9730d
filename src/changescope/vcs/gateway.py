"""VCS Gateway - the narrow version-control surface the pipeline consumes."""

from abc import ABC, abstractmethod
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Optional, Sequence

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from ..core.models import ChangeStatus, ChangedFile
from ..errors import CollaboratorTimeout, VcsCommandError
from ..log import get_logger
from .diff_parser import count_lines, merge_entries, normalize_path, parse_name_status, parse_numstat

logger = get_logger(__name__)


class VcsGateway(ABC):
    """Capability surface over version control; implementations must be safe for concurrent reads."""

    @abstractmethod
    def diff_names(self, from_ref: str, to_ref: str, three_dot: bool = False) -> List[ChangedFile]:
        """Changed files between two revisions (three-dot compares against the merge-base)."""

    @abstractmethod
    def working_tree_status(self, include_staged: bool = True, include_unstaged: bool = True,
                            include_untracked: bool = True) -> List[ChangedFile]:
        """Uncommitted changes: staged entries first, then unstaged, then untracked."""

    @abstractmethod
    def resolve_ref(self, name: str) -> Optional[str]:
        """Commit id for ``name`` or None when it does not resolve."""

    @abstractmethod
    def list_branches(self, pattern: str = "*") -> List[str]:
        """Branch names (local and remote, remote prefix stripped) matching a glob."""

    @abstractmethod
    def search_text(self, pattern: str, file_globs: Sequence[str],
                    revision: Optional[str] = None) -> List[str]:
        """Tracked files containing ``pattern`` as a whole word at ``revision`` (None = working tree)."""

    @abstractmethod
    def file_content_at(self, path: str, revision: Optional[str]) -> Optional[str]:
        """File text at ``revision`` (None = working tree) or None when absent."""

    @abstractmethod
    def merge_base(self, first: str, second: str) -> Optional[str]:
        """Best common ancestor of two revisions."""

    @abstractmethod
    def path_status(self, path: str) -> Optional[ChangedFile]:
        """Status of one path in the working tree relative to HEAD, or None if unchanged."""

    @abstractmethod
    def path_exists(self, path: str, revision: Optional[str] = None) -> bool:
        """Whether ``path`` exists at ``revision`` (None = working tree)."""

    @abstractmethod
    def path_in_history(self, path: str) -> bool:
        """Whether ``path`` ever existed in any commit."""

    @abstractmethod
    def current_branch(self) -> str:
        """Checked-out branch name, ``HEAD`` when detached."""


class GitRepositoryGateway(VcsGateway):
    """VcsGateway backed by GitPython; every call is a single attempt with a timeout."""

    def __init__(self, repo_path: str = ".", timeout: Optional[float] = 30.0):
        try:
            self.repo = Repo(repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise VcsCommandError("open repository", f"{repo_path} is not a git repository") from exc
        if self.repo.working_tree_dir is None:
            raise VcsCommandError("open repository", f"{repo_path} is a bare repository")
        self.root = Path(self.repo.working_tree_dir)
        self.timeout = timeout

    # ------------------------------------------------------------------
    # Command plumbing

    def _git(self, command: str, *args: str, **options) -> str:
        """Run a git subcommand, raising on any failure."""
        kwargs = dict(options)
        if self.timeout:
            kwargs["kill_after_timeout"] = self.timeout
        runner = getattr(self.repo.git, command)
        try:
            return runner(*args, **kwargs)
        except GitCommandError as exc:
            detail = str(exc.stderr or exc).strip()
            if "Timeout:" in detail or "did not complete in" in detail:
                raise CollaboratorTimeout("git", self.timeout or 0, f"git {command}") from exc
            raise VcsCommandError(f"git {command} {' '.join(args)}", detail) from exc

    def _git_or_none(self, command: str, *args: str, **options) -> Optional[str]:
        """Run a git subcommand whose non-zero exit simply means "not found"."""
        try:
            return self._git(command, *args, **options)
        except VcsCommandError:
            return None

    def _diff(self, *args: str) -> List[ChangedFile]:
        name_status = self._git("diff", "--name-status", "-z", "-M", *args)
        numstat = self._git("diff", "--numstat", "-z", "-M", *args)
        return merge_entries(parse_name_status(name_status), parse_numstat(numstat))

    # ------------------------------------------------------------------
    # VcsGateway

    def diff_names(self, from_ref: str, to_ref: str, three_dot: bool = False) -> List[ChangedFile]:
        if three_dot:
            return self._diff(f"{from_ref}...{to_ref}", "--")
        return self._diff(from_ref, to_ref, "--")

    def working_tree_status(self, include_staged: bool = True, include_unstaged: bool = True,
                            include_untracked: bool = True) -> List[ChangedFile]:
        files: List[ChangedFile] = []
        if include_staged:
            files.extend(self._diff("--cached", "--"))
        if include_unstaged:
            files.extend(self._diff("--"))
        if include_untracked:
            files.extend(self._untracked())
        return files

    def _untracked(self, *paths: str) -> List[ChangedFile]:
        args = ["--others", "--exclude-standard", "-z"]
        if paths:
            args.append("--")
            args.extend(paths)
        raw = self._git("ls-files", *args)
        files = []
        for path in (token for token in raw.split("\0") if token):
            content = self.file_content_at(path, None) or ""
            files.append(ChangedFile(path=normalize_path(path), status=ChangeStatus.ADDED,
                                     lines_added=count_lines(content)))
        return files

    def resolve_ref(self, name: str) -> Optional[str]:
        candidates = [name] + [f"{remote.name}/{name}" for remote in self.repo.remotes]
        for candidate in candidates:
            sha = self._git_or_none("rev-parse", "--verify", "--quiet", f"{candidate}^{{commit}}")
            if sha:
                return sha.strip()
        return None

    def list_branches(self, pattern: str = "*") -> List[str]:
        raw = self._git("for-each-ref", "--format=%(refname:short)", "refs/heads", "refs/remotes")
        remotes = {remote.name for remote in self.repo.remotes}
        names = []
        for line in raw.splitlines():
            name = line.strip()
            if not name or name in remotes:
                continue
            head, _, rest = name.partition("/")
            if head in remotes and rest:
                if rest == "HEAD":
                    continue
                name = rest
            if fnmatch(name, pattern) and name not in names:
                names.append(name)
        return sorted(names)

    def search_text(self, pattern: str, file_globs: Sequence[str],
                    revision: Optional[str] = None) -> List[str]:
        args = ["-l", "-I", "-w", "-F", "-e", pattern]
        if revision:
            args.append(revision)
        args.append("--")
        args.extend(file_globs)
        kwargs = {"kill_after_timeout": self.timeout} if self.timeout else {}
        try:
            raw = self.repo.git.grep(*args, **kwargs)
        except GitCommandError as exc:
            # git grep exits 1 when nothing matches.
            if exc.status == 1:
                return []
            detail = str(exc.stderr or exc).strip()
            if "Timeout:" in detail or "did not complete in" in detail:
                raise CollaboratorTimeout("git", self.timeout or 0, "git grep") from exc
            raise VcsCommandError(f"git grep {pattern}", detail) from exc
        # Matches in a tree are reported as "<revision>:<path>".
        prefix = f"{revision}:" if revision else ""
        return [normalize_path(line[len(prefix):] if prefix and line.startswith(prefix) else line)
                for line in raw.splitlines() if line.strip()]

    def file_content_at(self, path: str, revision: Optional[str]) -> Optional[str]:
        if revision is None:
            target = self.root / path
            if not target.is_file():
                return None
            try:
                return target.read_text(encoding="utf-8")
            except (UnicodeDecodeError, OSError):
                return None
        try:
            return self._git_or_none("show", f"{revision}:{path}", strip_newline_in_stdout=False)
        except UnicodeDecodeError:
            return None

    def merge_base(self, first: str, second: str) -> Optional[str]:
        sha = self._git_or_none("merge-base", first, second)
        return sha.strip() if sha else None

    def path_status(self, path: str) -> Optional[ChangedFile]:
        if self.resolve_ref("HEAD") is not None:
            changed = self._diff("HEAD", "--", path)
            if changed:
                return changed[0]
        untracked = self._untracked(path)
        return untracked[0] if untracked else None

    def path_exists(self, path: str, revision: Optional[str] = None) -> bool:
        if revision is None:
            return (self.root / path).exists()
        return self._git_or_none("cat-file", "-e", f"{revision}:{path}") is not None

    def path_in_history(self, path: str) -> bool:
        found = self._git_or_none("log", "--all", "-1", "--format=%H", "--", path)
        return bool(found and found.strip())

    def current_branch(self) -> str:
        try:
            return self.repo.active_branch.name
        except TypeError:
            return "HEAD"

    def looks_like_path(self, token: str) -> bool:
        """Classifier hook: does ``token`` name a file on disk or at HEAD?"""
        if (self.root / token).is_file():
            return True
        return self.path_exists(token, "HEAD") if self.resolve_ref("HEAD") else False
