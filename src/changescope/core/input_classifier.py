"""Input Classifier - Turns a free-form change description into exactly one ChangeRequest."""

import os
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import ImpactAnalysisError
from ..log import get_logger
from .models import (
    ChangeRequest, MrReference, BranchPair, FileSet, CommitRange, WorkingTree, Branch
)

logger = get_logger(__name__)

# Branch-like token: starts with a word character, may contain path separators and dots.
_BRANCH = r"[A-Za-z0-9_][\w./\-]*"
# Token start: not preceded by anything that could belong to the same token.
_START = r"(?<![\w./~^#!-])"
# Ref usable on either side of a commit range: dots only between word runs.
_RANGE_REF = r"[\w/\-]+(?:\.[\w/\-]+)*(?:[~^]\d*)*"
_TRAILING_PUNCTUATION = ".,;:!?)]}'\"`"
_LEADING_PUNCTUATION = "([{'\"`<"

SOURCE_EXTENSIONS = frozenset({
    ".kt", ".kts", ".java", ".py", ".pyi", ".js", ".jsx", ".ts", ".tsx", ".swift",
    ".go", ".rs", ".c", ".cc", ".cpp", ".h", ".hpp", ".m", ".mm", ".cs", ".scala",
    ".rb", ".php", ".dart", ".groovy", ".gradle", ".xml", ".json", ".yaml", ".yml",
    ".toml", ".properties", ".pro", ".cfg", ".ini", ".conf", ".sql", ".proto", ".aidl",
    ".md", ".html", ".css", ".scss", ".sh",
})

_MR_URL = re.compile(
    r"(?P<url>(?:https?://)?(?P<host>[^/\s]+)(?:/\S*?)?/-/merge_requests/(?P<number>\d+))",
    re.IGNORECASE,
)
_PR_URL = re.compile(
    r"(?P<url>https?://(?P<host>[^/\s]+)/[^/\s]+/[^/\s]+/pull/(?P<number>\d+))",
    re.IGNORECASE,
)

_PAIR_PATTERNS = (
    re.compile(rf"\bsource\s*[:=]\s*(?P<source>{_BRANCH})[\s,;]+target\s*[:=]\s*(?P<target>{_BRANCH})",
               re.IGNORECASE),
    re.compile(rf"\bfrom\s+(?:branch\s+)?(?P<source>{_BRANCH})\s+(?:to|into|onto)\s+(?:branch\s+)?"
               rf"(?P<target>{_BRANCH})", re.IGNORECASE),
    re.compile(rf"\bcompare\s+(?:branch(?:es)?\s+)?(?P<source>{_BRANCH})\s+(?:and|with|to)\s+"
               rf"(?:branch\s+)?(?P<target>{_BRANCH})", re.IGNORECASE),
    re.compile(rf"\bbetween\s+(?:branch(?:es)?\s+)?(?P<source>{_BRANCH})\s+and\s+"
               rf"(?:branch\s+)?(?P<target>{_BRANCH})", re.IGNORECASE),
    re.compile(rf"{_START}(?P<source>{_BRANCH})\s+(?:vs\.?|versus)\s+(?P<target>{_BRANCH})",
               re.IGNORECASE),
)

_FILE_KEYWORD = re.compile(
    r"\b(?:analy[sz]e\s+(?:the\s+)?files?|impact\s+of\s+(?:the\s+)?files?|files?\s*:)",
    re.IGNORECASE,
)

_COMMIT_RANGE = re.compile(rf"{_START}(?P<from>{_RANGE_REF})\.\.\.?(?P<to>{_RANGE_REF})(?![\w/])")
_LAST_COMMITS = re.compile(r"\blast\s+(?:(?P<count>\d+)\s+)?commits?\b", re.IGNORECASE)
_REF_EXPRESSION = re.compile(rf"{_START}(?P<ref>[\w/\-]+(?:\.[\w/\-]+)*(?:[~^]\d*)+)(?![\w~^])")
_SHA = re.compile(r"(?<![\w./#!-])(?P<sha>[0-9a-fA-F]{6,40})(?![\w./-])")
_RANGE_SIDE = re.compile(r"^(?:[0-9a-fA-F]{6,40}|HEAD|.*[~^].*|v?\d+(?:\.\d+)*)$", re.IGNORECASE)

_MR_NUMBER_PATTERNS = (
    re.compile(r"\b(?:MR|PR)\s*[#!]?\s*(?P<number>\d+)\b", re.IGNORECASE),
    re.compile(r"\b(?:merge|pull)[\s-]+request\s*[#!]?\s*(?P<number>\d+)\b", re.IGNORECASE),
    re.compile(r"(?<![\w&])[#!](?P<number>\d+)\b"),
)

_GENERIC_WORKING_TREE = re.compile(
    r"\b(?:uncommitted|working\s+(?:directory|dir|tree|copy)|current\s+changes|local\s+changes)\b",
    re.IGNORECASE,
)
_STAGED = re.compile(r"\bstaged\b", re.IGNORECASE)
_UNSTAGED = re.compile(r"\bunstaged\b", re.IGNORECASE)
_UNTRACKED = re.compile(r"\buntracked\b", re.IGNORECASE)

_BRANCH_WITH_TARGET = re.compile(
    rf"{_START}(?P<name>{_BRANCH})\s+(?:vs\.?|versus|compared\s+to|against)\s+(?:branch\s+)?"
    rf"(?P<target>{_BRANCH})",
    re.IGNORECASE,
)
_NAMED_BRANCH = re.compile(rf"\bbranch\s+(?P<name>{_BRANCH})", re.IGNORECASE)
_PREFIXED_BRANCH = re.compile(
    rf"{_START}(?P<name>(?:feature|feat|bug|bugfix|fix|hotfix|release|task|story|chore|refactor)"
    rf"[/_-][\w./\-]+)",
    re.IGNORECASE,
)
_BARE_BRANCH = re.compile(rf"^{_BRANCH}$")
_FILLER_WORDS = frozenset({
    "analyze", "analyse", "check", "review", "show", "me", "the", "impact", "of", "on",
    "for", "changes", "in", "please", "what", "does", "affect", "run",
})
_NOT_BRANCH_WORDS = frozenset({"branch", "branches", "changes", "the", "this", "my", "it"})


def _never(path: str) -> bool:
    return False


@dataclass(frozen=True)
class ClassificationContext:
    """Ambient facts the classifier may consult; it never touches the VCS itself."""
    current_branch: str = "HEAD"
    is_file_like: Callable[[str], bool] = _never


Matcher = Callable[[str, ClassificationContext], Optional[ChangeRequest]]


def _clean_token(token: str) -> str:
    return token.strip().lstrip(_LEADING_PUNCTUATION).rstrip(_TRAILING_PUNCTUATION)


def _is_branch_word(token: str) -> bool:
    return bool(token) and token.lower() not in _NOT_BRANCH_WORDS


def _safe_is_file_like(context: ClassificationContext, token: str) -> bool:
    try:
        return bool(context.is_file_like(token))
    except (OSError, ValueError, ImpactAnalysisError) as exc:
        logger.debug("Path check for %s failed: %s", token, exc)
        return False


def _tokens(text: str) -> List[str]:
    return [cleaned for cleaned in (_clean_token(raw) for raw in re.split(r"[\s,;]+", text)) if cleaned]


def _match_mr_url(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    for pattern in (_MR_URL, _PR_URL):
        match = pattern.search(text)
        if match:
            return MrReference(
                host=match.group("host"),
                mr_number=int(match.group("number")),
                mr_url=match.group("url"),
            )
    return None


def _match_branch_pair(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    for pattern in _PAIR_PATTERNS:
        for match in pattern.finditer(text):
            source = _clean_token(match.group("source"))
            target = _clean_token(match.group("target"))
            if _is_branch_word(source) and _is_branch_word(target):
                return BranchPair(source=source, target=target)
    return None


def _has_path_syntax(token: str) -> bool:
    return ("/" in token or "\\" in token) and "://" not in token


def _known_extension(token: str) -> bool:
    return os.path.splitext(token)[1].lower() in SOURCE_EXTENSIONS


def _match_file_set(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    paths: List[str] = []
    for token in _tokens(text):
        if _has_path_syntax(token) and (_known_extension(token) or _safe_is_file_like(context, token)):
            paths.append(token)

    keyword = _FILE_KEYWORD.search(text)
    if keyword:
        for token in _tokens(text[keyword.end():]):
            if "://" in token or token in paths:
                continue
            if _known_extension(token) or _safe_is_file_like(context, token):
                paths.append(token)

    if not paths:
        return None
    return FileSet(paths=tuple(dict.fromkeys(paths)))


def _match_commit_range(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    for match in _COMMIT_RANGE.finditer(text):
        from_ref, to_ref = match.group("from"), match.group("to")
        if _RANGE_SIDE.match(from_ref) or _RANGE_SIDE.match(to_ref):
            return CommitRange(from_ref=from_ref, to_ref=to_ref)

    last = _LAST_COMMITS.search(text)
    if last:
        count = last.group("count")
        if count and int(count) > 1:
            return CommitRange(from_ref=f"HEAD~{int(count)}", to_ref="HEAD")
        return CommitRange.single("HEAD")

    expression = _REF_EXPRESSION.search(text)
    if expression:
        return CommitRange.single(expression.group("ref"))

    sha = _SHA.search(text)
    if sha:
        return CommitRange.single(sha.group("sha"))
    return None


def _match_mr_number(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    for pattern in _MR_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return MrReference(mr_number=int(match.group("number")))
    return None


def _match_working_tree(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    if _GENERIC_WORKING_TREE.search(text):
        return WorkingTree(include_staged=True, include_unstaged=True, include_untracked=True)

    staged = bool(_STAGED.search(text))
    unstaged = bool(_UNSTAGED.search(text))
    untracked = bool(_UNTRACKED.search(text))
    if staged or unstaged or untracked:
        return WorkingTree(include_staged=staged, include_unstaged=unstaged,
                           include_untracked=untracked)
    return None


def _match_branch_with_target(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    for match in _BRANCH_WITH_TARGET.finditer(text):
        name = _clean_token(match.group("name"))
        target = _clean_token(match.group("target"))
        if _is_branch_word(name) and _is_branch_word(target):
            return Branch(name=name, explicit_target=target)
    return None


def _match_single_branch(text: str, context: ClassificationContext) -> Optional[ChangeRequest]:
    named = _NAMED_BRANCH.search(text)
    if named:
        name = _clean_token(named.group("name"))
        if _is_branch_word(name):
            return Branch(name=name)

    prefixed = _PREFIXED_BRANCH.search(text)
    if prefixed:
        return Branch(name=_clean_token(prefixed.group("name")))

    remaining = [token for token in _tokens(text) if token.lower() not in _FILLER_WORDS]
    if len(remaining) == 1 and _BARE_BRANCH.match(remaining[0]) and _is_branch_word(remaining[0]):
        return Branch(name=remaining[0])
    return None


# Evaluated top to bottom, first hit wins. Reordering changes results.
DEFAULT_RULES: Tuple[Tuple[str, Matcher], ...] = (
    ("mr_url", _match_mr_url),
    ("branch_pair", _match_branch_pair),
    ("file_set", _match_file_set),
    ("commit_range", _match_commit_range),
    ("mr_number", _match_mr_number),
    ("working_tree", _match_working_tree),
    ("branch_with_target", _match_branch_with_target),
    ("single_branch", _match_single_branch),
)


class InputClassifier:
    """Prioritised pattern dispatcher over change-source descriptions."""

    def __init__(self, rules: Optional[Sequence[Tuple[str, Matcher]]] = None):
        self.rules = tuple(rules if rules is not None else DEFAULT_RULES)

    def classify(self, text: str, context: Optional[ClassificationContext] = None) -> ChangeRequest:
        """Return exactly one ChangeRequest; falls back to the current branch."""
        return self.explain(text, context)[1]

    def explain(self, text: str,
                context: Optional[ClassificationContext] = None) -> Tuple[str, ChangeRequest]:
        """Classify and also report which rule produced the result."""
        context = context or ClassificationContext()
        text = (text or "").strip()

        if text:
            for name, matcher in self.rules:
                request = matcher(text, context)
                if request is not None:
                    logger.debug("Classified %r via rule %s as %s", text, name, request)
                    return name, request

        logger.debug("No rule matched %r; defaulting to branch %s", text, context.current_branch)
        return "default", Branch(name=context.current_branch)


_DEFAULT_CLASSIFIER = InputClassifier()


def classify(text: str, context: Optional[ClassificationContext] = None) -> ChangeRequest:
    """Classify with the default rule order."""
    return _DEFAULT_CLASSIFIER.classify(text, context)
