"""Parsing of git ``--name-status``/``--numstat`` output into ChangedFile records."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.models import ChangeStatus, ChangedFile


@dataclass
class NameStatusEntry:
    """A single row of ``git diff --name-status -z``."""
    status: ChangeStatus
    path: str
    old_path: Optional[str] = None


_STATUS_LETTERS = {
    "A": ChangeStatus.ADDED,
    "C": ChangeStatus.ADDED,  # copy: the destination is a new file
    "M": ChangeStatus.MODIFIED,
    "T": ChangeStatus.MODIFIED,  # type change (file <-> symlink)
    "U": ChangeStatus.MODIFIED,  # unmerged
    "D": ChangeStatus.DELETED,
    "R": ChangeStatus.RENAMED,
}


def normalize_path(file_path: str) -> str:
    """Use forward slashes and drop a leading ``./``."""
    normalized = file_path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    return normalized


def parse_name_status(raw: str) -> List[NameStatusEntry]:
    """Parse NUL separated name-status output, keeping VCS report order."""
    entries: List[NameStatusEntry] = []
    tokens = raw.split("\0")
    index = 0
    while index < len(tokens):
        code = tokens[index].strip()
        index += 1
        if not code:
            continue
        letter = code[0]
        status = _STATUS_LETTERS.get(letter)
        if letter in ("R", "C"):
            if index + 1 >= len(tokens):
                break
            old_path, new_path = tokens[index], tokens[index + 1]
            index += 2
            if status is ChangeStatus.RENAMED:
                entries.append(NameStatusEntry(status, new_path, old_path))
            else:
                entries.append(NameStatusEntry(ChangeStatus.ADDED, new_path))
            continue
        if index >= len(tokens):
            break
        path = tokens[index]
        index += 1
        if status is None:
            # X (unknown) and B (broken pairing) carry no usable status.
            status = ChangeStatus.MODIFIED
        entries.append(NameStatusEntry(status, path))
    return entries


def parse_numstat(raw: str) -> Dict[str, Tuple[int, int]]:
    """Parse NUL separated numstat output into ``path -> (added, removed)``.

    Binary files report ``-`` for both counts and are recorded as zero.
    """
    stats: Dict[str, Tuple[int, int]] = {}
    tokens = raw.split("\0")
    index = 0
    while index < len(tokens):
        record = tokens[index]
        index += 1
        if not record.strip():
            continue
        parts = record.split("\t")
        if len(parts) < 3:
            continue
        added, removed, path = parts[0], parts[1], parts[2]
        if not path:
            # Rename: the two paths follow as separate tokens, old then new.
            if index + 1 >= len(tokens):
                break
            path = tokens[index + 1]
            index += 2
        stats[path] = (_count(added), _count(removed))
    return stats


def _count(value: str) -> int:
    value = value.strip()
    return int(value) if value.isdigit() else 0


def merge_entries(entries: List[NameStatusEntry],
                  stats: Dict[str, Tuple[int, int]]) -> List[ChangedFile]:
    """Combine name-status rows with line counts; name-status order wins."""
    files: List[ChangedFile] = []
    for entry in entries:
        added, removed = stats.get(entry.path, (0, 0))
        files.append(ChangedFile(
            path=normalize_path(entry.path),
            status=entry.status,
            lines_added=added,
            lines_removed=removed,
            old_path=normalize_path(entry.old_path) if entry.old_path else None,
        ))
    return files


def count_lines(content: str) -> int:
    """Number of lines a brand-new file contributes."""
    if not content:
        return 0
    return content.count("\n") + (0 if content.endswith("\n") else 1)
