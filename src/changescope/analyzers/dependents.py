"""Dependents - Finds files that reference a changed file's symbols."""

from abc import ABC, abstractmethod
from pathlib import PurePosixPath
from typing import FrozenSet, List, Mapping, Optional, Sequence

import networkx as nx

from ..core.models import ChangedFile, ChangeSet
from ..log import get_logger
from .module_attribution import is_build_convention

logger = get_logger(__name__)

DEFAULT_SOURCE_GLOBS: Sequence[str] = (
    "*.kt", "*.kts", "*.java", "*.py", "*.xml", "*.gradle", "*.groovy",
    "*.js", "*.jsx", "*.ts", "*.tsx", "*.swift", "*.scala",
)

# Path stems of these files are words, not symbols.
_NON_CODE_SUFFIXES = frozenset({
    ".md", ".txt", ".rst", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico",
    ".ttf", ".otf", ".woff", ".woff2", ".mp3", ".mp4", ".jar", ".aar", ".so", ".lock",
})


class DependentsFinder(ABC):
    """Strategy for locating files that depend on a changed file."""

    @abstractmethod
    def find_dependents(self, changed: ChangedFile,
                        change_set: Optional[ChangeSet] = None) -> FrozenSet[str]:
        """Paths referencing ``changed`` at the change set's head, never including the file itself."""


class TextualDependentsFinder(DependentsFinder):
    """Whole-word text search for path-derived symbol names.

    Approximate by nature: false positives are acceptable, but every file that
    mentions an exact symbol name is reported.
    """

    def __init__(self, vcs, source_globs: Sequence[str] = DEFAULT_SOURCE_GLOBS,
                 min_symbol_length: int = 3):
        self.vcs = vcs
        self.source_globs = tuple(source_globs)
        self.min_symbol_length = min_symbol_length

    def symbols_for(self, path: str) -> List[str]:
        """Symbol names implied by a file path, most specific first."""
        pure = PurePosixPath(path)
        if pure.suffix.lower() in _NON_CODE_SUFFIXES or is_build_convention(path):
            return []

        stem = pure.stem
        if stem == "__init__":
            stem = pure.parent.name
        candidates = [stem]
        if "_" in stem:
            camel = "".join(part[:1].upper() + part[1:] for part in stem.split("_") if part)
            candidates.append(camel)

        symbols = []
        for candidate in candidates:
            if len(candidate) >= self.min_symbol_length and candidate not in symbols:
                symbols.append(candidate)
        return symbols

    def find_dependents(self, changed: ChangedFile,
                        change_set: Optional[ChangeSet] = None) -> FrozenSet[str]:
        symbols = self.symbols_for(changed.path)
        if changed.old_path:
            symbols.extend(s for s in self.symbols_for(changed.old_path) if s not in symbols)
        if not symbols:
            logger.debug("No searchable symbols for %s", changed.path)
            return frozenset()

        revision = change_set.head_revision if change_set is not None else None
        excluded = {changed.path, changed.old_path}
        found = set()
        for symbol in symbols:
            for match in self.vcs.search_text(symbol, self.source_globs, revision):
                if match not in excluded:
                    found.add(match)
        logger.debug("%s: %d dependent(s) via %s", changed.path, len(found), ", ".join(symbols))
        return frozenset(found)


def build_dependency_graph(dependents: Mapping[str, FrozenSet[str]]) -> nx.DiGraph:
    """Directed graph with an edge from every dependent to the changed file it references."""
    graph = nx.DiGraph()
    for changed_path in sorted(dependents):
        graph.add_node(changed_path, changed=True)
        for dependent in sorted(dependents[changed_path]):
            if not graph.has_node(dependent):
                graph.add_node(dependent, changed=dependent in dependents)
            graph.add_edge(dependent, changed_path, type="textual")
    return graph
