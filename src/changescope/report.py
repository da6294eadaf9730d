"""Report Assembler - Turns an AnalysisResult into a payload, an artifact name and a console summary."""

import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from rich.console import Console
from rich.table import Table
from rich.markup import escape

from .analyzer import AnalysisResult
from .analyzers.breaking_changes import BreakingStatus
from .analyzers.test_correlation import CorrelationStatus
from .core.models import (
    ChangeRequest, ChangeSet, MrReference, BranchPair, FileSet, CommitRange, WorkingTree, Branch
)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

_STATUS_STYLE = {
    CorrelationStatus.PRESENT: "green",
    CorrelationStatus.PRESENT_BUT_UNMODIFIED: "yellow",
    CorrelationStatus.MISSING: "red",
}


def _slug(value: str) -> str:
    return _UNSAFE.sub("-", value).strip("-.") or "unnamed"


class ReportAssembler:
    """Renders analysis results; never performs analysis itself."""

    def to_payload(self, result: AnalysisResult,
                   generated_at: Optional[datetime] = None) -> Dict[str, Any]:
        """JSON-serialisable view of the request, change set and impact graph."""
        change_set = result.change_set
        graph = result.graph
        generated_at = generated_at or datetime.now(timezone.utc)
        return {
            "generated_at": generated_at.isoformat(),
            "request": {
                "kind": result.request.kind,
                "description": result.request.describe(),
                "classified_by": result.classified_by,
            },
            "change_set": {
                "source": change_set.source_description,
                "resolved_from": change_set.resolved_from,
                "resolved_to": change_set.resolved_to,
                "compare_base": change_set.compare_base,
                "head_revision": change_set.head_revision,
                "files": [
                    {
                        "path": changed.path,
                        "status": changed.status.value,
                        "lines_added": changed.lines_added,
                        "lines_removed": changed.lines_removed,
                        "old_path": changed.old_path,
                    }
                    for changed in change_set
                ],
            },
            "impact": {
                "scope": graph.scope.value,
                "modules": [
                    {
                        "name": module.name,
                        "category": module.descriptor.category.value,
                        "files": list(module.files),
                    }
                    for module in graph.affected_modules
                ],
                "features": sorted(graph.affected_features),
                "is_breaking": graph.is_breaking,
                "unclassified_files": list(graph.unclassified_files),
                "dependents": {path: sorted(found) for path, found in graph.dependents.items()},
                "breaking_status": {path: status.value for path, status in graph.breaking_status.items()},
                "breaking_changes": [
                    {
                        "file": record.file,
                        "reason": record.reason.value,
                        "symbol": record.symbol,
                        "detail": record.detail,
                    }
                    for record in sorted(graph.breaking_changes,
                                         key=lambda r: (r.file, r.symbol, r.reason.value))
                ],
                "test_correlation": {
                    path: {
                        "existing_test_path": correlation.existing_test_path,
                        "status": correlation.status.value,
                    }
                    for path, correlation in graph.test_correlation.items()
                },
                "dependency_graph": {
                    "nodes": graph.dependency_graph.number_of_nodes(),
                    "edges": [
                        {"from": source, "to": target, "type": data.get("type")}
                        for source, target, data in sorted(graph.dependency_graph.edges(data=True),
                                                           key=lambda edge: edge[:2])
                    ],
                },
                "warnings": list(graph.warnings),
            },
        }

    def artifact_name(self, request: ChangeRequest, change_set: Optional[ChangeSet] = None,
                      on_date: Optional[date] = None) -> str:
        """File stem for a persisted report, derived from the compared refs and a date."""
        stamp = (on_date or date.today()).strftime("%Y%m%d")
        source, target = self._refs_for_name(request, change_set)
        if source and target:
            return f"impact_{_slug(source)}_vs_{_slug(target)}_{stamp}"
        return f"impact_{_slug(source or request.kind)}_{stamp}"

    @staticmethod
    def _refs_for_name(request: ChangeRequest, change_set: Optional[ChangeSet]):
        # Resolved labels first: they carry auto-detected bases and MR branches.
        if change_set is not None and change_set.resolved_to and change_set.resolved_from \
                and not isinstance(request, WorkingTree):
            return change_set.resolved_to, change_set.resolved_from
        if isinstance(request, BranchPair):
            return request.source, request.target
        if isinstance(request, Branch):
            return request.name, request.explicit_target
        if isinstance(request, CommitRange):
            return request.from_ref, request.to_ref
        if isinstance(request, MrReference):
            return (f"mr-{request.mr_number}" if request.mr_number is not None else "mr"), None
        if isinstance(request, FileSet):
            return "files", None
        return "working-tree", None

    def render_summary(self, result: AnalysisResult, console: Optional[Console] = None):
        """Terse console summary using rich tables."""
        console = console or Console()
        graph = result.graph

        console.print(f"\n[bold]Change impact[/bold] {escape(result.change_set.source_description)}")
        overview = Table(show_header=False, box=None)
        overview.add_column("Key", style="bold")
        overview.add_column("Value")
        overview.add_row("Files", str(len(result.change_set)))
        overview.add_row("Scope", graph.scope.value)
        overview.add_row("Features", ", ".join(sorted(graph.affected_features)) or "-")
        breaking_count = sum(1 for status in graph.breaking_status.values()
                             if status is BreakingStatus.BREAKING)
        overview.add_row("Breaking files", str(breaking_count))
        overview.add_row("Dependency edges", str(graph.dependency_graph.number_of_edges()))
        console.print(overview)

        modules = Table(title="Affected modules")
        modules.add_column("Module", style="cyan")
        modules.add_column("Category", style="magenta")
        modules.add_column("Files", style="yellow")
        for module in graph.affected_modules:
            modules.add_row(module.name, module.descriptor.category.value, str(len(module.files)))
        console.print(modules)

        files = Table(title="Changed files")
        files.add_column("File", style="cyan")
        files.add_column("Status")
        files.add_column("+/-", justify="right")
        files.add_column("Dependents", justify="right")
        files.add_column("Breaking")
        files.add_column("Test")
        for changed in result.change_set:
            breaking = graph.breaking_status.get(changed.path)
            correlation = graph.test_correlation.get(changed.path)
            test_cell = "-"
            if correlation is not None:
                style = _STATUS_STYLE[correlation.status]
                test_cell = f"[{style}]{correlation.status.value}[/{style}]"
            files.add_row(
                escape(changed.path),
                changed.status.value,
                f"+{changed.lines_added}/-{changed.lines_removed}",
                str(len(graph.dependents.get(changed.path, ()))),
                breaking.value if breaking else "-",
                test_cell,
            )
        console.print(files)

        if graph.breaking_changes:
            breaking_table = Table(title="Breaking changes")
            breaking_table.add_column("File", style="cyan")
            breaking_table.add_column("Reason", style="red")
            breaking_table.add_column("Symbol")
            breaking_table.add_column("Detail", style="dim")
            for record in sorted(graph.breaking_changes, key=lambda r: (r.file, r.symbol)):
                breaking_table.add_row(escape(record.file), record.reason.value,
                                       escape(record.symbol), escape(record.detail))
            console.print(breaking_table)

        for warning in graph.warnings:
            console.print(f"[yellow]warning:[/yellow] {escape(warning)}", markup=True, highlight=False)
