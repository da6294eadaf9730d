"""Command-line interface for the changescope tool."""

import json
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table
from rich.markup import escape
from rich.traceback import install

from .analyzer import ImpactAnalyzer
from .config import load_config
from .core.input_classifier import ClassificationContext, InputClassifier
from .errors import ImpactAnalysisError
from .log import configure_logging, get_logger
from .report import ReportAssembler
from .vcs.gateway import GitRepositoryGateway
from .vcs.merge_requests import MrMetadata, StaticMrResolver

# Set up rich error handling
install()
console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


@click.group()
@click.version_option(package_name="changescope")
def cli():
    """changescope - Change impact analysis for multi-module repositories

    Describe the change in plain words and changescope works out what it touches.

    USAGE:
        changescope analyze feature/PLAYER-12                  # branch vs auto-detected base
        changescope analyze from feature/x to release_250      # explicit branch pair
        changescope analyze "MR !16" --mr-source a --mr-target b
        changescope analyze HEAD~3..HEAD --format json         # commit range as JSON
        changescope analyze uncommitted changes                # working tree
        changescope classify "compare bug/TV-1 with main"      # show the interpretation only
    """


@cli.command()
@click.argument('description', nargs=-1)
@click.option('--repo', '-r', type=click.Path(exists=True, file_okay=False), default='.',
              help='Repository to analyze (default: current directory)')
@click.option('--config', '-c', 'config_path', type=click.Path(dir_okay=False),
              help='Configuration file (default: <repo>/.changescope.yml)')
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']), default='text',
              help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Write the JSON report here (file or directory)')
@click.option('--save', is_flag=True, help='Write the JSON report under its derived artifact name')
@click.option('--workers', type=click.IntRange(min=1), help='Worker threads for per-file analysis')
@click.option('--vcs-timeout', type=click.FloatRange(min=0, min_open=True),
              help='Seconds allowed per git command')
@click.option('--mr-timeout', type=click.FloatRange(min=0, min_open=True),
              help='Seconds allowed for merge request lookup')
@click.option('--mr-source', help='Source branch of the merge request being analyzed')
@click.option('--mr-target', help='Target branch of the merge request being analyzed')
@click.option('--no-dependents', is_flag=True, help='Skip the dependent file search')
@click.option('--no-breaking', is_flag=True, help='Skip breaking-change detection')
@click.option('--no-tests', is_flag=True, help='Skip test correlation')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.option('--log-file', type=click.Path(dir_okay=False), help='Also write logs to this file')
def analyze(description, repo, config_path, output_format, output, save, workers, vcs_timeout,
            mr_timeout, mr_source, mr_target, no_dependents, no_breaking, no_tests, verbose, log_file):
    """Analyze the impact of a change described in free text.

    With no description the current branch is compared against its
    auto-detected base branch.
    """
    configure_logging(verbose=verbose, log_file=Path(log_file) if log_file else None)
    if bool(mr_source) != bool(mr_target):
        raise click.UsageError('--mr-source and --mr-target must be given together')

    text = ' '.join(description)
    reporter = ReportAssembler()
    try:
        vcs = GitRepositoryGateway(repo)
        project = load_config(Path(config_path) if config_path else None, root=vcs.root)
        settings = project.analysis.with_overrides(
            max_workers=workers,
            vcs_timeout=vcs_timeout,
            mr_timeout=mr_timeout,
            include_dependents=False if no_dependents else None,
            include_breaking_changes=False if no_breaking else None,
            include_test_correlation=False if no_tests else None,
        )
        vcs.timeout = settings.vcs_timeout

        mr_resolver = None
        if mr_source:
            mr_resolver = StaticMrResolver.from_config(
                project.merge_requests, default=MrMetadata(mr_source, mr_target))

        analyzer = ImpactAnalyzer(vcs, project, settings, mr_resolver=mr_resolver)
        with err_console.status('[bold green]Analyzing change impact...[/bold green]') as status:
            analyzer.on_phase = lambda phase: status.update(
                f"[bold green]Analyzing change impact: {phase.replace('_', ' ')}[/bold green]")
            result = analyzer.analyze(text)
    except ImpactAnalysisError as e:
        err_console.print(f"[red]Error:[/red] {escape(str(e))}", highlight=False)
        raise click.exceptions.Exit(1)

    payload = None
    if output_format == 'json' or output or save:
        payload = reporter.to_payload(result)

    target = _output_path(output, save, reporter.artifact_name(result.request, result.change_set))
    if target is not None:
        target.write_text(json.dumps(payload, indent=2, ensure_ascii=False))
        err_console.print(f"Report saved to {target}")

    if output_format == 'json':
        if target is None:
            click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        reporter.render_summary(result, console)


def _output_path(output: Optional[str], save: bool, artifact: str) -> Optional[Path]:
    """Where to write the JSON report, if anywhere."""
    if output:
        path = Path(output)
        if path.is_dir():
            return path / f"{artifact}.json"
        return path
    if save:
        return Path(f"{artifact}.json")
    return None


@cli.command()
@click.argument('description', nargs=-1)
@click.option('--repo', '-r', type=click.Path(exists=True, file_okay=False), default='.',
              help='Repository used for the current branch and path checks')
@click.option('--json', 'as_json', is_flag=True, help='Print the request as JSON')
def classify(description, repo, as_json):
    """Show how a change description would be interpreted, without resolving it."""
    text = ' '.join(description)
    try:
        vcs = GitRepositoryGateway(repo)
        context = ClassificationContext(current_branch=vcs.current_branch(),
                                        is_file_like=vcs.looks_like_path)
    except ImpactAnalysisError as e:
        logger.debug("No repository context for classification: %s", e)
        context = ClassificationContext()

    rule, request = InputClassifier().explain(text, context)
    fields = asdict(request)
    if as_json:
        click.echo(json.dumps({'kind': request.kind, 'rule': rule, 'fields': fields}, indent=2))
        return

    table = Table(title=escape(request.describe()))
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="yellow")
    table.add_row("kind", request.kind)
    table.add_row("rule", rule)
    for name, value in fields.items():
        table.add_row(name, escape(", ".join(value) if isinstance(value, (list, tuple)) else str(value)))
    console.print(table)


if __name__ == '__main__':
    cli()
