"""RepoLens CLI interface.

Commands:
- analyze: Analyze one repository and print or write the result
- batch: Analyze several repositories with bounded concurrency
- classify: Classify a local checkout without calling the reasoning service
- plan: Show the task execution plan for a project type
- compare: Compare two saved analysis results
- init: Initialize RepoLens configuration

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --ci: JSON log output
- --version: Show version and exit
"""

import asyncio
import json
from pathlib import Path
from typing import Annotated

import typer

from repolens import __version__
from repolens.config import RepoLensConfig, create_default_config, load_config
from repolens.errors import InvalidRepositoryError, RegistryFullError
from repolens.models.analysis import AnalysisResult
from repolens.models.classification import ProjectType
from repolens.models.job import AnalysisDepth, AnalysisJob, AnalysisRequest, JobStatus
from repolens.models.tasks import TaskCategory
from repolens.utils.logging import configure_from_cli, get_logger

app = typer.Typer(
    name="repolens",
    help="Automated repository analysis",
    add_completion=False,
    no_args_is_help=True,
)

# Global state
_config: RepoLensConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"repolens {__version__}")
        raise typer.Exit()


def _get_config() -> RepoLensConfig:
    return _config if _config is not None else RepoLensConfig()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output with timestamps",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress info messages (warnings and errors only)",
        ),
    ] = False,
    ci: Annotated[
        bool,
        typer.Option(
            "--ci",
            help="Enable CI mode with JSON log output",
        ),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """RepoLens - Automated Repository Analysis.

    Clones a repository, classifies it, runs dependency-ordered analysis
    tasks and produces a structured architecture, security and quality report.
    """
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, ci=ci)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except Exception as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


# =============================================================================
# Helpers
# =============================================================================


def _parse_categories(values: list[str] | None) -> list[TaskCategory]:
    categories: list[TaskCategory] = []
    for value in values or []:
        try:
            categories.append(TaskCategory(value.lower()))
        except ValueError:
            valid = ", ".join(c.value for c in TaskCategory)
            _logger.error(f"Invalid category: {value}. Use one of: {valid}")
            raise typer.Exit(1)
    return categories


def _parse_depth(value: str) -> AnalysisDepth:
    try:
        return AnalysisDepth(value.lower())
    except ValueError:
        _logger.error(f"Invalid depth: {value}. Use quick, standard or deep")
        raise typer.Exit(1)


def _print_summary(job: AnalysisJob) -> None:
    if job.status != JobStatus.COMPLETED or job.result is None:
        typer.echo(f"\n❌ {job.repo_name}: {job.error_message}")
        return

    result = job.result
    cached = " (cached)" if job.usage.cache_hit else ""
    typer.echo(f"\n✅ {job.repo_name} @ {(result.commit_hash or '')[:12]}{cached}")
    typer.echo(
        f"   Type: {result.project_type.value} "
        f"({result.classification_confidence:.0%} confidence)"
    )
    typer.echo(f"   Stack: {', '.join(result.tech_stack) or 'none detected'}")
    typer.echo(f"   Pattern: {result.architecture.pattern}")
    typer.echo(f"   Findings: {len(result.findings)}")
    if result.security_findings is not None:
        typer.echo(f"   Security findings: {len(result.security_findings)}")
    typer.echo(f"   Recommendations: {len(result.recommendations)}")
    typer.echo(f"   Tasks: {job.usage.tasks_run}, tokens: {job.usage.tokens_used}")


# =============================================================================
# analyze command
# =============================================================================


@app.command()
def analyze(
    url: Annotated[str, typer.Argument(help="Repository URL")],
    branch: Annotated[
        str | None,
        typer.Option("--branch", "-b", help="Branch to analyze (default branch if omitted)"),
    ] = None,
    depth: Annotated[
        str,
        typer.Option("--depth", "-d", help="Analysis depth: quick, standard, deep"),
    ] = "standard",
    category: Annotated[
        list[str] | None,
        typer.Option("--category", help="Category to run (repeatable; all if omitted)"),
    ] = None,
    no_security: Annotated[
        bool,
        typer.Option("--no-security", help="Skip security analysis"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", help="Ignore cached results"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the full job as JSON"),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the markdown report to this file"),
    ] = None,
) -> None:
    """Analyze a repository.

    Exit codes:
        0: Analysis completed
        1: Analysis failed
    """
    from repolens.pipeline import create_coordinator

    request = AnalysisRequest(
        repo_url=url,
        branch=branch,
        depth=_parse_depth(depth),
        categories=_parse_categories(category),
        include_security=not no_security,
        force_refresh=force,
    )

    try:
        coordinator = create_coordinator(_get_config())
    except ValueError as e:
        _logger.error(f"Cannot start analysis: {e}")
        raise typer.Exit(1)

    try:
        job = asyncio.run(coordinator.run_job(request))
    except (InvalidRepositoryError, RegistryFullError) as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(job.to_dict(), indent=2))
    else:
        _print_summary(job)

    if output and job.result and job.result.report:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(job.result.report)
        typer.echo(f"\n📄 Report written to: {output}")

    raise typer.Exit(0 if job.status == JobStatus.COMPLETED else 1)


# =============================================================================
# batch command
# =============================================================================


@app.command()
def batch(
    urls: Annotated[list[str], typer.Argument(help="Repository URLs")],
    depth: Annotated[
        str,
        typer.Option("--depth", "-d", help="Analysis depth: quick, standard, deep"),
    ] = "standard",
    no_security: Annotated[
        bool,
        typer.Option("--no-security", help="Skip security analysis"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the batch outcome as JSON"),
    ] = False,
) -> None:
    """Analyze several repositories.

    Exit codes:
        0: Every job completed
        1: Invalid input
        2: At least one job failed
    """
    from repolens.pipeline import create_coordinator

    analysis_depth = _parse_depth(depth)
    requests = [
        AnalysisRequest(repo_url=url, depth=analysis_depth, include_security=not no_security)
        for url in urls
    ]

    try:
        coordinator = create_coordinator(_get_config())
        result = asyncio.run(coordinator.run_batch(requests))
    except (ValueError, InvalidRepositoryError) as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for job in result.jobs:
            _print_summary(job)
        typer.echo(
            f"\n{len(result.completed)} completed, {len(result.failed)} failed "
            f"of {len(result.jobs)}"
        )

    raise typer.Exit(2 if result.failed else 0)


# =============================================================================
# classify command
# =============================================================================


@app.command()
def classify(
    path: Annotated[
        Path,
        typer.Argument(
            help="Local checkout to classify",
            exists=True,
            file_okay=False,
        ),
    ] = Path("."),
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
) -> None:
    """Classify a local checkout (no reasoning service calls)."""
    from repolens.classifier import RepositoryClassifier
    from repolens.source import GitSourceAccess

    config = _get_config()
    source = GitSourceAccess(
        max_file_bytes=config.source.max_file_bytes,
        ignore_patterns=config.source.ignore_patterns,
    )
    root = str(path.resolve())
    files = source.list_files(root)
    tree = source.directory_tree(root, config.source.tree_depth)
    result = RepositoryClassifier().classify(
        files, tree, lambda relative: source.read_file(root, relative)
    )

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    typer.echo(f"\n🔍 {path.resolve().name}\n")
    typer.echo(f"  Type: {result.primary_type.value} ({result.confidence:.0%} confidence)")
    if result.sub_types:
        typer.echo(f"  Sub-types: {', '.join(t.value for t in result.sub_types)}")
    typer.echo(f"  Stack: {', '.join(result.sorted_tech_stack()) or 'none detected'}")
    for indicator in result.indicators:
        typer.echo(f"     └─ {indicator.kind.value}: {indicator.name} ({indicator.confidence:.2f})")


# =============================================================================
# plan command
# =============================================================================


@app.command()
def plan(
    project_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Project type (e.g. backend, frontend, unknown)"),
    ] = "unknown",
    category: Annotated[
        list[str] | None,
        typer.Option("--category", help="Category to show (repeatable; all if omitted)"),
    ] = None,
) -> None:
    """Show the task execution plan for a project type."""
    from repolens.tasks import TaskCatalogue

    try:
        ptype = ProjectType(project_type.lower())
    except ValueError:
        valid = ", ".join(t.value for t in ProjectType)
        _logger.error(f"Invalid project type: {project_type}. Use one of: {valid}")
        raise typer.Exit(1)

    catalogue = TaskCatalogue()
    categories = _parse_categories(category) or catalogue.available_categories(ptype)

    for task_category in categories:
        tasks = catalogue.get_plan(ptype, task_category)
        if not tasks:
            continue
        typer.echo(f"\n{task_category.value}")
        for position, task in enumerate(tasks, start=1):
            after = f" (after {', '.join(task.depends_on)})" if task.depends_on else ""
            typer.echo(f"  {position}. {task.id}: {task.name}{after}")


# =============================================================================
# compare command
# =============================================================================


def _load_result(path: Path) -> AnalysisResult:
    """Load a result from `analyze --json` output or a bare result document."""
    try:
        data = json.loads(path.read_text())
        if isinstance(data, dict) and "job_id" in data:
            data = data.get("result")
        if not isinstance(data, dict):
            raise ValueError("no analysis result in file")
        return AnalysisResult.from_dict(data)
    except (OSError, ValueError, TypeError, KeyError) as e:
        _logger.error(f"Cannot read analysis result from {path}: {e}")
        raise typer.Exit(1)


@app.command()
def compare(
    before: Annotated[
        Path,
        typer.Argument(help="Earlier result (JSON)", exists=True, dir_okay=False),
    ],
    after: Annotated[
        Path,
        typer.Argument(help="Later result (JSON)", exists=True, dir_okay=False),
    ],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the comparison as JSON"),
    ] = False,
) -> None:
    """Compare two saved analysis results of the same repository."""
    from repolens.compare import compare_results

    comparison = compare_results(_load_result(before), _load_result(after))

    if json_output:
        typer.echo(json.dumps(comparison.to_dict(), indent=2))
        return

    typer.echo(f"\n🔀 {comparison.from_commit[:12] or '?'} -> {comparison.to_commit[:12] or '?'}")
    if not comparison.has_changes:
        typer.echo("   No changes")
        return
    for change in comparison.architecture_changes:
        typer.echo(f"   ~ {change}")
    for tech in comparison.tech_added:
        typer.echo(f"   + tech: {tech}")
    for tech in comparison.tech_removed:
        typer.echo(f"   - tech: {tech}")
    for title in comparison.new_findings:
        typer.echo(f"   + finding: {title}")
    for title in comparison.resolved_findings:
        typer.echo(f"   - finding: {title}")


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing config"),
    ] = False,
) -> None:
    """Initialize RepoLens configuration in the current directory."""
    config_dir = Path(".repolens")
    config_dir.mkdir(exist_ok=True)
    config_file = config_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_file.write_text(create_default_config())
    _logger.info(f"Created config: {config_file}")
    typer.echo("\n✅ RepoLens configuration initialized")
    typer.echo(f"   Config: {config_file}")


if __name__ == "__main__":
    app()
