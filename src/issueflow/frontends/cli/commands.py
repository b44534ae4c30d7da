"""issueflow commands: run, plan, status, labels."""

from __future__ import annotations

import asyncio
from pathlib import Path

import rich_click as click

from issueflow.agents.classifier import IssueClassifier
from issueflow.coordinator import Coordinator, RunReport, build_executor_factory
from issueflow.core.config import Config, ConfigError
from issueflow.core.dag.graph import DAGNode, max_level
from issueflow.core.logging_config import configure_logging
from issueflow.frontends.cli.output import (
    RunRenderer,
    console,
    error_exit,
    print_plan,
    print_report,
    print_table,
)
from issueflow.frontends.cli.utils import (
    create_github_client,
    create_llm_client,
    generation_mode,
    load_environment,
    parse_issue_list,
    resolve_issue_numbers,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def load_config(log_level: str | None = None) -> Config:
    """Load .env files, configure logging and build a validated Config.

    Exits with code 1 on a configuration error.
    """
    load_environment()
    try:
        configure_logging(level=log_level)
    except ValueError as e:
        error_exit(str(e))
    try:
        config = Config.from_env()
        config.validate()
    except ConfigError as e:
        error_exit("Invalid configuration:\n  - " + "\n  - ".join(e.problems))
    return config


# =========================================================================
# Root CLI
# =========================================================================
@click.group()
@click.version_option(package_name="issueflow")
def cli():
    """Issueflow - Turn GitHub issues into reviewed draft pull requests.

    Issues are ordered by the dependencies written in their bodies
    (`Relates to #N`, `depends: #N`) and processed level by level.

    **Commands:**

        issueflow run       Execute the pipeline for a set of issues

        issueflow plan      Show the execution levels without running

        issueflow status    Show configuration and repository status

        issueflow labels    Manage repository labels
    """
    pass


# =========================================================================
# run
# =========================================================================
async def _run(
    config: Config,
    issue_numbers: list[int],
    concurrency: int,
    dry_run: bool,
    renderer: RunRenderer,
) -> tuple[RunReport, Path | None]:
    llm = create_llm_client(config)
    async with create_github_client(config) as github:
        if llm is not None:
            await llm.connect()
        coordinator = Coordinator(
            config,
            github,
            build_executor_factory(config, github, llm=llm, dry_run=dry_run, on_stage=renderer.stage),
            concurrency=concurrency,
            dry_run=dry_run,
            on_level_start=renderer.level_start,
            on_chunk_start=renderer.chunk_start,
            on_node_done=renderer.node_done,
        )
        try:
            report = await coordinator.run(issue_numbers)
        finally:
            if llm is not None:
                await llm.close()
        return report, coordinator.report_path


@cli.command()
@click.option("--issue", type=int, default=None, help="Single issue number")
@click.option("--issues", default=None, help="Comma-separated issue numbers, e.g. 12,13,14")
@click.option("--concurrency", "-c", type=int, default=None, help="Nodes in flight per chunk")
@click.option("--dry-run", "-d", is_flag=True, help="Skip labels, file writes and pull requests")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Log level (default: ISSUEFLOW_LOG_LEVEL or WARNING)",
)
@click.option("--lenient-cycles", is_flag=True, help="Tolerate dependency cycles")
@click.option("--hard-cancel", is_flag=True, help="Cancel running siblings when a node fails")
def run(
    issue: int | None,
    issues: str | None,
    concurrency: int | None,
    dry_run: bool,
    log_level: str | None,
    lenient_cycles: bool,
    hard_cancel: bool,
):
    """Execute the pipeline for one or more issues.

    Each issue is classified, implemented, reviewed against the quality
    gate and published as a draft pull request.

    **Examples:**

        issueflow run --issue 12

        issueflow run --issues 12,13,14 --concurrency 3

        issueflow run --issues 12,13 --dry-run
    """
    try:
        issue_numbers = resolve_issue_numbers(issue, issues)
    except ValueError as e:
        error_exit(str(e))

    config = load_config(log_level)
    config.lenient_cycles = config.lenient_cycles or lenient_cycles
    config.hard_cancel = config.hard_cancel or hard_cancel
    concurrency = concurrency if concurrency is not None else config.default_concurrency
    if concurrency < 1:
        error_exit("--concurrency must be >= 1")

    console.print(f"[bold cyan]🚀 Issueflow[/bold cyan] {config.repository}")
    console.print(
        f"[dim]Issues: {', '.join(f'#{n}' for n in issue_numbers)} | "
        f"concurrency {concurrency} | generation {generation_mode(config)}"
        f"{' | dry run' if dry_run else ''}[/dim]"
    )

    renderer = RunRenderer()
    try:
        report, report_path = asyncio.run(
            _run(config, issue_numbers, concurrency, dry_run, renderer)
        )
    except Exception as e:
        renderer.fatal(str(e) or type(e).__name__)
        raise SystemExit(1) from e

    print_report(report, report_path)
    console.print("\n[bold green]✅ All issues completed[/bold green]")


# =========================================================================
# plan
# =========================================================================
async def _plan(config: Config, issue_numbers: list[int]) -> list[DAGNode]:
    async with create_github_client(config) as github:
        coordinator = Coordinator(config, github)
        return await coordinator.plan(issue_numbers)


@cli.command()
@click.option("--issues", required=True, help="Comma-separated issue numbers")
@click.option("--lenient-cycles", is_flag=True, help="Tolerate dependency cycles")
def plan(issues: str, lenient_cycles: bool):
    """Show execution levels for a set of issues without running them.

    **Examples:**

        issueflow plan --issues 12,13,14
    """
    try:
        issue_numbers = parse_issue_list(issues)
    except ValueError as e:
        error_exit(str(e))

    config = load_config()
    config.lenient_cycles = config.lenient_cycles or lenient_cycles

    try:
        nodes = asyncio.run(_plan(config, issue_numbers))
    except Exception as e:
        error_exit(str(e) or type(e).__name__)

    print_plan(nodes)
    console.print(f"[dim]{len(nodes)} node(s) in {max_level(nodes) + 1} level(s)[/dim]")


# =========================================================================
# status
# =========================================================================
async def _status(config: Config) -> tuple[dict | None, list[dict], str | None]:
    async with create_github_client(config) as github:
        try:
            repository = await github.get_repository()
            open_issues = await github.list_issues(state="open", per_page=10)
        except Exception as e:
            return None, [], str(e) or type(e).__name__
    return repository, open_issues, None


def _count_files(directory: str, pattern: str) -> str:
    path = Path(directory)
    if not path.is_dir():
        return "missing"
    return f"{len(list(path.glob(pattern)))} file(s)"


@cli.command()
def status():
    """Show configuration, GitHub connectivity and local directories."""
    config = load_config()

    print_table(
        "Environment",
        ["Setting", "Value"],
        [
            ["GITHUB_TOKEN", "set"],
            ["REPOSITORY", config.repository],
            ["DEVICE_IDENTIFIER", config.device_identifier],
            ["ANTHROPIC_API_KEY", "set" if config.anthropic_api_key else "not set"],
            ["Generation mode", generation_mode(config)],
            ["Concurrency", str(config.default_concurrency)],
            ["Quality threshold", str(config.quality_threshold)],
        ],
    )

    repository, open_issues, error = asyncio.run(_status(config))
    if error is not None:
        console.print(f"[red]❌ GitHub: {error}[/red]")
    else:
        assert repository is not None
        console.print(f"[green]✅ GitHub: {repository.get('full_name', config.repository)}[/green]")
        rows = [
            [f"#{i['number']}", i.get("title", ""), ", ".join(lb.get("name", "") for lb in i.get("labels", []))]
            for i in open_issues
            if "pull_request" not in i
        ]
        print_table("Open issues", ["Issue", "Title", "Labels"], rows)

    print_table(
        "Directories",
        ["Directory", "Contents"],
        [
            [config.log_directory, _count_files(config.log_directory, "execution-*.md")],
            [config.report_directory, _count_files(config.report_directory, "execution-report-*.json")],
            [config.task_request_directory, _count_files(config.task_request_directory, "issue-*.md")],
        ],
    )
    if error is not None:
        raise SystemExit(1)


# =========================================================================
# labels
# =========================================================================
@cli.group()
def labels():
    """Manage repository labels."""
    pass


async def _sync_labels(config: Config) -> list[str]:
    async with create_github_client(config) as github:
        return await IssueClassifier(github).ensure_labels_exist()


@labels.command("sync")
def labels_sync():
    """Create every classifier label missing from the repository."""
    config = load_config()
    try:
        created = asyncio.run(_sync_labels(config))
    except Exception as e:
        error_exit(str(e) or type(e).__name__)

    for label in created:
        console.print(f"[green]✓[/green] Created label: {label}")
    console.print(f"[dim]{len(created)} label(s) created[/dim]")
