"""
Command-line interface for the Visual Regression Toolkit
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from regression_toolkit import __version__
from regression_toolkit.core.config import get_settings
from regression_toolkit.core.exceptions import ToolkitError

console = Console()

_STATUS_STYLES = {
    "pending": "yellow",
    "approved": "green",
    "bug_reported": "red",
    "investigating": "magenta",
    "false_positive": "cyan",
}


def _configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(error: ToolkitError) -> NoReturn:
    console.print(f"\n[bold red]Error:[/bold red] {error.message}")
    if error.recovery_hint:
        console.print(f"[dim]{error.recovery_hint}[/dim]")
    console.print()
    sys.exit(1)


def _services():
    from regression_toolkit.api.services import AppServices

    return AppServices.create()


def _parse_region(value: str):
    from regression_toolkit.visual_testing.regions import IgnoreRegion

    try:
        x, y, width, height = (int(part) for part in value.split(","))
    except ValueError:
        raise click.BadParameter(f"Expected x,y,width,height, got {value!r}")
    return IgnoreRegion(x=x, y=y, width=width, height=height)


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Visual Regression Toolkit - catch unintended UI changes between test runs"""
    pass


@main.command()
@click.option("--host", default=None, help="API server host (default: from settings)")
@click.option("--port", default=None, type=int, help="API server port (default: from settings)")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Start the API server"""
    _configure_logging()
    settings = get_settings()

    actual_host = host or settings.api_host
    actual_port = port or settings.api_port

    console.print(
        Panel.fit(
            "[bold cyan]Visual Regression Toolkit[/bold cyan]\n"
            f"Server starting on http://{actual_host}:{actual_port}",
            border_style="cyan",
        )
    )

    uvicorn.run(
        "regression_toolkit.api.app:app",
        host=actual_host,
        port=actual_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@main.command()
@click.argument("baseline", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("current", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--threshold", "-t", type=float, default=None, help="Significance threshold (0.0 - 1.0)")
@click.option("--ignore", "-i", multiple=True, help="Ignore region as x,y,width,height")
@click.option("--include-aa", is_flag=True, help="Count anti-aliased pixels as differences")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write diff PNG here")
def compare(
    baseline: Path,
    current: Path,
    threshold: float | None,
    ignore: tuple[str, ...],
    include_aa: bool,
    output: Path | None,
) -> None:
    """Compare two screenshot files"""
    from regression_toolkit.visual_testing.comparison import ComparisonOptions, compare_encoded

    settings = get_settings()
    regions = tuple(_parse_region(value) for value in ignore)

    try:
        options = ComparisonOptions(
            threshold=settings.default_threshold if threshold is None else threshold,
            include_antialiasing=include_aa,
            ignore_regions=regions,
            pixel_threshold=settings.pixel_threshold,
            diff_alpha=settings.diff_alpha,
        )
        result = compare_encoded(baseline.read_bytes(), current.read_bytes(), options)
    except ToolkitError as e:
        _fail(e)

    table = Table(title="Comparison", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Dimensions", f"{result.width}x{result.height}")
    table.add_row("Pixels different", str(result.pixels_different))
    table.add_row("Difference", f"{result.percentage_different:.2f}%")
    table.add_row("Anti-aliased (excluded)", str(result.antialiased_pixels))
    table.add_row("Ignored", str(result.ignored_pixels))
    table.add_row("Threshold", f"{result.threshold * 100:.2f}%")
    table.add_row(
        "Significant",
        "[bold red]yes[/bold red]" if result.is_significant else "[green]no[/green]",
    )

    console.print()
    console.print(table)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(result.diff_png())
        console.print(f"\nDiff image written to [green]{output}[/green]")
    console.print()


@main.command()
@click.argument("run_id")
@click.option("--timeout", type=float, default=None, help="Cancel outstanding comparisons after N seconds")
def analyze(run_id: str, timeout: float | None) -> None:
    """Compare a test run against its suite baseline"""
    from regression_toolkit.visual_testing.orchestrator import ProgressTracker

    _configure_logging("WARNING")
    services = _services()

    async def run():
        tracker = ProgressTracker()
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Comparing screenshots", total=None)
            tracker.on_progress(
                lambda p: progress.update(task, total=p["total"] or None, completed=p["completed"])
            )
            try:
                return await services.orchestrator.run_regression_analysis(
                    run_id, timeout=timeout, progress=tracker
                )
            finally:
                await services.cleanup()

    report = asyncio.run(run())

    if not report.success:
        console.print(f"\n[bold yellow]{report.message}[/bold yellow]\n")
        sys.exit(1)

    table = Table(title=f"Regression Analysis: {run_id}", show_header=True, header_style="bold cyan")
    table.add_column("Test", style="cyan")
    table.add_column("Viewport")
    table.add_column("Step", style="dim")
    table.add_column("Difference", justify="right")
    table.add_column("Significant")

    for detail in report.details:
        comparison = detail.comparison
        table.add_row(
            detail.test_name,
            detail.viewport,
            detail.step_name or "-",
            f"{comparison.percentage_different:.2f}%",
            "[bold red]yes[/bold red]" if comparison.is_significant else "[green]no[/green]",
        )

    console.print()
    console.print(table)
    console.print(
        f"\nCompared: [bold]{report.total_comparisons}[/bold]  "
        f"Significant: [bold red]{report.significant_regressions}[/bold red]  "
        f"Average difference: {report.average_difference:.2f}%  "
        f"Skipped: {report.skipped}"
    )

    for failure in report.failures:
        label = f"{failure.test_name} ({failure.viewport})"
        if failure.step_name:
            label += f" / {failure.step_name}"
        console.print(f"[red]Failed[/red] {label} at {failure.stage}: {failure.error}")

    if report.message:
        console.print(f"[yellow]{report.message}[/yellow]")
    console.print()


@main.group()
def baseline() -> None:
    """Manage suite baselines"""
    pass


@baseline.command("show")
@click.argument("suite_id")
def baseline_show(suite_id: str) -> None:
    """Show the baseline of a suite"""
    try:
        current = _services().registry.get(suite_id)
    except ToolkitError as e:
        _fail(e)

    if not current.is_set:
        console.print(f"\n[yellow]No baseline set for suite {suite_id}[/yellow]\n")
        return

    console.print(f"\n  Baseline run: [green]{current.baseline_run_id}[/green]")
    console.print(f"  Set at: {current.set_at.isoformat() if current.set_at else '-'}")
    if current.notes:
        console.print(f"  Notes: {current.notes}")
    console.print()


@baseline.command("set")
@click.argument("suite_id")
@click.argument("run_id")
@click.option("--notes", "-n", default=None, help="Why this run is the new ground truth")
def baseline_set(suite_id: str, run_id: str, notes: str | None) -> None:
    """Designate RUN_ID as the baseline of SUITE_ID"""
    try:
        _services().registry.set(suite_id, run_id, notes)
    except ToolkitError as e:
        _fail(e)
    console.print(f"\n[bold green]Baseline for {suite_id} set to run {run_id}[/bold green]\n")


@baseline.command("clear")
@click.argument("suite_id")
def baseline_clear(suite_id: str) -> None:
    """Remove the baseline of a suite"""
    try:
        _services().registry.clear(suite_id)
    except ToolkitError as e:
        _fail(e)
    console.print(f"\n[bold green]Baseline for {suite_id} cleared[/bold green]\n")


@main.command("list")
@click.argument("run_id")
@click.option("--status", "-s", default=None, help="Only regressions with this status")
@click.option("--significant/--all", default=False, help="Only significant regressions")
def list_regressions(run_id: str, status: str | None, significant: bool) -> None:
    """List regressions recorded for a run"""
    try:
        regressions = _services().ledger.list_regressions(
            run_id, status=status, is_significant=True if significant else None
        )
    except ToolkitError as e:
        _fail(e)

    table = Table(title=f"Regressions: {run_id}", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Test", style="cyan")
    table.add_column("Viewport")
    table.add_column("Difference", justify="right")
    table.add_column("Status")

    for regression in regressions:
        style = _STATUS_STYLES.get(regression.status.value, "white")
        table.add_row(
            regression.id,
            regression.test_name + (f" / {regression.step_name}" if regression.step_name else ""),
            regression.viewport,
            f"{regression.percentage_different:.2f}%",
            f"[{style}]{regression.status.value}[/{style}]",
        )

    console.print()
    console.print(table)
    console.print()


@main.command()
@click.argument("regression_id")
@click.argument("status")
@click.option("--notes", "-n", default=None, help="Review notes")
@click.option("--by", "reviewed_by", default=None, help="Reviewer name")
def review(regression_id: str, status: str, notes: str | None, reviewed_by: str | None) -> None:
    """Set the review STATUS of a regression"""
    try:
        regression = _services().ledger.update_status(
            regression_id, status, notes=notes, reviewed_by=reviewed_by
        )
    except ToolkitError as e:
        _fail(e)

    style = _STATUS_STYLES.get(regression.status.value, "white")
    console.print(
        f"\nRegression {regression_id} marked [{style}]{regression.status.value}[/{style}]\n"
    )


@main.command()
@click.argument("run_id")
def stats(run_id: str) -> None:
    """Show regression counts for a run"""
    run_stats = _services().trends.get_stats(run_id)

    table = Table(title=f"Regression Stats: {run_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(run_stats.total))
    table.add_row("Significant", str(run_stats.significant))
    for status, count in run_stats.by_status.items():
        table.add_row(status.replace("_", " ").capitalize(), str(count))
    table.add_row("Average difference", f"{run_stats.average_difference:.2f}%")

    console.print()
    console.print(table)
    console.print()


@main.command()
@click.argument("suite_id")
@click.option("--days", "-d", type=int, default=30, help="Days of history")
@click.option("--zero-fill", is_flag=True, help="Show days without regressions")
def trends(suite_id: str, days: int, zero_fill: bool) -> None:
    """Show daily regression counts for a suite"""
    try:
        points = _services().trends.get_trends(suite_id, days_back=days, zero_fill=zero_fill)
    except ToolkitError as e:
        _fail(e)

    if not points:
        console.print(f"\n[yellow]No regressions for suite {suite_id} in the last {days} days[/yellow]\n")
        return

    table = Table(title=f"Regression Trends: {suite_id}", show_header=True, header_style="bold cyan")
    table.add_column("Date", style="cyan")
    table.add_column("Regressions", justify="right")
    table.add_column("Significant", justify="right")
    table.add_column("Avg difference", justify="right")

    for point in points:
        table.add_row(
            point.date,
            str(point.regression_count),
            str(point.significant_count),
            f"{point.average_difference:.2f}%",
        )

    console.print()
    console.print(table)
    console.print()


if __name__ == "__main__":
    main()
