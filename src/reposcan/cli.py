"""CLI entry point for reposcan."""

import asyncio
import json
import logging
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from reposcan.config import Settings
from reposcan.errors import ScanError, ScanFailedError
from reposcan.models.schemas import ScanRecord, ScanStatus, ScoringResult, Severity
from reposcan.store import ScanStore

app = typer.Typer(help="Repository safety and legitimacy scanner.")

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL.value: "bold red",
    Severity.HIGH.value: "red",
    Severity.MEDIUM.value: "yellow",
    Severity.LOW.value: "dim",
}
SEVERITY_ORDER = [s.value for s in Severity]


def _load_settings(data_dir: Path | None = None) -> Settings:
    try:
        settings = Settings.from_env()
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1)
    if data_dir is not None:
        settings = settings.model_copy(update={"data_dir": data_dir})
    return settings


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=console, show_path=False)],
        )


def _score_color(score: float) -> str:
    return "green" if score >= 70 else "yellow" if score >= 50 else "red"


def _score_bar(score: float, width: int = 20) -> str:
    """Create a visual score bar."""
    filled = int(score / 100 * width)
    empty = width - filled
    color = _score_color(score)
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * empty}[/dim]"


@app.command()
def scan(
    url: str = typer.Argument(..., help="GitHub repository URL, e.g. https://github.com/owner/repo"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output JSON file"),
    no_save: bool = typer.Option(False, "--no-save", help="Do not store the scan record"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", help="Data directory"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Scan a repository and calculate safety and legitimacy scores."""
    _configure_logging(verbose)
    asyncio.run(_scan(url, output, not no_save, as_json, data_dir))


async def _scan(
    url: str,
    output: Path | None,
    save: bool,
    as_json: bool,
    data_dir: Path | None,
) -> None:
    """Async implementation of scan."""
    from reposcan.analyzers.pipeline import ScanPipeline

    settings = _load_settings(data_dir)
    try:
        pipeline = ScanPipeline(settings=settings)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(f"Scanning {url}...", total=None)
        try:
            async with pipeline:
                record = await pipeline.scan(url, save=save)
        except ScanFailedError as e:
            console.print(f"[red]Scan failed ({e.category}): {e}[/red]")
            raise typer.Exit(1)

    if output:
        output.write_text(json.dumps(record.model_dump(mode="json"), indent=2))

    if as_json:
        console.print_json(json.dumps(record.model_dump(mode="json")))
    else:
        _render_record(record)

    if output:
        console.print(f"\n[green]Saved to {output}[/green]")
    if save:
        console.print(f"[dim]Scan id: {record.scan_id}[/dim]")


@app.command()
def show(
    scan_id: str = typer.Argument(..., help="Scan id printed by the scan command"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", help="Data directory"),
) -> None:
    """Show a stored scan."""
    settings = _load_settings(data_dir)
    try:
        record = ScanStore(settings.data_dir).load(scan_id)
    except ScanError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if record is None:
        console.print(f"[red]Scan '{scan_id}' not found[/red]")
        raise typer.Exit(1)

    _render_record(record)


@app.command()
def history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of scans to list"),
    data_dir: Path | None = typer.Option(None, "--data-dir", "-d", help="Data directory"),
) -> None:
    """List stored scans, newest first."""
    settings = _load_settings(data_dir)
    records = ScanStore(settings.data_dir).list_scans(limit=limit)
    if not records:
        console.print("[yellow]No scans stored yet[/yellow]")
        return

    table = Table(title=f"Last {len(records)} Scans")
    table.add_column("Scan", style="dim")
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Overall", justify="right")
    table.add_column("Created", style="dim")

    for record in records:
        if record.result:
            overall = record.result.overall_score
            score = f"[{_score_color(overall)}]{overall}[/{_score_color(overall)}]"
        else:
            score = "-"
        status = record.status.value
        if record.status == ScanStatus.FAILED and record.error_category:
            status = f"[red]{status} ({record.error_category})[/red]"
        table.add_row(
            record.scan_id[:12],
            record.repo_name,
            status,
            score,
            record.created_at.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


def _render_record(record: ScanRecord) -> None:
    console.print()
    console.print(f"[bold cyan]{record.repo_name}[/bold cyan]")
    console.print(f"[dim]{record.repo_url}[/dim]")
    console.print()

    if record.result is None:
        console.print(
            Panel(
                f"[bold red]Scan {record.status.value}[/bold red]\n\n"
                f"Category: {record.error_category or 'unknown'}",
                title="No Result",
                expand=False,
                border_style="red",
            )
        )
        return

    _render_result(record.result)


def _render_result(result: ScoringResult) -> None:
    color = _score_color(result.overall_score)
    console.print(
        Panel(
            f"[bold][{color}]{result.overall_score}[/{color}][/bold] / 100  "
            f"Safety: [bold]{result.safety_score}[/bold]  "
            f"Legitimacy: [bold]{result.legitimacy_score}[/bold]  "
            f"Confidence: {result.confidence}%\n\n{result.analysis_summary}",
            title="Overall Score",
            expand=False,
        )
    )
    console.print()

    safety = result.breakdown.safety
    legitimacy = result.breakdown.legitimacy
    sections = [
        ("Safety", [
            ("Dependency risks", safety.dependency_risks),
            ("Code security", safety.code_security),
            ("Config hygiene", safety.config_hygiene),
            ("Code quality", safety.code_quality),
            ("Maintenance posture", safety.maintenance_posture),
        ]),
        ("Legitimacy", [
            ("Working evidence", legitimacy.working_evidence),
            ("Transparency and docs", legitimacy.transparency_docs),
            ("Community signals", legitimacy.community_signals),
            ("Author reputation", legitimacy.author_reputation),
            ("License compliance", legitimacy.license_compliance),
        ]),
    ]

    table = Table(title="Score Breakdown", show_header=True)
    table.add_column("Area", style="dim")
    table.add_column("Component", style="bold")
    table.add_column("Score", justify="right")
    table.add_column("Bar", width=20)
    for area, components in sections:
        for name, score in components:
            c = _score_color(score)
            table.add_row(area, name, f"[{c}]{score:.0f}[/{c}]", _score_bar(score))
    console.print(table)

    if result.positive_indicators:
        console.print()
        console.print("[bold green]Positive indicators:[/bold green]")
        for item in result.positive_indicators:
            console.print(f"  [green]+[/green] {item}")

    if result.risk_factors:
        console.print()
        console.print("[bold yellow]Risk factors:[/bold yellow]")
        for item in result.risk_factors:
            console.print(f"  [yellow]![/yellow] {item}")

    summary = result.vulnerability_summary
    if summary.total_count:
        console.print()
        findings = Table(title=f"Findings ({summary.total_count})")
        findings.add_column("Severity")
        findings.add_column("Type", style="dim")
        findings.add_column("Description")
        findings.add_column("Location", style="cyan")
        ordered = sorted(result.vulnerabilities, key=lambda v: SEVERITY_ORDER.index(v.severity))
        for vuln in ordered:
            style = SEVERITY_STYLES.get(vuln.severity, "white")
            findings.add_row(
                f"[{style}]{vuln.severity}[/{style}]",
                vuln.type,
                vuln.description,
                vuln.location or "",
            )
        console.print(findings)

    quality = result.code_quality_metrics
    console.print()
    console.print(
        f"[bold]Code quality:[/bold] {quality.quality_score}/100 "
        f"({quality.total_files_analyzed} files, avg complexity {quality.avg_complexity}, "
        f"comment ratio {quality.comment_ratio:.0%})"
    )
    for note in result.notes:
        console.print(f"  [dim]{note}[/dim]")


@app.command()
def version() -> None:
    """Show version information."""
    from reposcan import __version__

    console.print(f"reposcan v{__version__}")


if __name__ == "__main__":
    app()
