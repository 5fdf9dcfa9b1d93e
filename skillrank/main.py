"""skillrank CLI - Skills-based candidate matching and ranking."""

import json
import logging
import sys
from pathlib import Path

import typer
from pydantic import BaseModel
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from skillrank.config import DATABASE_URL, DB_PATH, DEFAULT_PAGE_SIZE, LOG_LEVEL
from skillrank.db.connection import init_tables
from skillrank.db.matches import SqlMatchStore, get_job_ids
from skillrank.jobs.requirements import JobRequirementTable
from skillrank.matching.status import InvalidTransitionError
from skillrank.schemas.match import JobBrowseResult, MatchResult, MatchStatus
from skillrank.services.ingest_service import load_dataset
from skillrank.services.match_service import MatchService, build_system
from skillrank.skills.table import SkillScoreTable
from skillrank.utils import MatchNotFoundError

app = typer.Typer(help="skillrank - Rank candidates for jobs by evaluated skill scores")
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _service() -> MatchService:
    """Service over the persisted matches only (no dataset loaded)."""
    return MatchService(SqlMatchStore(), SkillScoreTable(), JobRequirementTable())


def _require_database() -> None:
    if DATABASE_URL is None and not DB_PATH.exists():
        console.print("[red]Error: Database not found. Run 'skillrank load' first.[/red]")
        raise typer.Exit(1)


@app.command()
def load(
    data_file: Path = typer.Option(
        ..., "--file", "-f", help="Path to JSON dataset of jobs and skill scores"
    ),
) -> None:
    """Load a dataset and recompute every job's matches and ranks."""
    if not data_file.exists():
        console.print(f"[red]Error: Data file not found: {data_file}[/red]")
        raise typer.Exit(1)

    failures = []
    try:
        console.print("  Initializing database...")
        init_tables()

        system = build_system(on_failure=failures.append)
        with system.coordinator:
            console.print(f"  Loading {data_file}...")
            stats = load_dataset(data_file, system.skill_scores, system.requirements)
            system.coordinator.wait_idle()

            console.print("  Rebuilding rankings...")
            job_ids = system.requirements.job_ids()
            for job_id in job_ids:
                system.coordinator.rebuild_job(job_id)

    except Exception as e:
        console.print(f"[red]Error loading dataset: {e}[/red]")
        raise typer.Exit(1)

    console.print("\n[bold green]Load complete![/bold green]")
    console.print(f"  Jobs loaded: {stats['jobs_loaded']}")
    console.print(f"  Requirements loaded: {stats['requirements_loaded']}")
    console.print(f"  Skill scores loaded: {stats['scores_loaded']}")
    console.print(f"  Jobs ranked: {len(job_ids)}")

    if failures:
        console.print(f"[red]{len(failures)} recomputes failed:[/red]")
        for failure in failures:
            console.print(f"  {failure}")
        raise typer.Exit(1)


@app.command()
def matches(
    job_id: str = typer.Argument(..., help="Job to list"),
    page: int = typer.Option(1, "--page", "-p", help="Page number (1-based)"),
    page_size: int = typer.Option(
        DEFAULT_PAGE_SIZE, "--page-size", "-n", help="Matches per page"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """List a job's eligible candidates by rank."""
    _require_database()

    try:
        result = _service().get_matches_for_job(job_id, page=page, page_size=page_size)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if output_json:
        _output_json(result)
        return

    if not result.items:
        console.print(f"[yellow]No ranked matches for job {job_id} on page {page}.[/yellow]")
        return

    table = Table(title=f"Job {job_id} - page {page} ({result.total} eligible)")
    table.add_column("Rank", style="cyan", justify="right")
    table.add_column("Candidate")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Percentile", justify="right")
    table.add_column("Status", style="dim")
    for match in result.items:
        table.add_row(
            str(match.rank),
            match.candidate_id,
            f"{match.overall_score:.2f}",
            f"{match.percentile:.2f}" if match.percentile is not None else "-",
            match.status.value,
        )
    console.print(table)


@app.command()
def match(
    job_id: str = typer.Argument(..., help="Job of the match"),
    candidate_id: str = typer.Argument(..., help="Candidate of the match"),
    output_json: bool = typer.Option(False, "--json", help="Output result as JSON"),
) -> None:
    """Show one candidate's match for a job with its skill breakdown."""
    _require_database()

    try:
        result = _service().get_match_for_candidate(job_id, candidate_id)
    except MatchNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise typer.Exit(1)

    if output_json:
        _output_json(result)
    else:
        _output_match(result)


@app.command(name="candidate-matches")
def candidate_matches(
    candidate_id: str = typer.Argument(..., help="Candidate to list"),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """List every job a candidate is matched with, best score first."""
    _require_database()

    results = _service().get_matches_for_candidate(candidate_id)
    if output_json:
        _output_json(results)
        return

    if not results:
        console.print(f"[yellow]No matches for candidate {candidate_id}.[/yellow]")
        return

    table = Table(title=f"Matches for candidate {candidate_id}")
    table.add_column("Job", style="cyan")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Eligible")
    table.add_column("Rank", justify="right")
    table.add_column("Status", style="dim")
    for result in results:
        table.add_row(
            result.job_id,
            f"{result.overall_score:.2f}",
            "Yes" if result.eligible else "No",
            str(result.rank) if result.rank is not None else "-",
            result.status.value,
        )
    console.print(table)


@app.command()
def browse(
    candidate_id: str = typer.Argument(..., help="Candidate browsing jobs"),
    data_file: Path = typer.Option(
        ..., "--file", "-f", help="Path to JSON dataset of jobs and skill scores"
    ),
    output_json: bool = typer.Option(False, "--json", help="Output results as JSON"),
) -> None:
    """Score a candidate against every job in a dataset without saving anything."""
    if not data_file.exists():
        console.print(f"[red]Error: Data file not found: {data_file}[/red]")
        raise typer.Exit(1)

    skill_scores = SkillScoreTable()
    requirements = JobRequirementTable()
    try:
        load_dataset(data_file, skill_scores, requirements)
    except Exception as e:
        console.print(f"[red]Error loading dataset: {e}[/red]")
        raise typer.Exit(1)

    service = MatchService(SqlMatchStore(), skill_scores, requirements)
    results = service.browse_jobs_for_candidate(candidate_id)

    if output_json:
        _output_json(results)
    else:
        _output_browse(candidate_id, results)


@app.command(name="set-status")
def set_status(
    job_id: str = typer.Argument(..., help="Job of the match"),
    candidate_id: str = typer.Argument(..., help="Candidate of the match"),
    status: str = typer.Argument(
        ..., help="New status: " + ", ".join(s.value for s in MatchStatus)
    ),
) -> None:
    """Change a match's status (viewed, contacted, shortlisted, rejected, hired)."""
    _require_database()

    try:
        new_status = MatchStatus(status)
    except ValueError:
        console.print(f"[red]Error: Unknown status '{status}'[/red]")
        raise typer.Exit(1)

    _change_status(job_id, candidate_id, new_status)


@app.command()
def contact(
    job_id: str = typer.Argument(..., help="Job of the match"),
    candidate_id: str = typer.Argument(..., help="Candidate to contact"),
) -> None:
    """Record that a candidate was contacted for a job."""
    _require_database()
    _change_status(job_id, candidate_id, MatchStatus.CONTACTED)


@app.command()
def info() -> None:
    """Display system information and database stats."""
    console.print("[bold cyan]skillrank System Information[/bold cyan]\n")

    is_cloud = DATABASE_URL is not None
    if not is_cloud and not DB_PATH.exists():
        console.print("[yellow]Database not found. Run 'skillrank load' first.[/yellow]")
        return

    try:
        service = _service()
        job_ids = get_job_ids()
        summaries = [service.get_job_summary(job_id, top_n=0) for job_id in job_ids]
    except Exception as e:
        console.print(f"[red]Error reading database: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title="Database Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    if is_cloud:
        table.add_row("Database", "PostgreSQL (cloud)")
    else:
        table.add_row("Database", str(DB_PATH))
    table.add_row("Jobs with matches", str(len(job_ids)))
    table.add_row("Total matches", str(sum(s.total_matches for s in summaries)))
    table.add_row("Eligible matches", str(sum(s.eligible_matches for s in summaries)))

    console.print(table)


def _change_status(job_id: str, candidate_id: str, status: MatchStatus) -> None:
    try:
        result = _service().set_match_status(job_id, candidate_id, status)
    except (MatchNotFoundError, InvalidTransitionError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(
        f"[bold green]Match {job_id}/{candidate_id} is now '{result.status.value}'[/bold green]"
    )


def _output_json(data: BaseModel | list[BaseModel]) -> None:
    """Output models as JSON to stdout."""
    if isinstance(data, list):
        output = [item.model_dump(mode="json") for item in data]
    else:
        output = data.model_dump(mode="json")
    json.dump(obj=output, fp=sys.stdout, indent=2)
    sys.stdout.write("\n")


def _output_match(match: MatchResult) -> None:
    """Output one match in pretty console format."""
    content = [f"[cyan]Score:[/cyan] {match.overall_score:.2f}"]
    if match.eligible:
        content.append(f"[cyan]Rank:[/cyan] {match.rank} (percentile {match.percentile})")
    else:
        content.append(f"[red]Ineligible:[/red] {match.standing.reason}")
    content.append(f"[cyan]Status:[/cyan] {match.status.value}")

    content.append("\n[cyan]Skills:[/cyan]")
    for item in match.skill_breakdown:
        name = item.skill_name or item.skill_id
        score = f"{item.candidate_score:.0f}" if item.candidate_score is not None else "none"
        mark = "[green]✓[/green]" if item.satisfied else "[red]✗[/red]"
        kind = "required" if item.required else "preferred"
        content.append(
            f"  {mark} {name}: {score} (min {item.minimum_score:.0f}, "
            f"weight {item.weight}, {kind})"
        )

    panel = Panel(
        renderable="\n".join(content),
        title=f"[bold]Job {match.job_id} / candidate {match.candidate_id}[/bold]",
        border_style="green" if match.eligible else "red",
    )
    console.print(panel)


def _output_browse(candidate_id: str, results: list[JobBrowseResult]) -> None:
    """Output browse results in a table."""
    if not results:
        console.print("[yellow]No jobs in dataset.[/yellow]")
        return

    table = Table(title=f"Jobs for candidate {candidate_id}")
    table.add_column("Job", style="cyan")
    table.add_column("Title")
    table.add_column("Score", style="green", justify="right")
    table.add_column("Required met", justify="right")
    table.add_column("Eligible")
    for result in results:
        table.add_row(
            result.job_id,
            result.title or "",
            f"{result.overall_score:.2f}",
            f"{result.required_skills_met}/{result.total_required_skills}",
            "Yes" if result.eligible else "No",
        )
    console.print(table)


if __name__ == "__main__":
    app()
