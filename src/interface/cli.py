"""CLI interface for PlanForge using Rich."""

import argparse
import json
import logging
import mimetypes
from datetime import date
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from src.agent.orchestrator import EnhancementOrchestrator
from src.config import PlanForgeConfig
from src.errors import PlanForgeError
from src.ingest.extractors import format_file_size
from src.ingest.pipeline import DocumentPipeline, ProcessingResult
from src.memory.records import EnhancementRecord, TrainingPlan

console = Console()

LEVEL_COLORS = {
    "highly_structured": "green",
    "moderately_structured": "cyan",
    "basic_structure": "yellow",
    "unstructured": "red",
}

STATUS_COLORS = {"passed": "green", "warning": "yellow", "failed": "red", "error": "red"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _guess_type(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed:
        return guessed
    return {
        ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ".csv": "text/csv",
    }.get(path.suffix.lower(), "application/octet-stream")


def display_plan(plan: TrainingPlan) -> None:
    """Render a plan header and its weeks as Rich tables."""
    color = LEVEL_COLORS.get(plan.organization_level, "white")
    console.print(Panel(
        f"[bold]{escape(plan.title)}[/bold]  (v{plan.version})\n"
        f"{escape(plan.description)}\n\n"
        f"Category: [cyan]{plan.category}[/cyan] | Difficulty: [cyan]{plan.difficulty}[/cyan] | "
        f"Duration: [cyan]{plan.duration}[/cyan] | Sessions: [cyan]{plan.sessions_count}[/cyan]\n"
        f"Structure: [{color}]{plan.organization_level}[/{color}] "
        f"(confidence {plan.confidence:.2f}) | Tags: {', '.join(plan.tags)}\n"
        f"Schedule: {plan.schedule.get('pattern', 'flexible')}",
        title=plan.id,
        style="blue",
    ))

    table = Table(title="Sessions", show_lines=True)
    table.add_column("Week", justify="right", width=5)
    table.add_column("Day", style="bold", width=10)
    table.add_column("Date", width=11)
    table.add_column("Type", style="cyan", width=14)
    table.add_column("Duration", justify="right", width=9)
    table.add_column("Focus", width=28)
    for week in plan.weeks:
        for session in week.daily_sessions:
            table.add_row(
                str(week.week_number),
                session.day or "-",
                session.date or "-",
                session.type,
                f"{session.duration} min",
                ", ".join(session.focus),
            )
    console.print(table)


def display_result(result: ProcessingResult) -> None:
    if result.extraction.is_fallback:
        console.print(Panel(escape(result.text), title="Document could not be fully processed", style="red"))
    if result.plan is None:
        return
    display_plan(result.plan)
    hints = result.analysis.hints if result.analysis else {}
    if hints:
        console.print(
            f"[dim]Similar {result.plan.source_format} documents averaged "
            f"{hints['expected_weeks']} weeks / {hints['expected_sessions']} sessions "
            f"({hints['pattern_count']} patterns)[/dim]"
        )


def display_enhancements(records: list[EnhancementRecord]) -> None:
    table = Table(title="Session Enhancements", show_lines=True)
    table.add_column("Session", width=10)
    table.add_column("Source", style="cyan", width=11)
    table.add_column("Confidence", justify="right", width=10)
    table.add_column("Improvements", width=60)
    for record in records:
        table.add_row(
            record.original_session.get("id", "?"),
            record.source + (f" ({record.model})" if record.model else ""),
            f"{record.confidence:.2f}",
            "\n".join(record.improvements),
        )
    console.print(table)


def run_ingest(pipeline: DocumentPipeline, file_path: str, start: date | None) -> None:
    path = Path(file_path)
    if not path.exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    content = path.read_bytes()
    console.print(f"[dim]Processing {path.name} ({format_file_size(len(content))})...[/dim]")
    try:
        result = pipeline.ingest(path.name, _guess_type(path), content, start_date=start)
    except (PlanForgeError, ValueError) as e:
        console.print(f"[red]Upload rejected: {escape(str(e))}[/red]")
        return
    console.print(f"[green]Stored as {result.document.id}[/green]")
    display_result(result)


def run_reprocess(pipeline: DocumentPipeline, document_id: str, start: date | None) -> None:
    try:
        result = pipeline.reprocess(document_id, start_date=start)
    except KeyError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return
    if result.integrity and result.integrity.requires_reupload:
        console.print(f"[red]Document {document_id} must be re-uploaded.[/red]")
        return
    display_result(result)


def run_plans(pipeline: DocumentPipeline) -> None:
    plans = pipeline.repository.list_plans()
    if not plans:
        console.print("[yellow]No plans yet. Use --ingest FILE to add one.[/yellow]")
        return
    table = Table(title="Training Plans")
    table.add_column("Plan", style="bold")
    table.add_column("Title")
    table.add_column("Category", style="cyan")
    table.add_column("Difficulty")
    table.add_column("Duration", justify="right")
    table.add_column("Structure")
    for plan in plans:
        color = LEVEL_COLORS.get(plan.organization_level, "white")
        table.add_row(
            plan.id, escape(plan.title), plan.category, plan.difficulty, plan.duration,
            f"[{color}]{plan.organization_level}[/{color}]",
        )
    console.print(table)


def run_enhance(pipeline: DocumentPipeline, config: PlanForgeConfig, plan_id: str, profile: dict) -> None:
    plan = pipeline.repository.get_plan(plan_id)
    if plan is None:
        console.print(f"[red]Unknown plan: {plan_id}[/red]")
        return
    orchestrator = EnhancementOrchestrator(config)
    availability = orchestrator.init()
    console.print(
        f"[dim]Tiers: local={availability.local} remote={availability.remote} "
        f"policy={config.service_priority}[/dim]"
    )
    try:
        records = orchestrator.enhance_plan(plan, profile)
    finally:
        orchestrator.close()
    display_enhancements(records)


def run_integrity(pipeline: DocumentPipeline, document_id: str, repair: bool) -> None:
    pipeline.init()
    try:
        report = pipeline.check_integrity(document_id, repair=repair)
    except KeyError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return
    lines = []
    for name, check in report.checks.items():
        color = STATUS_COLORS.get(check.status, "white")
        lines.append(f"{name:<12} [{color}]{check.status}[/{color}]")
        lines += [f"    - {escape(i)}" for i in check.issues + check.warnings]
    if report.repairs:
        lines.append("\nRepairs:")
        lines += [f"    - {r}" for r in report.repairs]
    lines.append("\nRecommendations:")
    lines += [f"    - {r}" for r in report.recommendations]
    color = STATUS_COLORS.get(report.status, "white")
    console.print(Panel("\n".join(lines), title=f"Integrity: {document_id} ({report.status})", style=color))


def run_maintain(pipeline: DocumentPipeline) -> None:
    pipeline.init()
    summary = pipeline.integrity.maintain()
    console.print(Panel(json.dumps(summary, indent=2), title="Integrity Maintenance", style="blue"))


def run_status(pipeline: DocumentPipeline, config: PlanForgeConfig) -> None:
    caps = pipeline.init()
    orchestrator = EnhancementOrchestrator(config)
    orchestrator.init()
    status = orchestrator.status()
    orchestrator.close()
    docs = pipeline.repository.list_documents()
    plans = pipeline.repository.list_plans()
    patterns = pipeline.pattern_library.stats()
    console.print(Panel(
        f"Documents: [cyan]{len(docs)}[/cyan] | Plans: [cyan]{len(plans)}[/cyan]\n"
        f"Decoders: openpyxl={caps.openpyxl} pypdf={caps.pypdf}\n"
        f"Patterns: {', '.join(f'{k}={v}' for k, v in patterns.items()) or 'none'}\n"
        f"Enhancement: policy={status['policy']} local={status['local_available']} "
        f"remote={status['remote_available']}",
        title="PlanForge Status",
        style="blue",
    ))


def main(args: list[str] | None = None):
    """Main CLI entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        prog="planforge",
        description="PlanForge - turn uploaded training documents into structured plans",
    )
    parser.add_argument("--ingest", metavar="FILE", help="Upload a document and build its plan")
    parser.add_argument("--reprocess", metavar="DOC_ID", help="Integrity-check and rebuild a stored document")
    parser.add_argument("--plans", action="store_true", help="List stored plans (default)")
    parser.add_argument("--show", metavar="PLAN_ID", help="Show one plan with its sessions")
    parser.add_argument("--enhance", metavar="PLAN_ID", help="Enhance every session of a plan")
    parser.add_argument("--integrity", metavar="DOC_ID", help="Run integrity checks on a stored document")
    parser.add_argument("--no-repair", action="store_true", help="With --integrity: report only, do not repair")
    parser.add_argument("--maintain", action="store_true", help="Re-check documents not checked in 24h")
    parser.add_argument("--status", action="store_true", help="Show decoder, pattern and tier status")
    parser.add_argument("--start-date", metavar="YYYY-MM-DD", help="Date of the plan's first day")
    parser.add_argument("--sport", help="With --enhance: override the plan's sport")
    parser.add_argument("--age-group", choices=["youth", "teen", "adult", "senior"], help="With --enhance")
    parser.add_argument("--data-dir", metavar="DIR", help="Where documents and plans are stored")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parsed = parser.parse_args(args)
    _setup_logging(parsed.verbose)

    overrides = {"data_dir": Path(parsed.data_dir)} if parsed.data_dir else {}
    config = PlanForgeConfig.from_env(**overrides)
    pipeline = DocumentPipeline(config)
    start = date.fromisoformat(parsed.start_date) if parsed.start_date else None

    if parsed.ingest:
        run_ingest(pipeline, parsed.ingest, start)
        return

    if parsed.reprocess:
        run_reprocess(pipeline, parsed.reprocess, start)
        return

    if parsed.show:
        plan = pipeline.repository.get_plan(parsed.show)
        if plan is None:
            console.print(f"[red]Unknown plan: {parsed.show}[/red]")
        else:
            display_plan(plan)
        return

    if parsed.enhance:
        profile = {}
        if parsed.sport:
            profile["sport"] = parsed.sport
        if parsed.age_group:
            profile["age_group"] = parsed.age_group
        run_enhance(pipeline, config, parsed.enhance, profile)
        return

    if parsed.integrity:
        run_integrity(pipeline, parsed.integrity, repair=not parsed.no_repair)
        return

    if parsed.maintain:
        run_maintain(pipeline)
        return

    if parsed.status:
        run_status(pipeline, config)
        return

    run_plans(pipeline)


if __name__ == "__main__":
    main()
