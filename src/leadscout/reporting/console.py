"""Rich-powered console output."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from leadscout.models import Category, JobResult, StageOutcome, StageResult

_console = Console()

_OUTCOME_STYLES = {
    StageOutcome.SUCCESS: "bold green",
    StageOutcome.FAILED: "bold red",
    StageOutcome.SKIPPED: "dim",
}

_CATEGORY_STYLES = {
    Category.HOT: "bold red",
    Category.WARM: "bold yellow",
    Category.COLD: "dim",
}


def print_banner() -> None:
    """Display the startup banner."""
    _console.print(
        Panel.fit(
            "[bold cyan]LeadScout[/bold cyan]  |  Social Lead Discovery Pipeline",
            border_style="cyan",
        )
    )


def print_stage_result(result: StageResult) -> None:
    """Print a single stage outcome line."""
    style = _OUTCOME_STYLES.get(result.outcome, "")
    detail = result.error.message if result.error else ""
    if result.warnings:
        notes = [f"{w.kind.value}: {w.message}" for w in result.warnings]
        detail = "; ".join(filter(None, [detail, *notes]))
    _console.print(
        f"  [{style}]{result.outcome.value:<8}[/{style}]  "
        f"{result.stage_name:<14}  "
        f"x{result.attempts}  {result.duration_ms:>6} ms  {escape(detail)}"
    )


def print_job_report(result: JobResult, max_rows: int = 20) -> None:
    """Display the job summary followed by its best leads."""
    summary = Table(title=f"Job {result.job_id}", show_header=True, header_style="bold magenta")
    summary.add_column("Metric", style="cyan")
    summary.add_column("Value", justify="right")

    counts = result.lead_counts()
    summary.add_row("Status", result.status.value)
    summary.add_row("Leads", str(len(result.leads)))
    summary.add_row("Hot", str(counts[Category.HOT]))
    summary.add_row("Warm", str(counts[Category.WARM]))
    summary.add_row("Cold", str(counts[Category.COLD]))
    failed = result.failed_stage()
    summary.add_row("Failed stage", failed.stage_name if failed else "-")
    summary.add_row("Video", result.video_ref or "-")

    _console.print()
    _console.print(summary)

    if result.leads:
        leads = Table(title="Leads", show_header=True, header_style="bold magenta")
        leads.add_column("Score", justify="right")
        leads.add_column("Category")
        leads.add_column("Author", style="cyan")
        leads.add_column("Post")
        ranked = sorted(result.leads, key=lambda lead: lead.score, reverse=True)
        for lead in ranked[:max_rows]:
            style = _CATEGORY_STYLES.get(lead.category, "")
            text = lead.text if len(lead.text) <= 80 else lead.text[:77] + "..."
            leads.add_row(
                f"{lead.score:.2f}",
                f"[{style}]{lead.category.value}[/{style}]",
                f"@{lead.author_handle}",
                escape(text),
            )
        _console.print(leads)
    _console.print()
