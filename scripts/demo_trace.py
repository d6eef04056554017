# ABOUTME: Provides a CLI that scores an assessment session, checks it for gaming, and picks scaffolding.
# ABOUTME: Reads session files from configs/ and renders results as Rich tables.

import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.common.ccis_calculation import calculate_ccis_level, generate_intervention_recommendation
from src.common.config import DEFAULT_CONFIG, EngineConfig, load_engine_config
from src.common.errors import CCISError
from src.common.gaming_detection import analyze_session, generate_gaming_report
from src.common.mastery_aggregation import calculate_overall_ccis_level, summarize_overall_result
from src.common.scaffolding import calculate_optimal_scaffolding, optimize_for_advancement
from src.common.session_loader import AssessmentSession, load_session

console = Console()
app = typer.Typer(help="Score CCIS sessions, detect assessment gaming, and adjust scaffolding.")

_RISK_COLORS = {"NONE": "green", "LOW": "yellow", "MEDIUM": "orange3", "HIGH": "red", "CRITICAL": "bold red"}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine decisions to the console.")) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG, format="%(message)s", handlers=[RichHandler(console=console, show_path=False)]
        )


def _load(session_path: Path, config_path: Optional[Path]) -> Tuple[AssessmentSession, EngineConfig]:
    try:
        config = load_engine_config(config_path) if config_path else DEFAULT_CONFIG
        return load_session(session_path), config
    except CCISError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)


@app.command()
def score(
    session_path: Path = typer.Option(Path("configs/sample_session.yaml"), "--session", help="Session YAML/JSON file."),
    config_path: Path = typer.Option(None, "--config", help="Optional engine config YAML."),
) -> None:
    """
    Score each competency in the session and the overall career readiness.
    """
    session, config = _load(session_path, config_path)
    try:
        result = calculate_ccis_level(session.signals, config)
        overall = calculate_overall_ccis_level(session.competencies, config)
    except CCISError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.rule(f"[bold blue]CCIS Score · {session.detection_input.session_id}[/bold blue]")
    console.print(f"[bold]Level:[/] {result.level} ({result.raw_score:.2%})")
    console.print(f"[bold]Confidence:[/] {result.confidence}")
    if result.gaming_detected:
        console.print("[red]Gaming indicators present in signals[/red]")

    breakdown = Table(title="Signal Breakdown")
    breakdown.add_column("Signal")
    breakdown.add_column("Score", justify="right")
    breakdown.add_column("Weight", justify="right")
    breakdown.add_column("Contribution", justify="right")
    for key, part in result.breakdown.items():
        breakdown.add_row(key, f"{part.score:.2f}", f"{part.weight:.2f}", f"{part.contribution:.3f}")
    console.print(breakdown)

    if result.intervention_needed:
        rec = generate_intervention_recommendation(session.signals, config)
        console.print(f"[yellow]{rec.intervention_type.value} ({rec.urgency.value})[/yellow]: {rec.reason}")
        for action in rec.suggested_actions:
            console.print(f"  → {action}")

    summary = summarize_overall_result(overall)
    table = Table(title=f"Overall: {overall.overall_level} · {overall.readiness_percentage}% ready")
    for column in summary.columns:
        table.add_column(column)
    for row in summary.itertuples(index=False):
        table.add_row(*(str(v) for v in row))
    console.print(table)


@app.command("gaming-check")
def gaming_check(
    session_paths: List[Path] = typer.Argument(..., help="One or more session files."),
    config_path: Path = typer.Option(None, "--config", help="Optional engine config YAML."),
    output: Path = typer.Option(None, "--output", help="Write the gaming report parquet here."),
    risk_level: str = typer.Option(None, "--risk-level", help="Optional risk level filter for the report."),
) -> None:
    """
    Run the gaming detectors over sessions and report risk, patterns, and actions.
    """
    loaded = [_load(path, config_path) for path in session_paths]
    config = loaded[0][1]
    inputs = [session.detection_input for session, _ in loaded]

    if output is None:
        for detection_input in inputs:
            analysis = analyze_session(detection_input, config)
            color = _RISK_COLORS[analysis.risk_level.value]
            console.print(
                f"[{color}]{analysis.session_id}: {analysis.risk_level.value} "
                f"({analysis.overall_risk_score:.2f}) → {analysis.recommended_action.value}[/{color}]"
            )
            for pattern in analysis.detected_patterns:
                console.print(f"  {pattern.pattern_type.value} ({pattern.confidence:.2f}): {pattern.description}")
                for line in pattern.evidence:
                    console.print(f"    {line}")
            if analysis.human_review_required:
                console.print("  [bold]Human review required[/bold]")
        return

    report_df = generate_gaming_report(inputs, config)
    if risk_level:
        report_df = report_df[report_df["risk_level"] == risk_level.upper()]
    output.parent.mkdir(parents=True, exist_ok=True)
    report_df.to_parquet(output, index=False)
    console.print(f"[bold]Analyzed {len(inputs):,} sessions; report saved to {output}[/bold]")


@app.command()
def scaffold(
    session_path: Path = typer.Option(Path("configs/sample_session.yaml"), "--session", help="Session YAML/JSON file."),
    config_path: Path = typer.Option(None, "--config", help="Optional engine config YAML."),
    target_level: int = typer.Option(None, "--target-level", help="Plan advancement toward this CCIS level."),
) -> None:
    """
    Pick the scaffolding for the learner's next task, accounting for gaming risk.
    """
    session, config = _load(session_path, config_path)
    if session.performance is None:
        console.print("[red]Session has no 'performance' section; cannot choose scaffolding.[/red]")
        raise typer.Exit(code=1)

    try:
        analysis = analyze_session(session.detection_input, config)
        result = calculate_optimal_scaffolding(
            session.performance, session.cultural, gaming_result=analysis, config=config
        )
        advancement = None
        if target_level is not None:
            advancement = optimize_for_advancement(
                session.performance, result.recommended_configuration, target_level, config
            )
    except CCISError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    final = advancement or result
    console.rule(f"[bold blue]Scaffolding · priority {result.implementation_priority.value}[/bold blue]")
    table = Table(title="Recommended Configuration")
    table.add_column("Section")
    table.add_column("Setting")
    table.add_column("Value")
    for section, values in final.recommended_configuration.to_dict().items():
        for setting, value in values.items():
            table.add_row(section, setting, str(value))
    console.print(table)
    for reason in result.adjustment_reasoning + (advancement.adjustment_reasoning if advancement else ()):
        console.print(f"• {reason}")

    trajectory = final.trajectory
    if trajectory is not None:
        console.print(f"[bold]Estimated time to level {trajectory.target_level.level}:[/] {trajectory.estimated_hours:.1f}h")
        for milestone in trajectory.milestones:
            console.print(
                f"  {milestone.milestone}: {milestone.estimated_minutes:.0f} min, "
                f"{milestone.required_scaffolding.value}, p={milestone.success_probability:.1f}"
            )


if __name__ == "__main__":
    app()
