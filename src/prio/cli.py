"""Command line entry points for the prioritization engine."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from pydantic import TypeAdapter, ValidationError

from .config import Settings, load_config
from .context import build_incremental_context, build_incremental_prompt_context
from .errors import ConfigError, GapDetectionError, PreconditionError
from .memory.schema import BaselinePlan, Gap, Reflection, Task, dump_record
from .planning import (
    PlannerResult,
    detect_cycle,
    detect_gaps,
    find_cycle_path,
    has_major_movement,
    insert_bridging_tasks,
    needs_evaluation,
)
from .ranking import ReflectionRankingAdjuster

APP_HELP = "Maintain task dependency graphs and re-rank plans without re-planning."

app = typer.Typer(help=APP_HELP)

_EMBEDDINGS_ADAPTER = TypeAdapter(Dict[str, List[float]])

CONFIG_OPTION_HELP = "Path to a YAML configuration file."


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Emit debug logging."),
) -> None:
    """Configure logging before running a command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _load_settings(config: Optional[Path]) -> Settings:
    try:
        return Settings.from_config(load_config(config))
    except ConfigError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error


def _load_document(path: Path) -> Any:
    """Read a JSON or YAML document from ``path``."""
    if not path.exists():
        typer.echo(f"File not found: {path}")
        raise typer.Exit(code=1)
    try:
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle)
    except yaml.YAMLError as error:
        typer.echo(f"Failed to parse {path}: {error}")
        raise typer.Exit(code=1) from error


def _load_list(path: Path, key: str) -> List[Any]:
    data = _load_document(path)
    if isinstance(data, dict):
        data = data.get(key)
    if data is None:
        return []
    if not isinstance(data, list):
        typer.echo(f"{path} must contain a list (or a mapping with a '{key}' list).")
        raise typer.Exit(code=1)
    return data


def _load_mapping(path: Path) -> Dict[str, Any]:
    data = _load_document(path)
    if not isinstance(data, dict):
        typer.echo(f"{path} must contain a mapping at the top level.")
        raise typer.Exit(code=1)
    return data


def _load_tasks(path: Path) -> List[Task]:
    try:
        return [Task.model_validate(item) for item in _load_list(path, "tasks")]
    except ValidationError as error:
        typer.echo(f"Invalid task in {path}: {error}")
        raise typer.Exit(code=1) from error


def _emit_json(payload: Any, output: Optional[Path]) -> None:
    text = json.dumps(payload, indent=2)
    if output is None:
        typer.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Wrote {output.as_posix()}")


@app.command("detect-cycle")
def detect_cycle_command(
    tasks_file: Path = typer.Argument(..., help="JSON or YAML list of tasks."),
) -> None:
    """Report whether the task dependency graph contains a cycle."""
    tasks = _load_tasks(tasks_file)
    if detect_cycle(tasks):
        cycle = find_cycle_path(tasks)
        typer.echo(f"Cycle detected: {' -> '.join(cycle)}")
        raise typer.Exit(code=1)
    typer.echo(f"No cycle detected across {len(tasks)} task(s).")


@app.command()
def insert(
    tasks_file: Path = typer.Argument(..., help="JSON or YAML list of tasks."),
    predecessor: str = typer.Option(..., "--predecessor", "-p", help="Task id the new tasks follow."),
    successor: str = typer.Option(..., "--successor", "-s", help="Task id the new tasks precede."),
    bridging: Path = typer.Option(..., "--bridging", "-b", help="File listing bridging tasks."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the updated plan here instead of stdout."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Insert bridging tasks between two tasks of a plan."""
    settings = _load_settings(config)
    tasks = _load_tasks(tasks_file)
    candidates = _load_list(bridging, "tasks")
    result = insert_bridging_tasks(
        Gap(predecessor_id=predecessor, successor_id=successor),
        candidates,
        tasks,
        settings=settings.insertion,
    )
    if not result.success:
        typer.echo(f"Insertion rejected: {result.error}")
        raise typer.Exit(code=1)
    typer.echo(f"Inserted: {', '.join(result.inserted_ids) or 'nothing'}")
    _emit_json([dump_record(task) for task in result.updated_plan or []], output)


@app.command()
def gaps(
    tasks_file: Path = typer.Argument(..., help="JSON or YAML list of tasks."),
    max_gaps: int = typer.Option(3, "--max-gaps", help="Maximum number of gaps to report."),
) -> None:
    """List likely missing steps between consecutive tasks."""
    tasks = _load_tasks(tasks_file)
    try:
        result = detect_gaps(tasks, max_gaps=max_gaps)
    except GapDetectionError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    if not result.gaps:
        typer.echo(f"No gaps detected ({result.pairs_analyzed} pair(s) analysed).")
        return
    for gap in result.gaps:
        indicators = gap.indicators
        flags = [
            name
            for name, present in (
                ("time_gap", indicators.time_gap),
                ("action_type_jump", indicators.action_type_jump),
                ("no_dependency", indicators.no_dependency),
                ("skill_jump", indicators.skill_jump),
            )
            if present
        ]
        typer.echo(
            f"- {gap.predecessor_id} -> {gap.successor_id} "
            f"(confidence {gap.confidence:.2f}; {', '.join(flags)})"
        )


@app.command()
def adjust(
    baseline_file: Path = typer.Argument(..., help="Stored baseline plan."),
    reflections_file: Path = typer.Argument(..., help="List of reflections with embeddings."),
    embeddings_file: Path = typer.Argument(..., help="Mapping of task id to embedding."),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the adjusted plan here instead of stdout."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Re-rank a baseline plan using active reflections."""
    settings = _load_settings(config)
    try:
        baseline = BaselinePlan.model_validate(_load_mapping(baseline_file))
        reflections = [Reflection.model_validate(item) for item in _load_list(reflections_file, "reflections")]
        embeddings = _EMBEDDINGS_ADAPTER.validate_python(_load_mapping(embeddings_file))
    except ValidationError as error:
        typer.echo(f"Invalid input: {error}")
        raise typer.Exit(code=1) from error

    adjuster = ReflectionRankingAdjuster(settings=settings.ranking)
    try:
        adjusted = adjuster.adjust(baseline, reflections, embeddings)
    except PreconditionError as error:
        typer.echo(str(error))
        raise typer.Exit(code=1) from error
    for warning in adjusted.adjustment_metadata.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    _emit_json(dump_record(adjusted), output)


@app.command()
def context(
    tasks_file: Path = typer.Argument(..., help="List of task summaries."),
    baseline_docs: List[str] = typer.Option(
        None, "--baseline-doc", "-d", help="Document id covered by the baseline (repeatable)."
    ),
    baseline_created_at: Optional[str] = typer.Option(
        None, "--baseline-created-at", help="ISO timestamp of the baseline."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Render the incremental planner context for a task corpus."""
    settings = _load_settings(config)
    try:
        incremental = build_incremental_context(
            _load_list(tasks_file, "tasks"),
            baseline_docs or [],
            baseline_created_at,
            settings=settings.context,
        )
    except ValidationError as error:
        typer.echo(f"Invalid task summary: {error}")
        raise typer.Exit(code=1) from error
    prompt = build_incremental_prompt_context(incremental, settings=settings.context)
    typer.echo(prompt.baseline_summary)
    typer.echo("")
    typer.echo(f"NEW TASKS ({prompt.new_task_count} of {prompt.task_count}):")
    typer.echo(prompt.new_tasks_text)
    typer.echo("")
    typer.echo(f"Estimated token savings: {incremental.token_savings_estimate}")


@app.command()
def evaluate(
    result_file: Path = typer.Argument(..., help="Planner result document."),
    previous: Optional[Path] = typer.Option(
        None, "--previous", help="Previous plan to compare rank movement against."
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
) -> None:
    """Decide whether a planner result warrants a self-check pass."""
    settings = _load_settings(config)
    try:
        result = PlannerResult.model_validate(_load_mapping(result_file))
    except ValidationError as error:
        typer.echo(f"Invalid planner result: {error}")
        raise typer.Exit(code=1) from error
    previous_plan = _load_document(previous) if previous is not None else None

    if needs_evaluation(result, previous_plan, settings=settings.evaluation):
        typer.echo("Evaluation needed.")
    else:
        typer.echo("No evaluation needed.")
    if previous_plan is not None and has_major_movement(
        result, previous_plan, settings=settings.evaluation
    ):
        typer.echo("Major rank movement against the previous plan.")


if __name__ == "__main__":
    app()
