"""
Command-line interface for crossflow.
"""

import fnmatch
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich import print as rich_print
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from crossflow.config.loader import ConfigLoader
from crossflow.config.schema import IgnoreConfig, RunConfig
from crossflow.core.engine import AnalysisEngine
from crossflow.core.models import DependencyGraph, Finding, SourceFile
from crossflow.core.registry import discover_detectors, get_registered_detectors
from crossflow.core.reporting import (
    build_report,
    evaluate_gating,
    filter_by_severity,
    format_exit_summary,
    save_json_report,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logger = logging.getLogger("crossflow")

console = Console()

app = typer.Typer(
    name="crossflow",
    help="Cross-contract dependency and state-flow security analysis",
    add_completion=False,
)

SOURCE_SUFFIXES = (".sol",)

SEVERITY_COLORS = {
    "Critical": "bright_red",
    "High": "red",
    "Medium": "yellow",
    "Low": "blue",
}

RISK_COLORS = {
    "critical": "bright_red",
    "high": "red",
    "medium": "yellow",
    "low": "blue",
}


def collect_sources(target: Path, ignore: Optional[IgnoreConfig] = None) -> List[SourceFile]:
    """Read a single file, or every source file under a directory in sorted path order."""
    ignore = ignore or IgnoreConfig()
    if target.is_file():
        paths = [target]
    else:
        paths = sorted(p for p in target.rglob("*") if p.is_file() and p.suffix in SOURCE_SUFFIXES)

    sources = []
    for path in paths:
        relative = path.relative_to(target) if target.is_dir() else Path(path.name)
        if any(part in ignore.directories for part in relative.parts[:-1]):
            continue
        if path.name in ignore.files or any(fnmatch.fnmatch(str(relative), p) for p in ignore.patterns):
            logger.debug(f"Ignoring {relative}")
            continue
        try:
            content = path.read_text(encoding="utf-8", errors="ignore")
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            continue
        sources.append(SourceFile(name=path.name, path=str(relative), content=content))
    return sources


def _load(config_file: Optional[str]) -> RunConfig:
    config, warnings = ConfigLoader().load_config(Path(config_file) if config_file else None)
    for warning in warnings:
        rich_print(f"[yellow]Warning:[/yellow] {warning}")
    return config


def _require_target(target: str) -> Path:
    target_path = Path(target)
    if not target_path.exists():
        rich_print(f"[bold red]Error:[/bold red] Target '{target}' does not exist.")
        sys.exit(1)
    return target_path


@app.command()
def analyze(
    target: str = typer.Argument(..., help="Source file or project directory"),
    json_file: Optional[str] = typer.Option(None, "--json", help="Save the analysis as JSON"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    min_severity: Optional[str] = typer.Option(None, "--min-severity", help="Lowest severity to report"),
    fail_on_findings: bool = typer.Option(False, "--fail-on-findings", help="Exit with non-zero code if findings"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Analyze contracts for cross-contract state-flow vulnerabilities."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    config = _load(config_file)
    if min_severity:
        config.output.min_severity = min_severity.upper()
    if fail_on_findings:
        config.reporting.fail_on_findings = True
    json_file = json_file or config.output.json_file

    target_path = _require_target(target)
    sources = collect_sources(target_path, config.ignore)
    rich_print(f"[bold]Analyzing[/bold] {len(sources)} files in {target}...")

    engine = AnalysisEngine(config)
    for warning in engine.warnings:
        rich_print(f"[yellow]Warning:[/yellow] {warning}")
    result = engine.analyze(sources)

    try:
        findings = filter_by_severity(result.state_flow.findings, config.output.min_severity)
    except ValueError as e:
        rich_print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(2)

    report = build_report(
        result,
        config,
        display_findings=findings,
        target=target,
        detector_names=[d.name for d in engine.detectors],
    )
    if config.output.format == "json":
        console.print_json(json.dumps(report, default=str))
    else:
        display_findings(findings)
        for invariant in result.state_flow.invariants:
            if invariant.violated:
                rich_print(f"[yellow]Invariant:[/yellow] {invariant.description} ({', '.join(invariant.contracts)})")
        for line in result.state_flow.recommendations:
            rich_print(f"[cyan]*[/cyan] {line}")

    if json_file:
        save_json_report(report, Path(json_file))
        rich_print(f"[bold green]Report saved to {json_file}[/bold green]")

    exit_code, reasons = evaluate_gating(result.state_flow.findings, findings, config)
    if exit_code:
        rich_print(f"[bold red]{format_exit_summary(exit_code, reasons)}[/bold red]")
        sys.exit(exit_code)


@app.command()
def graph(
    target: str = typer.Argument(..., help="Source file or project directory"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path"),
):
    """Show the dependency graph: nodes, edges, cycles and critical contracts."""
    config = _load(config_file)
    target_path = _require_target(target)
    engine = AnalysisEngine(config, detectors=[])
    result = engine.analyze(collect_sources(target_path, config.ignore))
    display_graph(result.graph)


@app.command()
def list_detectors():
    """List all available structural detectors."""
    discover_detectors()

    table = Table(title="Available Structural Detectors")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Severity", style="magenta")
    table.add_column("Category", style="green")
    table.add_column("Confidence", style="yellow")

    for detector_cls in get_registered_detectors():
        meta = detector_cls.get_metadata()
        table.add_row(
            meta["name"],
            meta["kind"],
            meta["severity"],
            meta["category"],
            f"{meta['confidence']:.2f}",
        )

    console.print(table)


@app.command()
def init_config(
    path: str = typer.Argument("crossflow.toml", help="Where to write the configuration"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
):
    """Write the default configuration as TOML."""
    config_path = Path(path)
    if config_path.exists() and not force:
        rich_print(f"[bold red]Error:[/bold red] '{path}' already exists (use --force to overwrite).")
        sys.exit(1)
    ConfigLoader().write_config(RunConfig(), config_path)
    rich_print(f"[bold green]Default configuration written to {path}[/bold green]")


def display_findings(findings: List[Finding]) -> None:
    """Display findings in a table."""
    if not findings:
        rich_print("[bold green]No vulnerabilities found.[/bold green]")
        return

    counts = {}
    for finding in findings:
        counts[finding.severity.label] = counts.get(finding.severity.label, 0) + 1

    rich_print(f"\n[bold]Found {len(findings)} potential issues:[/bold]")
    for label, color in SEVERITY_COLORS.items():
        if label in counts:
            rich_print(f"  [{color}]{label}[/{color}]: {counts[label]}")

    table = Table(title="Vulnerability Findings")
    table.add_column("Severity", style="bold")
    table.add_column("Detector", style="cyan")
    table.add_column("Kind")
    table.add_column("Location")
    table.add_column("Line", justify="right")
    table.add_column("Description")

    for finding in findings:
        color = SEVERITY_COLORS.get(finding.severity.label, "white")
        table.add_row(
            f"[{color}]{finding.severity.label}[/{color}]",
            finding.detector,
            finding.kind,
            finding.location,
            str(finding.line) if finding.line else "",
            finding.description,
        )

    console.print(table)


def display_graph(graph: DependencyGraph) -> None:
    nodes = Table(title="Contracts")
    nodes.add_column("Id", style="cyan")
    nodes.add_column("Name")
    nodes.add_column("Kind")
    nodes.add_column("In", justify="right")
    nodes.add_column("Out", justify="right")
    for unit in graph.nodes:
        nodes.add_row(
            unit.id,
            unit.name,
            unit.kind.value,
            str(len(graph.incoming(unit.id))),
            str(len(graph.outgoing(unit.id))),
        )
    console.print(nodes)

    edges = Table(title="Dependencies")
    edges.add_column("Source", style="cyan")
    edges.add_column("Target", style="cyan")
    edges.add_column("Kind")
    edges.add_column("Risk")
    edges.add_column("Description")
    for edge in graph.edges:
        color = RISK_COLORS.get(edge.risk_level.value, "white")
        edges.add_row(
            edge.source,
            edge.target,
            edge.kind.value,
            f"[{color}]{edge.risk_level.value}[/{color}]",
            edge.description,
        )
    console.print(edges)

    metrics = graph.metrics
    for cycle in metrics.cyclic_dependencies:
        rich_print(f"[yellow]Cycle:[/yellow] {' -> '.join(cycle + cycle[:1])}")
    if metrics.critical_contracts:
        rich_print(f"[bold]Critical contracts:[/bold] {', '.join(metrics.critical_contracts)}")
    if metrics.unresolved_references:
        rich_print(f"[dim]{metrics.unresolved_references} unresolved references[/dim]")


def main():
    """Entry point for the crossflow CLI."""
    app()


if __name__ == "__main__":
    main()
