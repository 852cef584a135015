# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/cli/app.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError

from fleetsetup.config.loader import load_config
from fleetsetup.deploy.outcomes import DeployReport, PairStatus
from fleetsetup.deploy.service import SetupService
from fleetsetup.labels.matcher import LabelMatcher
from fleetsetup.logging.log import init_logging
from fleetsetup.nodes.inventory import StaticInventory
from fleetsetup.observers.console import ConsoleObserver
from fleetsetup.observers.jsonfile import JsonFileObserver
from fleetsetup.observers.logger import LoggerObserver

app = typer.Typer(help="fleetsetup: push setup bundles to worker nodes")


def _load(config: Path):
    try:
        return load_config(config)
    except FileNotFoundError:
        typer.echo(f"Config file not found: {config}", err=True)
        raise typer.Exit(2)
    except (ValidationError, yaml.YAMLError) as e:
        typer.echo(f"Invalid config {config}:\n{e}", err=True)
        raise typer.Exit(2)


def _service(
    config: Path,
    *,
    debug: bool,
    log_dir: Optional[Path],
    events_file: Optional[Path],
    echo_events: bool = False,
    parallel: Optional[int] = None,
) -> SetupService:
    cfg = _load(config)
    logger, run_id, _ = init_logging(base_dir=log_dir, verbose=debug)
    observers = [LoggerObserver(logger)]
    if events_file:
        observers.append(JsonFileObserver(events_file))
    if echo_events:
        observers.append(ConsoleObserver())
    return SetupService.from_config(cfg, observers=observers, run_id=run_id, max_workers=parallel)


def _print_report(report: DeployReport) -> None:
    for o in report.outcomes:
        if o.status == PairStatus.FAILED:
            typer.echo(f"  {o.node:<24} {o.bundle:<24} FAILED ({o.kind.value}) {o.reason}")
        else:
            typer.echo(f"  {o.node:<24} {o.bundle:<24} {o.status.value}")
    typer.echo(report.summary())


DebugOpt = typer.Option(False, "--debug", "-d", help="Verbose console logging")
LogDirOpt = typer.Option(None, "--log-dir", help="Directory for run logs (default ~/.fleetsetup/logs)")
EventsOpt = typer.Option(None, "--events-file", help="Append lifecycle events as JSON lines")
EchoOpt = typer.Option(False, "--echo-events", help="Print lifecycle events as they happen")


@app.command()
def apply(
    config: Path = typer.Argument(..., help="Setup config (YAML)"),
    debug: bool = DebugOpt,
    log_dir: Optional[Path] = LogDirOpt,
    events_file: Optional[Path] = EventsOpt,
    echo_events: bool = EchoOpt,
):
    """
    Run prepare steps, then push every deploy_immediately bundle to all active nodes.
    """
    service = _service(config, debug=debug, log_dir=log_dir, events_file=events_file, echo_events=echo_events)
    try:
        result = service.apply_configuration()
    finally:
        service.close()
    typer.echo(f"prepare failures: {result.prepare_failures}")
    _print_report(result.report)
    if result.failed:
        raise typer.Exit(1)


@app.command()
def deploy(
    config: Path = typer.Argument(..., help="Setup config (YAML)"),
    bundle: Optional[List[str]] = typer.Option(None, "--bundle", "-b", help="Bundle to deploy (repeatable). Default: all."),
    node: Optional[List[str]] = typer.Option(None, "--node", "-n", help="Target node (repeatable). Default: all active."),
    parallel: Optional[int] = typer.Option(None, "--parallel", "-p", help="Nodes to deploy concurrently"),
    debug: bool = DebugOpt,
    log_dir: Optional[Path] = LogDirOpt,
    events_file: Optional[Path] = EventsOpt,
    echo_events: bool = EchoOpt,
):
    """
    Deploy bundles to active nodes. Failures on one node never stop the others.
    """
    service = _service(config, debug=debug, log_dir=log_dir, events_file=events_file,
                       echo_events=echo_events, parallel=parallel)
    try:
        report = service.deploy(bundle_names=bundle, node_names=node)
    except KeyError as e:
        typer.echo(str(e.args[0]), err=True)
        raise typer.Exit(2)
    finally:
        service.close()
    _print_report(report)
    if report.failure_count:
        raise typer.Exit(1)


@app.command()
def prepare(
    config: Path = typer.Argument(..., help="Setup config (YAML)"),
    debug: bool = DebugOpt,
    log_dir: Optional[Path] = LogDirOpt,
    events_file: Optional[Path] = EventsOpt,
    echo_events: bool = EchoOpt,
):
    """
    Run the controller-local prepare step of every bundle.
    """
    service = _service(config, debug=debug, log_dir=log_dir, events_file=events_file, echo_events=echo_events)
    try:
        failures = service.prepare()
    finally:
        service.close()
    typer.echo(f"prepare failures: {failures}")
    if failures:
        raise typer.Exit(1)


@app.command()
def match(
    config: Path = typer.Argument(..., help="Setup config (YAML)"),
    expression: str = typer.Argument(..., help="Label expression to evaluate"),
):
    """
    Show which active nodes a label expression selects.
    """
    cfg = _load(config)
    matcher = LabelMatcher()
    typer.echo(f"expression: {matcher.effective_expression(expression) or '(all nodes)'}")
    for n in StaticInventory(cfg.nodes, cfg.ssh).active_nodes():
        mark = "x" if matcher.matches(n, expression) else " "
        typer.echo(f"  [{mark}] {n.name:<24} {' '.join(sorted(n.labels))}")


if __name__ == "__main__":
    app()
