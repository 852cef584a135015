# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/observers/console.py
from __future__ import annotations

from typing import Optional

import typer

from .events import (
    BaseEvent,
    HookExecuted,
    HookFailed,
    PairFailed,
    PairSkipped,
    PairSucceeded,
    PrepareFailed,
    PrepareSucceeded,
)

_COLORS = {
    PairSucceeded: typer.colors.GREEN,
    PrepareSucceeded: typer.colors.GREEN,
    HookExecuted: typer.colors.GREEN,
    PairSkipped: typer.colors.YELLOW,
    PairFailed: typer.colors.RED,
    PrepareFailed: typer.colors.RED,
    HookFailed: typer.colors.RED,
}


class ConsoleObserver:
    """One line per event on stdout, colored by outcome."""

    def __init__(self, color: Optional[bool] = None):
        self.color = color

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        data = ", ".join(f"{k}={v}" for k, v in d.items() if k not in ("ts", "run_id"))
        typer.secho(
            f"[{d['ts']}] {event.__class__.__name__} {data}",
            fg=_COLORS.get(type(event)),
            color=self.color,
        )
