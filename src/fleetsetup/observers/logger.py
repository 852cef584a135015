# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent, HookFailed, PairFailed, PrepareFailed

_FAILURES = (PairFailed, PrepareFailed, HookFailed)


class LoggerObserver:
    """Mirrors events into the run log. Failures surface as warnings."""

    def __init__(self, logger: logging.Logger, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level

    def notify(self, event: BaseEvent) -> None:
        fields = {
            k: v for k, v in event.dict().items()
            if k not in ("ts", "run_id") and v is not None
        }
        detail = " ".join(f"{k}={v}" for k, v in fields.items())
        level = logging.WARNING if isinstance(event, _FAILURES) else self.level
        self.logger.log(level, "[event] %s %s", event.__class__.__name__, detail)
