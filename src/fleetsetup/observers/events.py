# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/observers/events.py

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    run_id: str       # correlates all events in a single deploy invocation
    ts: str = field(default_factory=_now, kw_only=True)

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(run_id: Optional[str] = None) -> Dict[str, Any]:
    return {"run_id": run_id or str(uuid.uuid4())}


# ---------------------------------------------------------------------
# Deployment run
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    nodes: int
    bundles: int


@dataclass(frozen=True)
class PairSkipped(BaseEvent):
    node: str
    bundle: str
    expression: str


@dataclass(frozen=True)
class FilesCopied(BaseEvent):
    node: str
    bundle: str
    files: int


@dataclass(frozen=True)
class ScriptStarted(BaseEvent):
    node: str
    bundle: str


@dataclass(frozen=True)
class PairSucceeded(BaseEvent):
    node: str
    bundle: str
    duration_ms: int


@dataclass(frozen=True)
class PairFailed(BaseEvent):
    node: str
    bundle: str
    kind: str
    error: str
    exit_code: Optional[int] = None


@dataclass(frozen=True)
class DeploySummary(BaseEvent):
    succeeded: int
    skipped: int
    failed: int


# ---------------------------------------------------------------------
# Prepare steps (controller-local)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PrepareSucceeded(BaseEvent):
    bundle: str


@dataclass(frozen=True)
class PrepareFailed(BaseEvent):
    bundle: str
    error: str


@dataclass(frozen=True)
class PrepareSummary(BaseEvent):
    executed: int
    failed: int


# ---------------------------------------------------------------------
# Node lifecycle hooks
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class HookExecuted(BaseEvent):
    hook: str
    node: str
    bundle: str


@dataclass(frozen=True)
class HookFailed(BaseEvent):
    hook: str
    node: str
    bundle: str
    error: str
