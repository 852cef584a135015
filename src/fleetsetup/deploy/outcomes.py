# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/outcomes.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .errors import (
    CopyFailed,
    DeploymentCancelled,
    DeploymentError,
    ScriptFailed,
    TransportFailed,
)


class PairStatus(str, Enum):
    SKIPPED = "SKIPPED"          # label mismatch, not an error
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class FailureKind(str, Enum):
    COPY_FAILED = "COPY_FAILED"
    SCRIPT_FAILED = "SCRIPT_FAILED"
    TRANSPORT_FAILED = "TRANSPORT_FAILED"
    CANCELLED = "CANCELLED"


def failure_kind_for(exc: BaseException) -> FailureKind:
    if isinstance(exc, DeploymentCancelled):
        return FailureKind.CANCELLED
    if isinstance(exc, ScriptFailed):
        return FailureKind.SCRIPT_FAILED
    if isinstance(exc, CopyFailed):
        return FailureKind.COPY_FAILED
    return FailureKind.TRANSPORT_FAILED


@dataclass
class DeploymentResult:
    node: str
    bundle: str
    status: PairStatus
    kind: Optional[FailureKind] = None
    reason: Optional[str] = None
    exit_code: Optional[int] = None

    @classmethod
    def skipped(cls, node: str, bundle: str) -> "DeploymentResult":
        return cls(node=node, bundle=bundle, status=PairStatus.SKIPPED)

    @classmethod
    def succeeded(cls, node: str, bundle: str, exit_code: int = 0) -> "DeploymentResult":
        return cls(node=node, bundle=bundle, status=PairStatus.SUCCEEDED, exit_code=exit_code)

    @classmethod
    def failed(cls, node: str, bundle: str, exc: BaseException) -> "DeploymentResult":
        return cls(
            node=node,
            bundle=bundle,
            status=PairStatus.FAILED,
            kind=failure_kind_for(exc),
            reason=str(exc) or exc.__class__.__name__,
            exit_code=getattr(exc, "exit_code", None),
        )

    @property
    def ok(self) -> bool:
        return self.status != PairStatus.FAILED

    def raise_for_status(self) -> None:
        """Re-raise the structured failure for single-pair callers."""
        if self.status != PairStatus.FAILED:
            return
        if self.kind == FailureKind.SCRIPT_FAILED:
            raise ScriptFailed(self.exit_code if self.exit_code is not None else -1, node=self.node, bundle=self.bundle)
        exc_cls = {
            FailureKind.COPY_FAILED: CopyFailed,
            FailureKind.CANCELLED: DeploymentCancelled,
            FailureKind.TRANSPORT_FAILED: TransportFailed,
        }.get(self.kind, DeploymentError)
        raise exc_cls(self.reason or "deployment failed", node=self.node, bundle=self.bundle)


@dataclass
class DeployReport:
    outcomes: List[DeploymentResult] = field(default_factory=list)

    def add(self, outcome: DeploymentResult) -> None:
        self.outcomes.append(outcome)

    @property
    def failures(self) -> List[DeploymentResult]:
        return [o for o in self.outcomes if o.status == PairStatus.FAILED]

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def count(self, status: PairStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def cancelled_count(self) -> int:
        return sum(1 for o in self.outcomes if o.kind == FailureKind.CANCELLED)

    def classification(self) -> List[tuple]:
        return [(o.node, o.bundle, o.status, o.kind) for o in self.outcomes]

    def summary(self) -> str:
        ok = self.count(PairStatus.SUCCEEDED)
        skipped = self.count(PairStatus.SKIPPED)
        return f"SUCCEEDED={ok} SKIPPED={skipped} FAILED={self.failure_count}"
