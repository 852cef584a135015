# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/executor.py

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from ..config.models import Bundle, DeploySettings
from ..labels.matcher import LabelMatcher
from ..nodes.inventory import NodeInventory
from ..nodes.models import NodeLike
from ..observers.dispatcher import EventBus, Observer
from ..observers.events import (
    DeploySummary,
    FilesCopied,
    PairFailed,
    PairSkipped,
    PairSucceeded,
    RunStarted,
    ScriptStarted,
    new_ctx,
)
from ..transport.base import Transport
from .distributor import FileDistributor
from .environment import EnvironmentResolver
from .errors import DeploymentCancelled, DeploymentError, TransportFailed
from .outcomes import DeploymentResult, DeployReport, PairStatus
from .script_runner import RemoteScriptRunner
from .sinks import LoggerSink, OutputSink

log = logging.getLogger("fleetsetup")

SinkFactory = Callable[[NodeLike], OutputSink]


@dataclass
class DeployOptions:
    max_workers: int = 1          # 1 = strictly sequential
    poll_interval: float = 0.2
    keep_scripts: bool = False

    @classmethod
    def from_settings(cls, settings: DeploySettings) -> "DeployOptions":
        return cls(
            max_workers=settings.max_workers,
            poll_interval=settings.poll_interval,
            keep_scripts=settings.keep_scripts,
        )


def _flush(sink: OutputSink) -> None:
    flush = getattr(sink, "flush", None)
    if callable(flush):
        flush()


class DeploymentOrchestrator:
    """
    Pushes bundles to nodes. Every (node, bundle) pair is handled on its
    own: a label mismatch is a skip, a failed copy or script is recorded
    and the run carries on with the next pair.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        matcher: Optional[LabelMatcher] = None,
        env_resolver: Optional[EnvironmentResolver] = None,
        options: Optional[DeployOptions] = None,
        observers: Optional[List[Observer]] = None,
        sink_factory: Optional[SinkFactory] = None,
        run_id: Optional[str] = None,
    ):
        self.options = options or DeployOptions()
        self.matcher = matcher or LabelMatcher()
        self.env_resolver = env_resolver or EnvironmentResolver()
        self.distributor = FileDistributor(transport)
        self.runner = RemoteScriptRunner(
            transport,
            poll_interval=self.options.poll_interval,
            keep_scripts=self.options.keep_scripts,
        )
        self.bus = EventBus(observers or [])
        self.run_ctx = new_ctx(run_id)
        self.sink_factory = sink_factory or (
            lambda node: LoggerSink(log, prefix=f"[{node.name}] ")
        )
        self._cancel = threading.Event()
        self._node_locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ------------------ cancellation ------------------

    def cancel(self) -> None:
        """Stop the current run: kill in-flight scripts, start nothing new."""
        log.warning("deployment run cancelled")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def reset(self) -> None:
        self._cancel.clear()

    def _node_lock(self, name: str) -> threading.Lock:
        with self._locks_guard:
            return self._node_locks.setdefault(name, threading.Lock())

    # ------------------ single pair ------------------

    def deploy_pair(
        self,
        node: NodeLike,
        bundle: Bundle,
        sink: Optional[OutputSink] = None,
    ) -> DeploymentResult:
        """
        Label check, copy, execute. Never raises; the outcome is tagged on
        the returned result.
        """
        sink = sink or self.sink_factory(node)
        t0 = time.time()
        try:
            if not self.matcher.matches(node, bundle.target_labels):
                log.debug("[%s] bundle %s skipped: labels do not match %r",
                          node.name, bundle.name, bundle.target_labels)
                self.bus.emit(PairSkipped(node=node.name, bundle=bundle.name,
                                          expression=bundle.target_labels, **self.run_ctx))
                return DeploymentResult.skipped(node.name, bundle.name)
            if self._cancel.is_set():
                raise DeploymentCancelled("run cancelled before start")
            with self._node_lock(node.name):
                copied = self.distributor.copy_tree(bundle.files_dir, node, sink)
                if bundle.files_dir is not None:
                    self.bus.emit(FilesCopied(node=node.name, bundle=bundle.name,
                                              files=copied, **self.run_ctx))
                if bundle.command_line:
                    self.bus.emit(ScriptStarted(node=node.name, bundle=bundle.name, **self.run_ctx))
                self.runner.run(
                    node,
                    node.root_path,
                    self.env_resolver.resolve(node),
                    bundle.command_line,
                    sink,
                    cancel=self._cancel,
                )
        except DeploymentError as e:
            return self._record_failure(node, bundle, sink, e)
        except Exception as e:
            log.exception("[%s] bundle %s: unexpected error", node.name, bundle.name)
            wrapped = TransportFailed(f"unexpected error: {e}")
            return self._record_failure(node, bundle, sink, wrapped)
        finally:
            _flush(sink)

        duration_ms = int((time.time() - t0) * 1000)
        self.bus.emit(PairSucceeded(node=node.name, bundle=bundle.name,
                                    duration_ms=duration_ms, **self.run_ctx))
        return DeploymentResult.succeeded(node.name, bundle.name)

    def _record_failure(
        self,
        node: NodeLike,
        bundle: Bundle,
        sink: OutputSink,
        exc: DeploymentError,
    ) -> DeploymentResult:
        exc.node = exc.node or node.name
        exc.bundle = bundle.name
        result = DeploymentResult.failed(node.name, bundle.name, exc)
        log.error("[%s] bundle %s failed (%s): %s", node.name, bundle.name, result.kind.value, exc)
        try:
            sink.write(f"ERROR: {exc}\n")
        except Exception:
            log.debug("output sink rejected failure line", exc_info=True)
        self.bus.emit(PairFailed(node=node.name, bundle=bundle.name, kind=result.kind.value,
                                 error=result.reason, exit_code=result.exit_code, **self.run_ctx))
        return result

    def deploy_bundle_to_node(
        self,
        bundle: Bundle,
        node: NodeLike,
        sink: Optional[OutputSink] = None,
    ) -> DeploymentResult:
        """Single pair; call ``raise_for_status()`` on the result to react to failures."""
        return self.deploy_pair(node, bundle, sink)

    # ------------------ batches ------------------

    def _deploy_node(self, node: NodeLike, bundles: Sequence[Bundle]) -> List[DeploymentResult]:
        sink = self.sink_factory(node)
        return [self.deploy_pair(node, bundle, sink) for bundle in bundles]

    def _run(self, bundles: Sequence[Bundle], nodes: Sequence[NodeLike]) -> DeployReport:
        report = DeployReport()
        self.bus.emit(RunStarted(nodes=len(nodes), bundles=len(bundles), **self.run_ctx))

        workers = min(self.options.max_workers, len(nodes))
        if workers <= 1:
            for node in nodes:
                for result in self._guarded(node, bundles):
                    report.add(result)
        else:
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="fleetsetup"
            ) as pool:
                futures = [pool.submit(self._guarded, node, bundles) for node in nodes]
                # submission order keeps the report stable
                for future in futures:
                    for result in future.result():
                        report.add(result)

        self.bus.emit(DeploySummary(
            succeeded=report.count(PairStatus.SUCCEEDED),
            skipped=report.count(PairStatus.SKIPPED),
            failed=report.failure_count,
            **self.run_ctx,
        ))
        log.info("deployment finished: %s", report.summary())
        return report

    def _guarded(self, node: NodeLike, bundles: Sequence[Bundle]) -> List[DeploymentResult]:
        try:
            return self._deploy_node(node, bundles)
        except Exception as e:
            log.exception("[%s] node deployment aborted", node.name)
            return [
                DeploymentResult.failed(node.name, b.name, TransportFailed(f"unexpected error: {e}"))
                for b in bundles
            ]

    def deploy_bundle_to_nodes(self, bundle: Bundle, nodes: Sequence[NodeLike]) -> DeployReport:
        return self._run([bundle], list(nodes))

    def deploy_all_bundles_to_node(self, bundles: Sequence[Bundle], node: NodeLike) -> DeployReport:
        return self._run(list(bundles), [node])

    def deploy_bundles_to_nodes(self, bundles: Sequence[Bundle], nodes: Sequence[NodeLike]) -> DeployReport:
        return self._run(list(bundles), list(nodes))

    def deploy_to_inventory(self, bundles: Sequence[Bundle], inventory: NodeInventory) -> DeployReport:
        """Deploy to whatever the inventory reports as active right now."""
        return self._run(list(bundles), inventory.active_nodes())
