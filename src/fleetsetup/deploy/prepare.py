# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/prepare.py

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

from ..config.models import Bundle, ControllerSpec
from ..nodes.inventory import controller_node
from ..observers.dispatcher import EventBus, Observer
from ..observers.events import PrepareFailed as PrepareFailedEvent
from ..observers.events import PrepareSucceeded, PrepareSummary, new_ctx
from ..transport.base import Transport
from ..transport.local import LocalTransport
from .errors import PrepareFailed
from .script_runner import RemoteScriptRunner
from .sinks import LoggerSink, OutputSink

log = logging.getLogger("fleetsetup")


class PrepareRunner:
    """
    Runs each bundle's prepare command once, on the controller, before any
    node deployment. The bundle's ``files_dir`` is the working directory.
    """

    def __init__(
        self,
        controller: Optional[ControllerSpec] = None,
        *,
        transport: Optional[Transport] = None,
        poll_interval: float = 0.2,
        observers: Optional[List[Observer]] = None,
        sink: Optional[OutputSink] = None,
        run_id: Optional[str] = None,
    ):
        self.controller = controller or ControllerSpec()
        self.node = controller_node(self.controller)
        self.runner = RemoteScriptRunner(transport or LocalTransport(), poll_interval=poll_interval)
        self.bus = EventBus(observers or [])
        self.run_ctx = new_ctx(run_id)
        self.sink = sink or LoggerSink(log, prefix="[prepare] ")
        self._lock = threading.Lock()

    def prepare(self, bundle: Bundle) -> None:
        """Run one bundle's prepare command. Raises PrepareFailed."""
        if bundle.files_dir is not None:
            if not bundle.files_dir.is_dir():
                raise PrepareFailed(f"files directory {bundle.files_dir} does not exist", bundle=bundle.name)
            work_dir = str(bundle.files_dir)
        else:
            work_dir = str(self.controller.work_dir)

        try:
            self.runner.run(
                self.node,
                work_dir,
                dict(self.controller.environment),
                bundle.prepare_command_line,
                self.sink,
            )
        except Exception as e:
            raise PrepareFailed(f"prepare step failed: {e}", bundle=bundle.name) from e

    def prepare_all(self, bundles: Sequence[Bundle]) -> int:
        """
        Returns how many prepare steps failed; 0 means all went well.
        Bundles already prepared are not run again until reset.
        """
        with self._lock:
            failures = 0
            executed = 0
            for bundle in bundles:
                if not bundle.prepare_command_line:
                    continue
                if bundle.prepare_executed:
                    log.debug("bundle %s already prepared, skipping", bundle.name)
                    continue
                log.info("running prepare step of bundle %s", bundle.name)
                try:
                    self.prepare(bundle)
                except Exception as e:
                    failures += 1
                    log.error("prepare step of bundle %s failed: %s", bundle.name, e)
                    self.bus.emit(PrepareFailedEvent(bundle=bundle.name, error=str(e), **self.run_ctx))
                    continue
                finally:
                    flush = getattr(self.sink, "flush", None)
                    if callable(flush):
                        flush()
                bundle.prepare_executed = True
                executed += 1
                self.bus.emit(PrepareSucceeded(bundle=bundle.name, **self.run_ctx))

            self.bus.emit(PrepareSummary(executed=executed, failed=failures, **self.run_ctx))
            return failures

    @staticmethod
    def reset(bundles: Sequence[Bundle]) -> None:
        for bundle in bundles:
            bundle.prepare_executed = False
