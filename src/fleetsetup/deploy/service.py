# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from ..config.models import Bundle, ControllerSpec, SetupConfig
from ..nodes.inventory import NodeInventory, StaticInventory, controller_node
from ..nodes.models import NodeLike
from ..observers.dispatcher import EventBus, Observer
from ..observers.events import HookExecuted, HookFailed, new_ctx
from ..transport.base import Transport
from ..transport.local import LocalTransport
from ..transport.router import TransportRouter
from .environment import EnvironmentResolver
from .executor import DeploymentOrchestrator, DeployOptions, SinkFactory
from .outcomes import DeployReport
from .prepare import PrepareRunner
from .script_runner import RemoteScriptRunner
from .sinks import LoggerSink

log = logging.getLogger("fleetsetup")

HOOKS = {
    "pre_launch": "pre_launch_command_line",
    "online": "on_node_online_command_line",
    "offline": "on_node_offline_command_line",
}


@dataclass
class RunResult:
    prepare_failures: int = 0
    hook_failures: int = 0
    report: DeployReport = field(default_factory=DeployReport)

    @property
    def failed(self) -> bool:
        return bool(self.prepare_failures or self.hook_failures or self.report.failure_count)


class SetupService:
    """
    Reacts to configuration changes and node lifecycle transitions:

      - configuration saved: prepare, then push ``deploy_immediately`` bundles
      - node (re)connected: prepare if needed, push every bundle, run online hooks
      - node about to launch / gone offline: run the matching controller hooks

    Bundles come from ``bundle_source`` on every call; nodes from the
    inventory.
    """

    def __init__(
        self,
        *,
        bundle_source: Callable[[], List[Bundle]],
        inventory: NodeInventory,
        orchestrator: DeploymentOrchestrator,
        prepare_runner: PrepareRunner,
        controller: Optional[ControllerSpec] = None,
        hook_transport: Optional[Transport] = None,
        observers: Optional[List[Observer]] = None,
        run_id: Optional[str] = None,
    ):
        self.bundle_source = bundle_source
        self.inventory = inventory
        self.orchestrator = orchestrator
        self.prepare_runner = prepare_runner
        self.controller = controller or ControllerSpec()
        self.hook_runner = RemoteScriptRunner(hook_transport or LocalTransport())
        self.env_resolver = EnvironmentResolver()
        self.bus = EventBus(observers or [])
        self.run_ctx = new_ctx(run_id)

    @classmethod
    def from_config(
        cls,
        cfg: SetupConfig,
        *,
        observers: Optional[List[Observer]] = None,
        sink_factory: Optional[SinkFactory] = None,
        transport: Optional[Transport] = None,
        run_id: Optional[str] = None,
        max_workers: Optional[int] = None,
    ) -> "SetupService":
        ctx = new_ctx(run_id)
        options = DeployOptions.from_settings(cfg.deploy)
        if max_workers is not None:
            options.max_workers = max(1, max_workers)
        orchestrator = DeploymentOrchestrator(
            transport or TransportRouter(),
            options=options,
            observers=observers,
            sink_factory=sink_factory,
            run_id=ctx["run_id"],
        )
        prepare_runner = PrepareRunner(
            cfg.controller,
            poll_interval=options.poll_interval,
            observers=observers,
            run_id=ctx["run_id"],
        )
        return cls(
            bundle_source=lambda: cfg.bundles,
            inventory=StaticInventory(cfg.nodes, cfg.ssh),
            orchestrator=orchestrator,
            prepare_runner=prepare_runner,
            controller=cfg.controller,
            observers=observers,
            run_id=ctx["run_id"],
        )

    # ------------------ configuration ------------------

    def apply_configuration(self) -> RunResult:
        """
        Prepare steps first, then every ``deploy_immediately`` bundle to all
        active nodes. A failed prepare does not hold back deployment.
        """
        bundles = self.bundle_source()
        result = RunResult(prepare_failures=self.prepare_runner.prepare_all(bundles))
        eager = [b for b in bundles if b.deploy_immediately]
        if eager:
            result.report = self.orchestrator.deploy_to_inventory(eager, self.inventory)
        else:
            log.info("no bundle is marked deploy_immediately, nothing to push")
        return result

    def prepare(self) -> int:
        return self.prepare_runner.prepare_all(self.bundle_source())

    def reset_prepare(self) -> None:
        PrepareRunner.reset(self.bundle_source())

    def deploy(
        self,
        bundle_names: Optional[Sequence[str]] = None,
        node_names: Optional[Sequence[str]] = None,
    ) -> DeployReport:
        bundles = self._select_bundles(bundle_names)
        nodes = self.inventory.active_nodes()
        if node_names:
            wanted = set(node_names)
            missing = wanted - {n.name for n in nodes}
            if missing:
                log.warning("not active, skipped: %s", ", ".join(sorted(missing)))
            nodes = [n for n in nodes if n.name in wanted]
        return self.orchestrator.deploy_bundles_to_nodes(bundles, nodes)

    def _select_bundles(self, names: Optional[Sequence[str]]) -> List[Bundle]:
        bundles = self.bundle_source()
        if not names:
            return list(bundles)
        by_name: Dict[str, Bundle] = {b.name: b for b in bundles}
        unknown = [n for n in names if n not in by_name]
        if unknown:
            raise KeyError(f"Unknown bundle(s): {', '.join(unknown)}")
        return [by_name[n] for n in names]

    # ------------------ node lifecycle ------------------

    def node_online(self, node: NodeLike) -> RunResult:
        bundles = self.bundle_source()
        result = RunResult(prepare_failures=self.prepare_runner.prepare_all(bundles))
        result.report = self.orchestrator.deploy_all_bundles_to_node(bundles, node)
        result.hook_failures = self.run_hooks("online", node)
        return result

    def node_offline(self, node: NodeLike) -> RunResult:
        return RunResult(hook_failures=self.run_hooks("offline", node))

    def node_pre_launch(self, node: NodeLike) -> RunResult:
        return RunResult(hook_failures=self.run_hooks("pre_launch", node))

    def hook_environment(self, node: NodeLike) -> Dict[str, str]:
        env = dict(self.controller.environment)
        env.update(self.env_resolver.resolve(node))
        env["NODE_NAME"] = node.name
        env["NODE_ROOT"] = node.root_path
        address = getattr(node, "address", None)
        if address:
            env["NODE_ADDRESS"] = address
        return env

    def run_hooks(self, hook: str, node: NodeLike) -> int:
        """
        Run the ``hook`` command of every bundle targeting ``node`` on the
        controller. Returns the number of hooks that failed.
        """
        attr = HOOKS[hook]
        matcher = self.orchestrator.matcher
        local = controller_node(self.controller)
        sink = LoggerSink(log, prefix=f"[{hook}:{node.name}] ")
        failures = 0

        for bundle in self.bundle_source():
            command = getattr(bundle, attr)
            if not command or not matcher.matches(node, bundle.target_labels):
                continue
            work_dir = bundle.files_dir if bundle.files_dir is not None else self.controller.work_dir
            try:
                self.hook_runner.run(local, str(Path(work_dir)), self.hook_environment(node), command, sink)
            except Exception as e:
                failures += 1
                log.error("%s hook of bundle %s for node %s failed: %s", hook, bundle.name, node.name, e)
                self.bus.emit(HookFailed(hook=hook, node=node.name, bundle=bundle.name,
                                         error=str(e), **self.run_ctx))
            else:
                self.bus.emit(HookExecuted(hook=hook, node=node.name, bundle=bundle.name, **self.run_ctx))
            finally:
                sink.flush()
        return failures

    def close(self) -> None:
        transport = self.orchestrator.distributor.transport
        transport.close()
