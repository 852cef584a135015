# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/nodes/inventory.py

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

from ..config.models import ControllerSpec, NodeSpec, SshDefaults
from .models import Node

log = logging.getLogger("fleetsetup")


class NodeInventory(Protocol):
    def active_nodes(self) -> List[Node]:
        """Online, non-controller nodes. Enumerated fresh on every call."""
        ...


def node_from_spec(spec: NodeSpec, ssh: Optional[SshDefaults] = None) -> Node:
    ssh = ssh or SshDefaults()
    return Node(
        name=spec.name,
        root_path=spec.root_path,
        labels=frozenset(spec.labels),
        online=spec.online,
        environment=dict(spec.environment) if spec.environment else None,
        address=spec.address,
        transport=spec.transport,
        username=spec.username or ssh.username,
        port=spec.port or ssh.port,
        password=spec.password or ssh.password,
        pkey_path=spec.pkey_path or ssh.pkey_path,
        connect_timeout=ssh.connect_timeout,
        controller=spec.controller,
    )


class StaticInventory:
    """
    Inventory backed by the ``nodes`` section of the setup config.

    Each call to :meth:`active_nodes` builds new Node objects so the
    orchestrator never holds a node across runs.
    """

    def __init__(self, specs: Iterable[NodeSpec], ssh: Optional[SshDefaults] = None):
        self._specs = list(specs)
        self._ssh = ssh or SshDefaults()

    def all_nodes(self) -> List[Node]:
        return [node_from_spec(s, self._ssh) for s in self._specs]

    def active_nodes(self) -> List[Node]:
        nodes = []
        for node in self.all_nodes():
            if node.controller:
                log.debug("inventory: skipping controller node %s", node.name)
                continue
            if not node.online:
                log.debug("inventory: skipping offline node %s", node.name)
                continue
            nodes.append(node)
        return nodes


def controller_node(spec: Optional[ControllerSpec] = None, name: str = "controller") -> Node:
    """The controller itself, addressed through the local transport."""
    spec = spec or ControllerSpec()
    return Node(
        name=name,
        root_path=str(spec.work_dir),
        environment=dict(spec.environment) or None,
        transport="local",
        controller=True,
    )
