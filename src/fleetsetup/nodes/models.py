# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/nodes/models.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Protocol


class NodeLike(Protocol):
    """
    What the deploy core needs from a worker. Adapters over a real fleet
    layer only have to provide these attributes.
    """

    name: str
    root_path: str
    online: bool

    @property
    def label_set(self) -> FrozenSet[str]: ...

    @property
    def environment(self) -> Optional[Mapping[str, str]]: ...


@dataclass
class Node:
    """
    A reachable worker, as handed out by a NodeInventory for one run.
    """
    name: str                      # identity, also an implicit label
    root_path: str                 # working directory for copy/execute
    labels: FrozenSet[str] = frozenset()
    online: bool = True
    environment: Optional[Dict[str, str]] = None
    address: Optional[str] = None  # IP or DNS to connect (ssh)
    transport: str = "ssh"         # "ssh" | "local"
    username: Optional[str] = None
    port: int = 22
    password: Optional[str] = None
    pkey_path: Optional[Path] = None
    connect_timeout: float = 20.0
    controller: bool = False

    @property
    def label_set(self) -> FrozenSet[str]:
        # a node always carries its own name as a label
        return frozenset(self.labels) | {self.name}

    def __str__(self) -> str:
        return self.name
