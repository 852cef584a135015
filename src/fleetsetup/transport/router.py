# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/transport/router.py

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence

from ..nodes.models import NodeLike
from .base import ProcessHandle, Transport
from .local import LocalTransport
from .ssh import SshTransport


class TransportRouter:
    """Dispatches each call to the local or ssh transport based on ``node.transport``."""

    def __init__(self, local: Optional[Transport] = None, ssh: Optional[Transport] = None):
        self.local = local or LocalTransport()
        self.ssh = ssh or SshTransport()

    def _pick(self, node: NodeLike) -> Transport:
        if getattr(node, "transport", "ssh") == "local":
            return self.local
        return self.ssh

    def put_tree(self, node: NodeLike, local_dir: Path, remote_dir: str) -> int:
        return self._pick(node).put_tree(node, local_dir, remote_dir)

    def write_file(self, node: NodeLike, path: str, content: str, mode: int = 0o755) -> None:
        self._pick(node).write_file(node, path, content, mode)

    def remove(self, node: NodeLike, path: str) -> None:
        self._pick(node).remove(node, path)

    def launch(
        self,
        node: NodeLike,
        argv: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
    ) -> ProcessHandle:
        return self._pick(node).launch(node, argv, cwd, env)

    def close(self) -> None:
        self.local.close()
        self.ssh.close()
