# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/transport/base.py

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

from ..nodes.models import NodeLike


class ProcessHandle(Protocol):
    def read_available(self) -> str:
        """Output produced since the last call; never blocks."""
        ...

    def poll(self) -> Optional[int]:
        """Exit code once the process ended and its output was drained."""
        ...

    def kill(self) -> None: ...


class Transport(Protocol):
    """
    Remote-execution capability the deploy core is handed. Implementations
    raise CopyFailed from put_tree and TransportFailed from everything else.
    """

    def put_tree(self, node: NodeLike, local_dir: Path, remote_dir: str) -> int: ...

    def write_file(self, node: NodeLike, path: str, content: str, mode: int = 0o755) -> None: ...

    def remove(self, node: NodeLike, path: str) -> None: ...

    def launch(
        self,
        node: NodeLike,
        argv: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
    ) -> ProcessHandle: ...

    def close(self) -> None: ...
