# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/transport/local.py

from __future__ import annotations

import logging
import os
import queue
import shutil
import signal
import subprocess
import threading
from pathlib import Path
from typing import Mapping, Optional, Sequence

from ..deploy.errors import CopyFailed, TransportFailed
from ..nodes.models import NodeLike

log = logging.getLogger("fleetsetup")


class LocalProcess:
    """
    A subprocess with stderr merged into stdout. A reader thread feeds a
    queue so the caller can poll output without blocking.
    """

    def __init__(self, proc: subprocess.Popen):
        self.proc = proc
        self._queue: "queue.Queue[str]" = queue.Queue()
        self._reader = threading.Thread(target=self._pump, daemon=True)
        self._reader.start()

    def _pump(self) -> None:
        assert self.proc.stdout is not None
        for line in self.proc.stdout:
            self._queue.put(line)
        self.proc.stdout.close()

    def read_available(self) -> str:
        chunks = []
        while True:
            try:
                chunks.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return "".join(chunks)

    def poll(self) -> Optional[int]:
        rc = self.proc.poll()
        if rc is None:
            return None
        self._reader.join(timeout=0.5)
        if self._reader.is_alive() or not self._queue.empty():
            return None
        return rc

    def kill(self) -> None:
        if self.proc.poll() is not None:
            return
        try:
            os.killpg(self.proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            self.proc.kill()
        self.proc.wait()


class LocalTransport:
    """
    Runs everything on the controller itself. Used for prepare steps,
    lifecycle hooks, and nodes declared with ``transport: local``.
    """

    def put_tree(self, node: NodeLike, local_dir: Path, remote_dir: str) -> int:
        src = Path(local_dir)
        if not src.is_dir():
            raise CopyFailed(f"source directory {src} does not exist", node=node.name)
        copied = 0
        try:
            for path in sorted(src.rglob("*")):
                rel = path.relative_to(src)
                dest = Path(remote_dir) / rel
                if path.is_dir():
                    dest.mkdir(parents=True, exist_ok=True)
                    continue
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(path, dest)
                copied += 1
        except OSError as e:
            raise CopyFailed(f"copy {src} -> {remote_dir} failed: {e}", node=node.name) from e
        log.debug("[local] copied %d files %s -> %s", copied, src, remote_dir)
        return copied

    def write_file(self, node: NodeLike, path: str, content: str, mode: int = 0o755) -> None:
        try:
            target = Path(path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            target.chmod(mode)
        except OSError as e:
            raise TransportFailed(f"cannot write {path}: {e}", node=node.name) from e

    def remove(self, node: NodeLike, path: str) -> None:
        try:
            Path(path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise TransportFailed(f"cannot remove {path}: {e}", node=node.name) from e

    def launch(
        self,
        node: NodeLike,
        argv: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
    ) -> LocalProcess:
        merged = dict(os.environ)
        merged.update(env)
        log.debug("[local] $ %s (cwd=%s)", " ".join(argv), cwd)
        try:
            proc = subprocess.Popen(
                list(argv),
                cwd=cwd,
                env=merged,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise TransportFailed(f"cannot launch {argv[0]}: {e}", node=node.name) from e
        return LocalProcess(proc)

    def close(self) -> None:
        pass
