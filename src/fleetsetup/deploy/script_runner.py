# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/script_runner.py

from __future__ import annotations

import logging
import posixpath
import shlex
import threading
import time
import uuid
from typing import List, Mapping, Optional

from ..nodes.models import NodeLike
from ..transport.base import ProcessHandle, Transport
from .errors import DeploymentCancelled, ScriptFailed, TransportFailed
from .sinks import OutputSink

log = logging.getLogger("fleetsetup")


def script_argv(command_line: str, script_path: str) -> List[str]:
    """
    Interpreter for a materialized script: the shebang line if there is
    one, otherwise ``sh -xe``.
    """
    first = command_line.lstrip().splitlines()[0] if command_line.strip() else ""
    if first.startswith("#!"):
        interpreter = shlex.split(first[2:].strip())
        if interpreter:
            return interpreter + [script_path]
    return ["sh", "-xe", script_path]


class RemoteScriptRunner:
    """
    Runs a command line on a node: writes it as a script into the working
    directory, launches it with the given environment and streams the
    combined output to the sink until the process exits.

    Returns 0 on success. A non-zero exit raises ScriptFailed carrying the
    exit code; cancellation raises DeploymentCancelled after killing the
    process.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        poll_interval: float = 0.2,
        keep_scripts: bool = False,
    ):
        self.transport = transport
        self.poll_interval = poll_interval
        self.keep_scripts = keep_scripts

    def run(
        self,
        node: NodeLike,
        working_dir: str,
        env: Mapping[str, str],
        command_line: Optional[str],
        sink: OutputSink,
        cancel: Optional[threading.Event] = None,
    ) -> int:
        if command_line is None or not command_line.strip():
            return 0
        if cancel is not None and cancel.is_set():
            raise DeploymentCancelled("run cancelled before script start", node=node.name)

        sink.write("Executing script\n")

        script = command_line.replace("\r\n", "\n")
        if not script.endswith("\n"):
            script += "\n"
        script_path = posixpath.join(working_dir, f"fleetsetup-{uuid.uuid4().hex[:12]}.sh")

        self.transport.write_file(node, script_path, script, 0o755)
        try:
            handle = self.transport.launch(node, script_argv(script, script_path), working_dir, env)
            rc = self._follow(node, handle, sink, cancel)
        finally:
            if not self.keep_scripts:
                self._cleanup(node, script_path)

        if rc != 0:
            raise ScriptFailed(rc, node=node.name)

        sink.write("script completed successfully\n")
        return 0

    def _follow(
        self,
        node: NodeLike,
        handle: ProcessHandle,
        sink: OutputSink,
        cancel: Optional[threading.Event],
    ) -> int:
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    log.warning("[%s] cancelling running script", node.name)
                    handle.kill()
                    raise DeploymentCancelled("script cancelled", node=node.name)

                chunk = handle.read_available()
                if chunk:
                    sink.write(chunk)

                rc = handle.poll()
                if rc is not None:
                    rest = handle.read_available()
                    if rest:
                        sink.write(rest)
                    return rc

                if not chunk:
                    time.sleep(self.poll_interval)
        except (OSError, EOFError) as e:
            raise TransportFailed(f"lost connection to {node.name}: {e}", node=node.name) from e

    def _cleanup(self, node: NodeLike, script_path: str) -> None:
        try:
            self.transport.remove(node, script_path)
        except Exception as e:
            log.warning("[%s] could not remove %s: %s", node.name, script_path, e)
