# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/transport/ssh.py

from __future__ import annotations

import codecs
import logging
import posixpath
import re
import shlex
import socket
import stat
import threading
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

import paramiko

from ..deploy.errors import CopyFailed, TransportFailed
from ..nodes.models import NodeLike

log = logging.getLogger("fleetsetup")

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _load_pkey(path: Path):
    for key_cls in (
        paramiko.RSAKey,
        paramiko.Ed25519Key,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(str(path))
        except paramiko.SSHException:
            continue
    raise TransportFailed(f"Unsupported private key format for {path}")


def build_remote_command(argv: Sequence[str], cwd: str, env: Mapping[str, str]) -> str:
    """
    ``cd <cwd> && K='v' ... argv``. Variables are assigned on the command so
    they layer over the remote login environment.
    """
    assigns = []
    for k, v in env.items():
        if not _ENV_NAME.match(k):
            log.warning("[ssh] skipping environment variable with invalid name %r", k)
            continue
        assigns.append(f"{k}={shlex.quote(str(v))}")
    cmd = " ".join(shlex.quote(a) for a in argv)
    if assigns:
        cmd = " ".join(assigns) + " " + cmd
    return f"cd {shlex.quote(cwd)} && {cmd}"


class SshProcess:
    def __init__(self, channel: paramiko.Channel):
        self.channel = channel
        # a multi-byte character may straddle two recv() calls
        self._stdout = codecs.getincrementaldecoder("utf-8")("replace")
        self._stderr = codecs.getincrementaldecoder("utf-8")("replace")

    def read_available(self) -> str:
        out, err = [], []
        while self.channel.recv_ready():
            out.append(self.channel.recv(4096))
        while self.channel.recv_stderr_ready():
            err.append(self.channel.recv_stderr(4096))
        text = self._stdout.decode(b"".join(out))
        if err:
            text += self._stderr.decode(b"".join(err))
        return text

    def poll(self) -> Optional[int]:
        if not self.channel.exit_status_ready():
            return None
        if self.channel.recv_ready() or self.channel.recv_stderr_ready():
            return None
        return self.channel.recv_exit_status()

    def kill(self) -> None:
        # closing a pty channel hangs up the remote process group
        self.channel.close()


class SshTransport:
    """
    paramiko-backed transport. One SSHClient per node, opened on first use
    and kept until :meth:`close`.
    """

    def __init__(self, client_factory=None):
        self._client_factory = client_factory or paramiko.SSHClient
        self._clients: Dict[str, paramiko.SSHClient] = {}
        self._connecting: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    # ------------------ connection & utils ------------------

    def _connect(self, node: NodeLike) -> paramiko.SSHClient:
        address = getattr(node, "address", None)
        if not address:
            raise TransportFailed(f"node {node.name} has no address", node=node.name)

        client = self._client_factory()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        pkey = None
        pkey_path = getattr(node, "pkey_path", None)
        if pkey_path:
            pkey = _load_pkey(Path(pkey_path))
        password = getattr(node, "password", None)

        try:
            client.connect(
                hostname=address,
                port=getattr(node, "port", 22),
                username=getattr(node, "username", None),
                password=password if not pkey else None,
                pkey=pkey,
                timeout=getattr(node, "connect_timeout", 20.0),
                allow_agent=True,
                look_for_keys=pkey is None and password is None,
            )
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise TransportFailed(f"cannot connect to {node.name} ({address}): {e}", node=node.name) from e

        log.debug("[ssh] connected to %s (%s)", node.name, address)
        return client

    def client(self, node: NodeLike) -> paramiko.SSHClient:
        """
        Cached client for the node. Handshakes to different nodes run in
        parallel; a second caller for the same node waits for the first.
        """
        with self._lock:
            client = self._clients.get(node.name)
            if client is not None:
                return client
            node_lock = self._connecting.setdefault(node.name, threading.Lock())
        with node_lock:
            with self._lock:
                client = self._clients.get(node.name)
            if client is not None:
                return client
            client = self._connect(node)
            with self._lock:
                self._clients[node.name] = client
            return client

    def _drop(self, node: NodeLike) -> None:
        with self._lock:
            client = self._clients.pop(node.name, None)
        if client is not None:
            client.close()

    # ------------------ files ------------------

    def _mkdir_p(self, sftp, remote: str) -> None:
        parts = []
        head = remote
        while head not in ("", "/"):
            try:
                if stat.S_ISDIR(sftp.stat(head).st_mode):
                    break
                raise IOError(f"{head} exists and is not a directory")
            except FileNotFoundError:
                parts.append(head)
                head = posixpath.dirname(head)
        for p in reversed(parts):
            sftp.mkdir(p)

    def _put_dir_recursive(self, sftp, local: Path, remote: str) -> int:
        self._mkdir_p(sftp, remote)
        copied = 0
        for item in sorted(local.iterdir()):
            rpath = posixpath.join(remote, item.name)
            if item.is_dir():
                copied += self._put_dir_recursive(sftp, item, rpath)
            else:
                sftp.put(str(item), rpath)
                sftp.chmod(rpath, stat.S_IMODE(item.stat().st_mode))
                copied += 1
        return copied

    def put_tree(self, node: NodeLike, local_dir: Path, remote_dir: str) -> int:
        """
        Recursively upload a directory. Existing remote files are
        overwritten, files missing from the source are left alone.
        """
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise CopyFailed(f"source directory {local_dir} does not exist", node=node.name)
        try:
            sftp = self.client(node).open_sftp()
        except TransportFailed as e:
            raise CopyFailed(str(e), node=node.name) from e
        except (paramiko.SSHException, socket.error) as e:
            self._drop(node)
            raise CopyFailed(f"sftp to {node.name} failed: {e}", node=node.name) from e
        try:
            copied = self._put_dir_recursive(sftp, local_dir, remote_dir)
        except (IOError, OSError, paramiko.SSHException) as e:
            raise CopyFailed(f"copy {local_dir} -> {node.name}:{remote_dir} failed: {e}", node=node.name) from e
        finally:
            sftp.close()
        log.debug("[ssh] uploaded %d files %s -> %s:%s", copied, local_dir, node.name, remote_dir)
        return copied

    def write_file(self, node: NodeLike, path: str, content: str, mode: int = 0o755) -> None:
        try:
            sftp = self.client(node).open_sftp()
            try:
                self._mkdir_p(sftp, posixpath.dirname(path))
                with sftp.open(path, "w") as f:
                    f.write(content)
                sftp.chmod(path, mode)
            finally:
                sftp.close()
        except TransportFailed:
            raise
        except (IOError, OSError, paramiko.SSHException) as e:
            raise TransportFailed(f"cannot write {node.name}:{path}: {e}", node=node.name) from e

    def remove(self, node: NodeLike, path: str) -> None:
        try:
            sftp = self.client(node).open_sftp()
            try:
                sftp.remove(path)
            except FileNotFoundError:
                pass
            finally:
                sftp.close()
        except TransportFailed:
            raise
        except (IOError, OSError, paramiko.SSHException) as e:
            raise TransportFailed(f"cannot remove {node.name}:{path}: {e}", node=node.name) from e

    # ------------------ processes ------------------

    def launch(
        self,
        node: NodeLike,
        argv: Sequence[str],
        cwd: str,
        env: Mapping[str, str],
    ) -> SshProcess:
        command = build_remote_command(argv, cwd, env)
        log.debug("[ssh] (%s) $ %s", node.name, command)
        try:
            _stdin, stdout, _stderr = self.client(node).exec_command(command, get_pty=True)
        except TransportFailed:
            raise
        except (paramiko.SSHException, socket.error) as e:
            self._drop(node)
            raise TransportFailed(f"cannot start command on {node.name}: {e}", node=node.name) from e
        channel = stdout.channel
        channel.set_combine_stderr(True)
        return SshProcess(channel)

    def close(self) -> None:
        with self._lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            client.close()
