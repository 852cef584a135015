import threading
import time

import pytest

from fleetsetup.nodes.models import Node


class FakeProcess:
    def __init__(self, output="", rc=0, finishes=True):
        self.output = output
        self.rc = rc
        self.finishes = finishes
        self.killed = False

    def read_available(self):
        out, self.output = self.output, ""
        return out

    def poll(self):
        if self.killed:
            return -9
        return self.rc if self.finishes else None

    def kill(self):
        self.killed = True


class FakeTransport:
    """Records every call; behaviour is tuned per node name."""

    def __init__(self):
        self.calls = []
        self.files = {}
        self.output = "hello from script\n"
        self.exit_codes = {}
        self.script_exit_codes = {}
        self.copy_errors = {}
        self.launch_errors = {}
        self.hang = set()
        self.launch_delay = {}
        self.on_launch = None
        self.processes = []
        self.closed = False
        self.inflight = {}
        self.max_inflight = 0
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def ops(self, op):
        return [c for c in self.calls if c[0] == op]

    def put_tree(self, node, local_dir, remote_dir):
        self._record("put_tree", node.name, str(local_dir), remote_dir)
        if node.name in self.copy_errors:
            raise self.copy_errors[node.name]
        return 2

    def write_file(self, node, path, content, mode=0o755):
        self._record("write_file", node.name, path, mode)
        self.files[path] = content

    def remove(self, node, path):
        self._record("remove", node.name, path)
        self.files.pop(path, None)

    def launch(self, node, argv, cwd, env):
        self._record("launch", node.name, list(argv), cwd, dict(env))
        if node.name in self.launch_errors:
            raise self.launch_errors[node.name]
        with self._lock:
            self.inflight[node.name] = self.inflight.get(node.name, 0) + 1
            self.max_inflight = max(self.max_inflight, self.inflight[node.name])
        time.sleep(self.launch_delay.get(node.name, 0))
        with self._lock:
            self.inflight[node.name] -= 1
        if self.on_launch:
            self.on_launch(node)
        script = self.files.get(argv[-1], "").strip()
        rc = self.exit_codes.get(node.name, self.script_exit_codes.get(script, 0))
        proc = FakeProcess(self.output, rc, node.name not in self.hang)
        self.processes.append(proc)
        return proc

    def close(self):
        self.closed = True


class Capture:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def kinds(self):
        return [e.__class__.__name__ for e in self.events]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def capture():
    return Capture()


@pytest.fixture
def make_node():
    def _make(name, labels=(), env=None, root=None):
        return Node(
            name=name,
            root_path=root or f"/srv/{name}",
            labels=frozenset(labels),
            environment=env,
        )
    return _make
