import json
import logging

from fleetsetup.logging.log import init_logging
from fleetsetup.observers.console import ConsoleObserver
from fleetsetup.observers.dispatcher import EventBus
from fleetsetup.observers.events import DeploySummary, PairFailed, PairSucceeded, new_ctx
from fleetsetup.observers.jsonfile import JsonFileObserver
from fleetsetup.observers.logger import LoggerObserver


# Simple capturing observer
class Capture:
    def __init__(self): self.events = []
    def notify(self, event): self.events.append(event)


class Broken:
    def notify(self, event): raise RuntimeError("observer down")


class ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_failing_observer_does_not_stop_others():
    cap = Capture()
    bus = EventBus([Broken(), cap])

    bus.emit(DeploySummary(succeeded=1, skipped=0, failed=0, **new_ctx("r1")))

    assert len(cap.events) == 1
    assert cap.events[0].run_id == "r1"


def test_new_ctx_generates_run_id():
    assert new_ctx()["run_id"] != new_ctx()["run_id"]


def test_json_file_observer_appends_lines(tmp_path):
    path = tmp_path / "events" / "run.jsonl"
    obs = JsonFileObserver(path)

    obs.notify(PairSucceeded(node="n1", bundle="agent", duration_ms=12, run_id="r1"))
    obs.notify(PairFailed(node="n2", bundle="agent", kind="SCRIPT_FAILED", error="exit 3", exit_code=3, run_id="r1"))

    records = [json.loads(line) for line in path.read_text().splitlines()]
    assert [r["type"] for r in records] == ["PairSucceeded", "PairFailed"]
    assert records[1]["exit_code"] == 3
    assert records[0]["ts"].endswith("Z")


def test_logger_observer_warns_on_failures():
    logger = logging.getLogger("fleetsetup-observer-test")
    logger.setLevel(logging.DEBUG)
    handler = ListHandler()
    logger.addHandler(handler)
    try:
        obs = LoggerObserver(logger)
        obs.notify(PairSucceeded(node="n1", bundle="agent", duration_ms=5, run_id="r1"))
        obs.notify(PairFailed(node="n2", bundle="agent", kind="COPY_FAILED", error="disk full", run_id="r1"))
    finally:
        logger.removeHandler(handler)

    assert [r.levelno for r in handler.records] == [logging.DEBUG, logging.WARNING]
    message = handler.records[1].getMessage()
    assert message == "[event] PairFailed node=n2 bundle=agent kind=COPY_FAILED error=disk full"


def test_console_observer_prints_one_line(capsys):
    ConsoleObserver(color=False).notify(PairSucceeded(node="n1", bundle="agent", duration_ms=7, run_id="r1"))

    out = capsys.readouterr().out
    assert "PairSucceeded node=n1, bundle=agent, duration_ms=7" in out
    assert "\x1b[" not in out


def test_init_logging_writes_run_log(tmp_path):
    logger, run_id, log_path = init_logging(base_dir=tmp_path)
    logger.debug("debug detail")
    for handler in logger.handlers:
        handler.flush()

    assert log_path.parent == tmp_path
    assert run_id in log_path.name
    text = log_path.read_text()
    assert f"run_id={run_id}" in text
    assert "debug detail" in text
    assert not logger.propagate
