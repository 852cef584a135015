from pathlib import Path
import textwrap

import pytest
from pydantic import ValidationError

from fleetsetup.config.loader import load_config
from fleetsetup.config.models import Bundle, NodeSpec


@pytest.fixture(autouse=True)
def no_secrets_override(monkeypatch):
    monkeypatch.delenv("FLEETSETUP_SECRETS_FILE", raising=False)


def write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text))
    return path


def test_load_config_minimal_ok(tmp_path: Path):
    f = write(tmp_path / "fleet.yaml", """
        bundles:
          - name: agent
            target_labels: linux && !arm
            files_dir: bundles/agent
            command_line: ./install.sh
            deploy_immediately: true
        nodes:
          - name: n1
            address: 10.0.0.11
            root_path: /srv/agent
            labels: linux docker
    """)

    cfg = load_config(f)

    agent = cfg.by_name()["agent"]
    assert agent.target_labels == "linux && !arm"
    assert agent.files_dir == (tmp_path / "bundles" / "agent").resolve()
    assert agent.deploy_immediately
    assert not agent.prepare_executed
    assert cfg.nodes[0].labels == ["linux", "docker"]
    assert cfg.controller.work_dir == tmp_path.resolve()
    assert cfg.deploy.max_workers == 1


def test_secrets_are_merged_by_name(tmp_path: Path):
    f = write(tmp_path / "fleet.yaml", """
        ssh:
          username: deploy
        nodes:
          - name: n1
            address: 10.0.0.11
            root_path: /srv/agent
          - name: n2
            address: 10.0.0.12
            root_path: /srv/agent
    """)
    write(tmp_path / "secrets.yaml", """
        ssh:
          password: s3cret
        nodes:
          - name: n2
            environment:
              API_TOKEN: abc
          - name: ghost
            password: nope
    """)

    cfg = load_config(f)

    assert cfg.ssh.username == "deploy"
    assert cfg.ssh.password == "s3cret"
    assert cfg.nodes[0].environment == {}
    assert cfg.nodes[1].environment == {"API_TOKEN": "abc"}
    assert [n.name for n in cfg.nodes] == ["n1", "n2"]


def test_secrets_file_from_environment(tmp_path: Path, monkeypatch):
    f = write(tmp_path / "fleet.yaml", """
        ssh:
          username: deploy
    """)
    other = write(tmp_path / "elsewhere.yaml", """
        ssh:
          password: from-env
    """)
    monkeypatch.setenv("FLEETSETUP_SECRETS_FILE", str(other))

    assert load_config(f).ssh.password == "from-env"


def test_env_vars_are_expanded(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("AGENT_HOME", "/opt/agent")
    f = write(tmp_path / "fleet.yaml", """
        nodes:
          - name: n1
            transport: local
            root_path: ${AGENT_HOME}/work
    """)

    assert load_config(f).nodes[0].root_path == "/opt/agent/work"


def test_duplicate_names_are_rejected(tmp_path: Path):
    f = write(tmp_path / "fleet.yaml", """
        bundles:
          - name: agent
          - name: agent
    """)

    with pytest.raises(ValidationError, match="Duplicate bundle name"):
        load_config(f)


def test_ssh_node_needs_address():
    with pytest.raises(ValidationError, match="has no address"):
        NodeSpec(name="n1", root_path="/srv")


def test_blank_fields_are_normalized():
    b = Bundle(name="b", target_labels=None, files_dir="  ", command_line="   ", prepare_command_line="")

    assert b.target_labels == ""
    assert b.files_dir is None
    assert b.command_line is None
    assert b.prepare_command_line is None
    assert b.is_noop


def test_prepare_state_is_not_loaded_or_dumped():
    b = Bundle(name="b", prepare_executed=True)

    assert not b.prepare_executed
    b.prepare_executed = True
    assert "prepare_executed" not in b.model_dump()


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_command_lines_keep_shell_variables(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", "/controller/home")
    monkeypatch.setenv("AGENT_HOME", "/opt/agent")
    f = write(tmp_path / "fleet.yaml", """
        bundles:
          - name: agent
            files_dir: ${AGENT_HOME}/bundle
            command_line: echo $HOME ${JAVA_HOME}
            prepare_command_line: make -C "$HOME"
            on_node_online_command_line: echo ${NODE_NAME} online
    """)

    agent = load_config(f).bundles[0]

    assert agent.files_dir == Path("/opt/agent/bundle")
    assert agent.command_line == "echo $HOME ${JAVA_HOME}"
    assert agent.prepare_command_line == 'make -C "$HOME"'
    assert agent.on_node_online_command_line == "echo ${NODE_NAME} online"
