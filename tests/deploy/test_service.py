import pytest

from fleetsetup.config.models import Bundle, ControllerSpec, DeploySettings, NodeSpec, SetupConfig
from fleetsetup.deploy.executor import DeploymentOrchestrator, DeployOptions
from fleetsetup.deploy.outcomes import PairStatus
from fleetsetup.deploy.prepare import PrepareRunner
from fleetsetup.deploy.service import SetupService
from fleetsetup.deploy.sinks import MemorySink
from fleetsetup.nodes.inventory import StaticInventory
from fleetsetup.nodes.models import Node


def build_service(tmp_path, transport, bundles, specs=(), capture=None, controller_env=None):
    controller = ControllerSpec(work_dir=tmp_path, environment=controller_env or {})
    observers = [capture] if capture else None
    return SetupService(
        bundle_source=lambda: bundles,
        inventory=StaticInventory(specs),
        orchestrator=DeploymentOrchestrator(
            transport, options=DeployOptions(poll_interval=0.001), observers=observers
        ),
        prepare_runner=PrepareRunner(controller, poll_interval=0.01, sink=MemorySink()),
        controller=controller,
        observers=observers,
    )


def local_spec(name, **kw):
    return NodeSpec(name=name, root_path=f"/srv/{name}", transport="local", **kw)


def test_apply_configuration_pushes_only_eager_bundles_to_active_nodes(tmp_path, transport):
    bundles = [
        Bundle(name="eager", command_line="echo now", deploy_immediately=True),
        Bundle(name="lazy", command_line="echo later"),
    ]
    specs = [
        local_spec("n1"),
        local_spec("down", online=False),
        local_spec("ctl", controller=True),
    ]

    result = build_service(tmp_path, transport, bundles, specs).apply_configuration()

    assert [(o.node, o.bundle, o.status) for o in result.report.outcomes] == [
        ("n1", "eager", PairStatus.SUCCEEDED),
    ]
    assert not result.failed


def test_prepare_failure_does_not_hold_back_deployment(tmp_path, transport):
    bundles = [Bundle(name="eager", prepare_command_line="exit 1", command_line="echo", deploy_immediately=True)]

    result = build_service(tmp_path, transport, bundles, [local_spec("n1")]).apply_configuration()

    assert result.prepare_failures == 1
    assert result.report.outcomes[0].status == PairStatus.SUCCEEDED
    assert result.failed


def test_deploy_selects_bundles_and_nodes(tmp_path, transport):
    bundles = [Bundle(name="a", command_line="echo a"), Bundle(name="b", command_line="echo b")]
    service = build_service(tmp_path, transport, bundles, [local_spec("n1"), local_spec("n2")])

    report = service.deploy(bundle_names=["b"], node_names=["n2", "ghost"])

    assert [(o.node, o.bundle) for o in report.outcomes] == [("n2", "b")]
    with pytest.raises(KeyError):
        service.deploy(bundle_names=["nope"])


def test_node_online_deploys_everything_then_runs_online_hooks(tmp_path, transport, capture):
    files = tmp_path / "agent"
    files.mkdir()
    bundles = [
        Bundle(
            name="agent",
            files_dir=files,
            command_line="echo deploy",
            on_node_online_command_line='echo "$NODE_NAME:$NODE_ROOT:$GREETING:$SITE" > "$NODE_NAME.online"',
        ),
        Bundle(name="tools", command_line="echo tools"),
    ]
    service = build_service(tmp_path, transport, bundles, capture=capture, controller_env={"SITE": "lab"})
    node = Node(name="n1", root_path="/srv/n1", environment={"GREETING": "hi"})

    result = service.node_online(node)

    assert [o.bundle for o in result.report.outcomes] == ["agent", "tools"]
    assert result.hook_failures == 0
    assert (files / "n1.online").read_text().strip() == "n1:/srv/n1:hi:lab"
    assert "HookExecuted" in capture.kinds()


def test_hooks_follow_label_targeting(tmp_path, transport):
    bundles = [Bundle(name="b", target_labels="linux", on_node_offline_command_line="touch offline.txt")]
    service = build_service(tmp_path, transport, bundles)

    assert service.node_offline(Node(name="win1", root_path="C:/w")).hook_failures == 0
    assert not (tmp_path / "offline.txt").exists()

    assert service.node_offline(Node(name="lin1", root_path="/w", labels=frozenset({"linux"}))).hook_failures == 0
    assert (tmp_path / "offline.txt").exists()


def test_failed_hook_is_counted(tmp_path, transport, capture):
    bundles = [Bundle(name="b", pre_launch_command_line="exit 3")]
    service = build_service(tmp_path, transport, bundles, capture=capture)

    result = service.node_pre_launch(Node(name="n1", root_path="/srv/n1"))

    assert result.hook_failures == 1
    assert result.failed
    failed = [e for e in capture.events if e.__class__.__name__ == "HookFailed"]
    assert (failed[0].hook, failed[0].node, failed[0].bundle) == ("pre_launch", "n1", "b")


def test_hook_environment(tmp_path, transport):
    service = build_service(tmp_path, transport, [], controller_env={"SITE": "lab", "GREETING": "x"})
    node = Node(name="n1", root_path="/srv/n1", address="10.0.0.5", environment={"GREETING": "hi"})

    assert service.hook_environment(node) == {
        "SITE": "lab",
        "GREETING": "hi",
        "NODE_NAME": "n1",
        "NODE_ROOT": "/srv/n1",
        "NODE_ADDRESS": "10.0.0.5",
    }


def test_from_config_and_close(tmp_path, transport):
    cfg = SetupConfig(
        controller=ControllerSpec(work_dir=tmp_path),
        deploy=DeploySettings(max_workers=4, poll_interval=0.001),
        bundles=[Bundle(name="a", command_line="echo a")],
        nodes=[local_spec("n1")],
    )

    service = SetupService.from_config(cfg, transport=transport, run_id="r1", max_workers=2)
    report = service.deploy()
    service.close()

    assert service.orchestrator.options.max_workers == 2
    assert service.orchestrator.run_ctx == {"run_id": "r1"}
    assert report.outcomes[0].ok
    assert transport.closed


def test_reset_prepare_lets_prepare_run_again(tmp_path, transport):
    bundles = [Bundle(name="agent", prepare_command_line="echo run >> runs.txt")]
    service = build_service(tmp_path, transport, bundles)

    assert service.prepare() == 0
    assert service.prepare() == 0
    assert (tmp_path / "runs.txt").read_text().splitlines() == ["run"]

    service.reset_prepare()

    assert not bundles[0].prepare_executed
    assert service.prepare() == 0
    assert (tmp_path / "runs.txt").read_text().splitlines() == ["run", "run"]
