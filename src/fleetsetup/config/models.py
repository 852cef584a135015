# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/config/models.py

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ControllerSpec(BaseModel):
    """Where controller-local steps (prepare, lifecycle hooks) run."""

    work_dir: Path = Path(".")
    environment: Dict[str, str] = Field(default_factory=dict)


class SshDefaults(BaseModel):
    username: Optional[str] = None
    port: int = 22
    pkey_path: Optional[Path] = None
    password: Optional[str] = None
    connect_timeout: float = 20.0


class DeploySettings(BaseModel):
    max_workers: int = Field(default=1, ge=1)
    poll_interval: float = Field(default=0.2, gt=0)
    keep_scripts: bool = False


class Bundle(BaseModel):
    """
    One deployable unit: a file tree to copy plus the commands to run.

    ``prepare_executed`` is runtime state owned by the PrepareRunner; it is
    never read from YAML and only flips to True after a successful prepare.
    """

    name: str
    target_labels: str = ""
    files_dir: Optional[Path] = None
    command_line: Optional[str] = None
    prepare_command_line: Optional[str] = None
    pre_launch_command_line: Optional[str] = None
    on_node_online_command_line: Optional[str] = None
    on_node_offline_command_line: Optional[str] = None
    deploy_immediately: bool = False
    prepare_executed: bool = Field(default=False, exclude=True)

    @field_validator("target_labels", mode="before")
    @classmethod
    def _none_labels(cls, v):
        return "" if v is None else v

    @field_validator(
        "command_line",
        "prepare_command_line",
        "pre_launch_command_line",
        "on_node_online_command_line",
        "on_node_offline_command_line",
        mode="before",
    )
    @classmethod
    def _fix_empty(cls, v):
        return _blank_to_none(v)

    @field_validator("files_dir", mode="before")
    @classmethod
    def _empty_dir(cls, v):
        if isinstance(v, str):
            return _blank_to_none(v)
        return v

    @model_validator(mode="before")
    @classmethod
    def _drop_runtime_state(cls, data):
        # prepare_executed is never loaded from configuration
        if isinstance(data, dict) and "prepare_executed" in data:
            data = {k: v for k, v in data.items() if k != "prepare_executed"}
        return data

    @property
    def is_noop(self) -> bool:
        return self.files_dir is None and self.command_line is None


class NodeSpec(BaseModel):
    """A worker as declared in the static inventory section."""

    name: str
    address: Optional[str] = None
    root_path: str
    labels: List[str] = Field(default_factory=list)
    online: bool = True
    controller: bool = False
    environment: Dict[str, str] = Field(default_factory=dict)
    transport: Literal["ssh", "local"] = "ssh"
    username: Optional[str] = None
    port: Optional[int] = None
    pkey_path: Optional[Path] = None
    password: Optional[str] = None

    @field_validator("labels", mode="before")
    @classmethod
    def _split_labels(cls, v: Union[str, List[str], None]):
        if v is None:
            return []
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("environment", mode="before")
    @classmethod
    def _stringify_env(cls, v):
        if v is None:
            return {}
        return {str(k): str(val) for k, val in v.items()}

    @model_validator(mode="after")
    def _ssh_needs_address(self) -> "NodeSpec":
        if self.transport == "ssh" and not self.address:
            raise ValueError(f"Node '{self.name}' uses ssh transport but has no address")
        return self


class SetupConfig(BaseModel):
    controller: ControllerSpec = ControllerSpec()
    ssh: SshDefaults = SshDefaults()
    deploy: DeploySettings = DeploySettings()
    bundles: List[Bundle] = Field(default_factory=list)
    nodes: List[NodeSpec] = Field(default_factory=list)

    @field_validator("bundles")
    @classmethod
    def _unique_bundles(cls, v: List[Bundle]) -> List[Bundle]:
        seen = set()
        for b in v:
            if b.name in seen:
                raise ValueError(f"Duplicate bundle name '{b.name}'")
            seen.add(b.name)
        return v

    @field_validator("nodes")
    @classmethod
    def _unique_nodes(cls, v: List[NodeSpec]) -> List[NodeSpec]:
        seen = set()
        for n in v:
            if n.name in seen:
                raise ValueError(f"Duplicate node name '{n.name}'")
            seen.add(n.name)
        return v

    def by_name(self) -> Dict[str, Bundle]:
        """
        Returns a dictionary mapping each bundle name to its Bundle object.
        """
        return {b.name: b for b in self.bundles}
