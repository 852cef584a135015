# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/__init__.py

from .config.loader import load_config
from .config.models import Bundle, SetupConfig
from .deploy.executor import DeploymentOrchestrator, DeployOptions
from .deploy.outcomes import DeploymentResult, DeployReport, FailureKind, PairStatus
from .deploy.prepare import PrepareRunner
from .deploy.service import SetupService
from .labels.matcher import LabelMatcher
from .nodes.models import Node

__version__ = "0.1.0"

__all__ = [
    "Bundle",
    "DeployOptions",
    "DeployReport",
    "DeploymentOrchestrator",
    "DeploymentResult",
    "FailureKind",
    "LabelMatcher",
    "Node",
    "PairStatus",
    "PrepareRunner",
    "SetupConfig",
    "SetupService",
    "load_config",
]
