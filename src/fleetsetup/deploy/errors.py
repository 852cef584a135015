# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/errors.py

from typing import Optional


class DeploymentError(RuntimeError):
    """Base class for per-pair deployment failures."""

    def __init__(self, message: str, *, node: Optional[str] = None, bundle: Optional[str] = None):
        super().__init__(message)
        self.node = node
        self.bundle = bundle


class CopyFailed(DeploymentError):
    """Raised when the bundle's file tree cannot be copied to the node."""


class TransportFailed(DeploymentError):
    """Raised when the node cannot be reached to launch or follow a script."""


class ScriptFailed(DeploymentError):
    """Raised when a script exits non-zero."""

    def __init__(self, exit_code: int, *, node: Optional[str] = None, bundle: Optional[str] = None):
        super().__init__(f"script failed with exit code {exit_code}", node=node, bundle=bundle)
        self.exit_code = exit_code


class DeploymentCancelled(DeploymentError):
    """Raised when a run is cancelled while a script is in flight."""


class PrepareFailed(DeploymentError):
    """Raised when a bundle's controller-local prepare step fails."""
