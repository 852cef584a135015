# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/environment.py

from __future__ import annotations

from typing import Dict

from ..nodes.models import NodeLike


class EnvironmentResolver:
    def resolve(self, node: NodeLike) -> Dict[str, str]:
        """The node's configured variables, or an empty mapping."""
        env = getattr(node, "environment", None)
        if not env:
            return {}
        return {str(k): str(v) for k, v in env.items()}
