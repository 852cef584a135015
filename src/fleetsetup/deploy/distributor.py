# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/distributor.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..nodes.models import NodeLike
from ..transport.base import Transport
from .errors import CopyFailed, DeploymentError
from .sinks import OutputSink

log = logging.getLogger("fleetsetup")


class FileDistributor:
    """
    Copies a bundle's file tree into a node's working directory.

    The copy is additive: files present in the source overwrite their
    counterparts, anything else already on the node stays.
    """

    def __init__(self, transport: Transport):
        self.transport = transport

    def copy_tree(
        self,
        source_dir: Optional[Path],
        node: NodeLike,
        sink: Optional[OutputSink] = None,
    ) -> int:
        if source_dir is None:
            return 0

        if sink is not None:
            sink.write("Copying setup script files\n")
        log.debug("[%s] copying %s -> %s", node.name, source_dir, node.root_path)

        try:
            return self.transport.put_tree(node, Path(source_dir), node.root_path)
        except CopyFailed:
            raise
        except DeploymentError as e:
            raise CopyFailed(str(e), node=node.name) from e
        except OSError as e:
            raise CopyFailed(f"copy to {node.name} failed: {e}", node=node.name) from e
