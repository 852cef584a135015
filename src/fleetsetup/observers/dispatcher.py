# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/observers/dispatcher.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional, Protocol

from .events import BaseEvent

log = logging.getLogger("fleetsetup")


class Observer(Protocol):
    def notify(self, event: BaseEvent) -> None: ...


class EventBus:
    def __init__(self, observers: Optional[List[Observer]] = None):
        self._observers = observers or []
        self._lock = threading.Lock()

    def emit(self, event: BaseEvent) -> None:
        with self._lock:
            for ob in self._observers:
                try:
                    ob.notify(event)
                except Exception:
                    # observers must not break deploys
                    log.debug("observer %r failed on %s", ob, event.__class__.__name__, exc_info=True)
