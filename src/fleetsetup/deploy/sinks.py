# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/fleetsetup/deploy/sinks.py

from __future__ import annotations

import logging
import threading
from typing import List, Protocol


class OutputSink(Protocol):
    """Append-only text sink for progress lines and streamed script output."""

    def write(self, text: str) -> None: ...


class LoggerSink:
    """
    Forwards complete lines to a logger, prefixed with the node name.
    Partial lines are buffered until their newline arrives.
    """

    def __init__(self, logger: logging.Logger, prefix: str = "", level: int = logging.INFO):
        self.logger = logger
        self.prefix = prefix
        self.level = level
        self._buf = ""

    def write(self, text: str) -> None:
        self._buf += text
        while "\n" in self._buf:
            line, self._buf = self._buf.split("\n", 1)
            self.logger.log(self.level, "%s%s", self.prefix, line.rstrip("\r"))

    def flush(self) -> None:
        if self._buf:
            self.logger.log(self.level, "%s%s", self.prefix, self._buf.rstrip("\r"))
            self._buf = ""


class MemorySink:
    """Keeps everything written; handy for callers that render output later."""

    def __init__(self):
        self._chunks: List[str] = []
        self._lock = threading.Lock()

    def write(self, text: str) -> None:
        with self._lock:
            self._chunks.append(text)

    @property
    def text(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def lines(self) -> List[str]:
        return self.text.splitlines()
