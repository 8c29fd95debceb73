"""Shared value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class OutputMode(str, Enum):
    """How CLI commands render their results."""

    NORMAL = "normal"
    JSON = "json"


@dataclass
class LogPage:
    """One page of formatted log lines and the options to fetch the next."""

    logs: str | None
    request_options: dict[str, Any] | None = None
