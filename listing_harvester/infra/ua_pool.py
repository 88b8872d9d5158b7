"""User-Agent rotation for outbound requests."""

from __future__ import annotations

import random
from threading import Lock
from typing import Iterable, List

from ..config import GlobalConfig


class UserAgentPool:
    """Hand out a random user agent per outbound request."""

    def __init__(self, user_agents: Iterable[str] | None = None) -> None:
        self._lock = Lock()
        self._uas: List[str] = [ua.strip() for ua in user_agents or () if ua.strip()]

    @classmethod
    def from_config(cls, config: GlobalConfig) -> "UserAgentPool | None":
        agents = config.user_agent_list
        if not isinstance(agents, list) or not agents:
            return None
        return cls(agents)

    @property
    def empty(self) -> bool:
        return not self._uas

    def pick(self, default: str) -> str:
        with self._lock:
            if not self._uas:
                return default
            return random.choice(self._uas)


__all__ = ["UserAgentPool"]
