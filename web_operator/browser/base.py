"""
Browser capability contract.

The registry owns one capability per session; the executor is the only
caller of its action methods.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional


class BrowserCapability(ABC):
    """Abstract browser session the operator drives."""

    @abstractmethod
    async def navigate(self, url: str, wait_until: str = "commit", timeout_ms: int = 60000) -> None:
        ...

    @abstractmethod
    async def act(self, instruction: str) -> Any:
        ...

    @abstractmethod
    async def extract(self, instruction: str) -> Any:
        ...

    @abstractmethod
    async def observe(
        self, instruction: Optional[str] = None, use_accessibility_tree: bool = True
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def go_back(self) -> None:
        ...

    @abstractmethod
    async def screenshot(self) -> bytes:
        ...

    @abstractmethod
    async def current_url(self) -> str:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


# (session_id, region, context_id) -> ready capability
BrowserFactory = Callable[[str, str, Optional[str]], Awaitable[BrowserCapability]]
