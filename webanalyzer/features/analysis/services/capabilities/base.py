from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from webanalyzer.features.analysis.services.browser_pool import BrowserSession


@dataclass
class ScanContext:
    """
    Everything a capability may read. Page fields are only filled in when a
    capability that needs the rendered page was requested.
    """
    base_url: str
    http: httpx.AsyncClient
    html: Optional[str] = None
    title: Optional[str] = None
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    robots_txt: Optional[str] = None
    browser: Optional[BrowserSession] = None


class Capability(ABC):
    """
    One independently pluggable audit.

    `needs_page` capabilities share the orchestrator's single page load;
    the others fetch what they need themselves. `timeout` (seconds) bounds a
    single run; None falls back to the configured default.
    """

    tag: str = ""
    needs_page: bool = False
    timeout: Optional[float] = None

    @abstractmethod
    async def run(self, context: ScanContext) -> Dict[str, Any]: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} tag={self.tag!r}>"
