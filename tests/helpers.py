"""Fakes shared by the test modules: a WebDriver stand-in, stub capabilities, a DNS table, an httpx mock transport and a small Redis."""
import asyncio
from typing import Any, Dict, List, Optional

import httpx

from webanalyzer.features.analysis.services.capabilities import Capability, ScanContext

SAMPLE_HTML = """
<html lang="en">
  <head>
    <title>Example Domain</title>
    <meta name="description" content="An example page for tests">
    <meta name="generator" content="WordPress 6.4">
    <link rel="canonical" href="/home">
    <script src="https://code.jquery.com/jquery-3.7.1.min.js"></script>
  </head>
  <body>
    <h1>Example Domain</h1>
    <p>This domain is for use in illustrative examples in documents.</p>
    <img src="/logo.png">
  </body>
</html>
"""

# Public addresses used by the fake resolver
PUBLIC_HOSTS = {
    "example.com": ["93.184.216.34", "2606:2800:220:1:248:1893:25c8:1946"],
    "www.python.org": ["151.101.0.223"],
}


# ============================================================================
# Fakes
# ============================================================================

class FakeDriver:
    """Just enough of a Selenium WebDriver for BrowserSession."""

    def __init__(self, html: str = SAMPLE_HTML, title: str = "Example Domain", fail_on_get: Exception = None):
        self.html = html
        self._title = title
        self.fail_on_get = fail_on_get
        self.current_url = "about:blank"
        self.visited: List[str] = []
        self.quit_called = False

    def get(self, url: str) -> None:
        if self.fail_on_get is not None and url != "about:blank":
            raise self.fail_on_get
        self.visited.append(url)
        self.current_url = url

    @property
    def page_source(self) -> str:
        return self.html

    @property
    def title(self) -> str:
        return self._title

    def quit(self) -> None:
        self.quit_called = True


class StubCapability(Capability):
    """Returns a canned result, raises, or sleeps past its timeout."""

    def __init__(
        self,
        tag: str,
        needs_page: bool = False,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        timeout: Optional[float] = None,
    ):
        self.tag = tag
        self.needs_page = needs_page
        self.result = result if result is not None else {"ok": True, "tag": tag}
        self.error = error
        self.delay = delay
        self.timeout = timeout
        self.calls: List[ScanContext] = []

    async def run(self, context: ScanContext) -> Dict[str, Any]:
        self.calls.append(context)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.result)


def make_resolver(table: Optional[Dict[str, List[str]]] = None):
    table = PUBLIC_HOSTS if table is None else table

    async def resolve(hostname: str) -> List[str]:
        if hostname not in table:
            raise OSError(f"[Errno -2] Name or service not known: {hostname}")
        return table[hostname]

    return resolve


def mock_http_client_factory(status_code: int = 200, text: str = SAMPLE_HTML, headers: Dict[str, str] = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *\nSitemap: https://example.com/sitemap.xml\n")
        return httpx.Response(status_code, text=text, headers=headers or {"server": "nginx"})

    return lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))



class FakeRedis:
    """
    The list and sorted-set commands RedisJobQueue uses, kept in dicts.
    Several queue instances can share one to stand in for separate workers.
    """

    def __init__(self):
        self.lists: Dict[str, List[str]] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}

    async def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def lpush(self, key, *values):
        for value in values:
            self.lists.setdefault(key, []).insert(0, value)
        return len(self.lists[key])

    async def lmove(self, source, destination, src_side, dest_side):
        items = self.lists.get(source)
        if not items:
            return None
        value = items.pop(0 if src_side == "LEFT" else -1)
        target = self.lists.setdefault(destination, [])
        if dest_side == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        if value in items:
            items.remove(value)
            return 1
        return 0

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return list(items[start:] if end == -1 else items[start:end + 1])

    async def llen(self, key):
        return len(self.lists.get(key, []))

    async def zadd(self, key, mapping, nx=False):
        zset = self.zsets.setdefault(key, {})
        added = 0
        for member, score in mapping.items():
            if nx and member in zset:
                continue
            added += member not in zset
            zset[member] = score
        return added

    async def zrem(self, key, member):
        return 1 if self.zsets.get(key, {}).pop(member, None) is not None else 0

    async def zrangebyscore(self, key, low, high):
        low, high = float(low), float(high)
        zset = self.zsets.get(key, {})
        return [m for m, s in sorted(zset.items(), key=lambda kv: kv[1]) if low <= s <= high]

    async def zcard(self, key):
        return len(self.zsets.get(key, {}))

    async def aclose(self):
        return None
