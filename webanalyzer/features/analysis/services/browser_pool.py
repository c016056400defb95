"""
Headless browser sessions for the workers.

The pool owns the WebDriver instances. A worker checks one out for the
duration of a job with

    async with pool.session() as browser:
        page = await browser.load(url)

and it goes back to the pool on every exit path. A driver that failed with a
WebDriver error is quit instead of being handed to the next job.

Selenium is blocking, so every driver call runs in a worker thread.
"""
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, List, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service

from webanalyzer.platform.config import settings
from webanalyzer.platform.exceptions import BrowserUnavailableError, PageLoadError
from webanalyzer.platform.logger import get_logger

logger = get_logger(__name__)


def build_driver() -> webdriver.Chrome:
    chrome_options = Options()
    chrome_options.add_argument("--headless")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--disable-blink-features=AutomationControlled")
    chrome_options.add_argument(f"--user-agent={settings.USER_AGENT}")
    chrome_options.add_argument("--lang=en-US")

    if settings.CHROMEDRIVER_PATH:
        driver_service = Service(executable_path=settings.CHROMEDRIVER_PATH)
        driver = webdriver.Chrome(service=driver_service, options=chrome_options)
    else:
        driver = webdriver.Chrome(options=chrome_options)

    driver.set_page_load_timeout(settings.PAGE_LOAD_TIMEOUT)
    return driver


@dataclass
class RenderedPage:
    url: str
    final_url: str
    html: str
    title: Optional[str]


class BrowserSession:
    """One checked-out driver. Methods suspend instead of blocking the loop."""

    def __init__(self, driver):
        self.driver = driver
        self.broken = False

    async def run(self, func: Callable, *args):
        """Run `func(driver, *args)` in a thread."""
        try:
            return await asyncio.to_thread(func, self.driver, *args)
        except WebDriverException:
            self.broken = True
            raise

    async def load(self, url: str) -> RenderedPage:
        def _load(driver):
            driver.get(url)
            return RenderedPage(
                url=url,
                final_url=driver.current_url,
                html=driver.page_source,
                title=driver.title or None,
            )

        try:
            return await self.run(_load)
        except TimeoutException as e:
            raise PageLoadError(f"Page load timeout after {settings.PAGE_LOAD_TIMEOUT} seconds for URL: {url}") from e
        except WebDriverException as e:
            raise PageLoadError(f"WebDriver error loading URL {url}: {e.msg or e}") from e

    async def reset(self) -> None:
        await self.run(lambda driver: driver.get("about:blank"))


class BrowserPool:
    def __init__(self, size: int = 1, driver_factory: Optional[Callable] = None):
        if size < 1:
            raise ValueError("Browser pool size must be at least 1")
        self.size = size
        self.driver_factory = driver_factory or build_driver
        self._idle: List = []
        self._slots = asyncio.Semaphore(size)
        self._closed = False

    async def acquire(self) -> BrowserSession:
        if self._closed:
            raise BrowserUnavailableError("Browser pool is closed")

        await self._slots.acquire()
        if self._idle:
            return BrowserSession(self._idle.pop())

        try:
            logger.info("Launching a new headless browser instance")
            driver = await asyncio.to_thread(self.driver_factory)
        except Exception as e:
            self._slots.release()
            raise BrowserUnavailableError(f"Failed to launch browser: {e}") from e
        return BrowserSession(driver)

    async def release(self, session: BrowserSession) -> None:
        try:
            if session.broken or self._closed:
                await self._quit(session.driver)
                return
            try:
                await session.reset()
                self._idle.append(session.driver)
            except WebDriverException as e:
                logger.warning(f"Discarding browser that failed to reset: {e}")
                await self._quit(session.driver)
        finally:
            self._slots.release()

    @asynccontextmanager
    async def session(self):
        browser = await self.acquire()
        try:
            yield browser
        finally:
            await self.release(browser)

    async def _quit(self, driver) -> None:
        try:
            await asyncio.to_thread(driver.quit)
        except Exception as e:
            logger.warning(f"Error while quitting browser: {e}")

    async def close(self) -> None:
        self._closed = True
        idle, self._idle = self._idle, []
        for driver in idle:
            await self._quit(driver)
        logger.info("Browser pool closed")
