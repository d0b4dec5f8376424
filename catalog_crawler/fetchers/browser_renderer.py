"""
Playwright renderer for model pages that build their price tables in
JavaScript.

Navigate, wait for network idle, click away a cookie banner if one covers
the page, return the DOM. Chromium is launched once per worker process and
shared; each render gets its own browser context.
"""

import logging
from typing import List, Optional

from django.conf import settings

from .http_renderer import RenderResponse

logger = logging.getLogger(__name__)

COOKIE_CONSENT_SELECTORS: List[str] = [
    "#onetrust-accept-btn-handler",
    "button#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "button:has-text('Acceptera alla')",
    "button:has-text('Godkänn alla')",
    "button:has-text('Accept all')",
]

CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]


class PlaywrightRenderer:
    """Headless Chromium renderer. render() never raises."""

    name = "playwright"

    # Shared by every instance in the process
    _playwright = None
    _browser = None

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or getattr(settings, "CRAWLER_REQUEST_TIMEOUT", 30)

    async def __aenter__(self):
        await self._launch()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @classmethod
    async def _launch(cls):
        if cls._browser is not None:
            return cls._browser

        # Imported here so the httpx-only path never loads playwright
        from playwright.async_api import async_playwright

        cls._playwright = await async_playwright().start()
        cls._browser = await cls._playwright.chromium.launch(headless=True, args=CHROMIUM_ARGS)
        logger.info("Launched headless Chromium")
        return cls._browser

    @classmethod
    async def close(cls):
        browser, driver = cls._browser, cls._playwright
        cls._browser = cls._playwright = None
        if browser is not None:
            await browser.close()
        if driver is not None:
            await driver.stop()

    async def _accept_cookies(self, page) -> bool:
        for selector in COOKIE_CONSENT_SELECTORS:
            button = page.locator(selector).first
            try:
                if not await button.count() or not await button.is_visible():
                    continue
                await button.click()
                await page.wait_for_load_state("networkidle", timeout=5000)
            except Exception as e:
                logger.debug(f"Consent button {selector} on {page.url} failed: {e}")
                continue
            logger.debug(f"Accepted cookies on {page.url} via {selector}")
            return True
        return False

    async def render(self, url: str) -> RenderResponse:
        browser = await self._launch()
        context = await browser.new_context(locale="sv-SE")
        try:
            page = await context.new_page()
            response = await page.goto(url, wait_until="networkidle", timeout=self.timeout * 1000)
            await self._accept_cookies(page)

            status_code = response.status if response is not None else 0
            ok = 200 <= status_code < 400
            return RenderResponse(
                url=url,
                content=await page.content() if ok else "",
                status_code=status_code,
                headers=dict(response.headers) if response is not None else {},
                success=ok,
                error=None if ok else f"HTTP {status_code}",
                final_url=page.url,
                renderer=self.name,
            )
        except Exception as e:
            logger.warning(f"Playwright could not render {url}: {e}")
            return RenderResponse(
                url=url,
                content="",
                status_code=0,
                success=False,
                error=str(e),
                renderer=self.name,
            )
        finally:
            await context.close()
