"""Playwright-backed implementations of AutomationDriver and MediaSink."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from leadscout.exceptions import (
    BrowserLaunchError,
    CaptureError,
    DriverError,
    SessionExpiredError,
    StageTimeoutError,
)

logger = logging.getLogger(__name__)

_AUTH_REDIRECT_FRAGMENTS: frozenset[str] = frozenset({"/login", "/accounts/login", "/challenge"})

_OBSERVE_TEXT_LIMIT = 2_000
_SCROLL_PASSES = 4

# Collects the posts rendered on a Threads feed or search page. Threads uses
# hashed class names, so posts are located through their permalink anchors.
_EXTRACT_POSTS_JS = """
() => {
    const parseCount = (el) => {
        if (!el) return null;
        const label = (el.getAttribute('aria-label') || el.innerText || '').trim();
        const m = label.match(/([\\d.,]+\\s*[KMB]?)/i);
        return m ? m[1].replace(/\\s+/g, '') : null;
    };
    const seen = new Set();
    const posts = [];
    for (const link of document.querySelectorAll('a[href*="/post/"]')) {
        const href = link.href.split('?')[0];
        if (seen.has(href)) continue;
        const card = link.closest('div[data-pressable-container]') || link.parentElement;
        if (!card) continue;
        seen.add(href);
        const author = card.querySelector('a[href^="/@"]');
        const spans = Array.from(card.querySelectorAll('span[dir="auto"]'));
        const text = spans.map(s => s.innerText.trim()).filter(Boolean)
            .sort((a, b) => b.length - a.length)[0] || '';
        posts.push({
            text,
            author_handle: author ? author.getAttribute('href').replace('/@', '').split('/')[0] : '',
            thread_url: href,
            likes: parseCount(card.querySelector('svg[aria-label="Like"]')?.parentElement),
            replies: parseCount(card.querySelector('svg[aria-label="Reply"]')?.parentElement),
            reposts: parseCount(card.querySelector('svg[aria-label="Repost"]')?.parentElement),
        });
    }
    return posts;
}
"""


class PlaywrightDriver:
    """Async Chromium session implementing the AutomationDriver protocol.

    ``observe`` and ``extract`` are rule-based: the instruction is logged for
    the trace but the page is read with fixed DOM heuristics.
    """

    def __init__(
        self,
        *,
        headless: bool = True,
        slow_mo: int = 50,
        storage_state_path: str | None = None,
        video_dir: str | None = None,
    ) -> None:
        self._headless = headless
        self._slow_mo = slow_mo
        self._storage_state_path = storage_state_path
        self._video_dir = video_dir
        self._pw: Any = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        assert self._page is not None, "Browser not launched; call launch() first."
        return self._page

    # --- lifecycle ---

    async def launch(self) -> None:
        try:
            self._pw = await async_playwright().start()
            self._browser = await self._pw.chromium.launch(
                headless=self._headless,
                slow_mo=self._slow_mo,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            ctx_kwargs: dict[str, Any] = {
                "viewport": {"width": 1280, "height": 900},
                "locale": "en-US",
            }
            if self._storage_state_path and Path(self._storage_state_path).exists():
                ctx_kwargs["storage_state"] = self._storage_state_path
            if self._video_dir:
                Path(self._video_dir).mkdir(parents=True, exist_ok=True)
                ctx_kwargs["record_video_dir"] = self._video_dir

            self._context = await self._browser.new_context(**ctx_kwargs)
            self._page = await self._context.new_page()
            logger.info("Browser launched (headless=%s).", self._headless)
        except Exception as exc:
            raise BrowserLaunchError(f"Failed to start Playwright Chromium: {exc}") from exc

    async def close(self) -> None:
        if self._context:
            await self._context.close()
        if self._browser:
            await self._browser.close()
        if self._pw:
            await self._pw.stop()
        logger.info("Browser closed.")

    # --- AutomationDriver ---

    async def navigate(self, url: str, timeout_ms: int) -> None:
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise StageTimeoutError(f"Navigation to {url} timed out after {timeout_ms} ms.") from exc
        except Exception as exc:
            raise DriverError(f"Navigation to {url} failed: {exc}") from exc
        if self.is_auth_redirect():
            raise SessionExpiredError(f"Redirected to login while opening {url}.")

    async def observe(self, instruction: str) -> str:
        logger.debug("Observe: %s", instruction)
        try:
            for _ in range(_SCROLL_PASSES):
                await self.page.mouse.wheel(0, 1_200)
                await self.page.wait_for_timeout(800)
            title = await self.page.title()
            body = await self.page.inner_text("body")
        except Exception as exc:
            raise DriverError(f"Observation failed: {exc}") from exc
        excerpt = " ".join(body.split())[:_OBSERVE_TEXT_LIMIT]
        return f"{title} ({self.page.url}): {excerpt}"

    async def extract(self, instruction: str, schema: type) -> Any:
        logger.debug("Extract (%s): %s", getattr(schema, "__name__", schema), instruction)
        try:
            posts = await self.page.evaluate(_EXTRACT_POSTS_JS)
        except Exception as exc:
            raise DriverError(f"Extraction failed: {exc}") from exc
        return {"posts": posts}

    # --- helpers ---

    def is_auth_redirect(self) -> bool:
        current = self.page.url.lower()
        return any(frag in current for frag in _AUTH_REDIRECT_FRAGMENTS)

    async def save_storage_state(self, path: str) -> None:
        if self._context is None:
            return
        await self._context.storage_state(path=path)
        logger.debug("Storage state saved to %s.", path)


class PlaywrightMediaSink:
    """Stores screenshots of the driver's page under *captures_dir*."""

    def __init__(self, driver: PlaywrightDriver, captures_dir: str | Path) -> None:
        self._driver = driver
        self._dir = Path(captures_dir) / "screenshots"
        self._dir.mkdir(parents=True, exist_ok=True)

    async def capture(self, job_id: str, stage_name: str) -> str:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        dest = self._dir / f"{job_id}-{stage_name}-{stamp}.png"
        try:
            await self._driver.page.screenshot(path=str(dest))
        except Exception as exc:
            raise CaptureError(f"Screenshot {dest.name} failed: {exc}") from exc
        logger.debug("Screenshot saved to %s.", dest)
        return str(dest)

    async def finalize(self, job_id: str) -> str | None:
        video = self._driver.page.video
        if video is None:
            return None
        try:
            return str(await video.path())
        except Exception as exc:
            raise CaptureError(f"Video for job {job_id} unavailable: {exc}") from exc
