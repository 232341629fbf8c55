from dataclasses import dataclass
from typing import Protocol

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from services.rival_audit_service.errors import FetchError


@dataclass
class FetchResponse:
    status_code: int
    final_url: str
    html: str
    content_type: str | None = None


class PageFetcher(Protocol):
    async def fetch_page(self, url: str, timeout: float) -> FetchResponse:
        ...


class HttpxFetcher:
    def __init__(self, user_agent: str, client: httpx.AsyncClient | None = None):
        self.user_agent = user_agent
        self._client = client

    async def fetch_page(self, url: str, timeout: float) -> FetchResponse:
        headers = {"User-Agent": self.user_agent}
        try:
            if self._client is not None:
                r = await self._client.get(url, headers=headers, timeout=timeout, follow_redirects=True)
            else:
                async with httpx.AsyncClient(follow_redirects=True, headers=headers, timeout=timeout) as client:
                    r = await client.get(url)
        except httpx.TimeoutException as e:
            raise FetchError(url, "timeout") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"{type(e).__name__}: {e}") from e
        return FetchResponse(
            status_code=r.status_code,
            final_url=str(r.url),
            html=r.text,
            content_type=r.headers.get("content-type"),
        )


class PlaywrightFetcher:
    """Headless Chromium fetcher for sites that render their content client-side."""

    def __init__(self, user_agent: str):
        self.user_agent = user_agent

    async def fetch_page(self, url: str, timeout: float) -> FetchResponse:
        async with async_playwright() as p:
            try:
                browser = await p.chromium.launch(headless=True)
            except PlaywrightError as e:
                raise FetchError(url, f"browser launch failed: {e}") from e
            context = await browser.new_context(user_agent=self.user_agent)
            try:
                page = await context.new_page()
                resp = await page.goto(url, wait_until="networkidle", timeout=int(timeout * 1000))
                html = await page.content()
                if resp is None:
                    raise FetchError(url, "no response")
                return FetchResponse(
                    status_code=resp.status,
                    final_url=page.url,
                    html=html,
                    content_type=resp.headers.get("content-type"),
                )
            except PlaywrightError as e:
                raise FetchError(url, str(e)) from e
            finally:
                await context.close()
                await browser.close()
