"""Client for the bot backend API (persona prompt and lyrics cache)."""

from typing import Optional
from urllib.parse import quote
import httpx
import structlog
from pydantic import BaseModel

from teto_agent.domain.models.errors import BackendApiError

logger = structlog.get_logger(__name__)


class LyricsRecord(BaseModel):
    """Lyrics entry stored by the backend"""
    artist: str
    title: str
    lyrics: str


class BackendApiClient:
    """Async wrapper around the backend REST API.

    Every request carries the bot's bearer token. Non-2xx answers other than
    the documented 404 cases raise `BackendApiError`.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/api",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def get_system_prompt(self) -> Optional[str]:
        """Current persona prompt, or None when none has been set"""
        data = await self._get_json("/system-prompt")
        if data is None:
            return None
        return data.get("prompt") or None

    async def get_lyrics(self, artist: str, title: str) -> Optional[LyricsRecord]:
        """Lyrics for one song, or None when the backend has no entry"""
        path = f"/lyrics/{quote(artist, safe='')}/{quote(title, safe='')}"
        data = await self._get_json(path)
        if data is None:
            return None

        try:
            return LyricsRecord(**data["data"]["lyrics"])
        except (KeyError, TypeError, ValueError) as e:
            raise BackendApiError(f"Malformed lyrics response for {path}: {e}") from e

    async def _get_json(self, path: str) -> Optional[dict]:
        try:
            response = await self._client.get(path)
        except httpx.HTTPError as e:
            logger.error("Backend request failed", path=path, error=str(e))
            raise BackendApiError(f"Request to {path} failed: {e}") from e

        if response.status_code == 404:
            return None

        if response.status_code >= 400:
            logger.error(
                "Backend returned error",
                path=path,
                status_code=response.status_code,
            )
            raise BackendApiError(
                f"Backend returned {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise BackendApiError(f"Backend returned invalid JSON for {path}") from e

    async def aclose(self):
        await self._client.aclose()
