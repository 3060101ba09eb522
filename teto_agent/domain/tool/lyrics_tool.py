"""get_lyrics tool backed by the backend lyrics cache."""

from typing import Optional, Protocol
import structlog
from pydantic import BaseModel, Field
from langchain_core.tools import StructuredTool

from teto_agent.domain.context.memory.cache_memory_store import CacheMemoryStore
from teto_agent.domain.models.errors import BackendApiError, ToolLookupError
from teto_agent.infrastructure.backend.api_client import LyricsRecord

logger = structlog.get_logger(__name__)


class LyricsSource(Protocol):
    async def get_lyrics(self, artist: str, title: str) -> Optional[LyricsRecord]:
        ...


class GetLyricsInput(BaseModel):
    song: str = Field(description="The title of the song")
    artist: str = Field(description="The name of the artist or band")


def _normalize_key(value: str) -> str:
    return value.strip().lower().replace(" ", "_")


class LyricsService:
    """Looks lyrics up in the local cache first, then the backend"""

    def __init__(self, source: LyricsSource, cache: Optional[CacheMemoryStore] = None, ttl: int = 3600):
        self.source = source
        self.cache = cache or CacheMemoryStore(namespace="lyrics")
        self.ttl = ttl

    async def lookup(self, song: str, artist: str) -> str:
        key = f"{_normalize_key(artist)}:{_normalize_key(song)}"

        try:
            record = await self.cache.get_or_load(
                key,
                lambda: self.source.get_lyrics(artist, song),
                ttl=self.ttl,
            )
        except BackendApiError as e:
            logger.warning("Lyrics lookup failed", song=song, artist=artist, error=str(e))
            raise ToolLookupError(
                f'Could not find lyrics for "{song}" by {artist}. Error: {e}'
            ) from e

        if record is None:
            logger.info("Lyrics not in cache", song=song, artist=artist)
            raise ToolLookupError(
                f'Lyrics for "{song}" by {artist} are not available in our database. '
                "External lyrics services are currently disabled."
            )

        logger.info("Found lyrics", title=record.title, artist=record.artist)
        return f'Found lyrics for "{record.title}" by {record.artist}:\n\n{record.lyrics}'


def create_lyrics_tool(service: LyricsService) -> StructuredTool:
    async def get_lyrics(song: str, artist: str) -> str:
        return await service.lookup(song, artist)

    return StructuredTool.from_function(
        coroutine=get_lyrics,
        name="get_lyrics",
        description=(
            "Get the lyrics for a specific song by providing the song title "
            "and artist name"
        ),
        args_schema=GetLyricsInput,
    )
