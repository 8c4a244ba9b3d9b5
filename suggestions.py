"""
Destination suggestions via Gemini with Google Maps grounding.

Best effort: every failure becomes ProviderUnavailable and the apply form
falls back to manual entry. Quota exhaustion is reported separately because
it disables lookups for the rest of the session.
"""
import asyncio
import logging
import re
from typing import Awaitable, Callable, List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from errors import ProviderUnavailable
from schemas import Location, PlaceSuggestion

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5
QUOTA_MESSAGE = "Search limit reached. Please type destination manually."
UNAVAILABLE_MESSAGE = "Search currently unavailable. Manual entry enabled."

_LIST_PREFIX = re.compile(r"^\d+\.\s*")


def is_quota_error(exc: Exception) -> bool:
    if getattr(exc, "code", None) == 429:
        return True
    text = f"{getattr(exc, 'status', '') or ''} {exc}"
    return "429" in text or "RESOURCE_EXHAUSTED" in text


def parse_suggestions(response) -> List[PlaceSuggestion]:
    """Maps grounding chunks first, else the first non-empty lines of the text."""
    candidates = getattr(response, "candidates", None) or []
    metadata = getattr(candidates[0], "grounding_metadata", None) if candidates else None
    chunks = (getattr(metadata, "grounding_chunks", None) if metadata else None) or []

    results = []
    for chunk in chunks:
        place = getattr(chunk, "maps", None)
        if place is None:
            continue
        results.append(PlaceSuggestion(title=place.title or "Suggested Place", uri=place.uri or ""))

    if not results and getattr(response, "text", None):
        lines = [line for line in response.text.split("\n") if line.strip()][:MAX_SUGGESTIONS]
        results = [PlaceSuggestion(title=_LIST_PREFIX.sub("", line.strip()).strip()) for line in lines]

    return results[:MAX_SUGGESTIONS]


class PlaceSuggestionClient:
    def __init__(self, api_key: str = "", model: str = "gemini-2.5-flash", client=None):
        self.api_key = api_key
        self.model = model
        self._client = client

    def _get_client(self):
        if self._client is None:
            if not self.api_key:
                raise ProviderUnavailable("GEMINI_API_KEY is not configured")
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    @staticmethod
    def build_prompt(query: str) -> str:
        return (
            f'I am at RGIPT, Jais. I am applying for a gate pass to: "{query}". '
            "Provide 5 matching local locations in India. Use Google Maps tool."
        )

    async def suggest(self, query: str, location: Location) -> List[PlaceSuggestion]:
        client = self._get_client()
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_maps=types.GoogleMaps())],
            tool_config=types.ToolConfig(
                retrieval_config=types.RetrievalConfig(
                    lat_lng=types.LatLng(latitude=location.latitude, longitude=location.longitude),
                ),
            ),
        )
        try:
            response = await client.aio.models.generate_content(
                model=self.model,
                contents=self.build_prompt(query),
                config=config,
            )
        except genai_errors.APIError as e:
            quota = is_quota_error(e)
            logger.warning("Place lookup failed (quota=%s): %s", quota, e)
            raise ProviderUnavailable(str(e), quota_exceeded=quota) from e
        except Exception as e:
            logger.warning("Place lookup failed: %s", e)
            raise ProviderUnavailable(str(e), quota_exceeded=is_quota_error(e)) from e
        return parse_suggestions(response)


async def resolve_location(
    locate: Optional[Callable[[], Awaitable[Location]]],
    timeout: float,
    fallback: Location,
) -> Location:
    """Single-shot position fetch; denial, failure or timeout gives ``fallback``."""
    if locate is None:
        return fallback
    try:
        return await asyncio.wait_for(locate(), timeout)
    except asyncio.TimeoutError:
        logger.info("Location lookup timed out after %ss, using fallback", timeout)
    except Exception as e:
        logger.info("Location unavailable (%s), using fallback", e)
    return fallback
