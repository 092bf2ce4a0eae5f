"""HTTP clients for the remote content store and the reasoning service.

Both clients turn every transport failure, non-success status and
undecodable body into the engine's error taxonomy, so callers only ever
deal with ``TransientNetworkError``, ``ServiceMisconfigured`` and
``MalformedUpstreamResponse``.
"""

from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from pydantic import ValidationError

from .config import ApiConfig, ReasoningConfig
from .errors import MalformedUpstreamResponse, ServiceMisconfigured, TransientNetworkError
from .models import (
    ArticleSummary,
    CategoryId,
    CategoryPayload,
    MapsPayload,
    NoteSummary,
    TimelineEvent,
)


TIMELINE_CATEGORY = "history_timeline"


class _HttpService:
    """Owns an ``httpx.AsyncClient`` unless one is injected."""

    def __init__(self, timeout: float, http: Optional[httpx.AsyncClient] = None):
        self._timeout = timeout
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout)
        return self._http

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    @staticmethod
    def _decode_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise MalformedUpstreamResponse(f"Invalid JSON from {response.url}: {e}") from e


class RemoteContentClient(_HttpService):
    """Thin client over the mobile content API."""

    def __init__(self, config: ApiConfig, http: Optional[httpx.AsyncClient] = None):
        super().__init__(config.timeout_seconds, http)
        self.config = config
        self.base_url = config.base_url.rstrip("/")

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} params={params}")
        try:
            response = await self.http.get(url, params=params)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"GET {url} failed: {e}") from e

        if response.status_code >= 400:
            raise TransientNetworkError(f"GET {url} returned HTTP {response.status_code}")

        data = self._decode_json(response)
        if not isinstance(data, dict):
            raise MalformedUpstreamResponse(f"Expected a JSON object from {url}")
        return data

    async def fetch_category(self, category: CategoryId) -> CategoryPayload:
        """Fetch and decode the payload for one reference category."""
        category = CategoryId(category)
        if category == CategoryId.MAPS:
            return await self.fetch_maps()
        if category.is_timeline:
            kind = "indian" if category == CategoryId.INDIAN_HISTORY else "world"
            return await self.fetch_timeline(kind)

        data = await self._get_json("/references", {"category": category.value})
        references = data.get("references")
        if not isinstance(references, dict):
            raise MalformedUpstreamResponse(
                f"Expected an object payload for {category.value}, got {type(references).__name__}"
            )
        if not references:
            raise MalformedUpstreamResponse(f"No references published for {category.value}")
        return references

    async def fetch_timeline(self, kind: str) -> List[Dict[str, Any]]:
        """Fetch history events of one kind ('indian' or 'world').

        The store keeps both timelines in one table, distinguished by a
        ``indian_`` / ``world_`` category prefix that is stripped here.
        """
        CategoryId.for_timeline(kind)
        data = await self._get_json("/references", {"category": TIMELINE_CATEGORY})
        raw_events = data.get("references") or []
        if not isinstance(raw_events, list):
            raise MalformedUpstreamResponse("Expected a list of timeline events")

        prefix = f"{kind}_"
        events = []
        try:
            for raw in raw_events:
                event = TimelineEvent.model_validate(raw)
                if not event.category.lower().startswith(prefix):
                    continue
                event.category = event.category[len(prefix):].replace("_", " ")
                events.append(event.model_dump())
        except ValidationError as e:
            raise MalformedUpstreamResponse(f"Invalid timeline event: {e}") from e

        logger.debug(f"Fetched {len(events)} {kind} history events")
        return events

    async def fetch_maps(self) -> Dict[str, Any]:
        data = await self._get_json("/maps")
        try:
            maps = MapsPayload.model_validate(data)
        except ValidationError as e:
            raise MalformedUpstreamResponse(f"Invalid maps payload: {e}") from e
        total = sum(len(items) for items in maps.sections.values())
        logger.debug(f"Fetched {total} maps in {len(maps.sections)} sections")
        return maps.to_payload()

    async def fetch_recent_articles(self, limit: int) -> List[ArticleSummary]:
        """Fetch the most recent published articles, newest first."""
        data = await self._get_json("/articles", {"page": 1, "limit": limit})
        try:
            articles = [ArticleSummary.model_validate(a) for a in data.get("articles") or []]
        except ValidationError as e:
            raise MalformedUpstreamResponse(f"Invalid article summary: {e}") from e
        return articles[:limit]

    async def fetch_recent_notes(self, limit: int) -> List[NoteSummary]:
        """Fetch the most recently updated notes, newest first."""
        params: Dict[str, Any] = {"page": 1, "limit": limit}
        if self.config.user_id:
            params["userId"] = self.config.user_id
        data = await self._get_json("/notes", params)
        try:
            notes = [NoteSummary.model_validate(n) for n in data.get("notes") or []]
        except ValidationError as e:
            raise MalformedUpstreamResponse(f"Invalid note summary: {e}") from e

        # The store orders pinned notes first; recency is what bounds a scan
        notes.sort(key=lambda n: n.updated_at.timestamp() if n.updated_at else 0.0, reverse=True)
        return notes[:limit]


class ReasoningClient(_HttpService):
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(self, config: ReasoningConfig, http: Optional[httpx.AsyncClient] = None):
        super().__init__(config.timeout_seconds, http)
        self.config = config

    @property
    def has_credential(self) -> bool:
        return bool(self.config.resolve_api_key())

    async def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        response_format: Optional[str] = "json"
    ) -> str:
        """Send one completion request and return the reply text.

        Args:
            system_prompt: Instruction placed first in the conversation
            messages: Prior turns as ``{"role", "content"}`` dicts
            response_format: ``"json"`` to request a strict JSON object, or None

        Raises:
            ServiceMisconfigured: No credential is configured
            TransientNetworkError: Transport failure or error status
            MalformedUpstreamResponse: The reply carries no content
        """
        api_key = self.config.resolve_api_key()
        if not api_key:
            raise ServiceMisconfigured("Reasoning service API key is not configured")

        body: Dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if response_format == "json":
            body["response_format"] = {"type": "json_object"}

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.config.referer,
            "X-Title": self.config.title,
        }

        try:
            response = await self.http.post(self.config.endpoint, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise TransientNetworkError(f"Reasoning request failed: {e}") from e

        if response.status_code >= 400:
            detail = ""
            try:
                detail = (response.json().get("error") or {}).get("message", "")
            except (ValueError, AttributeError):
                pass
            raise TransientNetworkError(
                f"Reasoning service returned HTTP {response.status_code}: {detail or 'Unknown API Error'}"
            )

        data = self._decode_json(response)
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedUpstreamResponse("Reasoning response has no choices") from e
        if not content:
            raise MalformedUpstreamResponse("Reasoning response is empty")
        return content
