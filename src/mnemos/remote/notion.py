"""Notion database as the remote system of record for memories."""

from typing import Any

import httpx

from mnemos.core.logging import get_logger
from mnemos.core.types import parse_timestamp
from mnemos.core.typing import JSONDict
from mnemos.memory.base import RemoteMemory, RemoteStore, RemoteStoreError

logger = get_logger("remote.notion")

NOTION_API_URL = "https://api.notion.com/v1"
PAGE_SIZE = 100
MAX_TEXT_LENGTH = 2000  # Notion limit per rich text item


def _rich_text(content: str) -> list[JSONDict]:
    """Split content into Notion-sized text items."""
    chunks = [content[i:i + MAX_TEXT_LENGTH] for i in range(0, len(content), MAX_TEXT_LENGTH)]
    return [{"type": "text", "text": {"content": chunk}} for chunk in chunks or [""]]


class NotionRemoteStore(RemoteStore):
    """Memories as pages of a Notion database, one title per memory."""

    def __init__(
        self,
        api_key: str,
        database_id: str,
        title_property: str = "Name",
        notion_version: str = "2022-06-28",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.database_id = database_id
        self.title_property = title_property
        self._client = httpx.AsyncClient(
            base_url=NOTION_API_URL,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Notion-Version": notion_version,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"Notion request failed: {e}") from e
        if response.status_code >= 400 and response.status_code != 404:
            raise RemoteStoreError(f"Notion API error: HTTP {response.status_code}: {response.text}")
        return response

    async def load_all(self) -> list[RemoteMemory]:
        """Query every page of the database, following cursors."""
        memories: list[RemoteMemory] = []
        cursor: str | None = None

        while True:
            body: JSONDict = {"page_size": PAGE_SIZE}
            if cursor:
                body["start_cursor"] = cursor

            response = await self._request(
                "POST", f"/databases/{self.database_id}/query", json=body
            )
            if response.status_code == 404:
                raise RemoteStoreError(f"Notion database not found: {self.database_id}")
            data = response.json()

            for page in data.get("results", []):
                memory = self._parse_page(page)
                if memory:
                    memories.append(memory)

            if not data.get("has_more") or not data.get("next_cursor"):
                break
            cursor = data["next_cursor"]

        logger.info(f"Loaded {len(memories)} memories from Notion")
        return memories

    async def create(self, content: str) -> str:
        response = await self._request(
            "POST",
            "/pages",
            json={
                "parent": {"database_id": self.database_id},
                "properties": self._properties(content),
            },
        )
        if response.status_code == 404:
            raise RemoteStoreError(f"Notion database not found: {self.database_id}")
        page_id = response.json()["id"]
        logger.debug(f"Created Notion page {page_id}")
        return page_id

    async def update(self, memory_id: str, content: str) -> bool:
        response = await self._request(
            "PATCH", f"/pages/{memory_id}", json={"properties": self._properties(content)}
        )
        if response.status_code == 404:
            logger.warning(f"Notion page {memory_id} not found for update")
            return False
        return True

    async def archive(self, memory_id: str) -> bool:
        response = await self._request(
            "PATCH", f"/pages/{memory_id}", json={"archived": True}
        )
        if response.status_code == 404:
            logger.warning(f"Notion page {memory_id} not found for archive")
            return False
        return True

    def _properties(self, content: str) -> JSONDict:
        return {self.title_property: {"title": _rich_text(content)}}

    def _parse_page(self, page: JSONDict) -> RemoteMemory | None:
        if page.get("object") != "page" or page.get("archived") or page.get("in_trash"):
            return None

        prop = page.get("properties", {}).get(self.title_property)
        if not prop or prop.get("type") != "title":
            return None

        content = "".join(item.get("plain_text", "") for item in prop.get("title", []))
        if not content:
            return None

        timestamp = page.get("last_edited_time") or page.get("created_time")
        if not timestamp:
            return None

        return RemoteMemory(id=page["id"], content=content, updated_at=parse_timestamp(timestamp))
