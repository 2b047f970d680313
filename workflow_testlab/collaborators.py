# workflow_testlab/collaborators.py
"""External services that domain connectors call on a best-effort basis.

Connectors never let a failure here escape: any exception from a
collaborator sends them down their mock path instead.
"""
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx

from .config import Settings
from .exceptions import CollaboratorError, CollaboratorUnavailable

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentService(Protocol):
    def create_document(self, title: str, content: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        """Create a document and return at least ``id`` and ``url``."""
        ...


@runtime_checkable
class RecordStore(Protocol):
    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    def upsert(self, table: str, key: str, values: Dict[str, Any]) -> Dict[str, Any]:
        ...


@runtime_checkable
class AuthProvider(Protocol):
    def current_user_id(self) -> str:
        ...


async def maybe_await(value: Any) -> Any:
    """Collaborators may be sync or async; normalise to a plain value."""
    if inspect.isawaitable(value):
        return await value
    return value


class OfflineService:
    """Stands in for every collaborator when nothing real is configured."""

    def __init__(self, name: str):
        self.name = name

    def _unavailable(self, *args: Any, **kwargs: Any) -> Any:
        raise CollaboratorUnavailable(f"{self.name} is not configured")

    create_document = _unavailable
    insert = _unavailable
    upsert = _unavailable
    current_user_id = _unavailable


class _HttpService:
    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"{method} {path} failed: {exc}") from exc
        return response.json() if response.content else {}


class HttpDocumentService(_HttpService):
    async def create_document(self, title: str, content: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        body = {"title": title, "content": content, "folder_id": folder_id}
        doc = await self._request("POST", "/documents", json=body)
        if not doc.get("id"):
            raise CollaboratorError("document service returned no id")
        return doc


class HttpRecordStore(_HttpService):
    async def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        result = await self._request("POST", f"/records/{table}", json=rows)
        return result if isinstance(result, list) else [result]

    async def upsert(self, table: str, key: str, values: Dict[str, Any]) -> Dict[str, Any]:
        result = await self._request("PUT", f"/records/{table}", params={"on_conflict": key}, json=values)
        if isinstance(result, list):
            result = result[0] if result else {}
        return result


class HttpAuthProvider(_HttpService):
    def __init__(self, client: httpx.AsyncClient, fallback_user_id: Optional[str] = None):
        super().__init__(client)
        self._fallback_user_id = fallback_user_id

    async def current_user_id(self) -> str:
        try:
            session = await self._request("GET", "/auth/session")
        except CollaboratorError:
            if self._fallback_user_id:
                return self._fallback_user_id
            raise
        user_id = (session.get("user") or {}).get("id")
        if not user_id:
            raise CollaboratorError("no authenticated user")
        return user_id


@dataclass
class Collaborators:
    documents: Any
    records: Any
    auth: Any
    # shared by the REST services; None when nothing needs closing
    client: Optional[httpx.AsyncClient] = None

    @classmethod
    def offline(cls) -> "Collaborators":
        return cls(
            documents=OfflineService("document service"),
            records=OfflineService("record store"),
            auth=OfflineService("auth provider"),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Collaborators":
        if not settings.collaborator_base_url:
            return cls.offline()
        headers = {}
        if settings.collaborator_api_key is not None:
            headers["Authorization"] = f"Bearer {settings.collaborator_api_key.get_secret_value()}"
        client = httpx.AsyncClient(
            base_url=settings.collaborator_base_url,
            headers=headers,
            timeout=settings.collaborator_timeout_s,
        )
        logger.info("using REST collaborators at %s", settings.collaborator_base_url)
        return cls(
            documents=HttpDocumentService(client),
            records=HttpRecordStore(client),
            auth=HttpAuthProvider(client, settings.collaborator_user_id),
            client=client,
        )

    async def aclose(self) -> None:
        if self.client is not None and not self.client.is_closed:
            await self.client.aclose()
