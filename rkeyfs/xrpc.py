from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from rkeyfs.errors import RemoteFailure
from rkeyfs.models import DEFAULT_COLLECTION, DEFAULT_MIME_TYPE, BlobRef, RecordValue, StoredRecord
from rkeyfs.store import DEFAULT_LIST_LIMIT


LIST_PAGE_SIZE = 100
DEFAULT_TIMEOUT_SECONDS = 30.0
NOT_FOUND_ERRORS = {"RecordNotFound", "BlobNotFound"}
T = TypeVar("T")

logger = logging.getLogger(__name__)


def _iter_exception_chain(exc: BaseException):
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_timeout_error(exc: BaseException) -> bool:
    for current in _iter_exception_chain(exc):
        if isinstance(current, (httpx.TimeoutException, TimeoutError)):
            return True
        message = str(current).lower()
        if "timed out" in message or "timeout" in message:
            return True
    return False


async def _retry_on_timeout(
    func: Callable[[], Awaitable[T]],
    *,
    operation: str,
    max_attempts: int = 3,
    base_delay_seconds: float = 1.0,
) -> T:
    attempt = 1
    while True:
        try:
            return await func()
        except Exception as exc:
            if attempt >= max_attempts or not _is_timeout_error(exc):
                raise
            sleep_seconds = base_delay_seconds * (2 ** (attempt - 1))
            logger.warning(
                "xrpc timeout operation=%s attempt=%d retry_in=%.1fs",
                operation,
                attempt,
                sleep_seconds,
            )
            await asyncio.sleep(sleep_seconds)
            attempt += 1


def _rkey_from_uri(uri: Any) -> str | None:
    if not uri:
        return None
    value = str(uri)
    if not value.startswith("at://"):
        return None
    parts = value[len("at://"):].split("/")
    if len(parts) != 3 or not parts[2]:
        return None
    return parts[2]


def _failure_from_response(method: str, response: httpx.Response) -> RemoteFailure:
    error: str | None = None
    message = response.reason_phrase
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        error = payload.get("error") or None
        message = payload.get("message") or message
    detail = f"{error}: {message}" if error else message
    return RemoteFailure(
        f"{method} failed ({response.status_code}): {detail}",
        status_code=response.status_code,
        error=error,
    )


class XrpcRecordStore:
    """Record store client for an XRPC service using a pre-issued access token."""

    def __init__(
        self,
        service_url: str,
        *,
        access_token: str | None = None,
        collection: str = DEFAULT_COLLECTION,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        if not service_url.strip():
            raise ValueError("service_url is empty.")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1.")

        self.service_url = service_url.strip().rstrip("/")
        self.collection = collection
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self._headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    async def __aenter__(self) -> "XrpcRecordStore":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, method: str) -> str:
        return f"{self.service_url}/xrpc/{method}"

    async def _call(
        self,
        http_method: str,
        method: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        request_headers = {**self._headers, **(headers or {})}

        async def _send() -> httpx.Response:
            return await self._client.request(
                http_method,
                self._url(method),
                params=params,
                json=json,
                content=content,
                headers=request_headers,
            )

        try:
            response = await _retry_on_timeout(
                _send,
                operation=method,
                max_attempts=self.max_attempts,
                base_delay_seconds=self.retry_delay_seconds,
            )
        except httpx.HTTPError as exc:
            raise RemoteFailure(f"{method} failed: {exc}") from exc

        if response.is_error:
            raise _failure_from_response(method, response)
        return response

    @staticmethod
    def _json(method: str, response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteFailure(
                f"{method} returned a non-JSON body", status_code=response.status_code
            ) from exc
        if not isinstance(payload, dict):
            raise RemoteFailure(f"{method} returned an unexpected body", status_code=response.status_code)
        return payload

    async def list_records(self, account_id: str, limit: int = DEFAULT_LIST_LIMIT) -> list[StoredRecord]:
        method = "com.atproto.repo.listRecords"
        records: list[StoredRecord] = []
        cursor: str | None = None
        pages = 0

        while len(records) < limit:
            params: dict[str, Any] = {
                "repo": account_id,
                "collection": self.collection,
                "limit": min(LIST_PAGE_SIZE, limit - len(records)),
            }
            if cursor:
                params["cursor"] = cursor
            payload = self._json(method, await self._call("GET", method, params=params))
            pages += 1

            page = payload.get("records") or []
            for item in page:
                key = _rkey_from_uri(item.get("uri")) if isinstance(item, dict) else None
                if key is None:
                    logger.debug("xrpc skip record without rkey item=%r", item)
                    continue
                records.append(StoredRecord(key=key, value=RecordValue.from_json(item.get("value"))))

            cursor = payload.get("cursor") or None
            if not cursor or not page:
                break

        if cursor and len(records) >= limit:
            logger.warning(
                "xrpc listing truncated account=%s limit=%d; remaining records are not visible",
                account_id,
                limit,
            )
        logger.info("xrpc list_records account=%s records=%d pages=%d", account_id, len(records), pages)
        return records[:limit]

    async def get_record(self, account_id: str, key: str) -> RecordValue | None:
        method = "com.atproto.repo.getRecord"
        try:
            response = await self._call(
                "GET",
                method,
                params={"repo": account_id, "collection": self.collection, "rkey": key},
            )
        except RemoteFailure as exc:
            if exc.status_code == 404 or exc.error in NOT_FOUND_ERRORS:
                return None
            raise
        return RecordValue.from_json(self._json(method, response).get("value"))

    async def put_record(self, account_id: str, key: str, value: RecordValue) -> None:
        await self._call(
            "POST",
            "com.atproto.repo.putRecord",
            json={
                "repo": account_id,
                "collection": self.collection,
                "rkey": key,
                "record": value.to_json(self.collection),
            },
        )
        logger.info("xrpc put_record account=%s key=%s", account_id, key)

    async def delete_record(self, account_id: str, key: str) -> None:
        await self._call(
            "POST",
            "com.atproto.repo.deleteRecord",
            json={"repo": account_id, "collection": self.collection, "rkey": key},
        )
        logger.info("xrpc delete_record account=%s key=%s", account_id, key)

    async def upload_blob(self, data: bytes, mime_type: str = DEFAULT_MIME_TYPE) -> BlobRef:
        method = "com.atproto.repo.uploadBlob"
        response = await self._call("POST", method, content=data, headers={"Content-Type": mime_type})
        blob = BlobRef.from_json(self._json(method, response).get("blob"))
        if blob is None:
            raise RemoteFailure(f"{method} returned no blob reference", status_code=response.status_code)
        logger.info("xrpc upload_blob cid=%s size=%d", blob.cid, blob.size)
        return blob

    async def download_blob(self, account_id: str, blob: BlobRef) -> bytes:
        response = await self._call(
            "GET",
            "com.atproto.sync.getBlob",
            params={"did": account_id, "cid": blob.cid},
        )
        return response.content
