from __future__ import annotations
"""HTTP client for the authorization backend."""
from datetime import datetime, timedelta, timezone
import logging
from typing import Any

import httpx

from .errors import AuthorizationError, BundlingError, ListingError
from .keyspace import bundle_filename, normalize_prefix
from .models import Bundle, Listing, ObjectRecord, Operation, TransferAuthorization

LOGGER = logging.getLogger(__name__)

LISTING_PATH = "/listing"
AUTHORIZATION_PATH = "/transfer-authorization"
BUNDLE_PATH = "/bundle"
DEFAULT_AUTHORIZATION_TTL = timedelta(hours=1)


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string or epoch seconds into an aware datetime."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _first(entry: dict, *names: str) -> Any:
    for name in names:
        if name in entry:
            return entry[name]
    return None


def parse_object_record(entry: Any) -> ObjectRecord:
    if not isinstance(entry, dict):
        raise ListingError(f"Listing entry is not an object: {entry!r}")
    key = _first(entry, "key", "Key")
    size = _first(entry, "sizeBytes", "size", "Size")
    modified = _first(entry, "lastModified", "LastModified")
    if not isinstance(key, str) or not key:
        raise ListingError(f"Listing entry has no key: {entry!r}")
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ListingError(f"Listing entry '{key}' has an invalid size: {size!r}")
    try:
        last_modified = parse_timestamp(modified)
    except ValueError as exc:
        raise ListingError(f"Listing entry '{key}' has an invalid timestamp") from exc
    return ObjectRecord(key=key, size_bytes=size, last_modified=last_modified)


def parse_listing(prefix: str, payload: Any) -> Listing:
    """Validate a listing payload; malformed shapes raise :class:`ListingError`."""

    if not isinstance(payload, dict):
        raise ListingError("Listing response is not an object")
    files = payload.get("files", [])
    folders = payload.get("folders", [])
    if not isinstance(files, list) or not isinstance(folders, list):
        raise ListingError("Listing response must contain 'files' and 'folders' lists")
    records = tuple(parse_object_record(entry) for entry in files)
    prefixes: list[str] = []
    for folder in folders:
        if not isinstance(folder, str) or not folder.strip():
            raise ListingError(f"Invalid folder prefix: {folder!r}")
        normalized = normalize_prefix(folder)
        if normalized not in prefixes:
            prefixes.append(normalized)
    return Listing(prefix=prefix, files=records, folders=tuple(prefixes))


def parse_authorization(key: str, operation: Operation, payload: Any) -> TransferAuthorization:
    if not isinstance(payload, dict):
        raise AuthorizationError("Authorization response is not an object")
    url = payload.get("url")
    if not isinstance(url, str) or not url:
        raise AuthorizationError(f"Authorization response for '{key}' has no url")
    expires = payload.get("expiresAt")
    if expires is None:
        expires_at = datetime.now(timezone.utc) + DEFAULT_AUTHORIZATION_TTL
    else:
        try:
            expires_at = parse_timestamp(expires)
        except ValueError as exc:
            raise AuthorizationError(f"Authorization for '{key}' has an invalid expiry") from exc
    return TransferAuthorization(key=key, operation=operation, url=url, expires_at=expires_at)


def _describe_status(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return f"{response.status_code}: {body['error']}"
    return f"{response.status_code} {response.reason_phrase}".strip()


class BackendClient:
    """Talks to the authorization backend that owns the storage credentials.

    The client never sees storage credentials: it only asks for listings,
    per-object signed URLs and folder bundles. Session authentication is
    expected to be configured on the supplied ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout),
        )
        LOGGER.debug("Initialized BackendClient [base_url=%s]", base_url)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_listing(self, prefix: str) -> Listing:
        params = {"prefix": prefix} if prefix else {}
        try:
            response = await self._client.get(LISTING_PATH, params=params)
        except httpx.HTTPError as exc:
            raise ListingError(f"Could not reach backend to list '{prefix}': {exc}") from exc
        if not response.is_success:
            raise ListingError(f"Listing '{prefix}' failed with {_describe_status(response)}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ListingError(f"Listing '{prefix}' returned invalid JSON") from exc
        listing = parse_listing(prefix, payload)
        LOGGER.debug(
            "Listed '%s': %d file(s), %d folder(s)",
            prefix,
            len(listing.files),
            len(listing.folders),
        )
        return listing

    async def authorize(self, key: str, operation: Operation) -> TransferAuthorization:
        params = {"key": key, "op": operation.value}
        try:
            response = await self._client.get(AUTHORIZATION_PATH, params=params)
        except httpx.HTTPError as exc:
            raise AuthorizationError(f"Could not reach backend to authorize '{key}': {exc}") from exc
        if not response.is_success:
            raise AuthorizationError(
                f"Backend denied {operation.value} of '{key}' ({_describe_status(response)})"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthorizationError(f"Authorization for '{key}' returned invalid JSON") from exc
        return parse_authorization(key, operation, payload)

    async def request_bundle(self, prefix: str) -> Bundle:
        filename = bundle_filename(prefix)
        try:
            response = await self._client.post(BUNDLE_PATH, params={"prefix": prefix})
        except httpx.HTTPError as exc:
            raise BundlingError(f"Could not reach backend to bundle '{prefix}': {exc}") from exc
        if not response.is_success:
            raise BundlingError(f"Bundling '{prefix}' failed with {_describe_status(response)}")
        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/json"):
            try:
                payload = response.json()
            except ValueError as exc:
                raise BundlingError(f"Bundling '{prefix}' returned invalid JSON") from exc
            url = payload.get("url") if isinstance(payload, dict) else None
            if not isinstance(url, str) or not url:
                raise BundlingError(f"Bundling '{prefix}' returned no archive location")
            return Bundle(prefix=prefix, filename=filename, url=url)
        if not response.content:
            raise BundlingError(f"Bundling '{prefix}' returned an empty archive")
        return Bundle(prefix=prefix, filename=filename, content=response.content)
