from __future__ import annotations
"""In-process authorization backend serving listings, signed URLs and bundles from S3."""
import asyncio
from datetime import datetime, timedelta, timezone
import io
import logging
from typing import Callable
import zipfile

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import AuthorizationError, BundlingError, ListingError
from .keyspace import SEPARATOR, bundle_filename, derive_display_name
from .models import Bundle, Listing, ObjectRecord, Operation, TransferAuthorization

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 1000
URL_EXPIRY_SECONDS = 3600


class S3FolderBackend:
    """Answers the backend contract directly from a bucket.

    This is the trusted side: it holds the storage credentials and hands out
    nothing but listings, one-hour signed URLs and folder archives. Blocking
    boto3 calls run in worker threads so the event loop is never stalled.
    """

    def __init__(
        self,
        *,
        bucket_name: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region_name: str | None = None,
        expires_in: int = URL_EXPIRY_SECONDS,
        client_factory: Callable[..., object] | None = None,
    ):
        if expires_in <= 0:
            raise ValueError("expires_in must be greater than zero")
        self._bucket = bucket_name
        self._expires_in = expires_in
        factory = client_factory or boto3.client
        self._client = factory(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region_name,
            config=Config(signature_version="s3v4"),
        )

    async def fetch_listing(self, prefix: str) -> Listing:
        try:
            return await asyncio.to_thread(self._list_prefix, prefix)
        except (ClientError, BotoCoreError) as exc:
            raise ListingError(f"Could not list '{prefix}': {exc}") from exc

    async def authorize(self, key: str, operation: Operation) -> TransferAuthorization:
        client_method = "get_object" if operation is Operation.READ else "put_object"
        issued_at = datetime.now(timezone.utc)
        try:
            url = await asyncio.to_thread(
                self._client.generate_presigned_url,
                client_method,
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=self._expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise AuthorizationError(f"Could not sign {operation.value} of '{key}': {exc}") from exc
        return TransferAuthorization(
            key=key,
            operation=operation,
            url=url,
            expires_at=issued_at + timedelta(seconds=self._expires_in),
        )

    async def request_bundle(self, prefix: str) -> Bundle:
        if not prefix:
            raise BundlingError("Refusing to bundle the whole bucket")
        try:
            content = await asyncio.to_thread(self._build_archive, prefix)
        except (ClientError, BotoCoreError) as exc:
            raise BundlingError(f"Could not bundle '{prefix}': {exc}") from exc
        return Bundle(prefix=prefix, filename=bundle_filename(prefix), content=content)

    def _iter_pages(self, prefix: str, delimiter: str | None):
        request_token: str | None = None
        while True:
            list_params = {"Bucket": self._bucket, "MaxKeys": PAGE_SIZE}
            if prefix:
                list_params["Prefix"] = prefix
            if delimiter:
                list_params["Delimiter"] = delimiter
            if request_token:
                list_params["ContinuationToken"] = request_token
            response = self._client.list_objects_v2(**list_params)
            yield response
            request_token = response.get("NextContinuationToken")
            if not response.get("IsTruncated", False) or not request_token:
                break

    def _list_prefix(self, prefix: str) -> Listing:
        files: list[ObjectRecord] = []
        folders: list[str] = []
        for response in self._iter_pages(prefix, SEPARATOR):
            for obj in response.get("Contents", []):
                files.append(
                    ObjectRecord(
                        key=obj["Key"],
                        size_bytes=int(obj.get("Size", 0)),
                        last_modified=obj.get("LastModified") or datetime.now(timezone.utc),
                    )
                )
            folders.extend(common["Prefix"] for common in response.get("CommonPrefixes", []))
        LOGGER.debug("Bucket '%s' prefix '%s': %d file(s), %d folder(s)", self._bucket, prefix, len(files), len(folders))
        return Listing(prefix=prefix, files=tuple(files), folders=tuple(folders))

    def _build_archive(self, prefix: str) -> bytes:
        buffer = io.BytesIO()
        count = 0
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for response in self._iter_pages(prefix, None):
                for obj in response.get("Contents", []):
                    key = obj["Key"]
                    name = derive_display_name(key, prefix)
                    if name is None or name.endswith(SEPARATOR):
                        continue
                    body = self._client.get_object(Bucket=self._bucket, Key=key)["Body"]
                    archive.writestr(name, body.read())
                    count += 1
        if count == 0:
            raise BundlingError(f"Nothing to bundle under '{prefix}'")
        LOGGER.debug("Bundled %d object(s) under '%s'", count, prefix)
        return buffer.getvalue()
