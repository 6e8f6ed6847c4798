from __future__ import annotations
"""Exchanges a key and an operation for a short-lived signed URL."""
import asyncio
import logging

from .errors import AuthorizationError
from .models import Operation, TransferAuthorization

LOGGER = logging.getLogger(__name__)


class TransferAuthorizer:
    """Requests a fresh authorization from the backend for every transfer.

    Nothing is cached: an authorization is good for one key and one
    operation, and each orchestration call asks for its own.
    """

    def __init__(self, backend, *, timeout: float | None = None):
        self._backend = backend
        self._timeout = timeout

    async def authorize(self, key: str, operation: Operation) -> TransferAuthorization:
        if not key:
            raise AuthorizationError("Cannot authorize an empty key")
        LOGGER.debug("Requesting %s authorization for '%s'", operation.value, key)
        try:
            authorization = await asyncio.wait_for(
                self._backend.authorize(key, operation),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise AuthorizationError(f"Authorization for '{key}' timed out") from exc
        if authorization.key != key or authorization.operation is not operation:
            raise AuthorizationError(
                f"Backend returned an authorization for {authorization.operation.value} "
                f"of '{authorization.key}' instead of {operation.value} of '{key}'"
            )
        return authorization
