"""Shared httpx plumbing for the show, catalog and setlist provider clients."""

from __future__ import annotations

from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from datetime import UTC, datetime
from typing import Any

import httpx

from concertsync.integrations.contracts import (
    ProviderAuthError,
    ProviderDependencyError,
    ProviderError,
    ProviderInternalError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
    ProviderTimeoutError,
    ProviderValidationError,
)
from concertsync.utils.retry import RetryDirective, RetryPolicy, with_retry


def _parse_retry_after_ms(headers: Mapping[str, str]) -> int | None:
    value = headers.get("Retry-After") or headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0, int(value) * 1000)
    except (TypeError, ValueError):
        pass
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return max(0, int((parsed - datetime.now(UTC)).total_seconds() * 1000))


def _build_timeout(timeout_ms: int) -> httpx.Timeout:
    timeout_seconds = max(timeout_ms, 100) / 1000
    return httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 5.0))


class ProviderHttpClient:
    """Issue JSON requests and map transport failures onto ``ProviderError``."""

    provider: str = "provider"

    def __init__(
        self,
        base_url: str,
        *,
        policy: RetryPolicy,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.policy = policy
        self.transport = transport
        self._clients: dict[str, httpx.AsyncClient] = {}

    def _client_for(self, base_url: str) -> httpx.AsyncClient:
        client = self._clients.get(base_url)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                base_url=base_url,
                timeout=_build_timeout(self.policy.timeout_ms or 10_000),
                transport=self.transport,
            )
            self._clients[base_url] = client
        return client

    async def aclose(self) -> None:
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.aclose()

    def _default_headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _default_params(self) -> dict[str, Any]:
        return {}

    async def _get_json(
        self,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        response = await self._request("GET", path, params=params, headers=headers)
        return self._decode_json(response)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        base_url: str | None = None,
    ) -> httpx.Response:
        merged_params = {**self._default_params(), **dict(params or {})}
        merged_headers = {**self._default_headers(), **dict(headers or {})}
        timeout_ms = self.policy.timeout_ms or 10_000

        client = self._client_for(base_url or self.base_url)

        async def _perform_request() -> httpx.Response:
            try:
                response = await client.request(
                    method,
                    path,
                    params=merged_params or None,
                    headers=merged_headers,
                    data=data,
                    auth=auth,
                )
            except httpx.TimeoutException as exc:
                raise ProviderTimeoutError(self.provider, timeout_ms, cause=exc) from exc
            except httpx.HTTPError as exc:
                raise ProviderDependencyError(
                    self.provider,
                    f"{self.provider} request failed: {exc}",
                    cause=exc,
                    retryable=True,
                ) from exc
            return self._check_status(response)

        def _classify(error: Exception) -> RetryDirective:
            if isinstance(error, ProviderRateLimitedError):
                # Waits longer than one request timeout are left to the caller.
                if error.retry_after_ms is not None and error.retry_after_ms > timeout_ms:
                    return RetryDirective(retry=False, error=error)
                return RetryDirective(
                    retry=True, delay_override_ms=error.retry_after_ms, error=error
                )
            if isinstance(error, ProviderError):
                return RetryDirective(retry=error.retryable, error=error)
            if isinstance(error, TimeoutError):
                return RetryDirective(
                    retry=True,
                    error=ProviderTimeoutError(self.provider, timeout_ms, cause=error),
                )
            return RetryDirective(retry=False, error=error)

        return await with_retry(_perform_request, policy=self.policy, classify_err=_classify)

    def _check_status(self, response: httpx.Response) -> httpx.Response:
        status_code = response.status_code
        if 200 <= status_code < 300:
            return response
        name = self.provider
        if status_code == httpx.codes.TOO_MANY_REQUESTS:
            raise ProviderRateLimitedError(
                name,
                f"{name} rate limited the request",
                retry_after_ms=_parse_retry_after_ms(response.headers),
                status_code=status_code,
            )
        if status_code == httpx.codes.NOT_FOUND:
            raise ProviderNotFoundError(
                name, f"{name} returned no results", status_code=status_code
            )
        if status_code in {httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN}:
            raise ProviderAuthError(
                name, f"{name} refused the credentials", status_code=status_code
            )
        if 400 <= status_code < 500:
            raise ProviderValidationError(
                name, f"{name} rejected the request", status_code=status_code
            )
        raise ProviderDependencyError(
            name,
            f"{name} dependency failure ({status_code})",
            status_code=status_code,
            retryable=True,
        )

    def _decode_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderInternalError(
                self.provider, f"{self.provider} returned invalid JSON", cause=exc
            ) from exc


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_list(value: Any) -> list[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["ProviderHttpClient"]
