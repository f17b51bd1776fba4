"""Fact-checking oracle client over an OpenAI-compatible chat API (xAI Grok).

One bearer-authenticated JSON request per entity. Transient failures
(timeouts, 429, 5xx, transport errors, unparseable bodies) are retried with
exponential backoff via tenacity. When the retry budget runs out the client
returns an OracleError value instead of raising, so a single bad entity never
aborts a batch.

Usage:
    from content_sync.llm.oracle_client import OracleClient

    async with OracleClient.from_settings(settings) as oracle:
        result = await oracle.fetch_finding("artist", "A1", {"name": "DJ X"})
"""

import json
from typing import Any, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from content_sync.config.logging import get_logger
from content_sync.config.prompts import (
    VERIFICATION_SYSTEM_PROMPT,
    build_verification_prompt,
)
from content_sync.config.settings import Settings
from content_sync.data_management.schemas import (
    Correction,
    OracleError,
    OracleErrorKind,
    OracleFinding,
    OracleResult,
    VerificationRequest,
)
from content_sync.errors import MalformedOracleResponse, OracleUnavailable
from content_sync.llm.rate_limiter import RateLimiter

logger = get_logger("oracle")


_TRANSIENT_KINDS = {
    OracleUnavailable: OracleErrorKind.ORACLE_UNAVAILABLE,
    MalformedOracleResponse: OracleErrorKind.MALFORMED_RESPONSE,
}


class _PermanentOracleError(Exception):
    """Non-retryable failure (e.g. 401, 400)."""


class OracleClient:
    """
    Async client for the verification oracle.

    Attributes:
        model: Chat model identifier
        base_url: Chat completions endpoint
        max_attempts: Attempts per entity before giving up
        backoff_base: First retry delay in seconds
    """

    def __init__(
        self,
        api_key: str,
        model: str = "grok-3-latest",
        base_url: str = "https://api.x.ai/v1/chat/completions",
        timeout: float = 30.0,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        rate_limiter: Optional[RateLimiter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the oracle client.

        Args:
            api_key: Bearer token for the oracle API
            model: Chat model identifier
            base_url: Chat completions endpoint
            timeout: Per-request timeout in seconds
            max_attempts: Attempts per entity (including the first)
            backoff_base: Initial backoff delay, doubled per retry
            rate_limiter: Optional shared RPM limiter
            http_client: Optional preconfigured httpx client (tests inject a
                MockTransport here)

        Raises:
            ValueError: If the API key is empty
        """
        if not api_key:
            raise ValueError("XAI_API_KEY not configured in environment")

        self.model = model
        self.base_url = base_url
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self._api_key = api_key
        self._rate_limiter = rate_limiter
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=20),
        )

        logger.info(f"Oracle client initialized with model {model}")

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: Optional[httpx.AsyncClient] = None
    ) -> "OracleClient":
        return cls(
            api_key=settings.xai_api_key,
            model=settings.xai_model,
            base_url=settings.xai_base_url,
            timeout=settings.oracle_timeout,
            max_attempts=settings.oracle_max_attempts,
            backoff_base=settings.oracle_backoff_base,
            rate_limiter=RateLimiter(settings.max_rpm),
            http_client=http_client,
        )

    async def __aenter__(self) -> "OracleClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch_finding(
        self,
        entity_type: str,
        entity_id: str,
        current_data: dict[str, Any],
    ) -> OracleResult:
        """
        Ask the oracle to check one entity.

        Args:
            entity_type: Entity type (artist, venue, ...)
            entity_id: Entity identifier
            current_data: Current record; absent fields are unknown, not errors

        Returns:
            OracleFinding on success, OracleError once retries are exhausted
            or on a non-retryable HTTP error
        """
        request = VerificationRequest(
            entity_type=entity_type,
            entity_id=entity_id,
            current_data=current_data,
        )
        attempts = 0

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=30),
            retry=retry_if_exception_type((OracleUnavailable, MalformedOracleResponse)),
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    payload = await self._request(request)
        except (OracleUnavailable, MalformedOracleResponse) as e:
            logger.error(
                f"Oracle gave up on {entity_type}/{entity_id} after {attempts} attempts: {e}"
            )
            return OracleError(kind=_TRANSIENT_KINDS[type(e)], message=str(e), attempts=attempts)
        except _PermanentOracleError as e:
            logger.error(f"Oracle rejected {entity_type}/{entity_id}: {e}")
            return OracleError(
                kind=OracleErrorKind.ORACLE_UNAVAILABLE,
                message=str(e),
                attempts=attempts,
            )

        return parse_oracle_payload(payload)

    async def _request(self, request: VerificationRequest) -> dict[str, Any]:
        """Send one chat completion and return the decoded JSON object."""
        if self._rate_limiter:
            await self._rate_limiter.wait()

        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": VERIFICATION_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_verification_prompt(
                        request.entity_type,
                        request.entity_id,
                        request.current_data,
                        request.has_photo(),
                    ),
                },
            ],
            "response_format": {"type": "json_object"},
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        try:
            response = await self._client.post(self.base_url, json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise OracleUnavailable(f"timeout: {e}") from e
        except httpx.TransportError as e:
            raise OracleUnavailable(f"transport error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise OracleUnavailable(f"HTTP {response.status_code}")
        if response.status_code >= 400:
            raise _PermanentOracleError(f"HTTP {response.status_code}: {response.text[:200]}")

        return _decode_body(response)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Retry {retry_state.attempt_number} for oracle call "
            f"after {delay:.2f}s: {error}"
        )


def _decode_body(response: httpx.Response) -> dict[str, Any]:
    """Extract the oracle's JSON object from a chat completion response.

    Accepts either a chat completion (``choices[0].message.content`` holding
    JSON text) or a bare JSON object in the oracle's own shape.
    """
    try:
        data = response.json()
    except ValueError as e:
        raise MalformedOracleResponse("response body is not JSON") from e

    if not isinstance(data, dict):
        raise MalformedOracleResponse("response body is not a JSON object")

    if "choices" not in data:
        return data

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise MalformedOracleResponse("no content in oracle response") from e

    if isinstance(content, dict):
        return content
    try:
        payload = json.loads(content)
    except (TypeError, ValueError) as e:
        raise MalformedOracleResponse("oracle content is not JSON") from e
    if not isinstance(payload, dict):
        raise MalformedOracleResponse("oracle content is not a JSON object")
    return payload


def parse_oracle_payload(payload: dict[str, Any]) -> OracleFinding:
    """
    Convert the oracle's JSON object into an OracleFinding, failing safe.

    Missing or invalid confidence becomes 0.0, missing updates become empty,
    and malformed correction items are dropped.

    Args:
        payload: Decoded JSON object from the oracle

    Returns:
        OracleFinding
    """
    corrections: list[Correction] = []
    raw_corrections = payload.get("corrections")
    if isinstance(raw_corrections, list):
        for item in raw_corrections:
            if not isinstance(item, dict) or not item.get("field") or "corrected" not in item:
                logger.debug(f"Dropping malformed correction item: {item!r}")
                continue
            corrections.append(
                Correction(
                    field=str(item["field"]),
                    original=item.get("original"),
                    corrected=item["corrected"],
                    reason=str(item.get("reason") or ""),
                )
            )

    raw_updates = payload.get("suggested_updates")
    if isinstance(raw_updates, dict):
        suggested_updates = dict(raw_updates)
    else:
        suggested_updates = {c.field: c.corrected for c in corrections}

    confidence = payload.get("confidence")
    if confidence is None:
        confidence = payload.get("correctness")

    raw_evidence = payload.get("evidence", payload.get("sources"))
    evidence = [str(e) for e in raw_evidence] if isinstance(raw_evidence, list) else []

    photo = payload.get("photo") if isinstance(payload.get("photo"), dict) else {}
    photo_url = payload.get("photo_url") or payload.get("photoUrl") or photo.get("url")
    photo_source = (
        payload.get("photo_source") or payload.get("photoSource") or photo.get("source")
    )

    return OracleFinding(
        suggested_updates=suggested_updates,
        confidence=0.0 if confidence is None else confidence,
        evidence=evidence,
        has_photo=bool(photo_url) or payload.get("hasPhoto") is True,
        verified=payload.get("verified") is True,
        corrections=corrections,
        photo_url=str(photo_url) if photo_url else None,
        photo_source=str(photo_source) if photo_source else None,
        assessment=str(payload.get("overall_assessment") or ""),
    )
