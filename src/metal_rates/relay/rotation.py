"""Credential rotation for upstream provider calls.

The relay may hold several equivalent API keys. A request is tried with each
key in configured order; only authorization failures (401) and rate limits
(429) move on to the next key. Any other status is final because another key
would not change the outcome. There is no shared round-robin counter, so
concurrent requests never race on rotation state.
"""

from collections.abc import Callable
from dataclasses import dataclass

import httpx

from metal_rates.exceptions import CredentialsExhausted
from metal_rates.logging import get_logger

logger = get_logger(__name__)

ROTATE_ON_STATUS = frozenset({401, 429})


@dataclass
class RotationResult:
    """Final upstream response plus how many keys were used to get it."""

    response: httpx.Response
    attempts: int


class CredentialRotator:
    """Tries an ordered list of credentials until one is accepted."""

    def __init__(self, credentials: list[str]) -> None:
        self._credentials = list(credentials)

    @property
    def credentials(self) -> list[str]:
        return list(self._credentials)

    def __len__(self) -> int:
        return len(self._credentials)

    async def send(
        self,
        client: httpx.AsyncClient,
        build_request: Callable[[str], httpx.Request],
    ) -> RotationResult:
        """Send build_request(key) for each key until a non-401/429 response.

        Returns:
            RotationResult with the first response whose status is not 401/429
            (success or a non-retryable error).

        Raises:
            CredentialsExhausted: Every key returned 401 or 429.
            httpx.HTTPError: Transport failure; not retried with another key.
        """
        if not self._credentials:
            raise ValueError("No credentials configured")

        total = len(self._credentials)
        last_status = 429
        details = ""

        for index, credential in enumerate(self._credentials, 1):
            response = await client.send(build_request(credential))

            if response.status_code not in ROTATE_ON_STATUS:
                return RotationResult(response=response, attempts=index)

            last_status = response.status_code
            details = f"Key {index} rate limited or unauthorized"
            logger.warning(
                "credential_rejected",
                key_index=index,
                total_keys=total,
                status=response.status_code,
            )

        raise CredentialsExhausted(last_status=last_status, details=details, attempts=total)
