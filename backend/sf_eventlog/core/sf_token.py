"""
OAuth 2.0 JWT bearer flow against Salesforce.

Fetches and caches an access token together with the instance url it is valid for.
Failures are retried through tenacity with a backoff growing by a second per attempt; when every attempt fails an empty
token is returned and the next Salesforce call fails through its normal error path.
"""
from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx
from jose import jwt
from jose.exceptions import JOSEError
from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from sf_eventlog.core.config import settings

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = 'urn:ietf:params:oauth:grant-type:jwt-bearer'
CLAIM_TTL_SECONDS = 3600
TOKEN_CACHE_SECONDS = 600
MAX_ATTEMPTS = 4
RETRYABLE_ERRORS = (httpx.HTTPError, JOSEError, KeyError, ValueError)


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    instance_url: str

    @property
    def valid(self) -> bool:
        return bool(self.access_token and self.instance_url)


EMPTY_TOKEN = AccessToken('', '')


class SalesforceTokenProvider:
    def __init__(
        self,
        *,
        token_host: str | None = None,
        client_id: str | None = None,
        username: str | None = None,
        private_key_pem_b64: str | None = None,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.token_host = token_host if token_host is not None else settings.sf_token_host
        self.client_id = client_id if client_id is not None else settings.sf_client_id
        self.username = username if username is not None else settings.sf_username
        self._private_key_pem_b64 = private_key_pem_b64 if private_key_pem_b64 is not None else settings.sf_private_key_pem_b64
        self._http = http_client or httpx.Client(timeout=settings.salesforce_timeout_seconds)
        self._clock = clock
        self._sleep = sleep
        self._cached = EMPTY_TOKEN
        self._expires_at = 0.0

    def _build_assertion(self) -> str:
        private_key = base64.b64decode(self._private_key_pem_b64).decode('utf-8')
        claims = {
            'iss': self.client_id,
            'aud': self.token_host,
            'sub': self.username,
            'exp': int(self._clock()) + CLAIM_TTL_SECONDS,
        }
        return jwt.encode(claims, private_key, algorithm='RS256')

    def token(self) -> AccessToken:
        now = self._clock()
        if now < self._expires_at:
            logger.debug('Using cached access token (%s min left)', int((self._expires_at - now) / 60))
            return self._cached

        retrying = Retrying(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            wait=wait_incrementing(start=1, increment=1),
            stop=stop_after_attempt(MAX_ATTEMPTS),
            sleep=self._sleep,
            before_sleep=self._log_failed_attempt,
        )
        try:
            self._cached = retrying(self._request_token)
        except RetryError as exc:
            logger.error('Attempt to fetch access token given up: %s', exc.last_attempt.exception())
            return EMPTY_TOKEN
        self._expires_at = self._clock() + TOKEN_CACHE_SECONDS
        return self._cached

    def _request_token(self) -> AccessToken:
        response = self._http.post(
            self.token_host,
            data={'grant_type': JWT_BEARER_GRANT, 'assertion': self._build_assertion()},
            headers={'Content-Type': 'application/x-www-form-urlencoded'},
        )
        response.raise_for_status()
        body = response.json()
        return AccessToken(str(body['access_token']), str(body['instance_url']))

    @staticmethod
    def _log_failed_attempt(retry_state) -> None:
        logger.error(
            'Attempt to fetch access token %s of %s failed by %s',
            retry_state.attempt_number,
            MAX_ATTEMPTS,
            retry_state.outcome.exception(),
        )

    def invalidate(self) -> None:
        self._cached = EMPTY_TOKEN
        self._expires_at = 0.0
