"""Credential source and bootstrap.

The credential is owned by GCECloud and shared read-only by every vendor
client. It is validated once at construction by forcing a token fetch;
construction fails if none succeeds within the bootstrap deadline.
"""

from __future__ import annotations

import datetime
import json
import threading

import google.auth
from google.auth import credentials as ga_credentials
from google.auth import exceptions as ga_exceptions
from google.auth.transport import Request
from tenacity import retry, retry_if_exception_type, stop_after_delay, wait_fixed

from gcecloud.config import GCEConfig
from gcecloud.core.exceptions import CredentialError
from gcecloud.observability.logger import logger

log = logger.bind(component="credentials")

SCOPES = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/compute",
)

BOOTSTRAP_INTERVAL = 5.0
BOOTSTRAP_DEADLINE = 30.0


class _TokenNotReadyError(Exception):
    """Refresh returned without producing a token."""


class AltTokenCredentials(ga_credentials.Credentials):
    """Token obtained by POSTing a fixed body to an exchange endpoint.

    The endpoint answers with ``{"accessToken": ..., "expireTime": ...}``,
    ``expireTime`` in RFC 3339. Refreshes are serialized internally.
    """

    def __init__(self, token_url: str, token_body: str) -> None:
        super().__init__()
        self._token_url = token_url
        self._token_body = token_body
        self._refresh_lock = threading.Lock()

    def refresh(self, request: Request) -> None:
        with self._refresh_lock:
            response = request(
                url=self._token_url,
                method="POST",
                body=self._token_body.encode(),
                headers={"Content-Type": "application/json"},
            )
            if response.status != 200:
                raise ga_exceptions.RefreshError(
                    f"token exchange returned HTTP {response.status}: {response.data!r}"
                )
            try:
                payload = json.loads(response.data)
                token = payload["accessToken"]
                expiry = _parse_rfc3339(payload["expireTime"])
            except (ValueError, KeyError, TypeError) as e:
                raise ga_exceptions.RefreshError(f"malformed token exchange response: {e}") from e

            self.token = token
            self.expiry = expiry


def _parse_rfc3339(value: str) -> datetime.datetime:
    """Parse to the naive UTC datetime google-auth expects for ``expiry``."""
    parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(datetime.UTC).replace(tzinfo=None)
    return parsed


def default_credentials() -> ga_credentials.Credentials:
    try:
        credentials, _ = google.auth.default(scopes=list(SCOPES))
    except ga_exceptions.DefaultCredentialsError as e:
        raise CredentialError(f"no default credentials available: {e}") from e
    log.info("Using default credentials {kind}", kind=type(credentials).__name__)
    return credentials


def credentials_from_config(config: GCEConfig) -> ga_credentials.Credentials:
    if config.token_url:
        log.info("Using token exchange endpoint {url}", url=config.token_url)
        return AltTokenCredentials(config.token_url, config.token_body)
    return default_credentials()


def bootstrap_credentials(
    credentials: ga_credentials.Credentials,
    *,
    request: Request | None = None,
    interval: float = BOOTSTRAP_INTERVAL,
    deadline: float = BOOTSTRAP_DEADLINE,
) -> ga_credentials.Credentials:
    """Force one token fetch, retrying every ``interval`` until ``deadline``.

    Blocks the calling thread for at most ``deadline`` seconds (plus one
    in-flight fetch).

    Raises:
        CredentialError: No valid token within the deadline.
    """
    if request is None:
        import google.auth.transport.requests

        request = google.auth.transport.requests.Request()

    @retry(
        stop=stop_after_delay(deadline),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type((ga_exceptions.GoogleAuthError, _TokenNotReadyError)),
        reraise=True,
    )
    def _fetch() -> None:
        try:
            credentials.refresh(request)
        except ga_exceptions.GoogleAuthError as e:
            log.error("Error fetching initial token: {err}", err=e)
            raise
        if not credentials.token:
            log.error("Error fetching initial token: refresh produced no token")
            raise _TokenNotReadyError()

    try:
        _fetch()
    except (ga_exceptions.GoogleAuthError, _TokenNotReadyError) as e:
        raise CredentialError(f"no valid token within {deadline:.0f}s: {e}") from e

    log.debug("Initial token fetched")
    return credentials
