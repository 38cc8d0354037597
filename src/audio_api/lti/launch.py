"""
LTI 1.1 basic launch validation.

Launch requests are form posts signed with OAuth 1.0a (HMAC-SHA1).  The
signature check is delegated to ``oauthlib``; every consumer key shares the
single deployment-wide ``LTI_SECRET``.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl

from oauthlib.oauth1 import (
    SIGNATURE_HMAC_SHA1,
    SIGNATURE_HMAC_SHA256,
    RequestValidator,
    SignatureOnlyEndpoint,
)

from .sessions import LaunchContext, SessionStore

logger = logging.getLogger(__name__)

LAUNCH_MESSAGE_TYPE = "basic-lti-launch-request"
SUPPORTED_LTI_VERSIONS = ("LTI-1p0",)
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class LaunchValidationError(Exception):
    """Raised when a launch request is malformed or not correctly signed."""

    pass


class SharedSecretValidator(RequestValidator):
    """
    oauthlib validator for a single shared secret.

    Any consumer key is accepted; the signature must verify against the
    configured secret.  Nonce replay is checked separately against the
    session store because oauthlib's validator hooks are synchronous.
    """

    def __init__(self, secret: str):
        super().__init__()
        self._secret = secret

    @property
    def enforce_ssl(self) -> bool:
        # TLS usually terminates at a proxy in front of the app
        return False

    @property
    def allowed_signature_methods(self):
        return (SIGNATURE_HMAC_SHA1, SIGNATURE_HMAC_SHA256)

    @property
    def dummy_client(self) -> str:
        return "dummy"

    def check_client_key(self, client_key: str) -> bool:
        return bool(client_key)

    def check_nonce(self, nonce: str) -> bool:
        return bool(nonce)

    def validate_client_key(self, client_key, request) -> bool:
        return True

    def get_client_secret(self, client_key, request) -> str:
        return self._secret

    def validate_timestamp_and_nonce(
        self, client_key, timestamp, nonce, request, request_token=None, access_token=None
    ) -> bool:
        return True


class LaunchValidator:
    """Validates basic launch requests and records their nonces."""

    def __init__(self, secret: str, nonce_store: SessionStore):
        self._secret = secret
        self._nonce_store = nonce_store
        self._validator = SharedSecretValidator(secret)
        self._endpoint = SignatureOnlyEndpoint(self._validator)

    @property
    def nonce_ttl_seconds(self) -> int:
        return self._validator.timestamp_lifetime

    async def validate(self, url: str, body: str, content_type: str | None) -> dict[str, str]:
        """
        Validate a launch and return its parameters.

        Args:
            url: The URL the consumer signed (scheme, host and path)
            body: Raw form-encoded request body
            content_type: The request Content-Type header

        Raises:
            LaunchValidationError: On any structural or signature failure
        """
        if not self._secret:
            raise LaunchValidationError("LTI secret is not configured")

        if not content_type or FORM_CONTENT_TYPE not in content_type:
            raise LaunchValidationError("Launch must be a form-encoded POST")

        params = dict(parse_qsl(body, keep_blank_values=True))

        if params.get("lti_message_type") != LAUNCH_MESSAGE_TYPE:
            raise LaunchValidationError(
                f"Unsupported lti_message_type: {params.get('lti_message_type')!r}"
            )
        if params.get("lti_version") not in SUPPORTED_LTI_VERSIONS:
            raise LaunchValidationError(f"Unsupported lti_version: {params.get('lti_version')!r}")
        if not params.get("resource_link_id"):
            raise LaunchValidationError("Missing resource_link_id")
        if not params.get("user_id"):
            raise LaunchValidationError("Missing user_id")

        valid, _ = self._endpoint.validate_request(
            url, http_method="POST", body=body, headers={"Content-Type": content_type}
        )
        if not valid:
            raise LaunchValidationError("Invalid OAuth signature")

        nonce = params.get("oauth_nonce", "")
        if not await self._nonce_store.claim_nonce(nonce, self.nonce_ttl_seconds):
            raise LaunchValidationError("OAuth nonce has already been used")

        return params


def context_from_launch(params: dict[str, str]) -> LaunchContext:
    """Map validated launch parameters onto the session context."""
    return LaunchContext(
        user_id=params["user_id"],
        course_id=params.get("context_id"),
        assignment_id=params.get("custom_canvas_assignment_id"),
        roles=params.get("roles"),
        lis_result_sourcedid=params.get("lis_result_sourcedid"),
        lis_outcome_service_url=params.get("lis_outcome_service_url"),
        consumer_key=params.get("oauth_consumer_key"),
    )
