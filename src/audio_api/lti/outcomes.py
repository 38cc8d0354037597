"""
LTI 1.1 outcome service (grade passback).

Sends a ``replaceResult`` POX message to the LMS, signed with OAuth 1.0a
body hashing.  Grade passback failures never block the learner experience:
``dispatch`` schedules the call as a detached task whose result is only
logged.
"""

from __future__ import annotations

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import Optional
from uuid import uuid4
from xml.sax.saxutils import escape

import httpx
from oauthlib.oauth1 import Client

from .sessions import LaunchContext

logger = logging.getLogger(__name__)

# Fixed grade reported for a successful submission
COMPLETION_GRADE = 1.0

POX_NAMESPACE = "http://www.imsglobal.org/services/ltiv1p1/xsd/imsoms_v1p0"
POX_CONTENT_TYPE = "application/xml"

_REPLACE_RESULT_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<imsx_POXEnvelopeRequest xmlns="{namespace}">
  <imsx_POXHeader>
    <imsx_POXRequestHeaderInfo>
      <imsx_version>V1.0</imsx_version>
      <imsx_messageIdentifier>{message_id}</imsx_messageIdentifier>
    </imsx_POXRequestHeaderInfo>
  </imsx_POXHeader>
  <imsx_POXBody>
    <replaceResultRequest>
      <resultRecord>
        <sourcedGUID>
          <sourcedId>{sourcedid}</sourcedId>
        </sourcedGUID>
        <result>
          <resultScore>
            <language>en</language>
            <textString>{score}</textString>
          </resultScore>
        </result>
      </resultRecord>
    </replaceResultRequest>
  </imsx_POXBody>
</imsx_POXEnvelopeRequest>"""


class OutcomeError(Exception):
    """Raised when an outcome request cannot be built or sent."""

    pass


def build_replace_result_xml(sourcedid: str, score: float, message_id: Optional[str] = None) -> str:
    """
    Build the POX ``replaceResultRequest`` body.

    Raises:
        ValueError: If ``score`` is outside [0, 1]
    """
    if not 0.0 <= score <= 1.0:
        raise ValueError(f"Score must be between 0 and 1, got {score}")

    return _REPLACE_RESULT_TEMPLATE.format(
        namespace=POX_NAMESPACE,
        message_id=escape(message_id or uuid4().hex),
        sourcedid=escape(sourcedid),
        score=score,
    )


def parse_code_major(response_body: str) -> Optional[str]:
    """Return ``imsx_codeMajor`` from a POX response, or None if unparseable."""
    try:
        root = ET.fromstring(response_body)
    except ET.ParseError:
        return None
    node = root.find(f".//{{{POX_NAMESPACE}}}imsx_codeMajor")
    if node is None:
        # Some consumers omit the namespace
        node = root.find(".//imsx_codeMajor")
    return node.text.strip() if node is not None and node.text else None


class OutcomeReporter:
    """
    Posts grades to LTI 1.1 outcome services.

    Usage:
        reporter = OutcomeReporter(secret="...")
        reporter.dispatch(context, COMPLETION_GRADE)   # fire-and-forget
        ...
        await reporter.aclose()                        # on shutdown
    """

    def __init__(
        self,
        secret: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self._secret = secret
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _sign(self, consumer_key: str, url: str, body: str) -> tuple[str, dict, str]:
        client = Client(consumer_key, client_secret=self._secret)
        return client.sign(
            url,
            http_method="POST",
            body=body,
            headers={"Content-Type": POX_CONTENT_TYPE},
        )

    async def send_replace_result(self, context: LaunchContext, score: float) -> bool:
        """
        Send a grade for the launch's result record.

        Returns True if the LMS acknowledged with ``imsx_codeMajor`` = success.

        Raises:
            ValueError: If ``score`` is outside [0, 1]
            OutcomeError: If the launch carries no outcome service
            httpx.HTTPError: On transport failures
        """
        if not context.has_outcome_service:
            raise OutcomeError("Launch has no outcome service")

        body = build_replace_result_xml(context.lis_result_sourcedid, score)
        uri, headers, signed_body = self._sign(
            context.consumer_key or "", context.lis_outcome_service_url, body
        )

        response = await self._client.post(uri, content=signed_body.encode("utf-8"), headers=headers)
        code_major = parse_code_major(response.text)

        if response.is_success and code_major == "success":
            return True

        logger.warning(
            "Outcome service rejected grade: status=%s codeMajor=%s url=%s",
            response.status_code, code_major, uri,
        )
        return False

    async def _report(self, context: LaunchContext, score: float) -> bool:
        try:
            ok = await self.send_replace_result(context, score)
        except Exception:
            logger.exception("Error sending grade to LMS for user %s", context.user_id)
            return False

        if ok:
            logger.info("Grade %s sent to LMS for user %s", score, context.user_id)
        else:
            logger.error("Grade passback failed for user %s", context.user_id)
        return ok

    def dispatch(self, context: LaunchContext, score: float = COMPLETION_GRADE) -> None:
        """Schedule a grade report without waiting for it."""
        task = asyncio.create_task(self._report(context, score))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight reports (used on shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        await self._client.aclose()
