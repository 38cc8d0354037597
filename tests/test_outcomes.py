"""Tests for LTI 1.1 grade passback."""

import xml.etree.ElementTree as ET

import httpx
import pytest
from oauthlib.oauth1 import SignatureOnlyEndpoint

from audio_api.lti.launch import SharedSecretValidator
from audio_api.lti.outcomes import (
    COMPLETION_GRADE,
    POX_NAMESPACE,
    OutcomeError,
    OutcomeReporter,
    build_replace_result_xml,
    parse_code_major,
)
from audio_api.lti.sessions import LaunchContext

from conftest import OUTCOME_URL, POX_SUCCESS_RESPONSE, TEST_LTI_SECRET

POX_FAILURE_RESPONSE = POX_SUCCESS_RESPONSE.replace(
    "<imsx_codeMajor>success</imsx_codeMajor>", "<imsx_codeMajor>failure</imsx_codeMajor>"
)

NS = {"ims": POX_NAMESPACE}


def outcome_context(**overrides) -> LaunchContext:
    data = {
        "user_id": "u1",
        "lis_result_sourcedid": "sourcedid-u1",
        "lis_outcome_service_url": OUTCOME_URL,
        "consumer_key": "test-consumer-key",
    }
    data.update(overrides)
    return LaunchContext(**data)


def reporter_with(handler) -> OutcomeReporter:
    return OutcomeReporter(
        TEST_LTI_SECRET, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


class TestReplaceResultXml:
    def test_contains_sourcedid_and_score(self):
        root = ET.fromstring(build_replace_result_xml("abc", 1.0, message_id="m-1"))

        assert root.tag == f"{{{POX_NAMESPACE}}}imsx_POXEnvelopeRequest"
        assert root.find(".//ims:sourcedId", NS).text == "abc"
        assert root.find(".//ims:textString", NS).text == "1.0"
        assert root.find(".//ims:language", NS).text == "en"
        assert root.find(".//ims:imsx_messageIdentifier", NS).text == "m-1"
        assert root.find(".//ims:replaceResultRequest", NS) is not None

    def test_sourcedid_is_escaped(self):
        xml = build_replace_result_xml('a<b>&"c"', 0.5)
        root = ET.fromstring(xml)
        assert root.find(".//ims:sourcedId", NS).text == 'a<b>&"c"'

    def test_message_ids_differ(self):
        first = ET.fromstring(build_replace_result_xml("abc", 1.0))
        second = ET.fromstring(build_replace_result_xml("abc", 1.0))
        path = ".//ims:imsx_messageIdentifier"
        assert first.find(path, NS).text != second.find(path, NS).text

    @pytest.mark.parametrize("score", [-0.1, 1.01, 2])
    def test_score_out_of_range(self, score):
        with pytest.raises(ValueError):
            build_replace_result_xml("abc", score)

    @pytest.mark.parametrize("score", [0, 0.0, 0.5, 1])
    def test_score_bounds_accepted(self, score):
        build_replace_result_xml("abc", score)


class TestParseCodeMajor:
    def test_success(self):
        assert parse_code_major(POX_SUCCESS_RESPONSE) == "success"

    def test_failure(self):
        assert parse_code_major(POX_FAILURE_RESPONSE) == "failure"

    def test_without_namespace(self):
        body = "<r><imsx_codeMajor> success </imsx_codeMajor></r>"
        assert parse_code_major(body) == "success"

    @pytest.mark.parametrize("body", ["", "not xml", "<r/>"])
    def test_unparseable(self, body):
        assert parse_code_major(body) is None


class TestOutcomeReporter:
    async def test_successful_report(self, outcome_reporter, outcome_requests):
        ok = await outcome_reporter.send_replace_result(outcome_context(), COMPLETION_GRADE)

        assert ok is True
        assert len(outcome_requests) == 1
        assert outcome_requests[0].method == "POST"

    async def test_request_signature_verifies(self, outcome_reporter, outcome_requests):
        await outcome_reporter.send_replace_result(outcome_context(), COMPLETION_GRADE)
        request = outcome_requests[0]

        endpoint = SignatureOnlyEndpoint(SharedSecretValidator(TEST_LTI_SECRET))
        valid, _ = endpoint.validate_request(
            str(request.url),
            http_method="POST",
            body=request.content.decode(),
            headers=dict(request.headers),
        )
        assert valid is True

    async def test_request_is_signed_with_body_hash(self, outcome_reporter, outcome_requests):
        await outcome_reporter.send_replace_result(outcome_context(), COMPLETION_GRADE)
        authorization = outcome_requests[0].headers["authorization"]

        assert authorization.startswith("OAuth ")
        assert "oauth_body_hash" in authorization
        assert 'oauth_consumer_key="test-consumer-key"' in authorization
        assert 'oauth_signature_method="HMAC-SHA1"' in authorization

    async def test_failure_code_returns_false(self):
        reporter = reporter_with(lambda request: httpx.Response(200, text=POX_FAILURE_RESPONSE))
        try:
            assert await reporter.send_replace_result(outcome_context(), 1.0) is False
        finally:
            await reporter.aclose()

    async def test_http_error_status_returns_false(self):
        reporter = reporter_with(lambda request: httpx.Response(500, text="oops"))
        try:
            assert await reporter.send_replace_result(outcome_context(), 1.0) is False
        finally:
            await reporter.aclose()

    async def test_missing_outcome_service_raises(self, outcome_reporter):
        with pytest.raises(OutcomeError):
            await outcome_reporter.send_replace_result(
                outcome_context(lis_outcome_service_url=None), 1.0
            )

    async def test_dispatch_swallows_transport_errors(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        reporter = reporter_with(refuse)
        reporter.dispatch(outcome_context())
        assert reporter.pending == 1

        await reporter.drain()
        assert reporter.pending == 0
        await reporter.aclose()

    async def test_dispatch_sends_in_background(self, outcome_reporter, outcome_requests):
        outcome_reporter.dispatch(outcome_context(), COMPLETION_GRADE)
        await outcome_reporter.drain()

        assert len(outcome_requests) == 1
        assert "<textString>1.0</textString>" in outcome_requests[0].content.decode()
