"""Tests for the end-to-end label pipeline."""

import asyncio
import io
import json

import pytest
from PIL import Image

from labelcheck.config import Settings
from labelcheck.models import FieldAccuracy, VerificationStatus
from labelcheck.services.errors import RateLimitedError
from labelcheck.services.image_service import decode_data_url
from labelcheck.services.pipeline import (
    ExtractLabelError,
    ExtractLabelSuccess,
    LabelPipeline,
    normalize_expected_data,
    parse_expected_data,
)

from conftest import StubModelClient, build_expected, build_extracted

IMAGE_URL = "data:image/jpeg;base64,AAAA"


def make_pipeline(settings, client, fake_sleep):
    return LabelPipeline(settings, client=client, sleep=fake_sleep)


class TestExpectedData:
    """Test expected payload parsing."""

    def test_json_string(self):
        payload = build_expected().model_dump_json(by_alias=True)
        assert parse_expected_data(payload).brand_name.text == "Old Tom Distillery"

    def test_dict(self):
        payload = build_expected().model_dump(by_alias=True, mode="json")
        assert parse_expected_data(payload).net_contents.text == "750 ML"

    @pytest.mark.parametrize("raw", [None, "", "{not json", json.dumps({"brandName": {"text": "x"}}), 42])
    def test_missing_or_invalid_is_none(self, raw):
        assert parse_expected_data(raw) is None

    def test_normalize_forces_warning_typography(self):
        expected = build_expected(governmentWarning={"text": "GOVERNMENT WARNING", "isBold": False, "isAllCaps": False})
        normalized = normalize_expected_data(expected)

        assert normalized.government_warning.is_bold is True
        assert normalized.government_warning.is_all_caps is True
        assert expected.government_warning.is_bold is False


class TestConfiguration:
    """Test configuration errors surface before any model call."""

    def test_missing_endpoint(self, sample_image_bytes):
        pipeline = LabelPipeline(Settings(openai_endpoint=None, openai_api_key=None, openai_deployment=None, openai_deployments=None))

        result = asyncio.run(pipeline.extract_from_bytes(sample_image_bytes, "image/png"))

        assert isinstance(result, ExtractLabelError)
        assert result.status == 500
        assert "Missing" in result.error

    def test_injected_settings_reach_services(self, sample_image_bytes):
        settings = Settings(
            openai_endpoint="https://example.test", openai_api_key="k", openai_deployments="a",
            text_match_threshold=0.99, image_max_width=100, allowed_mime_types={"image/png"},
        )
        pipeline = LabelPipeline(settings)

        assert pipeline.report_builder.comparator.settings.text_match_threshold == 0.99
        is_valid, _ = pipeline.image_service.validate_image(sample_image_bytes, "image/jpeg")
        assert not is_valid
        url = pipeline.image_service.to_data_url(sample_image_bytes, "image/png")
        with Image.open(io.BytesIO(decode_data_url(url)[0])) as img:
            assert img.width == 100

    def test_is_configured(self, settings):
        assert LabelPipeline(settings).is_configured
        assert not LabelPipeline(Settings(openai_endpoint=None, openai_api_key=None, openai_deployment=None, openai_deployments=None)).is_configured


class TestExtract:
    """Test the extraction entry points."""

    def test_without_expected_picks_most_complete(self, settings, fake_sleep):
        sparse = build_extracted(brandName=None, classType=None)
        client = StubModelClient(extractions=[sparse, build_extracted()])

        result = asyncio.run(make_pipeline(settings, client, fake_sleep).extract_from_image_url(IMAGE_URL))

        assert isinstance(result, ExtractLabelSuccess)
        assert result.evaluation is None
        assert result.label.text_of("brand_name") == "OLD TOM DISTILLERY"
        assert client.count("FieldAccuracy") == 0

    def test_with_expected_merges_and_evaluates(self, settings, fake_sleep):
        wrong_net = build_extracted(netContents={"text": "75 ML"})
        client = StubModelClient(
            extractions=[wrong_net, build_extracted()],
            evaluations=[FieldAccuracy.uniform(1).model_copy(update={"net_contents": 0}), FieldAccuracy.uniform(1)],
        )

        result = asyncio.run(
            make_pipeline(settings, client, fake_sleep).extract_from_image_url(IMAGE_URL, build_expected(), "label.png")
        )

        assert result.evaluation.passed is True
        assert result.label.text_of("net_contents") == "750 ML"
        assert result.report is None
        assert client.count("FieldAccuracy") == 2

    def test_from_bytes_sends_jpeg_data_url(self, settings, fake_sleep, sample_image_bytes):
        client = StubModelClient(extractions=[build_extracted()])

        result = asyncio.run(make_pipeline(settings, client, fake_sleep).extract_from_bytes(sample_image_bytes, "image/png"))

        assert isinstance(result, ExtractLabelSuccess)

    def test_invalid_image_is_400(self, settings, fake_sleep):
        client = StubModelClient(extractions=[build_extracted()])

        result = asyncio.run(make_pipeline(settings, client, fake_sleep).extract_from_bytes(b"", "image/png"))

        assert result.status == 400
        assert result.error == "Image file is required"
        assert client.calls == []

    def test_no_data_is_502(self, settings, fake_sleep):
        client = StubModelClient(extractions=[None])

        result = asyncio.run(make_pipeline(settings, client, fake_sleep).extract_from_image_url(IMAGE_URL))

        assert result.status == 502
        assert result.error == "No label data extracted"

    def test_capacity_is_429(self, fake_sleep):
        settings = Settings(
            openai_endpoint="https://example.test", openai_api_key="k",
            openai_deployments="a,b", rate_limit_max_retries=1,
        )
        client = StubModelClient(handler=lambda model, response_model: RateLimitedError("429", model))

        result = asyncio.run(make_pipeline(settings, client, fake_sleep).extract_from_image_url(IMAGE_URL))

        assert result.status == 429


class TestVerify:
    """Test extraction plus report."""

    def test_requires_expected(self, settings, fake_sleep):
        result = asyncio.run(make_pipeline(settings, StubModelClient(), fake_sleep).verify(None, image_url=IMAGE_URL))
        assert result.status == 400

    def test_report_from_ai_decision(self, settings, fake_sleep):
        client = StubModelClient(extractions=[build_extracted()], evaluations=[FieldAccuracy.uniform(1)])

        result = asyncio.run(
            make_pipeline(settings, client, fake_sleep).verify(build_expected(), image_url=IMAGE_URL)
        )

        assert result.report.overall_status == VerificationStatus.PASS
        assert result.evaluation.passed is True

    def test_report_falls_back_to_comparator_without_evaluations(self, settings, fake_sleep):
        client = StubModelClient(extractions=[build_extracted()], evaluations=[None])

        result = asyncio.run(
            make_pipeline(settings, client, fake_sleep).verify(build_expected(), image_url=IMAGE_URL)
        )

        # merged decision defaults to fail, but the comparator finds a matching label
        assert result.evaluation.passed is False
        assert result.report.overall_status == VerificationStatus.PASS
