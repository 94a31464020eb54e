"""Shared fixtures: label builders and a scripted stand-in for the vision model."""

import io

import pytest
from PIL import Image

from labelcheck.config import Settings
from labelcheck.models import ExpectedLabel, ExtractedLabel
from labelcheck.services.comparison import STANDARD_GOV_WARNING_LONG, STANDARD_GOV_WARNING_UPPER
from labelcheck.services.model_client import ModelResponse


def build_expected(**overrides) -> ExpectedLabel:
    """Whiskey application record; override any camelCase or snake_case key."""
    data = {
        "brandName": {"text": "Old Tom Distillery"},
        "classType": {"text": "Kentucky Straight Bourbon Whiskey"},
        "alcoholContent": {"text": "45%"},
        "netContents": {"text": "750 ML"},
        "governmentWarning": {"text": STANDARD_GOV_WARNING_LONG, "isBold": True, "isAllCaps": True},
        "bottlerProducer": {"text": "Old Tom Distillery, Bardstown, KY"},
        "countryOfOrigin": None,
        "isImported": False,
    }
    data.update(overrides)
    return ExpectedLabel.model_validate(data)


def build_extracted(**overrides) -> ExtractedLabel:
    """A label that reads exactly like ``build_expected()``."""
    data = {
        "brandName": {"text": "OLD TOM DISTILLERY"},
        "classType": {"text": "Kentucky Straight Bourbon Whiskey"},
        "alcoholContent": {"text": "45% ALC./VOL."},
        "netContents": {"text": "750 ML"},
        "governmentWarning": {"text": STANDARD_GOV_WARNING_UPPER, "isBold": True, "isAllCaps": True},
        "bottlerProducer": {"text": "Old Tom Distillery, Bardstown, KY"},
        "countryOfOrigin": None,
        "additivesDisclosed": None,
    }
    data.update(overrides)
    return ExtractedLabel.model_validate(data)


class StubModelClient:
    """
    Scripted replacement for ``VisionModelClient``.

    ``extractions`` and ``evaluations`` are queues consumed in call order; the
    last entry repeats once the queue is down to one. An entry may be a parsed
    model (returned as the response), ``None`` (unparsable output), or an
    exception instance (raised). ``handler(model, response_model)`` overrides
    the queues when given.
    """

    def __init__(self, extractions=None, evaluations=None, handler=None):
        self.extractions = list(extractions or [])
        self.evaluations = list(evaluations or [])
        self.handler = handler
        self.calls = []

    @staticmethod
    def _next(queue):
        if not queue:
            return None
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def parse(self, model, system_prompt, user_message, response_model):
        self.calls.append((model, response_model.__name__))
        if self.handler is not None:
            item = self.handler(model, response_model)
        elif response_model is ExtractedLabel:
            item = self._next(self.extractions)
        else:
            item = self._next(self.evaluations)

        if isinstance(item, Exception):
            raise item
        output_text = item.model_dump_json(by_alias=True) if item is not None else "not json"
        return ModelResponse(
            output_text=output_text,
            parsed=item,
            usage={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        )

    def count(self, response_name: str) -> int:
        return sum(1 for _, name in self.calls if name == response_name)


class FakeSleep:
    """Records requested delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def expected():
    return build_expected()


@pytest.fixture
def extracted():
    return build_extracted()


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def settings():
    """Fully configured settings with a two-model fallback list."""
    return Settings(
        openai_endpoint="https://example.test/openai/v1",
        openai_api_key="test-key",
        openai_deployments="primary-model,fallback-model",
    )


@pytest.fixture
def sample_image_bytes():
    """Create a test image."""
    img = Image.new("RGB", (300, 200), color="white")
    # Add some text-like content
    pixels = img.load()
    for i in range(50, 250):
        for j in range(50, 150):
            if (i + j) % 10 < 5:
                pixels[i, j] = (0, 0, 0)

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
