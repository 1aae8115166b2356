"""Shared fixtures: an in-memory store, a scripted analyzer and a recording sleep."""

import json

import pytest

from label_review.config import Settings
from label_review.models.schemas import LabelImage, ProductType, Submission
from label_review.services.analyzer_service import Err, LabelAnalyzer, parse_validation_response
from label_review.services.store import InMemorySubmissionStore
from label_review.utils.exceptions import MalformedResponseError

TIER1 = (
    "brandName",
    "classTypeDesignation",
    "alcoholContent",
    "netContents",
    "healthWarning",
    "nameAndAddress",
)


class RecordingSleep:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class StubAnalyzer(LabelAnalyzer):
    """Replays scripted replies: a payload dict, a raw string, or an exception.

    The last reply repeats once the script runs out. ``before_reply`` is
    awaited on every call, which lets tests mutate the store mid-analysis.
    """

    def __init__(self, *replies, before_reply=None):
        self.replies = list(replies)
        self.before_reply = before_reply
        self.calls = []

    async def analyze(self, form, image):
        self.calls.append((form, image))
        if self.before_reply is not None:
            await self.before_reply()
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        content = reply if isinstance(reply, str) else json.dumps(reply)
        result = parse_validation_response(content)
        if isinstance(result, Err):
            raise MalformedResponseError(result.reason)
        return result


def build_payload(confidence="high", overall_pass=True, **statuses):
    """Analyzer reply with all Tier 1 fields MATCH unless overridden by name."""
    return {
        "extractedText": "OLD TOM DISTILLERY\nKentucky Straight Bourbon Whiskey\n45% ALC/VOL\n750 mL",
        "fieldResults": [
            {
                "fieldName": name,
                "formValue": "form",
                "labelValue": "label",
                "matchStatus": statuses.get(name, "MATCH"),
                "notes": "",
            }
            for name in TIER1
        ],
        "complianceWarnings": [],
        "overallPass": overall_pass,
        "confidence": confidence,
    }


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="test-key",
        retry_max_attempts=3,
        retry_base_delay=1.0,
        image_poll_attempts=3,
        image_poll_delay=0.5,
    )


@pytest.fixture
def store():
    return InMemorySubmissionStore()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def payload():
    return build_payload


@pytest.fixture
def stub_analyzer():
    return StubAnalyzer


@pytest.fixture
def make_submission():
    def _make(**overrides) -> Submission:
        defaults = {
            "user_id": "user-1",
            "product_type": ProductType.DISTILLED_SPIRITS,
            "brand_name": "Old Tom Distillery",
            "class_type_designation": "Kentucky Straight Bourbon Whiskey",
            "alcohol_content": "45",
            "net_contents": "750 mL",
            "name_address_on_label": "Old Tom Distilling Co, Bardstown KY 40004",
        }
        defaults.update(overrides)
        return Submission(**defaults)

    return _make


@pytest.fixture
def make_image():
    def _make(submission_id: str, **overrides) -> LabelImage:
        defaults = {
            "submission_id": submission_id,
            "download_url": "https://storage.example.com/labels/front.jpg",
        }
        defaults.update(overrides)
        return LabelImage(**defaults)

    return _make
