"""Shared fixtures: a fixed clock, a scripted model and small images."""

import base64
import io
import json
from datetime import datetime, timezone

import pytest
from PIL import Image

from extraction_engine import RosterExtractionEngine
from pipeline import RosterPipeline

# Saturday. The following Monday is 2026-01-12.
FIXED_NOW = datetime(2026, 1, 10, 9, 30, tzinfo=timezone.utc)


def fixed_clock():
    return FIXED_NOW


class ScriptedInvoker:
    """Stands in for GeminiInvoker: hands out canned replies in order."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def invoke(self, prompt_parts, **kwargs):
        self.calls.append((prompt_parts, kwargs))
        if not self.replies:
            raise AssertionError("unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply, ensure_ascii=False)

    def prompt(self, index):
        return self.calls[index][0][0]


def make_image(width=64, height=64, color="white"):
    return Image.new("RGB", (width, height), color)


def png_bytes(img):
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def png_base64(width=64, height=64):
    return base64.b64encode(png_bytes(make_image(width, height))).decode("ascii")


@pytest.fixture
def scripted():
    def build(*replies):
        invoker = ScriptedInvoker(*replies)
        pipeline = RosterPipeline(RosterExtractionEngine(invoker), clock=fixed_clock)
        return pipeline, invoker

    return build


@pytest.fixture
def image():
    return make_image()
