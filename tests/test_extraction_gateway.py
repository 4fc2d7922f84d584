"""
Extraction gateway: ordered provider fallback with per-image retries.
"""

import threading

from answer_eval.schemas.submission import AnswerImage
from answer_eval.services import extraction_gateway
from answer_eval.services.extraction_gateway import ExtractionGateway
from answer_eval.services.extraction_providers import FAILURE_PREFIX, NO_READABLE_TEXT
from tests.conftest import ScriptedProvider


def images(count):
    return [
        AnswerImage(url=f"https://blob.example.com/img{i}.jpg", key=f"img{i}")
        for i in range(1, count + 1)
    ]


class CrashingProvider(ScriptedProvider):
    """Raises out of extract() itself, bypassing the per-call error handling."""

    def extract(self, ref):
        self.calls.append(ref.key)
        raise RuntimeError("client bug")


class HangingProvider(ScriptedProvider):
    def __init__(self, name):
        super().__init__(name)
        self.timeout = 0.1
        self.release = threading.Event()

    def extract(self, ref):
        self.calls.append(ref.key)
        self.release.wait(5)
        return super().extract(ref)


class TestExtractionGateway:
    def test_one_result_per_image_in_order(self):
        gateway = ExtractionGateway([ScriptedProvider("primary")], max_workers=3)

        results = gateway.extract(images(4))

        assert [r.text for r in results] == ["text of img1", "text of img2", "text of img3", "text of img4"]
        assert all(r.success and r.provider == "primary" for r in results)

    def test_empty_input(self):
        assert ExtractionGateway([ScriptedProvider("primary")]).extract([]) == []

    def test_secondary_only_retries_failed_images(self):
        primary = ScriptedProvider("primary", {"img2": RuntimeError("upstream 500")})
        secondary = ScriptedProvider("secondary")
        gateway = ExtractionGateway([primary, secondary], max_workers=3)

        results = gateway.extract(images(3))

        assert len(results) == 3
        assert [r.provider for r in results] == ["primary", "secondary", "primary"]
        assert all(r.success for r in results)
        assert results[1].text == "text of img2"
        assert secondary.calls == ["img2"]

    def test_unavailable_primary_is_skipped(self):
        primary = ScriptedProvider("primary", available=False)
        secondary = ScriptedProvider("secondary")
        gateway = ExtractionGateway([primary, secondary])

        results = gateway.extract(images(2))

        assert primary.calls == []
        assert [r.provider for r in results] == ["secondary", "secondary"]

    def test_no_available_provider_yields_placeholders(self):
        gateway = ExtractionGateway([ScriptedProvider("primary", available=False)])

        results = gateway.extract(images(2))

        assert len(results) == 2
        assert not any(r.success for r in results)
        assert all(r.text.startswith(FAILURE_PREFIX) for r in results)
        assert "image 2" in results[1].text

    def test_failure_everywhere_keeps_last_failure(self):
        primary = ScriptedProvider("primary", {"img1": RuntimeError("boom")})
        secondary = ScriptedProvider("secondary", {"img1": RuntimeError("rate limit hit")})
        gateway = ExtractionGateway([primary, secondary])

        results = gateway.extract(images(1))

        assert len(results) == 1
        assert results[0].success is False
        assert results[0].provider == "secondary"
        assert results[0].text.startswith(FAILURE_PREFIX)
        assert "rate limit" in results[0].error

    def test_third_provider_needs_no_special_handling(self):
        first = ScriptedProvider("first", {"img1": RuntimeError("x"), "img2": RuntimeError("x")})
        second = ScriptedProvider("second", {"img1": RuntimeError("y")})
        third = ScriptedProvider("third")
        gateway = ExtractionGateway([first, second, third])

        results = gateway.extract(images(3))

        assert [r.provider for r in results] == ["third", "second", "first"]
        assert sorted(second.calls) == ["img1", "img2"]
        assert third.calls == ["img1"]

    def test_blank_text_is_marked_unreadable(self):
        gateway = ExtractionGateway([ScriptedProvider("primary", {"img1": "   "})])

        result = gateway.extract(images(1))[0]

        assert result.success is True
        assert result.text == NO_READABLE_TEXT

    def test_single_image_crash_falls_through_to_secondary(self):
        primary = CrashingProvider("primary")
        secondary = ScriptedProvider("secondary")
        gateway = ExtractionGateway([primary, secondary])

        results = gateway.extract(images(1))

        assert primary.calls == ["img1"]
        assert len(results) == 1
        assert results[0].success is True
        assert results[0].provider == "secondary"

    def test_single_image_respects_deadline(self, monkeypatch):
        monkeypatch.setattr(extraction_gateway, "_TIMEOUT_GRACE_SECONDS", 0.0)
        primary = HangingProvider("primary")
        secondary = ScriptedProvider("secondary")
        gateway = ExtractionGateway([primary, secondary])

        try:
            results = gateway.extract(images(1))
        finally:
            primary.release.set()

        assert len(results) == 1
        assert results[0].provider == "secondary"
        assert results[0].text == "text of img1"
