"""Tests for the task poller."""

from datetime import timedelta
from unittest.mock import patch

from conftest import START_TIME, FakeClock, make_task
from neoclip.models.shared import FailureReason, GenerationStatus
from neoclip.services.http_client import HttpResponse
from neoclip.services.video.common import (
    ProviderAuthError,
    ProviderNotConfiguredError,
    ProviderPollResult,
    ProviderRateLimitError,
    ProviderUnavailableError,
)
from neoclip.services.video.fal import FalMinimaxAdapter
from neoclip.services.video.poller import (
    RESULT_NOT_FOUND_MESSAGE,
    TaskPoller,
    estimate_progress,
)
from neoclip.services.video.registry import FallbackChainSelector


def test_estimate_progress():
    assert estimate_progress(START_TIME, START_TIME) == 20
    assert estimate_progress(START_TIME, START_TIME + timedelta(seconds=50)) == 30
    assert estimate_progress(START_TIME, START_TIME + timedelta(hours=1)) == 90


class TestTaskPoller:
    """Tests for TaskPoller.check."""

    def test_terminal_task_is_not_polled(self, selector, adapters):
        task = make_task(
            status=GenerationStatus.COMPLETED, video_url="https://cdn/v.mp4"
        )

        outcome = TaskPoller(selector).check(task)

        assert outcome.cached is True
        assert outcome.status == GenerationStatus.COMPLETED
        assert outcome.video_url == "https://cdn/v.mp4"
        adapters["wan"].poll_status.assert_not_called()

    def test_unknown_provider_fails(self, selector):
        outcome = TaskPoller(selector).check(make_task(provider="sora"))

        assert outcome.status == GenerationStatus.FAILED
        assert outcome.error_reason == FailureReason.PROVIDER_UNKNOWN

    def test_unconfigured_provider_fails(self, selector, adapters):
        adapters["wan"].poll_status.side_effect = ProviderNotConfiguredError(
            "wan", "No API key for Wan-2.1"
        )

        outcome = TaskPoller(selector).check(make_task())

        assert outcome.status == GenerationStatus.FAILED
        assert outcome.error_reason == FailureReason.PROVIDER_AUTH

    def test_auth_error_fails(self, selector, adapters):
        adapters["wan"].poll_status.side_effect = ProviderAuthError(
            "wan", "Auth error", 401
        )

        outcome = TaskPoller(selector).check(make_task())

        assert outcome.status == GenerationStatus.FAILED
        assert outcome.error == "Authentication error"
        assert outcome.error_reason == FailureReason.PROVIDER_AUTH

    def test_transient_error_keeps_status_and_warns(self, selector, adapters):
        adapters["wan"].poll_status.side_effect = ProviderUnavailableError(
            "wan", "Wan-2.1: Request timeout after 15.0s"
        )
        clock = FakeClock(START_TIME + timedelta(seconds=100))

        outcome = TaskPoller(selector, clock=clock).check(make_task(progress=10))

        assert outcome.status == GenerationStatus.PROCESSING
        assert outcome.progress == 40
        assert "timeout" in outcome.warning
        assert not outcome.is_terminal

    def test_rate_limit_is_transient(self, selector, adapters):
        adapters["wan"].poll_status.side_effect = ProviderRateLimitError(
            "wan", "Rate limited", 429
        )

        outcome = TaskPoller(selector, clock=FakeClock()).check(
            make_task(status=GenerationStatus.QUEUED)
        )

        assert outcome.status == GenerationStatus.QUEUED
        assert outcome.warning == "Rate limited"

    def test_completed_with_url(self, selector, adapters):
        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.COMPLETED, progress=100, video_url="https://cdn/v.mp4"
        )

        outcome = TaskPoller(selector).check(make_task())

        assert outcome.status == GenerationStatus.COMPLETED
        assert outcome.progress == 100
        assert outcome.video_url == "https://cdn/v.mp4"
        assert outcome.cached is False

    def test_completed_without_url_is_failure(self, selector, adapters):
        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.COMPLETED, progress=100
        )

        outcome = TaskPoller(selector).check(make_task())

        assert outcome.status == GenerationStatus.FAILED
        assert outcome.error == RESULT_NOT_FOUND_MESSAGE
        assert outcome.error_reason == FailureReason.RESULT_NOT_FOUND

    def test_vendor_failure(self, selector, adapters):
        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.FAILED, error="NSFW content detected"
        )

        outcome = TaskPoller(selector).check(make_task())

        assert outcome.status == GenerationStatus.FAILED
        assert outcome.error == "NSFW content detected"
        assert outcome.error_reason == FailureReason.PROVIDER_FAILED

    def test_progress_never_decreases(self, selector, adapters):
        adapters["wan"].poll_status.return_value = ProviderPollResult(
            status=GenerationStatus.PROCESSING, progress=40
        )

        outcome = TaskPoller(selector).check(make_task(progress=60))

        assert outcome.progress == 60
        adapters["wan"].poll_status.assert_called_once_with("wan-task-1")

    @patch("neoclip.services.video.common.make_request")
    def test_result_fetch_outage_is_transient(self, mock_request):
        mock_request.side_effect = [
            HttpResponse(status_code=200, data={"status": "COMPLETED"}),
            HttpResponse(status_code=503, text="Service Unavailable"),
        ]
        selector = FallbackChainSelector(
            {"fal": FalMinimaxAdapter("fal-key")}, {"free": ("fal",)}
        )
        task = make_task(provider="fal", provider_task_id="req-1", progress=60)

        outcome = TaskPoller(selector, clock=FakeClock()).check(task)

        assert outcome.status == GenerationStatus.PROCESSING
        assert not outcome.is_terminal
        assert outcome.error_reason is None
        assert "HTTP 503" in outcome.warning
