"""Tests for URL validation and TaskSubmitter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from core.allowlist import is_host_allowed, normalize_domains, split_http_url
from schemas.jobs import Job
from services.jobs.exceptions import SubmissionError, UrlValidationError
from services.jobs.submitter import TaskSubmitter
from services.jobs.validation import validate_job_url


ALLOWED = frozenset({"media.licdn.com"})
VALID_URL = "https://media.licdn.com/dms/image/photo.jpg"
DOMAIN_MESSAGE = (
    "Please enter a valid media URL from an allowed domain "
    "(e.g., https://media.licdn.com/...)."
)


class TestValidateJobUrl:
    """Pure validation against the allow-list."""

    def test_accepts_allowed_host_and_strips_whitespace(self):
        assert validate_job_url(f"\t{VALID_URL}  ", ALLOWED) == VALID_URL

    def test_host_match_is_case_insensitive(self):
        url = "HTTPS://Media.LICDN.com/photo.jpg"
        assert validate_job_url(url, ALLOWED) == url

    @pytest.mark.parametrize("url", ["", "   ", None, 42])
    def test_empty_input(self, url):
        with pytest.raises(UrlValidationError) as exc_info:
            validate_job_url(url, ALLOWED)

        assert exc_info.value.message == "URL cannot be empty."
        assert exc_info.value.error_code == "invalid_url"

    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "media.licdn.com/photo.jpg",
            "ftp://media.licdn.com/photo.jpg",
            "javascript:alert(1)",
            "https://example.com/photo.jpg",
            "https://media.licdn.com.evil.com/photo.jpg",
            "https://cdn.media.licdn.com/photo.jpg",
            "http://[::1",
        ],
    )
    def test_rejects_urls_outside_allow_list(self, url):
        with pytest.raises(UrlValidationError) as exc_info:
            validate_job_url(url, ALLOWED)

        assert exc_info.value.message == DOMAIN_MESSAGE


class TestAllowList:
    def test_normalize_domains_lowercases_and_drops_blanks(self):
        assert normalize_domains([" Media.LICDN.com ", "", "  "]) == ALLOWED

    def test_split_http_url_requires_scheme_and_host(self):
        assert split_http_url("https:///path") is None
        assert split_http_url("https://media.licdn.com/a").hostname == "media.licdn.com"

    def test_trailing_dot_hostname_matches(self):
        assert is_host_allowed("media.licdn.com.", ALLOWED)
        assert not is_host_allowed(None, ALLOWED)


@pytest.fixture
def store_client() -> AsyncMock:
    client = AsyncMock()
    client.insert.return_value = Job(id="job-1", url=VALID_URL)
    return client


@pytest.mark.asyncio
class TestTaskSubmitter:
    """Job creation through the store client."""

    async def test_submit_inserts_exactly_one_job(self, store_client):
        submitter = TaskSubmitter(store_client, ALLOWED)

        job = await submitter.submit(f" {VALID_URL} ")

        assert job.id == "job-1"
        store_client.insert.assert_awaited_once_with(VALID_URL)

    async def test_invalid_url_never_reaches_store(self, store_client):
        submitter = TaskSubmitter(store_client, ALLOWED)

        with pytest.raises(UrlValidationError):
            await submitter.submit("https://example.com/photo.jpg")

        store_client.insert.assert_not_awaited()

    async def test_store_error_is_wrapped(self, store_client):
        store_client.insert.side_effect = RuntimeError("insert rejected")
        submitter = TaskSubmitter(store_client, ALLOWED)

        with pytest.raises(SubmissionError) as exc_info:
            await submitter.submit(VALID_URL)

        assert exc_info.value.message == "insert rejected"
        assert exc_info.value.error_code == "submission_failed"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    async def test_missing_job_is_a_submission_error(self, store_client):
        store_client.insert.return_value = None
        submitter = TaskSubmitter(store_client, ALLOWED)

        with pytest.raises(SubmissionError) as exc_info:
            await submitter.submit(VALID_URL)

        assert (
            exc_info.value.message
            == "Task submission failed: No task details received."
        )

    async def test_submitter_is_reusable_after_failure(self, store_client):
        store_client.insert.side_effect = [RuntimeError("boom"), store_client.insert.return_value]
        submitter = TaskSubmitter(store_client, ALLOWED)

        with pytest.raises(SubmissionError):
            await submitter.submit(VALID_URL)
        job = await submitter.submit(VALID_URL)

        assert job.id == "job-1"
        assert store_client.insert.await_count == 2
