import httpx
import pytest

from shared.resilience import RetryPolicy, is_retryable_error, with_retry


def status_error(status):
    request = httpx.Request("GET", "https://carrier.test/mailpieces/v2/X")
    return httpx.HTTPStatusError("error", request=request, response=httpx.Response(status, request=request))


class TestRetryPolicy:
    def test_delay_grows_exponentially_up_to_cap(self):
        policy = RetryPolicy(max_retries=5, base_delay=1.0, max_delay=5.0, backoff_factor=2.0)
        assert [policy.delay_for(attempt) for attempt in range(4)] == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.parametrize("status", [500, 502, 503, 429])
    def test_transient_statuses_are_retryable(self, status):
        assert is_retryable_error(status_error(status))

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_errors_are_not_retryable(self, status):
        assert not is_retryable_error(status_error(status))

    def test_transport_errors_are_retryable(self):
        request = httpx.Request("GET", "https://carrier.test")
        assert is_retryable_error(httpx.ConnectError("refused", request=request))
        assert is_retryable_error(httpx.ReadTimeout("slow", request=request))
        assert not is_retryable_error(ValueError("bad payload"))


class TestWithRetry:
    async def test_recovers_after_transient_failures(self):
        outcomes = [status_error(503), status_error(503), "ok"]
        delays = []

        async def call():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        async def record_sleep(delay):
            delays.append(delay)

        result = await with_retry(call, RetryPolicy(max_retries=3, base_delay=1.0), sleep=record_sleep)
        assert result == "ok"
        assert delays == [1.0, 2.0]

    async def test_gives_up_after_max_retries(self):
        attempts = []

        async def call():
            attempts.append(1)
            raise status_error(503)

        async def no_sleep(delay):
            return None

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(call, RetryPolicy(max_retries=3), sleep=no_sleep)
        assert len(attempts) == 4

    async def test_non_retryable_error_fails_immediately(self):
        attempts = []

        async def call():
            attempts.append(1)
            raise status_error(404)

        async def no_sleep(delay):
            return None

        with pytest.raises(httpx.HTTPStatusError):
            await with_retry(call, RetryPolicy(max_retries=3), sleep=no_sleep)
        assert len(attempts) == 1
