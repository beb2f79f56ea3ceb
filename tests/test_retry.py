import httpx

from malrec.core.retry import RetryConfig, calculate_delay, is_retryable_exception


def status_error(code, headers=None):
    request = httpx.Request("GET", "https://api.myanimelist.net/v2/anime/1")
    response = httpx.Response(code, headers=headers, request=request)
    return httpx.HTTPStatusError("error", request=request, response=response)


def test_retryable_status_codes():
    config = RetryConfig()
    assert is_retryable_exception(status_error(429), config)
    assert is_retryable_exception(status_error(502), config)
    assert not is_retryable_exception(status_error(401), config)
    assert not is_retryable_exception(ValueError("bad"), config)
    assert is_retryable_exception(httpx.ConnectTimeout("slow"), config)


def test_backoff_is_capped():
    config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=0)
    assert calculate_delay(0, config) == 1.0
    assert calculate_delay(2, config) == 4.0
    assert calculate_delay(10, config) == 5.0


def test_retry_after_wins_over_backoff():
    config = RetryConfig(base_delay=1.0, max_delay=30.0, jitter=0)
    assert calculate_delay(0, config, retry_after=12) == 12
    assert calculate_delay(0, config, retry_after=120) == 30.0
