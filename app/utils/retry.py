# app/utils/retry.py
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_fixed,
)
import requests
import redis


def http_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type(requests.RequestException),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )


def lock_wait(max_wait: float, interval: float = 0.05):
    """
    Ponawia probe zalozenia locka dopoki zwraca False, maksymalnie max_wait sekund.
    Po przekroczeniu czasu zwraca ostatni wynik (False) zamiast rzucac RetryError.
    """
    return retry(
        stop=stop_after_delay(max_wait),
        wait=wait_fixed(interval),
        retry=retry_if_result(lambda acquired: not acquired),
        retry_error_callback=lambda state: state.outcome.result(),
    )
