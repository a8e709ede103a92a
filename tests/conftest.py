from unittest.mock import MagicMock

import pytest

from agents.sources.rate_limiter import RateLimiter
from agents.sources.url_collector import UrlCollector


class FakeClock:
    """毫秒时钟，sleep() 直接推进时间并记录等待的秒数"""

    def __init__(self, start: int = 0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int):
        self.now += millis

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += int(round(seconds * 1000))


def make_response(status_code: int = 200, text: str = "", payload=None, reason: str = "OK") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.text = text
    response.json.return_value = payload
    return response


def make_session(response: MagicMock = None) -> MagicMock:
    session = MagicMock()
    session.headers = {}
    if response is not None:
        session.get.return_value = response
    return session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_000_000)


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(clock=clock, sleep=clock.sleep)


@pytest.fixture
def collector() -> UrlCollector:
    return UrlCollector()
