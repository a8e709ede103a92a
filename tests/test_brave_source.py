import pytest

from agents.sources.brave_source import BraveSearchSource
from agents.sources.errors import ConfigurationError
from conftest import make_response, make_session


def _payload(count: int) -> dict:
    return {
        "query": {"original": "transformer 研究動向"},
        "web": {
            "results": [
                {"title": f"Result {i}", "url": f"https://example.com/{i}", "description": f"Snippet {i}"}
                for i in range(count)
            ]
        },
    }


def test_missing_api_key(limiter, collector) -> None:
    session = make_session()
    source = BraveSearchSource(rate_limiter=limiter, url_collector=collector, session=session)

    with pytest.raises(ConfigurationError):
        source.search("anything")
    session.get.assert_not_called()


def test_search_returns_at_most_five_results(limiter, collector) -> None:
    session = make_session(make_response(payload=_payload(8)))
    source = BraveSearchSource(
        rate_limiter=limiter, url_collector=collector, api_key="brave-key", freshness="pw", session=session
    )

    response = source.search("transformer 研究動向", max_results=50)

    kwargs = session.get.call_args.kwargs
    assert kwargs["headers"]["X-Subscription-Token"] == "brave-key"
    assert kwargs["params"]["q"] == "transformer 研究動向"
    assert kwargs["params"]["count"] == "10"
    assert kwargs["params"]["freshness"] == "pw"

    assert len(response.papers) == 5
    assert response.extras["searchQuery"] == "transformer 研究動向"
    assert response.extras["timestamp"]
    assert source.to_agent_dict(response.papers[0]) == {
        "title": "Result 0",
        "url": "https://example.com/0",
        "description": "Snippet 0",
    }
    assert [e.url for e in collector.entries()] == [f"https://example.com/{i}" for i in range(5)]


def test_empty_web_section(limiter, collector) -> None:
    session = make_session(make_response(payload={"query": {"original": "x"}}))
    source = BraveSearchSource(rate_limiter=limiter, url_collector=collector, api_key="k", session=session)

    response = source.search("x")

    assert response.papers == []
    assert response.total_results == 0
