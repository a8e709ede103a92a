import pytest

from agents.sources.errors import UpstreamHttpError
from agents.sources.semantic_scholar_source import SemanticScholarSource
from conftest import make_response, make_session

PAYLOAD = {
    "total": 1234,
    "data": [
        {
            "paperId": "abc123",
            "title": "Graph Neural Networks: A Review",
            "abstract": "We review GNNs.",
            "authors": [{"authorId": "1", "name": "Jie Zhou"}, {"authorId": "2", "name": "Ganqu Cui"}],
            "year": 2020,
            "citationCount": 4321,
            "venue": "AI Open",
            "publicationTypes": ["Review", "JournalArticle"],
            "publicationDate": "2020-01-01",
            "url": "https://www.semanticscholar.org/paper/abc123",
            "fieldsOfStudy": ["Computer Science"],
        },
        {
            "paperId": "def456",
            "title": "Sparse Record",
            "abstract": None,
            "authors": [],
            "year": None,
            "citationCount": None,
            "venue": None,
            "url": None,
        },
        {
            "paperId": "ghi789",
            "title": None,
        },
    ],
}


def _source(limiter, collector, response=None, api_key=None):
    session = make_session(response or make_response(payload=PAYLOAD))
    source = SemanticScholarSource(rate_limiter=limiter, url_collector=collector, api_key=api_key, session=session)
    return source, session


def test_search_normalizes_papers(limiter, collector) -> None:
    source, session = _source(limiter, collector)

    response = source.search("graph neural networks", max_results=10)

    assert session.get.call_args.args[0] == "https://api.semanticscholar.org/graph/v1/paper/search"
    params = session.get.call_args.kwargs["params"]
    assert params["query"] == "graph neural networks"
    assert params["limit"] == "10"
    assert "citationCount" in params["fields"]

    assert response.total_results == 1234
    assert [p.source_id for p in response.papers] == ["abc123", "def456"]

    first = response.papers[0]
    assert first.authors == ["Jie Zhou", "Ganqu Cui"]
    assert first.published_date == "2020-01-01"
    assert source.to_agent_dict(first) == {
        "title": "Graph Neural Networks: A Review",
        "abstract": "We review GNNs.",
        "year": 2020,
        "citationCount": 4321,
    }


def test_missing_fields_get_defaults(limiter, collector) -> None:
    source, _ = _source(limiter, collector)

    sparse = source.search("q").papers[1]

    assert sparse.abstract == ""
    assert sparse.venue == ""
    assert sparse.year is None
    assert sparse.citation_count == 0
    assert sparse.link == "https://www.semanticscholar.org/paper/def456"
    assert source.to_agent_dict(sparse) == {
        "title": "Sparse Record",
        "abstract": "",
        "year": None,
        "citationCount": 0,
    }


def test_api_key_header(limiter, collector) -> None:
    _, session = _source(limiter, collector, api_key="secret")
    assert session.headers["x-api-key"] == "secret"


def test_rate_limit_response_maps_to_429(limiter, collector) -> None:
    source, _ = _source(limiter, collector, response=make_response(status_code=429, reason="Too Many Requests"))

    with pytest.raises(UpstreamHttpError) as excinfo:
        source.search("q")

    assert excinfo.value.status_code == 429
    assert "rate limit exceeded" in excinfo.value.message


def test_consecutive_searches_wait_instead_of_failing(limiter, collector, clock) -> None:
    source, session = _source(limiter, collector)

    source.search("first")
    clock.advance(250)
    source.search("second")

    assert session.get.call_count == 2
    assert clock.sleeps == [0.75]


def test_empty_payload(limiter, collector) -> None:
    source, _ = _source(limiter, collector, response=make_response(payload={"total": 0, "data": []}))

    response = source.search("nothing")

    assert response.papers == []
    assert response.total_results == 0
    assert len(collector) == 0
