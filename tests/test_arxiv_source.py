import threading
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import arxiv
import pytest
import requests

from agents.sources.arxiv_source import ArxivSource, to_pdf_link
from agents.sources.errors import RateLimitedError, UnknownError, UpstreamHttpError


def make_result(entry_id, title, published=None, authors=(), summary="", links=(), categories=(), doi=""):
    return arxiv.Result(
        entry_id=entry_id,
        published=published or datetime(2023, 1, 15, 18, 0, tzinfo=timezone.utc),
        title=title,
        authors=[arxiv.Result.Author(name) for name in authors],
        summary=summary,
        doi=doi,
        categories=list(categories),
        links=list(links),
    )


RESULTS = [
    make_result(
        "http://arxiv.org/abs/2301.12345v1",
        "Attention Is Still\n  All You Need",
        authors=("Alice", "Bob"),
        summary="  An abstract\n      spanning lines. ",
        links=(
            arxiv.Result.Link("http://arxiv.org/abs/2301.12345v1", rel="alternate", content_type="text/html"),
            arxiv.Result.Link("http://arxiv.org/pdf/2301.12345v1", title="pdf", rel="related", content_type="application/pdf"),
        ),
        categories=("cs.CL", "cs.LG"),
        doi="10.1000/attention",
    ),
    make_result(
        "http://arxiv.org/abs/2302.00001v2",
        "Only An HTML Link",
        published=datetime(2023, 2, 1, tzinfo=timezone.utc),
        authors=("Carol",),
        summary="Second abstract.",
        links=(arxiv.Result.Link("http://arxiv.org/abs/2302.00001v2", rel="alternate", content_type="text/html"),),
    ),
    make_result("http://arxiv.org/abs/2303.99999v1", "", summary="No title here."),
]


def _client(results=RESULTS):
    client = MagicMock()
    client.results.side_effect = lambda search: iter(list(results))
    return client


def _source(limiter, collector, client=None):
    client = client or _client()
    return ArxivSource(rate_limiter=limiter, url_collector=collector, client=client), client


def test_to_pdf_link() -> None:
    assert to_pdf_link("https://arxiv.org/abs/2301.12345") == "https://arxiv.org/pdf/2301.12345.pdf"
    assert to_pdf_link("https://arxiv.org/pdf/2301.12345.pdf") == "https://arxiv.org/pdf/2301.12345.pdf"


def test_search_builds_arxiv_search(limiter, collector) -> None:
    source, client = _source(limiter, collector)

    source.search("attention", max_results=5, sort_by="submittedDate")

    search = client.results.call_args.args[0]
    assert search.query == "attention"
    assert search.max_results == 5
    assert search.sort_by == arxiv.SortCriterion.SubmittedDate
    assert search.sort_order == arxiv.SortOrder.Descending


def test_unknown_sort_falls_back_to_relevance(limiter, collector) -> None:
    source, client = _source(limiter, collector)
    source.search("attention", sort_by="citations")
    assert client.results.call_args.args[0].sort_by == arxiv.SortCriterion.Relevance


def test_default_client_does_not_wait_or_retry(limiter, collector) -> None:
    source = ArxivSource(rate_limiter=limiter, url_collector=collector)
    assert source.session is None

    with patch("agents.sources.arxiv_source.arxiv.Client") as client_cls:
        client_cls.return_value.results.return_value = iter([])
        source.search("attention", max_results=7)

    client_cls.assert_called_once_with(page_size=7, delay_seconds=0, num_retries=0)


def test_search_normalizes_results(limiter, collector) -> None:
    source, _ = _source(limiter, collector)

    response = source.search("attention")

    assert response.total_results == 2
    assert [p.source_id for p in response.papers] == ["2301.12345v1", "2302.00001v2"]

    first = response.papers[0]
    assert first.title == "Attention Is Still All You Need"
    assert first.authors == ["Alice", "Bob"]
    assert first.abstract == "An abstract spanning lines."
    assert first.published_date == "2023-01-15"
    assert first.categories == ["cs.CL", "cs.LG"]
    assert first.doi == "10.1000/attention"
    assert first.link == "http://arxiv.org/pdf/2301.12345v1.pdf"

    assert response.papers[1].link == "http://arxiv.org/pdf/2302.00001v2.pdf"
    assert response.papers[1].published_date == "2023-02-01"

    assert source.to_agent_dict(first) == {
        "title": "Attention Is Still All You Need",
        "abstract": "An abstract spanning lines.",
        "published": "2023-01-15",
        "pdfLink": "http://arxiv.org/pdf/2301.12345v1.pdf",
        "arxivId": "2301.12345v1",
    }


def test_search_collects_urls_in_order(limiter, collector) -> None:
    source, _ = _source(limiter, collector)
    source.search("attention")

    entries = collector.entries()
    assert [e.id for e in entries] == ["2301.12345v1", "2302.00001v2"]
    assert [e.url for e in entries] == [
        "http://arxiv.org/pdf/2301.12345v1.pdf",
        "http://arxiv.org/pdf/2302.00001v2.pdf",
    ]
    assert all(e.source == "arXiv" for e in entries)


def test_second_search_within_cooldown_is_rejected(limiter, collector, clock) -> None:
    source, client = _source(limiter, collector)
    source.search("attention")

    clock.advance(29999)
    with pytest.raises(RateLimitedError) as excinfo:
        source.search("attention")
    assert excinfo.value.retry_after_millis == 1
    assert client.results.call_count == 1

    clock.advance(1)
    source.search("attention")
    assert client.results.call_count == 2


def test_concurrent_search_is_rejected_while_first_is_in_flight(limiter, collector) -> None:
    started = threading.Event()
    finish = threading.Event()

    def slow_results(search):
        started.set()
        finish.wait(5)
        return iter(list(RESULTS))

    client = MagicMock()
    client.results.side_effect = slow_results
    source, _ = _source(limiter, collector, client=client)

    outcome = {}
    worker = threading.Thread(target=lambda: outcome.setdefault("response", source.search("attention")))
    worker.start()
    assert started.wait(5)
    try:
        with pytest.raises(RateLimitedError) as excinfo:
            source.search("attention")
    finally:
        finish.set()
        worker.join(5)

    assert excinfo.value.retry_after_millis == 30000
    assert client.results.call_count == 1
    assert len(outcome["response"].papers) == 2


def test_failed_request_does_not_start_cooldown(limiter, collector) -> None:
    client = MagicMock()
    client.results.side_effect = arxiv.HTTPError("http://export.arxiv.org/api/query", 0, 503)
    source, _ = _source(limiter, collector, client=client)

    with pytest.raises(UpstreamHttpError) as excinfo:
        source.search("attention")
    assert excinfo.value.status_code == 503
    assert limiter.can_call_now("arxiv").allowed is True
    assert len(collector) == 0

    # 失败后立即重试不会被拒绝
    with pytest.raises(UpstreamHttpError):
        source.search("attention")
    assert client.results.call_count == 2


def test_network_error_is_wrapped(limiter, collector) -> None:
    client = MagicMock()
    client.results.side_effect = requests.exceptions.ConnectionError("connection reset")
    source, _ = _source(limiter, collector, client=client)

    with pytest.raises(UnknownError) as excinfo:
        source.search("attention")
    assert "connection reset" in excinfo.value.message
    assert limiter.can_call_now("arxiv").allowed is True


def test_malformed_result_does_not_lose_siblings(limiter, collector) -> None:
    broken = SimpleNamespace(entry_id="http://arxiv.org/abs/2401.00001v1", title="Broken")
    survivor = make_result("http://arxiv.org/abs/2401.00002v1", "Survivor")
    source, _ = _source(limiter, collector, client=_client([broken, survivor]))

    response = source.search("anything")

    assert [p.title for p in response.papers] == ["Survivor"]
    assert response.papers[0].link == "http://arxiv.org/pdf/2401.00002v1.pdf"


def test_empty_results(limiter, collector) -> None:
    source, _ = _source(limiter, collector, client=_client([]))

    response = source.search("nothing")

    assert response.papers == []
    assert response.total_results == 0


def test_max_results_is_clamped(limiter, collector) -> None:
    source, client = _source(limiter, collector, client=_client([]))
    source.search("q", max_results=1000)
    assert client.results.call_args.args[0].max_results == 100
