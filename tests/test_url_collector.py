import threading
from types import SimpleNamespace
from unittest.mock import MagicMock

import arxiv

from agents.sources.arxiv_source import ArxivSource
from agents.sources.jstage_source import JstageSource
from agents.sources.semantic_scholar_source import SemanticScholarSource
from agents.sources.url_collector import CollectedUrlEntry, UrlCollector
from conftest import make_response, make_session

JSTAGE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:prism="http://prismstandard.org/namespaces/basic/2.0/">
  <channel>
    <item>
      <title>強化学習の応用</title>
      <link>https://www.jstage.jst.go.jp/article/jsai/1/1/1_1/_article</link>
      <prism:doi>10.1111/jsai.1</prism:doi>
    </item>
    <item>
      <description>タイトルなし</description>
    </item>
  </channel>
</rss>
"""

SEMANTIC_SCHOLAR_PAYLOAD = {
    "total": 3,
    "data": [
        {"paperId": "s2-a", "title": "Policy Gradients", "url": "https://www.semanticscholar.org/paper/s2-a"},
        {"paperId": "s2-b", "title": None},
        "not a record",
    ],
}


def test_entries_keep_discovery_order() -> None:
    collector = UrlCollector()
    collector.add("1", "First", "https://a.example/1", "arXiv")
    collector.extend([
        CollectedUrlEntry(id="2", title="Second", url="https://b.example/2", source="CORE"),
        CollectedUrlEntry(id="3", title="Third", url="https://c.example/3", source="J-STAGE"),
    ])

    assert [e.id for e in collector.entries()] == ["1", "2", "3"]
    assert collector.entries()[0].to_dict() == {
        "id": "1",
        "title": "First",
        "url": "https://a.example/1",
        "source": "arXiv",
    }


def test_entries_returns_a_copy() -> None:
    collector = UrlCollector()
    collector.add("1", "First", "https://a.example/1", "arXiv")

    snapshot = collector.entries()
    snapshot.clear()

    assert len(collector) == 1


def test_clear() -> None:
    collector = UrlCollector()
    collector.add("1", "First", "https://a.example/1", "arXiv")
    collector.clear()
    assert collector.entries() == []


def test_concurrent_adds() -> None:
    collector = UrlCollector()

    def worker(prefix: str) -> None:
        for i in range(200):
            collector.add(f"{prefix}-{i}", "t", "u", "s")

    threads = [threading.Thread(target=worker, args=(str(n),)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(collector) == 800


def test_collector_follows_call_order_across_sources(limiter, collector) -> None:
    arxiv_client = MagicMock()
    arxiv_client.results.return_value = iter([
        arxiv.Result(entry_id="http://arxiv.org/abs/2401.00001v1", title="Deep Q-Networks Revisited"),
        arxiv.Result(entry_id="http://arxiv.org/abs/2401.00002v1", title=""),
        SimpleNamespace(entry_id="http://arxiv.org/abs/2401.00003v1", title="Broken"),
    ])
    arxiv_source = ArxivSource(rate_limiter=limiter, url_collector=collector, client=arxiv_client)
    jstage = JstageSource(
        rate_limiter=limiter,
        url_collector=collector,
        session=make_session(make_response(text=JSTAGE_FEED)),
    )
    semantic_scholar = SemanticScholarSource(
        rate_limiter=limiter,
        url_collector=collector,
        session=make_session(make_response(payload=SEMANTIC_SCHOLAR_PAYLOAD)),
    )

    arxiv_source.search("reinforcement learning")
    jstage.search("強化学習")
    semantic_scholar.search("reinforcement learning")

    entries = collector.entries()
    assert [(e.id, e.source) for e in entries] == [
        ("2401.00001v1", "arXiv"),
        ("10.1111/jsai.1", "J-STAGE"),
        ("s2-a", "Semantic Scholar"),
    ]
    assert [e.url for e in entries] == [
        "http://arxiv.org/pdf/2401.00001v1.pdf",
        "https://www.jstage.jst.go.jp/article/jsai/1/1/1_1/_article",
        "https://www.semanticscholar.org/paper/s2-a",
    ]
