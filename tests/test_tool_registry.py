import json
from types import SimpleNamespace
from unittest.mock import MagicMock

from agents.search_agent import SearchAgent
from agents.sources.base_source import Paper, SearchResponse
from agents.sources.errors import RateLimitedError, UpstreamHttpError
from agents.tool_registry import (
    ArxivSearchInput,
    BraveSearchInput,
    ConferenceSearchInput,
    ToolResult,
    build_registry,
)

TOOL_NAMES = [
    "search-arxiv",
    "search-semantic-scholar",
    "core-search",
    "search-jstage",
    "brave-search-web",
    "top-conference-search",
]


def _mock_source(papers=None, extras=None):
    source = MagicMock()
    source.search.return_value = SearchResponse(
        papers=papers or [], total_results=len(papers or []), query="q", source="mock", extras=extras or {}
    )
    source.to_agent_dict.side_effect = lambda paper: {"title": paper.title}
    return source


def _registry(**overrides):
    sources = {
        name: _mock_source()
        for name in ("arxiv", "semantic_scholar", "core", "jstage", "brave", "conference")
    }
    sources.update(overrides)
    return build_registry(**sources), sources


def test_max_results_is_clamped_not_rejected() -> None:
    assert ArxivSearchInput(query="x", max_results=500).max_results == 100
    assert ArxivSearchInput(query="x", max_results=0).max_results == 1
    assert ArxivSearchInput(query="x").max_results == 1
    assert BraveSearchInput(query="x", max_results=20).max_results == 5
    assert ConferenceSearchInput(query="x", max_results=None).max_results == 10


def test_openai_tools_cover_all_tools() -> None:
    registry, _ = _registry()

    tools = registry.openai_tools()

    assert registry.names() == TOOL_NAMES
    assert [t["function"]["name"] for t in tools] == TOOL_NAMES
    arxiv_params = tools[0]["function"]["parameters"]
    assert arxiv_params["required"] == ["query"]
    assert set(arxiv_params["properties"]) == {"query", "max_results", "sort_by"}


def test_invoke_success_with_json_arguments() -> None:
    paper = Paper(source_id="2301.1", title="A Paper", source="arXiv")
    arxiv = _mock_source(papers=[paper])
    registry, _ = _registry(arxiv=arxiv)

    result = registry.invoke("search-arxiv", '{"query": "  attention ", "max_results": 300}')

    assert result.ok is True
    assert result.data == {"papers": [{"title": "A Paper"}]}
    arxiv.search.assert_called_once_with("attention", 100, sort_by="relevance")


def test_conference_output_shape() -> None:
    conference = _mock_source(extras={"content": "## report", "citations": ["https://icml.cc"]})
    registry, _ = _registry(conference=conference)

    result = registry.invoke("top-conference-search", {"query": "rl", "search_id": 2})

    assert result.data == {
        "searchId": 2,
        "query": "rl",
        "content": "## report",
        "citations": ["https://icml.cc"],
        "papers": [],
        "success": True,
    }


def test_rate_limited_error_becomes_failure_result() -> None:
    arxiv = _mock_source()
    arxiv.search.side_effect = RateLimitedError(
        "arxiv API cooldown active. Please wait 12 seconds before next search.",
        retry_after_millis=12000,
        source="arxiv",
    )
    registry, _ = _registry(arxiv=arxiv)

    result = registry.invoke("search-arxiv", {"query": "x"})

    assert result.ok is False
    assert result.data is None
    assert result.error.kind == "rate_limited"
    assert result.error.retry_after_millis == 12000

    payload = json.loads(result.to_json())
    assert payload == {
        "tool": "search-arxiv",
        "ok": False,
        "error": {
            "kind": "rate_limited",
            "message": "arxiv API cooldown active. Please wait 12 seconds before next search.",
            "source": "arxiv",
            "retry_after_millis": 12000,
        },
    }


def test_upstream_error_keeps_status_code() -> None:
    semantic_scholar = _mock_source()
    semantic_scholar.search.side_effect = UpstreamHttpError("rate limit", status_code=429, source="semantic_scholar")
    registry, _ = _registry(semantic_scholar=semantic_scholar)

    result = registry.invoke("search-semantic-scholar", {"query": "x"})

    assert result.error.kind == "upstream_http"
    assert result.error.status_code == 429


def test_unexpected_exception_is_wrapped_as_unknown() -> None:
    jstage = _mock_source()
    jstage.search.side_effect = KeyError("boom")
    registry, _ = _registry(jstage=jstage)

    result = registry.invoke("search-jstage", {"query": "x"})

    assert result.ok is False
    assert result.error.kind == "unknown"


def test_invalid_arguments() -> None:
    registry, sources = _registry()

    for arguments in ({}, {"query": ""}, "{not json", {"query": "x", "max_results": "many"}):
        result = registry.invoke("search-arxiv", arguments)
        assert result.ok is False
        assert result.error.kind == "invalid_input"

    result = registry.invoke("search-jstage", {"query": "x", "pubyearfrom": "20"})
    assert result.error.kind == "invalid_input"
    sources["arxiv"].search.assert_not_called()
    sources["jstage"].search.assert_not_called()


def test_unknown_tool() -> None:
    registry, _ = _registry()

    result = registry.invoke("search-google", {"query": "x"})

    assert result == ToolResult(tool="search-google", ok=False, error=result.error)
    assert result.error.kind == "unknown"


def _config(**overrides):
    values = dict(
        REQUEST_TIMEOUT=30,
        USER_AGENT="Paper-Agent/1.0",
        ARXIV_COOLDOWN_MS=30000,
        SEMANTIC_SCHOLAR_COOLDOWN_MS=1000,
        JSTAGE_COOLDOWN_MS=1000,
        SEMANTIC_SCHOLAR_API_KEY="",
        CORE_API_KEY="",
        BRAVE_SEARCH_API_KEY="",
        BRAVE_COUNTRY="JP",
        BRAVE_SEARCH_LANG="jp",
        BRAVE_UI_LANG="ja-JP",
        BRAVE_FRESHNESS="pd",
        CONFERENCE_SEARCH_MODEL="gemini-2.5-flash",
        CONFERENCE_SEARCH_TEMPERATURE=0.7,
        CONFERENCE_SEARCH_MAX_TOKENS=8192,
        gemini_api_key="",
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_search_agent_shares_limiter_and_collector(limiter, collector) -> None:
    with SearchAgent(config=_config(), rate_limiter=limiter, url_collector=collector) as agent:
        assert agent.registry.names() == TOOL_NAMES
        for source in agent.sources.values():
            assert source.rate_limiter is limiter
            assert source.url_collector is collector
        assert limiter.cooldown_for("arxiv") == 30000
        assert limiter.cooldown_for("jstage") == 1000


def test_search_agent_reports_missing_credentials_as_results(limiter, collector) -> None:
    with SearchAgent(config=_config(), rate_limiter=limiter, url_collector=collector) as agent:
        for tool in ("core-search", "brave-search-web", "top-conference-search"):
            result = agent.invoke(tool, {"query": "x"})
            assert result.ok is False
            assert result.error.kind == "configuration"
