"""
Brave Web 检索数据源

通过 Brave Search API 做实时 Web 检索，用于了解研究领域的概况和关键术语。
需要 BRAVE_SEARCH_API_KEY。
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from .base_source import BasePaperSource, Paper, SearchResponse
from .errors import ConfigurationError
from .rate_limiter import RateLimiter
from .url_collector import UrlCollector

logger = logging.getLogger(__name__)


class BraveSearchSource(BasePaperSource):
    """Brave Web 检索。结果的 URL 同时作为标识和链接"""

    API_BASE_URL = "https://api.search.brave.com/res/v1/web/search"
    MAX_RESULTS_LIMIT = 5
    DEFAULT_MAX_RESULTS = 5
    REQUEST_COUNT = 10  # 每次向 Brave 请求的结果数（上限 20）

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        api_key: Optional[str] = None,
        country: str = "JP",
        search_lang: str = "jp",
        ui_lang: str = "ja-JP",
        freshness: str = "pd",
        **kwargs
    ):
        super().__init__("brave", rate_limiter, url_collector, **kwargs)
        self.api_key = api_key
        self.country = country
        self.search_lang = search_lang
        self.ui_lang = ui_lang
        self.freshness = freshness

    @property
    def display_name(self) -> str:
        return "Web"

    def search(self, query: str, max_results: Optional[int] = None, **filters) -> SearchResponse:
        """
        执行 Web 检索。

        返回:
            SearchResponse: extras 中包含 Brave 实际使用的查询词与检索时间

        异常:
            ConfigurationError: 未设置 BRAVE_SEARCH_API_KEY
        """
        if not self.api_key:
            raise ConfigurationError(
                "Brave Search API key not found. Please set BRAVE_SEARCH_API_KEY environment variable.",
                source=self.source_name,
            )

        max_results = self.clamp_max_results(max_results)
        search_time = datetime.now().isoformat(timespec="seconds")
        logger.info(f"[Brave Search] 🔍 开始检索: \"{query}\"")

        params = {
            "q": query,
            "count": str(self.REQUEST_COUNT),
            "offset": "0",
            "country": self.country,
            "search_lang": self.search_lang,
            "ui_lang": self.ui_lang,
            "freshness": self.freshness,
            "text_decorations": "true",
            "spellcheck": "true",
        }
        response = self._get(
            self.API_BASE_URL,
            params=params,
            headers={
                "Accept": "application/json",
                "Accept-Encoding": "gzip",
                "X-Subscription-Token": self.api_key,
            },
        )
        data = response.json() or {}
        web = data.get("web") or {}
        results = (web.get("results") or [])[:max_results]

        papers = self._normalize_each(results, self._parse_result)
        actual_query = (data.get("query") or {}).get("original") or query
        return self._finish(
            papers,
            query,
            total_results=web.get("total_count") or len(papers),
            extras={"searchQuery": actual_query, "timestamp": search_time},
        )

    def _parse_result(self, result: Dict[str, Any]) -> Optional[Paper]:
        url = (result.get("url") or "").strip()
        title = (result.get("title") or "").strip()
        if not url or not title:
            return None
        return Paper(
            source_id=url,
            title=title,
            source=self.display_name,
            abstract=result.get("description") or "",
            link=url,
            language=result.get("language") or None,
        )

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        return {
            "title": paper.title,
            "url": paper.link,
            "description": paper.abstract or "",
        }
