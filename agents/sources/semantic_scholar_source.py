"""
Semantic Scholar 数据源

通过 Semantic Scholar Graph API 检索论文。
冷却时间内等待剩余时间后继续请求（不拒绝）。
"""

import logging
from typing import Any, Dict, Optional

from .base_source import BasePaperSource, Paper, SearchResponse, normalize_date
from .errors import UpstreamHttpError
from .rate_limiter import RateLimiter, RateLimitPolicy
from .url_collector import UrlCollector

logger = logging.getLogger(__name__)


class SemanticScholarSource(BasePaperSource):
    """
    Semantic Scholar 数据源。

    功能：
    - 关键词检索论文，显式指定返回字段
    - 可选 API Key（提高速率限制）
    - 缺失的 abstract / venue 视为空字符串，year 为 None，citationCount 为 0
    """

    API_BASE_URL = "https://api.semanticscholar.org/graph/v1"
    SEARCH_FIELDS = (
        "paperId,title,abstract,authors,year,citationCount,venue,"
        "publicationTypes,publicationDate,url,openAccessPdf,fieldsOfStudy"
    )
    MAX_RESULTS_LIMIT = 100
    DEFAULT_MAX_RESULTS = 50

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        api_key: Optional[str] = None,
        cooldown_ms: int = 1000,
        **kwargs
    ):
        """
        初始化 Semantic Scholar 数据源。

        参数:
            api_key: Semantic Scholar API Key（可选）
            cooldown_ms: 两次调用之间的最小间隔（毫秒）
        """
        super().__init__("semantic_scholar", rate_limiter, url_collector, **kwargs)
        self.api_key = api_key
        if api_key:
            self.session.headers.update({"x-api-key": api_key})
        self.rate_limiter.register(self.source_name, cooldown_ms, RateLimitPolicy.BLOCKING)

    @property
    def display_name(self) -> str:
        return "Semantic Scholar"

    def search(self, query: str, max_results: Optional[int] = None, **filters) -> SearchResponse:
        """
        检索 Semantic Scholar。

        参数:
            query: 检索词
            max_results: 最大结果数（1-100）

        返回:
            SearchResponse: 检索结果，totalResults 取自响应中的 total

        异常:
            UpstreamHttpError: 非 2xx 响应（429 时提示稍后重试）
        """
        max_results = self.clamp_max_results(max_results)
        logger.info(f"[Semantic Scholar] 🔍 开始检索: \"{query}\" ({max_results}件)")

        self.rate_limiter.acquire(self.source_name)

        params = {
            "query": query,
            "limit": str(max_results),
            "fields": self.SEARCH_FIELDS,
        }
        try:
            response = self._get(f"{self.API_BASE_URL}/paper/search", params=params)
        except UpstreamHttpError as e:
            if e.status_code == 429:
                logger.warning("⚠️  Semantic Scholar API 限速 (429)，建议申请免费 API Key")
                raise UpstreamHttpError(
                    "Semantic Scholar API rate limit exceeded. Please try again later.",
                    status_code=429,
                    source=self.source_name,
                ) from e
            raise

        data = response.json() or {}
        items = data.get("data") or []
        logger.info(f"[Semantic Scholar] 📄 获取 {len(items)} 篇论文（合计 {data.get('total', 'N/A')}）")

        papers = self._normalize_each(items, self._parse_item)
        total = data.get("total")
        return self._finish(papers, query, total_results=int(total) if total is not None else len(papers))

    def _parse_item(self, item: Dict[str, Any]) -> Optional[Paper]:
        paper_id = (item.get("paperId") or "").strip()
        title = (item.get("title") or "").strip()
        if not paper_id or not title:
            return None

        authors = []
        for author in item.get("authors") or []:
            name = (author.get("name") or "").strip() if isinstance(author, dict) else ""
            authors.append(name or "Unknown Author")

        year = item.get("year")
        return Paper(
            source_id=paper_id,
            title=title,
            source=self.display_name,
            authors=authors,
            abstract=item.get("abstract") or "",
            published_date=normalize_date(item.get("publicationDate")) or (str(year) if year else None),
            link=item.get("url") or f"https://www.semanticscholar.org/paper/{paper_id}",
            venue=item.get("venue") or "",
            year=int(year) if year else None,
            citation_count=item.get("citationCount") or 0,
            categories=list(item.get("fieldsOfStudy") or []),
            document_type=", ".join(item.get("publicationTypes") or []) or None,
        )

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        return {
            "title": paper.title,
            "abstract": paper.abstract,
            "year": paper.year,
            "citationCount": paper.citation_count or 0,
        }
