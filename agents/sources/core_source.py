"""
CORE 数据源

通过 CORE v3 API 检索全球开放获取仓储中的论文。
需要 CORE_API_KEY（Bearer Token），没有冷却时间限制。
"""

import logging
from typing import Any, Dict, List, Optional

from .base_source import BasePaperSource, Paper, SearchResponse, normalize_date
from .errors import ConfigurationError
from .rate_limiter import RateLimiter
from .url_collector import UrlCollector

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("article", "thesis", "book", "conference", "all")

AGENT_AUTHOR_LIMIT = 3


class CoreSource(BasePaperSource):
    """
    CORE 开放获取数据源。

    特点：
    - 年份、语言、文献类型等过滤条件合并进 CORE 的查询语法
    - 作者对象简化为姓名字符串；发给 Agent 时只保留前3名
    """

    API_BASE_URL = "https://api.core.ac.uk/v3"
    MAX_RESULTS_LIMIT = 100
    DEFAULT_MAX_RESULTS = 20

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        api_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__("core", rate_limiter, url_collector, **kwargs)
        self.api_key = api_key

    @property
    def display_name(self) -> str:
        return "CORE"

    @staticmethod
    def build_query(
        query: str,
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
        language_filter: Optional[List[str]] = None,
        document_type: str = "all"
    ) -> str:
        """把过滤条件拼接到 CORE 查询语句中"""
        clauses = [f"({query})"]
        if year_from:
            clauses.append(f"yearPublished>={int(year_from)}")
        if year_to:
            clauses.append(f"yearPublished<={int(year_to)}")
        if language_filter:
            langs = " OR ".join(f"language.code:{code}" for code in language_filter)
            clauses.append(f"({langs})" if len(language_filter) > 1 else langs)
        if document_type and document_type != "all":
            clauses.append(f"documentType:{document_type}")
        if len(clauses) == 1:
            return query
        return " AND ".join(clauses)

    def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        year_from: Optional[int] = None,
        year_to: Optional[int] = None,
        language_filter: Optional[List[str]] = None,
        document_type: str = "all",
        **filters
    ) -> SearchResponse:
        """
        检索 CORE。

        参数:
            query: 检索词
            max_results: 最大结果数（1-100）
            year_from / year_to: 出版年份范围
            language_filter: 语言代码列表，如 ["en", "ja"]
            document_type: article / thesis / book / conference / all

        异常:
            ConfigurationError: 未设置 CORE_API_KEY
        """
        if not self.api_key:
            raise ConfigurationError(
                "CORE API key not found. Please set CORE_API_KEY environment variable.",
                source=self.source_name,
            )

        max_results = self.clamp_max_results(max_results)
        if document_type not in DOCUMENT_TYPES:
            document_type = "all"

        q = self.build_query(query, year_from, year_to, language_filter, document_type)
        logger.info(f"[CORE] 📡 检索请求: {q} ({max_results}件)")

        response = self._get(
            f"{self.API_BASE_URL}/search/works",
            params={"q": q, "limit": str(max_results)},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        data = response.json() or {}
        results = data.get("results") or []

        papers = self._normalize_each(results, self._parse_result)
        total = data.get("totalHits")
        return self._finish(papers, query, total_results=int(total) if total else len(papers))

    def _parse_result(self, result: Dict[str, Any]) -> Optional[Paper]:
        core_id = str(result.get("id") or "").strip()
        title = (result.get("title") or "").strip()
        if not core_id or not title:
            return None

        authors = []
        for author in result.get("authors") or []:
            name = author.get("name") if isinstance(author, dict) else author
            if name:
                authors.append(str(name).strip())

        repository = "Unknown"
        providers = result.get("dataProviders") or []
        if providers and isinstance(providers[0], dict) and providers[0].get("name"):
            repository = providers[0]["name"]
        elif isinstance(result.get("repository"), dict) and result["repository"].get("name"):
            repository = result["repository"]["name"]

        year = result.get("yearPublished") or result.get("year")
        language = result.get("language")
        if isinstance(language, dict):
            language = language.get("code")

        return Paper(
            source_id=core_id,
            title=title,
            source=self.display_name,
            authors=authors,
            abstract=result.get("abstract") or "",
            published_date=normalize_date(result.get("publishedDate")) or (str(year) if year else None),
            link=result.get("downloadUrl") or f"https://core.ac.uk/works/{core_id}",
            doi=result.get("doi") or None,
            journal=repository,
            year=int(year) if year else None,
            categories=list(result.get("subjects") or []),
            language=language or None,
            document_type=result.get("documentType") or result.get("type") or None,
        )

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        data = {
            "coreId": paper.source_id,
            "title": paper.title,
            "authors": paper.authors[:AGENT_AUTHOR_LIMIT],
            "abstract": paper.abstract or None,
            "year": paper.year,
            "repository": paper.journal or "Unknown",
            "doi": paper.doi,
        }
        return {k: v for k, v in data.items() if v is not None}
