"""
ArXiv 论文数据源

使用官方 arxiv Python 库检索预印本论文。
冷却时间内直接拒绝（fail-fast），由 Agent 决定稍后重试或改用其他数据源。
"""

import arxiv
import logging
from typing import Any, Dict, List, Optional

import requests

from .base_source import BasePaperSource, Paper, SearchResponse
from .errors import UnknownError, UpstreamHttpError
from .rate_limiter import RateLimiter, RateLimitPolicy
from .url_collector import UrlCollector

logger = logging.getLogger(__name__)

SORT_OPTIONS = {
    "relevance": arxiv.SortCriterion.Relevance,
    "lastUpdatedDate": arxiv.SortCriterion.LastUpdatedDate,
    "submittedDate": arxiv.SortCriterion.SubmittedDate,
}


def to_pdf_link(link: str) -> str:
    """
    把 arXiv 摘要页链接转换为 PDF 链接。

    "https://arxiv.org/abs/2301.12345" -> "https://arxiv.org/pdf/2301.12345.pdf"
    """
    pdf_link = link.replace("/abs/", "/pdf/")
    if not pdf_link.endswith(".pdf"):
        pdf_link += ".pdf"
    return pdf_link


class ArxivSource(BasePaperSource):
    """
    ArXiv 论文数据源。

    特点：
    - 支持 arXiv 检索语法（如 "au:Einstein", "ti:quantum"）
    - 返回给 Agent 的链接统一为 PDF 链接
    - 冷却时间 30 秒，冷却期内抛出 RateLimitedError
    - 使用官方 arxiv Python 库，库内不等待、不重试，限速只由 RateLimiter 负责
    """

    MAX_RESULTS_LIMIT = 100
    DEFAULT_MAX_RESULTS = 1
    USES_HTTP_SESSION = False

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        cooldown_ms: int = 30000,
        client: Optional[arxiv.Client] = None,
        **kwargs
    ):
        """
        初始化 ArXiv 数据源。

        参数:
            rate_limiter: 速率限制器
            url_collector: 链接收集器
            cooldown_ms: 两次调用之间的最小间隔（毫秒）
            client: 可选的 arxiv.Client（测试时可传入 Mock），默认每次检索按 max_results 新建
        """
        super().__init__("arxiv", rate_limiter, url_collector, **kwargs)
        self.client = client
        self.rate_limiter.register(self.source_name, cooldown_ms, RateLimitPolicy.FAIL_FAST)

    @property
    def display_name(self) -> str:
        return "arXiv"

    def _get_client(self, max_results: int) -> arxiv.Client:
        if self.client is not None:
            return self.client
        return arxiv.Client(page_size=max_results, delay_seconds=0, num_retries=0)

    def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        sort_by: str = "relevance",
        **filters
    ) -> SearchResponse:
        """
        检索 arXiv。

        参数:
            query: 检索词，支持 arXiv 检索语法
            max_results: 最大结果数（1-100）
            sort_by: relevance / lastUpdatedDate / submittedDate

        返回:
            SearchResponse: 检索结果（totalResults 为本次返回的论文数）

        异常:
            RateLimitedError: 冷却中或已有 arXiv 请求在途
            UpstreamHttpError: arXiv API 返回非 200
            UnknownError: 网络错误等其他异常
        """
        max_results = self.clamp_max_results(max_results)
        if sort_by not in SORT_OPTIONS:
            sort_by = "relevance"

        logger.info(f"[arXiv] 🔍 开始检索: \"{query}\" (maxResults: {max_results}, sortBy: {sort_by})")

        self.rate_limiter.acquire(self.source_name)
        try:
            search = arxiv.Search(
                query=query,
                max_results=max_results,
                sort_by=SORT_OPTIONS[sort_by],
                sort_order=arxiv.SortOrder.Descending,
            )
            results = self._fetch(self._get_client(max_results), search)
            papers = self.parse_results(results)
            return self._finish(papers, query, total_results=len(papers))
        finally:
            self.rate_limiter.release(self.source_name)

    def _fetch(self, client: arxiv.Client, search: arxiv.Search) -> List[arxiv.Result]:
        """取回全部结果，把 arxiv 库的异常映射为 SearchError"""
        try:
            return list(client.results(search))
        except arxiv.HTTPError as e:
            logger.error(f"[arXiv] ❌ API 错误: {e.status}")
            raise UpstreamHttpError(
                f"arXiv API request failed: {e.status}",
                status_code=e.status,
                source=self.source_name,
            ) from e
        except (arxiv.ArxivError, requests.exceptions.RequestException) as e:
            logger.error(f"[arXiv] ❌ 请求失败: {e}")
            raise UnknownError.wrap(e, source=self.source_name) from e

    def parse_results(self, results: List[arxiv.Result]) -> List[Paper]:
        """转换 arxiv.Result，缺少 id 或标题的条目被丢弃"""
        papers = self._normalize_each(results, self._to_paper)
        logger.info(f"[arXiv] 📊 解析完成: {len(papers)} 篇论文")
        return papers

    def _to_paper(self, result: arxiv.Result) -> Optional[Paper]:
        title = " ".join((result.title or "").split())
        if not result.entry_id or not title:
            return None

        arxiv_id = result.get_short_id()
        link = result.pdf_url or result.entry_id
        published = result.published

        return Paper(
            source_id=arxiv_id,
            title=title,
            source=self.display_name,
            authors=[author.name for author in result.authors],
            abstract=" ".join((result.summary or "").split()),
            published_date=published.date().isoformat() if published else None,
            link=to_pdf_link(link),
            doi=result.doi or None,
            categories=list(result.categories) if result.categories else [],
        )

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        return {
            "title": paper.title,
            "abstract": paper.abstract or "",
            "published": paper.published_date or "",
            "pdfLink": paper.link or "",
            "arxivId": paper.source_id,
        }
