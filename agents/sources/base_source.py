"""
论文数据源抽象基类

定义所有检索数据源必须实现的统一接口：
发送一次 HTTP 请求 -> 解析响应 -> 归一化为 Paper -> 记录调用时间与链接。
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional, Any, Iterable, Callable

import requests

from .errors import SearchError, UpstreamHttpError, UnknownError, ParseFailure
from .rate_limiter import RateLimiter
from .url_collector import CollectedUrlEntry, UrlCollector

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Paper-Agent/1.0"

_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def normalize_date(value: Optional[str]) -> Optional[str]:
    """
    把各数据源的日期字符串统一为 YYYY-MM-DD。

    完整的日期/时间（如 "2023-01-15T18:00:00Z"）截取为 "2023-01-15"；
    只有年份或年月等不完整的值原样返回；空值返回 None。
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    match = _ISO_DATE_RE.match(text)
    if match:
        return "-".join(match.groups())
    return text


@dataclass
class Paper:
    """
    统一的论文记录。

    所有数据源返回的论文都使用这个格式；发给 Agent 的字段由各数据源的
    to_agent_dict() 进一步精简。
    """
    source_id: str                         # 数据源内的唯一标识（arXiv ID、DOI 等）
    title: str                             # 论文标题
    source: str                            # 数据源显示名（如 "arXiv", "J-STAGE"）
    authors: List[str] = field(default_factory=list)  # 作者列表（完整）
    abstract: Optional[str] = None         # 摘要
    published_date: Optional[str] = None   # 发布日期（YYYY-MM-DD）
    link: Optional[str] = None             # 论文页面 / PDF 链接
    doi: Optional[str] = None
    journal: Optional[str] = None          # 期刊 / 仓储名称
    venue: Optional[str] = None            # 会议 / 出版物
    year: Optional[int] = None
    citation_count: Optional[int] = None
    categories: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    language: Optional[str] = None
    document_type: Optional[str] = None

    def get_authors_string(self) -> str:
        """获取作者字符串（逗号分隔）"""
        return ", ".join(self.authors)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return asdict(self)


@dataclass
class SearchResponse:
    """一次检索的结果"""
    papers: List[Paper]
    total_results: int
    query: str
    source: str
    extras: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "papers": [p.to_dict() for p in self.papers],
            "total_results": self.total_results,
            "query": self.query,
            "source": self.source,
            "extras": self.extras,
        }


class BasePaperSource(ABC):
    """
    检索数据源抽象基类。

    所有具体的数据源（arXiv、Semantic Scholar 等）都必须继承此类并实现抽象方法。

    职责：
    - 定义统一的检索接口
    - 管理 HTTP Session 与错误映射
    - 调用成功后记录冷却时间、收集论文链接
    """

    MAX_RESULTS_LIMIT = 100
    DEFAULT_MAX_RESULTS = 10
    # 不走 requests 的数据源（arxiv 库、Gemini 客户端）置为 False，不创建 Session
    USES_HTTP_SESSION = True

    def __init__(
        self,
        source_name: str,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        初始化数据源。

        参数:
            source_name: 数据源名称（如 "arxiv"），也是速率限制器中的键
            rate_limiter: 应用层持有的速率限制器
            url_collector: 应用层持有的链接收集器
            session: 可选的 requests.Session（测试时可传入 Mock）
            timeout: 请求超时（秒）
            user_agent: 请求头中的 User-Agent
        """
        self.source_name = source_name
        self.rate_limiter = rate_limiter or RateLimiter()
        self.url_collector = url_collector if url_collector is not None else UrlCollector()
        self.timeout = timeout
        self.session: Optional[requests.Session] = None
        if session is not None or self.USES_HTTP_SESSION:
            self.session = session or requests.Session()
            self.session.headers.update({"User-Agent": user_agent})

    def __enter__(self):
        """支持上下文管理器"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """退出时关闭Session"""
        self.close()

    def close(self):
        """关闭网络连接"""
        if self.session:
            self.session.close()
            logger.debug(f"[{self.display_name}] Session已关闭")

    @property
    @abstractmethod
    def display_name(self) -> str:
        """数据源的显示名称（用于日志与链接收集）"""
        pass

    @abstractmethod
    def search(self, query: str, max_results: Optional[int] = None, **filters) -> SearchResponse:
        """
        执行一次检索。

        参数:
            query: 检索词
            max_results: 最大结果数，会被截断到 MAX_RESULTS_LIMIT
            **filters: 数据源特定的过滤条件

        返回:
            SearchResponse: 归一化后的检索结果
        """
        pass

    @abstractmethod
    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        """发给 Agent 的精简字段"""
        pass

    def fallback_url(self, paper: Paper) -> str:
        """论文没有链接时，链接收集器中使用的替代 URL"""
        return paper.link or ""

    def clamp_max_results(self, max_results: Optional[int]) -> int:
        """把 max_results 截断到 [1, MAX_RESULTS_LIMIT]"""
        if max_results is None:
            return self.DEFAULT_MAX_RESULTS
        return max(1, min(int(max_results), self.MAX_RESULTS_LIMIT))

    def _get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> requests.Response:
        """
        发送 GET 请求。

        非 2xx 响应映射为 UpstreamHttpError，网络层异常映射为 UnknownError。
        """
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"[{self.display_name}] ❌ 请求失败: {e}")
            raise UnknownError.wrap(e, source=self.source_name) from e

        if not 200 <= response.status_code < 300:
            reason = getattr(response, "reason", "") or ""
            logger.error(f"[{self.display_name}] ❌ API 错误: {response.status_code} {reason}")
            raise UpstreamHttpError(
                f"{self.display_name} API request failed: {response.status_code} {reason}".strip(),
                status_code=response.status_code,
                source=self.source_name,
            )
        return response

    def _normalize_each(self, records: Iterable[Any], normalize: Callable[[Any], Optional[Paper]]) -> List[Paper]:
        """
        逐条归一化记录。

        normalize 返回 None 表示缺少必需字段，直接丢弃；
        单条记录抛出异常时记录 ParseFailure 并跳过，其余记录照常返回。
        """
        papers: List[Paper] = []
        for index, record in enumerate(records, 1):
            try:
                paper = normalize(record)
            except SearchError:
                raise
            except Exception as e:
                failure = ParseFailure(f"record {index}: {e}", source=self.source_name)
                logger.warning(f"[{self.display_name}] ⚠️ 第 {index} 条记录解析失败: {failure.message}")
                continue
            if paper is None:
                logger.debug(f"[{self.display_name}] 第 {index} 条记录缺少标题或标识，已丢弃")
                continue
            papers.append(paper)
        return papers

    def _finish(
        self,
        papers: List[Paper],
        query: str,
        total_results: Optional[int] = None,
        extras: Optional[Dict[str, Any]] = None,
        record_call: bool = True
    ) -> SearchResponse:
        """
        检索成功后的收尾：记录调用时间、收集链接、组装结果。
        """
        if record_call:
            self.rate_limiter.record_call(self.source_name)

        entries = []
        for paper in papers:
            url = paper.link or self.fallback_url(paper)
            if not url:
                logger.debug(f"[{self.display_name}] 论文没有可用链接，不加入链接收集器: {paper.title[:60]}")
                continue
            entries.append(CollectedUrlEntry(
                id=paper.source_id,
                title=paper.title,
                url=url,
                source=self.display_name,
            ))
        self.url_collector.extend(entries)

        total = total_results if total_results is not None else len(papers)
        logger.info(f"[{self.display_name}] ✨ 检索完成: {len(papers)} 篇论文（总命中 {total}）")
        for index, paper in enumerate(papers, 1):
            logger.debug(f"  📖 [{self.display_name}] 论文{index}: {paper.title[:60]}")

        return SearchResponse(
            papers=papers,
            total_results=total,
            query=query,
            source=self.display_name,
            extras=extras or {},
        )
