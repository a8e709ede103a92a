"""
统一检索调度器

根据配置初始化全部数据源，持有应用级的速率限制器和链接收集器，
并把数据源包装成 Agent 可调用的工具。
"""

import logging
from typing import Dict, Optional

from config import settings

from .sources.arxiv_source import ArxivSource
from .sources.base_source import BasePaperSource
from .sources.brave_source import BraveSearchSource
from .sources.conference_source import ConferenceSearchSource
from .sources.core_source import CoreSource
from .sources.jstage_source import JstageSource
from .sources.rate_limiter import RateLimiter
from .sources.semantic_scholar_source import SemanticScholarSource
from .sources.url_collector import UrlCollector
from .tool_registry import ToolRegistry, ToolResult, build_registry

logger = logging.getLogger(__name__)


class SearchAgent:
    """
    统一检索调度器。

    职责：
    - 管理六个数据源（arXiv、Semantic Scholar、CORE、J-STAGE、Brave、顶会检索）
    - 所有数据源共享同一个 RateLimiter 和 UrlCollector
    - 提供工具注册表供编排 Agent 使用
    """

    def __init__(
        self,
        config=None,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None
    ):
        """
        初始化检索调度器。

        参数:
            config: 配置对象，默认使用全局 settings
            rate_limiter: 速率限制器，默认新建
            url_collector: 链接收集器，默认新建
        """
        self.config = config or settings
        self.rate_limiter = rate_limiter or RateLimiter()
        self.url_collector = url_collector if url_collector is not None else UrlCollector()

        self.sources: Dict[str, BasePaperSource] = {}
        self._init_sources()
        self.registry: ToolRegistry = build_registry(**self.sources)
        logger.info(f"[SearchAgent] 已注册 {len(self.registry.names())} 个检索工具: {', '.join(self.registry.names())}")

    def _init_sources(self):
        """根据配置初始化数据源"""
        cfg = self.config
        common = {
            "rate_limiter": self.rate_limiter,
            "url_collector": self.url_collector,
            "timeout": cfg.REQUEST_TIMEOUT,
            "user_agent": cfg.USER_AGENT,
        }

        self.sources["arxiv"] = ArxivSource(cooldown_ms=cfg.ARXIV_COOLDOWN_MS, **common)
        self.sources["semantic_scholar"] = SemanticScholarSource(
            api_key=cfg.SEMANTIC_SCHOLAR_API_KEY or None,
            cooldown_ms=cfg.SEMANTIC_SCHOLAR_COOLDOWN_MS,
            **common
        )
        if cfg.SEMANTIC_SCHOLAR_API_KEY:
            logger.info("[SearchAgent] Semantic Scholar 使用 API Key")
        else:
            logger.info("[SearchAgent] Semantic Scholar 使用公共 API（限速较严）")

        self.sources["core"] = CoreSource(api_key=cfg.CORE_API_KEY or None, **common)
        self.sources["jstage"] = JstageSource(cooldown_ms=cfg.JSTAGE_COOLDOWN_MS, **common)
        self.sources["brave"] = BraveSearchSource(
            api_key=cfg.BRAVE_SEARCH_API_KEY or None,
            country=cfg.BRAVE_COUNTRY,
            search_lang=cfg.BRAVE_SEARCH_LANG,
            ui_lang=cfg.BRAVE_UI_LANG,
            freshness=cfg.BRAVE_FRESHNESS,
            **common
        )
        self.sources["conference"] = ConferenceSearchSource(
            api_key=cfg.gemini_api_key or None,
            model=cfg.CONFERENCE_SEARCH_MODEL,
            temperature=cfg.CONFERENCE_SEARCH_TEMPERATURE,
            max_output_tokens=cfg.CONFERENCE_SEARCH_MAX_TOKENS,
            **common
        )

        # 缺少凭据的数据源照常注册，调用时返回 configuration 错误
        for name, key in (
            ("CORE", cfg.CORE_API_KEY),
            ("Brave Search", cfg.BRAVE_SEARCH_API_KEY),
            ("Top Conference", cfg.gemini_api_key),
        ):
            if not key:
                logger.warning(f"[SearchAgent] ⚠️ 未配置 {name} 的 API Key，该工具调用时会返回错误")

    def invoke(self, tool_name: str, arguments=None) -> ToolResult:
        """调用一个检索工具"""
        return self.registry.invoke(tool_name, arguments)

    def get_source(self, source_name: str) -> Optional[BasePaperSource]:
        """获取指定的数据源实例"""
        return self.sources.get(source_name)

    def close(self):
        """关闭所有数据源的网络连接"""
        for source in self.sources.values():
            source.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
