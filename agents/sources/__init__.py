"""
论文数据源模块

提供多种检索数据源的统一接口：
- ArxivSource: arXiv预印本（冷却期内直接拒绝）
- SemanticScholarSource: Semantic Scholar（冷却期内等待）
- CoreSource: CORE开放获取仓储（需要API Key）
- JstageSource: J-STAGE日本学术论文（冷却期内等待）
- BraveSearchSource: Brave Web检索（需要API Key）
- ConferenceSearchSource: 顶会检索（Gemini + Google Search grounding）
"""

from .base_source import BasePaperSource, Paper, SearchResponse
from .errors import (
    SearchError,
    RateLimitedError,
    UpstreamHttpError,
    ParseFailure,
    ConfigurationError,
    InvalidInputError,
    UnknownError,
)
from .rate_limiter import RateLimiter, RateLimitPolicy, RateDecision
from .url_collector import UrlCollector, CollectedUrlEntry
from .arxiv_source import ArxivSource
from .semantic_scholar_source import SemanticScholarSource
from .core_source import CoreSource
from .jstage_source import JstageSource
from .brave_source import BraveSearchSource
from .conference_source import ConferenceSearchSource

__all__ = [
    "BasePaperSource",
    "Paper",
    "SearchResponse",
    "SearchError",
    "RateLimitedError",
    "UpstreamHttpError",
    "ParseFailure",
    "ConfigurationError",
    "InvalidInputError",
    "UnknownError",
    "RateLimiter",
    "RateLimitPolicy",
    "RateDecision",
    "UrlCollector",
    "CollectedUrlEntry",
    "ArxivSource",
    "SemanticScholarSource",
    "CoreSource",
    "JstageSource",
    "BraveSearchSource",
    "ConferenceSearchSource",
]
