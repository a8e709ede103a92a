"""
顶会检索数据源

不是结构化数据库查询：让 Gemini 借助 Google Search grounding 生成一份 Markdown 报告，
再尽力从编号小节中提取每篇论文的字段（最多10篇）。
用作其他论文数据库限速时的替代手段。
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from .base_source import BasePaperSource, Paper, SearchResponse
from .errors import ConfigurationError, UnknownError
from .rate_limiter import RateLimiter
from .url_collector import UrlCollector

logger = logging.getLogger(__name__)

MAX_CONFERENCE_PAPERS = 10

TOP_CONFERENCES = [
    ("ICML", "International Conference on Machine Learning", "icml.cc"),
    ("NeurIPS", "Neural Information Processing Systems", "neurips.cc"),
    ("ICLR", "International Conference on Learning Representations", "iclr.cc"),
    ("AAAI", "Association for the Advancement of Artificial Intelligence", "aaai.org"),
    ("IJCAI", "International Joint Conference on Artificial Intelligence", "ijcai.org"),
    ("ACL", "Association for Computational Linguistics", "aclweb.org"),
    ("CVPR", "Computer Vision and Pattern Recognition", "cvpr.org"),
    ("ICCV", "International Conference on Computer Vision", "iccv.org"),
    ("ECCV", "European Conference on Computer Vision", "eccv.org"),
    ("SIGIR", "Special Interest Group on Information Retrieval", "sigir.org"),
]

PROMPT_TEMPLATE = """Search top machine learning and AI conferences for the latest research papers on: {query}

Current date and time: {now}

**Target conferences (in priority order):**
{conferences}

**Constraints:**
- Select **at most {limit} papers**
- For every paper include: title, authors, conference name and year, abstract, paper URL (if available)

**Output format** (structured markdown, exactly these labels):

## Top conference search results: {query}

### Summary
- Conferences searched: [...]
- Papers found: [N]
- Years covered: [YYYY-YYYY]

### Papers (most important first)

#### 1. [Paper title]
- **Authors**: [author names]
- **Conference**: [conference name and year]
- **Abstract**: [summary and main contribution]
- **URL**: [paper link]

#### 2. [Paper title]
... (up to {limit})

### Key trends
[main research trends and methods found]

### Conference information
[latest edition of each conference]

Focus on official conference sites and paper pages, not general news or blog sites."""

_SECTION_RE = re.compile(r"#### \d+\.\s*[\s\S]*?(?=#### \d+\.|\n#{1,3} |\Z)")
_TITLE_RE = re.compile(r"#### \d+\.\s*(.+)")
_YEAR_RE = re.compile(r"\d{4}")


def _field(section: str, label: str) -> str:
    match = re.search(rf"\*\*{label}\*\*\s*[:：]\s*(.+)", section)
    return match.group(1).strip() if match else ""


def _strip_markdown_link(value: str) -> str:
    """'[text](https://...)' -> 'https://...'"""
    match = re.search(r"\((https?://[^)\s]+)\)", value)
    if match:
        return match.group(1)
    return value.strip("<>[] ")


def parse_conference_papers(text: str, limit: int = MAX_CONFERENCE_PAPERS) -> List[Dict[str, str]]:
    """
    从 Markdown 报告中提取论文字段。

    参数:
        text: 模型生成的 Markdown
        limit: 最多提取的论文数

    返回:
        List[Dict]: 每篇论文的 title / authors / conference / year / abstract / url
    """
    papers = []
    for section in _SECTION_RE.findall(text or "")[:limit]:
        title_match = _TITLE_RE.search(section)
        if not title_match:
            continue
        title = title_match.group(1).strip().strip("*").strip()
        if not title:
            continue
        conference = _field(section, "Conference")
        year_match = _YEAR_RE.search(conference)
        papers.append({
            "title": title,
            "authors": _field(section, "Authors"),
            "conference": conference,
            "year": year_match.group(0) if year_match else "",
            "abstract": _field(section, "Abstract"),
            "url": _strip_markdown_link(_field(section, "URL")),
        })
    return papers


def extract_citations(response: Any) -> List[str]:
    """从 grounding metadata 中提取引用 URL"""
    citations = []
    for candidate in getattr(response, "candidates", None) or []:
        metadata = getattr(candidate, "grounding_metadata", None)
        for chunk in getattr(metadata, "grounding_chunks", None) or []:
            web = getattr(chunk, "web", None)
            uri = getattr(web, "uri", None)
            if uri:
                citations.append(uri)
    return citations


class ConferenceSearchSource(BasePaperSource):
    """
    顶会检索（Gemini + Google Search grounding）。

    需要 GEMINI_API_KEY（或 GOOGLE_GENERATIVE_AI_API_KEY）。
    """

    MAX_RESULTS_LIMIT = MAX_CONFERENCE_PAPERS
    DEFAULT_MAX_RESULTS = MAX_CONFERENCE_PAPERS
    USES_HTTP_SESSION = False

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        api_key: Optional[str] = None,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.7,
        max_output_tokens: int = 8192,
        client: Optional[genai.Client] = None,
        **kwargs
    ):
        super().__init__("conference", rate_limiter, url_collector, **kwargs)
        self.api_key = api_key
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._client = client

    @property
    def display_name(self) -> str:
        return "Top Conference"

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "Gemini API key not found. Please set GEMINI_API_KEY or "
                    "GOOGLE_GENERATIVE_AI_API_KEY environment variable.",
                    source=self.source_name,
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def build_prompt(self, query: str) -> str:
        conferences = "\n".join(
            f"{i}. **{short}** ({full}) - {site}"
            for i, (short, full, site) in enumerate(TOP_CONFERENCES, 1)
        )
        return PROMPT_TEMPLATE.format(
            query=query,
            now=datetime.now().strftime("%Y-%m-%d %A %H:%M"),
            conferences=conferences,
            limit=MAX_CONFERENCE_PAPERS,
        )

    def search(self, query: str, max_results: Optional[int] = None, search_id: int = 0, **filters) -> SearchResponse:
        """
        检索顶会论文。

        参数:
            query: 研究主题
            max_results: 最多返回的论文数（上限10）
            search_id: 并行检索时用于区分结果的编号

        返回:
            SearchResponse: extras 中包含 content（Markdown 报告）、citations、searchId

        异常:
            ConfigurationError: 未设置 Gemini API Key
            UnknownError: 生成请求失败
        """
        max_results = self.clamp_max_results(max_results)
        logger.info(f"[Conference Search {search_id}] 🔍 顶会检索开始: \"{query}\"")

        client = self._get_client()
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
        )
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=self.build_prompt(query),
                config=config,
            )
        except Exception as e:
            logger.error(f"[Conference Search {search_id}] ❌ 生成失败: {e}")
            raise UnknownError.wrap(e, source=self.source_name) from e

        text = getattr(response, "text", None) or ""

        try:
            citations = extract_citations(response)
        except Exception as e:
            logger.warning(f"[Conference Search {search_id}] ⚠️ grounding 元数据提取失败: {e}")
            citations = []

        # 字段提取只是增强步骤，失败时仍返回原始文本
        try:
            parsed = parse_conference_papers(text, limit=max_results)
        except Exception as e:
            logger.warning(f"[Conference Search {search_id}] ⚠️ 论文字段提取失败: {e}")
            parsed = []

        papers = self._normalize_each(enumerate(parsed, 1), self._to_paper)

        content = text
        unique_sources = list(dict.fromkeys(citations))
        if unique_sources:
            content += "\n\n**Sources:**\n" + "\n".join(
                f"[{i}] {source}" for i, source in enumerate(unique_sources, 1)
            )

        logger.info(f"[Conference Search {search_id}] 检索完成: {len(papers)} 篇论文，{len(citations)} 个来源")
        return self._finish(
            papers,
            query,
            total_results=len(papers),
            extras={"searchId": search_id, "content": content, "citations": citations, "parsed": parsed},
            record_call=False,
        )

    def _to_paper(self, indexed: Any) -> Optional[Paper]:
        index, item = indexed
        if not item.get("title"):
            return None
        authors = [a.strip() for a in re.split(r",|、|;", item.get("authors") or "") if a.strip()]
        return Paper(
            source_id=item.get("url") or f"conference-{index}",
            title=item["title"],
            source=self.display_name,
            authors=authors,
            abstract=item.get("abstract") or "",
            published_date=item.get("year") or None,
            link=item.get("url") or None,
            venue=item.get("conference") or None,
            year=int(item["year"]) if item.get("year") else None,
        )

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        return {
            "title": paper.title,
            "authors": paper.get_authors_string(),
            "conference": paper.venue or "",
            "year": str(paper.year) if paper.year else "",
            "abstract": paper.abstract or "",
            "url": paper.link or "",
        }
