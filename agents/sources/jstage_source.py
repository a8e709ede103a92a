"""
J-STAGE 数据源

通过 J-STAGE WebAPI 检索日本学术论文（无需 API Key）。
响应为 Atom / RSS + Dublin Core + PRISM 命名空间的 XML。
冷却时间内等待剩余时间后继续请求。
"""

import hashlib
import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from .base_source import BasePaperSource, Paper, SearchResponse, normalize_date
from .rate_limiter import RateLimiter, RateLimitPolicy
from .url_collector import UrlCollector
from .xml_utils import find_all_text, find_children, find_first, find_text, find_total_results, iter_record_elements

logger = logging.getLogger(__name__)

AGENT_AUTHOR_LIMIT = 3


class JstageSource(BasePaperSource):
    """
    J-STAGE 数据源。

    解析规则：
    - 优先解析 <entry> 元素，没有时再解析 <item> 元素
    - 作者取自 dc:creator 和 prism:creatorName（去重，保持顺序）
    - 链接依次尝试 link / guid / prism:url / DOI / identifier
    """

    API_BASE_URL = "https://api.jstage.jst.go.jp/searchapi/do"
    MAX_RESULTS_LIMIT = 100
    DEFAULT_MAX_RESULTS = 10

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        url_collector: Optional[UrlCollector] = None,
        cooldown_ms: int = 1000,
        **kwargs
    ):
        super().__init__("jstage", rate_limiter, url_collector, **kwargs)
        self.rate_limiter.register(self.source_name, cooldown_ms, RateLimitPolicy.BLOCKING)

    @property
    def display_name(self) -> str:
        return "J-STAGE"

    def search(
        self,
        query: str,
        max_results: Optional[int] = None,
        material: Optional[str] = None,
        pubyearfrom: Optional[str] = None,
        pubyearto: Optional[str] = None,
        **filters
    ) -> SearchResponse:
        """
        检索 J-STAGE。

        参数:
            query: 检索词
            max_results: 最大结果数（1-100）
            material: 资料类别（如原著论文）
            pubyearfrom / pubyearto: 出版年范围（YYYY）

        返回:
            SearchResponse: 检索结果，totalResults 取自 opensearch:totalResults
        """
        max_results = self.clamp_max_results(max_results)
        logger.info(f"🔍 [J-STAGE] 开始检索: \"{query}\" ({max_results}件)")
        if material:
            logger.info(f"📋 [J-STAGE] 资料类别: {material}")
        if pubyearfrom or pubyearto:
            logger.info(f"📅 [J-STAGE] 出版年: {pubyearfrom or '?'} - {pubyearto or '?'}")

        self.rate_limiter.acquire(self.source_name)

        params = {
            "service": "3",  # 论文检索服务
            "text": query,
            "start": "1",
            "count": str(max_results),
        }
        if material:
            params["material"] = material
        if pubyearfrom:
            params["pubyearfrom"] = pubyearfrom
        if pubyearto:
            params["pubyearto"] = pubyearto

        response = self._get(
            self.API_BASE_URL,
            params=params,
            headers={"Accept": "application/xml, text/xml"},
        )
        xml_text = response.text
        logger.info(f"📄 [J-STAGE] 收到 XML 响应: {len(xml_text)} 字符")

        papers = self.parse_feed(xml_text)
        total = find_total_results(xml_text)
        if total is None:
            total = len(papers)
        logger.info(f"🔍 [J-STAGE] 解析成功率: {len(papers)}/{total}")
        return self._finish(papers, query, total_results=total)

    def parse_feed(self, xml_text: str) -> List[Paper]:
        """解析 J-STAGE 响应，<entry> 优先于 <item>"""
        if not xml_text.strip():
            return []
        return self._normalize_each(iter_record_elements(xml_text, ("entry", "item")), self._parse_record)

    def _parse_record(self, record: ET.Element) -> Optional[Paper]:
        title = find_text(record, "title") or self._localized_text(record, "article_title")
        if not title:
            return None

        doi = find_text(record, "prism:doi")
        url = self._extract_url(record, doi)
        source_id = doi or url or "jstage-" + hashlib.sha1(title.encode("utf-8")).hexdigest()[:16]

        volume = find_text(record, "prism:volume")
        return Paper(
            source_id=source_id,
            title=title,
            source=self.display_name,
            authors=self._extract_authors(record),
            abstract=find_text(record, "description"),
            published_date=normalize_date(find_text(record, "prism:publicationDate")),
            link=url or None,
            doi=doi or None,
            journal=find_text(record, "prism:publicationName") or self._localized_text(record, "material_title") or None,
            venue=f"Vol.{volume} No.{find_text(record, 'prism:number')}" if volume else None,
            keywords=self._unique(find_all_text(record, "prism:keyword")),
        )

    @staticmethod
    def _localized_text(record: ET.Element, name: str) -> str:
        """J-STAGE 原生字段（如 <article_title><ja>..</ja><en>..</en>）优先取日文"""
        element = find_first(record, name)
        if element is None:
            return ""
        for lang in ("ja", "en"):
            text = find_text(element, lang)
            if text:
                return text
        return "".join(element.itertext()).strip()

    @staticmethod
    def _unique(values: List[str]) -> List[str]:
        seen = []
        for value in values:
            if value and value not in seen:
                seen.append(value)
        return seen

    def _extract_authors(self, record: ET.Element) -> List[str]:
        authors = find_all_text(record, "dc:creator") + find_all_text(record, "prism:creatorName")
        return self._unique(authors)

    @staticmethod
    def _extract_url(record: ET.Element, doi: str) -> str:
        # 1. link（RSS 为文本，Atom 为 href 属性）
        for link in find_children(record, "link"):
            text = (link.text or "").strip()
            if text:
                return text
            if link.get("href"):
                return link.get("href")

        # 2. guid / prism:url
        for name in ("guid", "prism:url"):
            text = find_text(record, name)
            if text:
                return text

        # 3. DOI
        if doi:
            return f"https://doi.org/{doi}"

        # 4. identifier
        identifier = find_text(record, "identifier")
        if identifier.startswith("http"):
            return identifier
        return ""

    def fallback_url(self, paper: Paper) -> str:
        return f"https://www.jstage.jst.go.jp/search/global/_search/-char/ja?item={quote(paper.title)}"

    def to_agent_dict(self, paper: Paper) -> Dict[str, Any]:
        return {
            "title": paper.title,
            "authors": paper.authors[:AGENT_AUTHOR_LIMIT],
            "publicationDate": paper.published_date or "",
            "doi": paper.doi,
            "journalTitle": paper.journal,
        }
