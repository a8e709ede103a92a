"""
检索工具注册表

把各数据源客户端包装成 Agent 可调用的工具：
- 每个工具有一个 pydantic 输入模型，同时用于参数校验和生成 function calling 的 JSON Schema
- max_results 超出范围时截断而不是拒绝
- 所有工具返回同一种结果 ToolResult{tool, ok, data, error}，
  Agent 据此对所有工具使用同一套重试/替代策略
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from .sources.arxiv_source import ArxivSource
from .sources.base_source import BasePaperSource, SearchResponse
from .sources.brave_source import BraveSearchSource
from .sources.conference_source import ConferenceSearchSource
from .sources.core_source import CoreSource
from .sources.errors import InvalidInputError, SearchError, UnknownError
from .sources.jstage_source import JstageSource
from .sources.semantic_scholar_source import SemanticScholarSource

logger = logging.getLogger(__name__)


# ==================== 工具结果 ====================

class ToolError(BaseModel):
    kind: str
    message: str
    source: Optional[str] = None
    retry_after_millis: Optional[int] = None
    status_code: Optional[int] = None

    @classmethod
    def from_exception(cls, exc: SearchError) -> "ToolError":
        return cls(**exc.to_dict())


class ToolResult(BaseModel):
    """所有工具统一的返回格式"""
    tool: str
    ok: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[ToolError] = None

    @classmethod
    def success(cls, tool: str, data: Dict[str, Any]) -> "ToolResult":
        return cls(tool=tool, ok=True, data=data)

    @classmethod
    def failure(cls, tool: str, exc: SearchError) -> "ToolResult":
        return cls(tool=tool, ok=False, error=ToolError.from_exception(exc))

    def to_json(self) -> str:
        """序列化为发给 LLM 的 JSON 字符串"""
        return self.model_dump_json(exclude_none=True)


# ==================== 输入模型 ====================

class SearchToolInput(BaseModel):
    """
    检索工具输入的基类。

    子类通过 MAX_RESULTS_LIMIT / DEFAULT_MAX_RESULTS 声明结果数范围，
    max_results 在校验前被截断到 [1, MAX_RESULTS_LIMIT]。
    """

    MAX_RESULTS_LIMIT: ClassVar[int] = 100
    DEFAULT_MAX_RESULTS: ClassVar[int] = 10

    query: str = Field(..., min_length=1, description="检索词")

    @field_validator("query", mode="before")
    @classmethod
    def strip_query(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("max_results", mode="before", check_fields=False)
    @classmethod
    def clamp_max_results(cls, value: Any) -> Any:
        if value is None:
            return cls.DEFAULT_MAX_RESULTS
        try:
            value = int(value)
        except (TypeError, ValueError):
            raise ValueError(f"max_results must be an integer, got {value!r}")
        return max(1, min(value, cls.MAX_RESULTS_LIMIT))


class ArxivSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = ArxivSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = ArxivSource.DEFAULT_MAX_RESULTS

    query: str = Field(
        ..., min_length=1,
        description='检索词，支持 arXiv 检索语法（如 "machine learning", "au:Einstein", "ti:quantum"）',
    )
    max_results: int = Field(ArxivSource.DEFAULT_MAX_RESULTS, ge=1, le=ArxivSource.MAX_RESULTS_LIMIT, description="最大结果数")
    sort_by: Literal["relevance", "lastUpdatedDate", "submittedDate"] = Field("relevance", description="排序方式")


class SemanticScholarSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = SemanticScholarSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = SemanticScholarSource.DEFAULT_MAX_RESULTS

    max_results: int = Field(
        SemanticScholarSource.DEFAULT_MAX_RESULTS, ge=1, le=SemanticScholarSource.MAX_RESULTS_LIMIT,
        description="最大结果数",
    )


class CoreSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = CoreSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = CoreSource.DEFAULT_MAX_RESULTS

    max_results: int = Field(CoreSource.DEFAULT_MAX_RESULTS, ge=1, le=CoreSource.MAX_RESULTS_LIMIT, description="最大结果数")
    year_from: Optional[int] = Field(None, description="出版年份下限")
    year_to: Optional[int] = Field(None, description="出版年份上限")
    language_filter: Optional[List[str]] = Field(None, description='语言代码列表，如 ["en", "ja"]')
    document_type: Literal["article", "thesis", "book", "conference", "all"] = Field("all", description="文献类型")


class JstageSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = JstageSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = JstageSource.DEFAULT_MAX_RESULTS

    max_results: int = Field(JstageSource.DEFAULT_MAX_RESULTS, ge=1, le=JstageSource.MAX_RESULTS_LIMIT, description="最大结果数")
    material: Optional[str] = Field(None, description="资料类别（如原著论文）")
    pubyearfrom: Optional[str] = Field(None, pattern=r"^\d{4}$", description="出版年起始（YYYY）")
    pubyearto: Optional[str] = Field(None, pattern=r"^\d{4}$", description="出版年结束（YYYY）")


class BraveSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = BraveSearchSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = BraveSearchSource.DEFAULT_MAX_RESULTS

    max_results: int = Field(
        BraveSearchSource.DEFAULT_MAX_RESULTS, ge=1, le=BraveSearchSource.MAX_RESULTS_LIMIT,
        description="最大结果数",
    )


class ConferenceSearchInput(SearchToolInput):
    MAX_RESULTS_LIMIT: ClassVar[int] = ConferenceSearchSource.MAX_RESULTS_LIMIT
    DEFAULT_MAX_RESULTS: ClassVar[int] = ConferenceSearchSource.DEFAULT_MAX_RESULTS

    query: str = Field(
        ..., min_length=1,
        description="研究主题（如 'transformer architecture', 'reinforcement learning'）",
    )
    max_results: int = Field(
        ConferenceSearchSource.DEFAULT_MAX_RESULTS, ge=1, le=ConferenceSearchSource.MAX_RESULTS_LIMIT,
        description="最多提取的论文数",
    )
    search_id: int = Field(0, description="并行检索时用于区分结果的编号")


# ==================== 注册表 ====================

@dataclass
class ToolSpec:
    name: str
    description: str
    input_model: Type[SearchToolInput]
    handler: Callable[[Any], Dict[str, Any]]

    def openai_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_model.model_json_schema(),
            },
        }


class ToolRegistry:
    """按名称管理工具，负责参数校验、调用和错误转换"""

    def __init__(self):
        self._tools: Dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec):
        self._tools[spec.name] = spec

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._tools.get(name)

    def openai_tools(self) -> List[Dict[str, Any]]:
        """生成 OpenAI function calling 格式的工具定义"""
        return [spec.openai_schema() for spec in self._tools.values()]

    def invoke(self, name: str, arguments: Union[str, Dict[str, Any], None] = None) -> ToolResult:
        """
        调用工具。

        参数:
            name: 工具名
            arguments: 工具参数（dict 或 LLM 给出的 JSON 字符串）

        返回:
            ToolResult: 成功时 data 为工具输出；失败时 error 说明原因，不会抛出异常
        """
        spec = self._tools.get(name)
        if spec is None:
            logger.warning(f"[ToolRegistry] ⚠️ 未知工具: {name}")
            return ToolResult.failure(name, UnknownError(f"Unknown tool: {name}"))

        try:
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments.strip() else {}
            params = spec.input_model.model_validate(arguments or {})
        except (ValueError, ValidationError) as e:
            logger.warning(f"[ToolRegistry] ⚠️ {name} 参数无效: {e}")
            return ToolResult.failure(name, InvalidInputError(f"Invalid arguments for {name}: {e}"))

        logger.info(f"[ToolRegistry] 🔧 调用工具 {name}: {params.model_dump(exclude_none=True)}")
        try:
            data = spec.handler(params)
        except SearchError as e:
            logger.warning(f"[ToolRegistry] ⚠️ {name} 失败 ({e.kind}): {e.message}")
            return ToolResult.failure(name, e)
        except Exception as e:
            logger.error(f"[ToolRegistry] ❌ {name} 出现未预期的错误: {e}", exc_info=True)
            return ToolResult.failure(name, UnknownError.wrap(e))
        return ToolResult.success(name, data)


# ==================== 工具输出 ====================

def _papers(source: BasePaperSource, response: SearchResponse) -> List[Dict[str, Any]]:
    return [source.to_agent_dict(paper) for paper in response.papers]


def build_registry(
    arxiv: ArxivSource,
    semantic_scholar: SemanticScholarSource,
    core: CoreSource,
    jstage: JstageSource,
    brave: BraveSearchSource,
    conference: ConferenceSearchSource
) -> ToolRegistry:
    """用给定的数据源客户端构建全部六个检索工具"""
    registry = ToolRegistry()

    def search_arxiv(params: ArxivSearchInput) -> Dict[str, Any]:
        response = arxiv.search(params.query, params.max_results, sort_by=params.sort_by)
        return {"papers": _papers(arxiv, response)}

    def search_semantic_scholar(params: SemanticScholarSearchInput) -> Dict[str, Any]:
        response = semantic_scholar.search(params.query, params.max_results)
        return {"papers": _papers(semantic_scholar, response)}

    def search_core(params: CoreSearchInput) -> Dict[str, Any]:
        response = core.search(
            params.query,
            params.max_results,
            year_from=params.year_from,
            year_to=params.year_to,
            language_filter=params.language_filter,
            document_type=params.document_type,
        )
        return {"papers": _papers(core, response), "totalResults": response.total_results}

    def search_jstage(params: JstageSearchInput) -> Dict[str, Any]:
        response = jstage.search(
            params.query,
            params.max_results,
            material=params.material,
            pubyearfrom=params.pubyearfrom,
            pubyearto=params.pubyearto,
        )
        return {"papers": _papers(jstage, response), "totalResults": response.total_results}

    def search_web(params: BraveSearchInput) -> Dict[str, Any]:
        response = brave.search(params.query, params.max_results)
        return {
            "results": _papers(brave, response),
            "searchQuery": response.extras.get("searchQuery", params.query),
            "timestamp": response.extras.get("timestamp", ""),
        }

    def search_conference(params: ConferenceSearchInput) -> Dict[str, Any]:
        response = conference.search(params.query, params.max_results, search_id=params.search_id)
        return {
            "searchId": params.search_id,
            "query": params.query,
            "content": response.extras.get("content", ""),
            "citations": response.extras.get("citations", []),
            "papers": _papers(conference, response),
            "success": True,
        }

    registry.register(ToolSpec(
        name="search-arxiv",
        description="在 arXiv 上检索预印本论文，返回标题、摘要、发布日期和 PDF 链接。两次调用间隔至少 30 秒",
        input_model=ArxivSearchInput,
        handler=search_arxiv,
    ))
    registry.register(ToolSpec(
        name="search-semantic-scholar",
        description="在 Semantic Scholar 上检索各年代的学术论文，返回标题、摘要、年份和被引次数",
        input_model=SemanticScholarSearchInput,
        handler=search_semantic_scholar,
    ))
    registry.register(ToolSpec(
        name="core-search",
        description="通过 CORE API 检索全球开放获取仓储中的论文，可按年份、语言、文献类型过滤",
        input_model=CoreSearchInput,
        handler=search_core,
    ))
    registry.register(ToolSpec(
        name="search-jstage",
        description="通过 J-STAGE WebAPI 检索日本的学术论文，返回标题、作者、发布日期、DOI 和期刊名",
        input_model=JstageSearchInput,
        handler=search_jstage,
    ))
    registry.register(ToolSpec(
        name="brave-search-web",
        description="实时 Web 检索，用于把握研究领域的最新动向、概况和关键术语",
        input_model=BraveSearchInput,
        handler=search_web,
    ))
    registry.register(ToolSpec(
        name="top-conference-search",
        description=(
            "检索顶级会议（ICML、NeurIPS、ICLR、AAAI、IJCAI、ACL、CVPR、ICCV、ECCV、SIGIR）的最新论文，"
            "最多返回 10 篇论文及摘要。其他论文数据库限速时作为替代手段"
        ),
        input_model=ConferenceSearchInput,
        handler=search_conference,
    ))
    return registry
