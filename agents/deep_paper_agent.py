"""
论文检索编排 Agent

通过 OpenAI 兼容的 Chat Completions（默认是 Gemini 的兼容端点）驱动工具调用循环：
模型决定调用哪些检索工具，本模块执行工具并把 ToolResult 回传给模型，
直到模型不再调用工具（或达到最大轮数）为止，期间以流的形式输出文本。
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from openai import OpenAI

from config import settings

from .search_agent import SearchAgent
from .sources.errors import ConfigurationError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
# 学术论文检索 Agent

## 任务
针对用户指定的研究领域，综合使用多个学术数据库进行**全面的论文检索**，把握研究动向。
回答中只说明论文来自哪个数据库（如 arXiv、Semantic Scholar、CORE、J-STAGE、Web、顶级会议），
**禁止写出具体的工具名**。

## 可用的检索能力
- 预印本检索（arXiv）：调查最新动向。两次调用至少间隔 30 秒，冷却期内会直接返回 rate_limited 错误
- 学术论文检索（Semantic Scholar）：调查各年代的论文和被引情况。冷却 1 秒，会自动等待
- 开放获取论文检索（CORE）：可按年份、语言、文献类型过滤
- 日本论文检索（J-STAGE）：调查日本国内的研究。冷却 1 秒，会自动等待
- Web 检索：把握领域概况和主要术语
- 顶级会议检索（ICML、NeurIPS、ICLR 等）：最多 10 篇论文及摘要，其他数据库受限时的替代手段

## 检索策略
1. **初步调研**：先用 Web 检索了解领域概况和关键词，制定检索词策略
2. **多角度检索**：组合多个数据库，用不同关键词和条件覆盖全面
3. **质量筛选**：优先高被引、经过同行评审的论文，兼顾最新研究与经典研究
4. **综合分析**：合并结果并去重，提取研究趋势，识别主要研究者与机构

## 工具结果
每个工具都返回 JSON：{"tool", "ok", "data", "error"}。
- ok 为 true 时，data 是检索结果
- ok 为 false 时，error.kind 说明原因：
  - rate_limited：冷却中，error.retry_after_millis 为需要等待的毫秒数，先改用其他数据库
  - upstream_http：上游 API 出错（429 表示限速）
  - configuration：该数据库未配置 API Key，不要再调用它
  - invalid_input：参数有误，修正后重试
- 任何数据库失败时，立即改用顶级会议检索或其他数据库，不要中断调研

## 每次检索后的报告格式
```markdown
### 🔧 [数据库名] 检索结果
**检索词**: [实际使用的检索词]
**结果概要**:
- 获取论文数: X 篇
- 值得关注的论文: [2-3 篇的标题及理由]
- 关键词趋势: [发现的主要主题]

**下一步检索策略**: [接下来的检索方针]
```

## 最终报告格式
```markdown
# 🔍 [研究领域] 论文检索调研报告

## 📊 主要发现
### 🏆 高关注度论文
### 📈 研究主题趋势
### 🔥 最新进展（近 1-2 年）
### 🌍 地区 / 语言差异（日文论文与英文论文）

## 🔮 研究动向洞察

## 📚 重要论文列表
```

## 输出要求
- 使用与用户相同的语言回答
- Markdown 格式，结构清晰
- 专业术语准确，信息具体可用
"""


class DeepPaperAgent:
    """
    论文检索编排 Agent。

    参数:
        search_agent: 提供工具注册表的检索调度器
        client: OpenAI 兼容客户端
        model: 模型名称
        temperature: 温度参数
        max_steps: 单条消息最多允许的工具调用轮数
    """

    def __init__(
        self,
        search_agent: SearchAgent,
        client: OpenAI,
        model: str,
        temperature: float = 0.3,
        max_steps: int = 12,
        system_prompt: str = SYSTEM_PROMPT
    ):
        self.search_agent = search_agent
        self.client = client
        self.model = model
        self.temperature = temperature
        self.max_steps = max_steps
        self.system_prompt = system_prompt.strip()

    @classmethod
    def from_settings(cls, search_agent: Optional[SearchAgent] = None, config=None) -> "DeepPaperAgent":
        """
        按全局配置构建 Agent。

        异常:
            ConfigurationError: 未配置 LLM 的 API Key（AGENT_LLM__API_KEY 或 GEMINI_API_KEY）
        """
        cfg = config or settings
        llm = cfg.AGENT_LLM
        api_key = llm.api_key or cfg.gemini_api_key
        if not api_key:
            raise ConfigurationError(
                "LLM API key not found. Please set AGENT_LLM__API_KEY or GEMINI_API_KEY environment variable."
            )
        client = OpenAI(api_key=api_key, base_url=llm.base_url)
        return cls(
            search_agent=search_agent or SearchAgent(config=cfg),
            client=client,
            model=llm.model_name,
            temperature=llm.temperature,
            max_steps=cfg.AGENT_MAX_STEPS,
        )

    def stream(self, message: str) -> Iterator[str]:
        """
        处理一条用户消息，逐段产出回答文本。

        参数:
            message: 用户消息

        返回:
            Iterator[str]: 模型输出的文本片段
        """
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": message},
        ]
        tools = self.search_agent.registry.openai_tools()

        for step in range(1, self.max_steps + 1):
            content, tool_calls = yield from self._stream_completion(messages, tools)
            if not tool_calls:
                logger.info(f"[DeepPaperAgent] ✅ 第 {step} 轮完成，无更多工具调用")
                return

            messages.append({
                "role": "assistant",
                "content": content or None,
                "tool_calls": [
                    {
                        "id": call["id"],
                        "type": "function",
                        "function": {"name": call["name"], "arguments": call["arguments"]},
                    }
                    for call in tool_calls
                ],
            })
            for call in tool_calls:
                logger.info(f"[DeepPaperAgent] 🔧 第 {step} 轮调用工具: {call['name']}")
                result = self.search_agent.invoke(call["name"], call["arguments"])
                messages.append({
                    "role": "tool",
                    "tool_call_id": call["id"],
                    "content": result.to_json(),
                })

        logger.warning(f"[DeepPaperAgent] ⚠️ 达到最大轮数 {self.max_steps}，不再提供工具，生成最终回答")
        yield from self._stream_completion(messages, None)

    def run(self, message: str) -> str:
        """非流式调用，返回完整回答"""
        return "".join(self.stream(message))

    def _stream_completion(self, messages: List[Dict[str, Any]], tools: Optional[List[Dict[str, Any]]]):
        """
        发起一次流式请求，产出文本片段。

        返回（生成器的返回值）:
            (content, tool_calls): 本轮的完整文本和按 index 拼接好的工具调用
        """
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": True,
        }
        if tools:
            kwargs["tools"] = tools

        response = self.client.chat.completions.create(**kwargs)

        content_parts: List[str] = []
        calls: Dict[int, Dict[str, str]] = {}
        for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta is None:
                continue
            if delta.content:
                content_parts.append(delta.content)
                yield delta.content
            for tool_call in delta.tool_calls or []:
                index = tool_call.index if tool_call.index is not None else len(calls)
                slot = calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                if tool_call.id:
                    slot["id"] = tool_call.id
                function = tool_call.function
                if function is not None:
                    if function.name:
                        slot["name"] = function.name
                    if function.arguments:
                        slot["arguments"] += function.arguments

        tool_calls = []
        for index in sorted(calls):
            call = calls[index]
            if not call["name"]:
                continue
            call["id"] = call["id"] or f"call_{index}"
            tool_calls.append(call)
        return "".join(content_parts), tool_calls
