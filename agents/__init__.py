"""
agents模块：包含论文检索编排Agent、检索调度器和数据源。

各组件职责：
- DeepPaperAgent：驱动LLM的工具调用循环，流式输出检索调研报告
- SearchAgent：统一检索调度器，管理数据源、速率限制器和链接收集器
- ToolRegistry：把数据源包装成工具，统一返回 ToolResult

数据源模块 (sources/)：
- BasePaperSource：论文数据源抽象基类
- Paper：统一的论文记录格式
- ArxivSource / SemanticScholarSource / CoreSource / JstageSource：论文数据库
- BraveSearchSource：Web检索
- ConferenceSearchSource：顶会检索（Gemini + Google Search）
"""
from .search_agent import SearchAgent
from .tool_registry import ToolRegistry, ToolResult, ToolError
from .deep_paper_agent import DeepPaperAgent

__all__ = ["SearchAgent", "ToolRegistry", "ToolResult", "ToolError", "DeepPaperAgent"]
