"""
论文检索 Agent 的 HTTP 服务

- POST /api/agents/deep-paper：以 Server-Sent Events 流式返回 Agent 的回答
- GET / DELETE /api/collected-urls：查看 / 清空检索过程中收集的论文链接（供 UI 侧边栏使用）
- GET /health：健康检查

StreamingResponse 在线程池中迭代同步生成器，检索客户端保持同步实现。
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse

from agents.deep_paper_agent import DeepPaperAgent
from agents.search_agent import SearchAgent
from agents.sources.url_collector import UrlCollector

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST",
    "Access-Control-Allow-Headers": "Content-Type",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def sse_frame(payload: Dict[str, Any]) -> str:
    """编码一帧 SSE 数据"""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def event_stream(agent: DeepPaperAgent, message: str) -> Iterator[str]:
    """
    把 Agent 的文本流转换为 SSE 帧。

    正常结束时以 {"done": true} 收尾；流中出现异常时发送一帧 {"error": ...} 后结束。
    """
    try:
        for chunk in agent.stream(message):
            yield sse_frame({"chunk": chunk})
        yield sse_frame({"done": True})
    except Exception as e:
        logger.error(f"[Deep Paper API] ❌ 流式输出出错: {e}", exc_info=True)
        yield sse_frame({"error": str(e) or e.__class__.__name__})


def create_app(
    agent_factory: Optional[Callable[[], DeepPaperAgent]] = None,
    collector: Optional[UrlCollector] = None
) -> FastAPI:
    """
    创建 FastAPI 应用。

    参数:
        agent_factory: 每个请求调用一次，返回 DeepPaperAgent。
            默认使用全局配置，所有请求共享同一个 SearchAgent（速率限制器与链接收集器是进程级的）
        collector: 链接收集器，默认新建

    返回:
        FastAPI: 应用实例
    """
    collector = collector if collector is not None else UrlCollector()
    search_agent: Optional[SearchAgent] = None

    if agent_factory is None:
        search_agent = SearchAgent(url_collector=collector)

        def agent_factory() -> DeepPaperAgent:
            return DeepPaperAgent.from_settings(search_agent=search_agent)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if search_agent is not None:
            search_agent.close()
            logger.info("[Deep Paper API] 已关闭数据源连接")

    app = FastAPI(
        title="Deep Paper Agent",
        description="Multi-database academic paper search agent",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.url_collector = collector

    @app.post("/api/agents/deep-paper")
    async def deep_paper(request: Request):
        try:
            body = await request.json()
        except ValueError:
            body = None
        message = body.get("message") if isinstance(body, dict) else None
        if not isinstance(message, str) or not message.strip():
            return JSONResponse({"error": "Message is required"}, status_code=400)

        logger.info(f"[Deep Paper API] 🚀 开始检索调研: \"{message}\"")
        try:
            agent = agent_factory()
        except Exception as e:
            logger.error(f"[Deep Paper API] ❌ Agent 初始化失败: {e}")
            return JSONResponse(
                {"error": "Internal server error", "details": str(e) or e.__class__.__name__},
                status_code=500,
            )

        return StreamingResponse(
            event_stream(agent, message),
            media_type="text/event-stream",
            headers=STREAM_HEADERS,
        )

    @app.options("/api/agents/deep-paper")
    async def deep_paper_options():
        return Response(status_code=200, headers=PREFLIGHT_HEADERS)

    @app.get("/api/collected-urls")
    async def get_collected_urls():
        return {"urls": [entry.to_dict() for entry in collector.entries()]}

    @app.delete("/api/collected-urls")
    async def clear_collected_urls():
        cleared = len(collector)
        collector.clear()
        logger.info(f"[Deep Paper API] 🧹 已清空 {cleared} 条收集的链接")
        return {"success": True, "cleared": cleared}

    @app.get("/health")
    async def health():
        return {
            "service": "deep-paper-agent",
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
        }

    return app
