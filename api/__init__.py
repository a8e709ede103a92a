"""
api模块：论文检索 Agent 的 HTTP 服务（FastAPI + Server-Sent Events）
"""
from .app import create_app

__all__ = ["create_app"]
