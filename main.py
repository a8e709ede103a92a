"""
论文检索 Agent 主程序

子命令：
- serve：启动 HTTP 服务（流式接口 + 链接收集接口）
- ask：在终端中向 Agent 提问，流式打印回答
- search：直接调用单个检索工具，打印 ToolResult 和收集到的链接
"""

import argparse
import json
import sys

from config import settings
from utils.logger import setup_logger
from agents import DeepPaperAgent, SearchAgent
from agents.sources.errors import ConfigurationError

# 初始化系统日志记录器（"agents" / "api" 包下的模块日志也统一输出）
logger = setup_logger("Main")
setup_logger("agents")
setup_logger("api")


def serve(args):
    """启动 HTTP 服务"""
    import uvicorn
    from api import create_app

    host = args.host or settings.HOST
    port = args.port or settings.PORT
    logger.info("=" * 80)
    logger.info(f"启动论文检索 Agent 服务: http://{host}:{port}")
    logger.info("=" * 80)
    uvicorn.run(create_app(), host=host, port=port)


def ask(args):
    """向 Agent 提问并流式打印回答"""
    print("\n" + "=" * 80)
    print(f"🔍 论文检索调研: {args.message}")
    print("=" * 80 + "\n")

    with SearchAgent() as search_agent:
        try:
            agent = DeepPaperAgent.from_settings(search_agent=search_agent)
        except ConfigurationError as e:
            logger.error(f"Agent 初始化失败: {e.message}")
            return 1

        for chunk in agent.stream(args.message):
            print(chunk, end="", flush=True)
        print()

        entries = search_agent.url_collector.entries()
        if entries:
            print("\n" + "-" * 80)
            print(f"📚 收集到 {len(entries)} 个论文链接:")
            for index, entry in enumerate(entries, 1):
                print(f"  {index}. [{entry.source}] {entry.title}\n     {entry.url}")
    return 0


def search(args):
    """调用单个检索工具"""
    arguments = {"query": args.query}
    if args.max_results is not None:
        arguments["max_results"] = args.max_results

    with SearchAgent() as search_agent:
        if args.tool not in search_agent.registry.names():
            logger.error(f"未知工具: {args.tool}（可用: {', '.join(search_agent.registry.names())}）")
            return 2

        result = search_agent.invoke(args.tool, arguments)
        print(json.dumps(result.model_dump(exclude_none=True), ensure_ascii=False, indent=2))

        urls = [entry.to_dict() for entry in search_agent.url_collector.entries()]
        print(json.dumps({"urls": urls}, ensure_ascii=False, indent=2))
    return 0 if result.ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="多数据库学术论文检索 Agent")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="启动 HTTP 服务")
    serve_parser.add_argument("--host", default=None, help="监听地址（默认取配置 HOST）")
    serve_parser.add_argument("--port", type=int, default=None, help="监听端口（默认取配置 PORT）")
    serve_parser.set_defaults(func=serve)

    ask_parser = subparsers.add_parser("ask", help="向 Agent 提问")
    ask_parser.add_argument("message", help="研究主题或问题")
    ask_parser.set_defaults(func=ask)

    search_parser = subparsers.add_parser("search", help="直接调用一个检索工具")
    search_parser.add_argument("tool", help="工具名，如 search-arxiv、search-jstage")
    search_parser.add_argument("query", help="检索词")
    search_parser.add_argument("--max-results", type=int, default=None, help="最大结果数")
    search_parser.set_defaults(func=search)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args) or 0


if __name__ == "__main__":
    sys.exit(main())
