import logging
import json5  # 用于加载带注释的配置文件
from pathlib import Path
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# 1. 定义基础路径：获取当前脚本所在目录作为项目根目录
PROJECT_ROOT = Path(__file__).resolve().parent


class LLMConfig(BaseModel):
    """
    语言模型配置类，定义编排Agent所用LLM的参数。

    默认指向 Gemini 的 OpenAI 兼容端点，也可以换成任意兼容 OpenAI Chat Completions 的服务。

    属性:
        api_key: LLM服务的API密钥
        base_url: LLM API的基础URL
        model_name: 使用的具体模型名称
        temperature: 模型的温度参数
    """
    api_key: str = Field("", description="LLM服务的API密钥")
    base_url: str = Field(
        "https://generativelanguage.googleapis.com/v1beta/openai/",
        description="LLM API的基础URL地址"
    )
    model_name: str = Field("gemini-2.5-flash", description="要使用的模型名称标识")
    temperature: float = 0.3


class Settings(BaseSettings):
    """
    系统全局配置类，集中管理所有应用配置参数。

    优先级：search_config.json > 环境变量 / .env文件 > 默认值

    注意：API Key 只在对应工具被调用时才检查，缺失不会影响启动。
    """
    # ==================== 路径配置 ====================
    PROJECT_ROOT: Path = PROJECT_ROOT
    LOG_DIR: Path = PROJECT_ROOT / "logs"
    LOG_LEVEL: str = "INFO"

    # ==================== 服务配置 ====================
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # ==================== LLM配置 ====================
    # 编排Agent：负责选择工具并生成最终报告
    AGENT_LLM: LLMConfig = Field(default_factory=LLMConfig)
    AGENT_MAX_STEPS: int = 12  # 单条消息最多允许的工具调用轮数

    # 会议检索（Gemini + Google Search grounding）
    GEMINI_API_KEY: str = ""
    GOOGLE_GENERATIVE_AI_API_KEY: str = ""  # GEMINI_API_KEY 的备用名称
    CONFERENCE_SEARCH_MODEL: str = "gemini-2.5-flash"
    CONFERENCE_SEARCH_TEMPERATURE: float = 0.7
    CONFERENCE_SEARCH_MAX_TOKENS: int = 8192

    # ==================== 数据源配置 ====================
    CORE_API_KEY: str = ""
    BRAVE_SEARCH_API_KEY: str = ""
    SEMANTIC_SCHOLAR_API_KEY: str = ""  # 可选，提高速率限制

    REQUEST_TIMEOUT: int = 30  # 单次HTTP请求超时（秒）
    USER_AGENT: str = "Paper-Agent/1.0"

    # 冷却时间（毫秒）
    ARXIV_COOLDOWN_MS: int = 30000  # 冷却期内直接拒绝
    SEMANTIC_SCHOLAR_COOLDOWN_MS: int = 1000  # 冷却期内等待
    JSTAGE_COOLDOWN_MS: int = 1000  # 冷却期内等待

    # Brave 检索的地区与语言
    BRAVE_COUNTRY: str = "JP"
    BRAVE_SEARCH_LANG: str = "jp"
    BRAVE_UI_LANG: str = "ja-JP"
    BRAVE_FRESHNESS: str = "pd"  # pd=过去1天, pw=过去1周, pm=过去1月, py=过去1年

    # ==================== Pydantic Settings配置 ====================
    # 指定从.env文件加载配置，支持嵌套参数用双下划线分隔
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",  # 嵌套配置使用__分隔符，如AGENT_LLM__API_KEY
        extra="ignore"  # 忽略.env中未定义的额外参数
    )

    @property
    def gemini_api_key(self) -> str:
        """会议检索使用的 Gemini Key（兼容两个环境变量名）"""
        return self.GEMINI_API_KEY or self.GOOGLE_GENERATIVE_AI_API_KEY

    def load_from_search_config(self, config_path: Optional[Path] = None) -> Dict[str, Any]:
        """
        从 search_config.json 加载配置并覆盖默认值。

        注意：API Key 等敏感信息只从环境变量 / .env 加载，不从此配置文件加载。

        参数:
            config_path: 配置文件路径，默认为 PROJECT_ROOT/search_config.json

        返回:
            dict: 配置字典
        """
        if config_path is None:
            config_path = self.PROJECT_ROOT / "search_config.json"

        if not config_path.exists():
            logger.info(f"未找到配置文件 {config_path}，使用默认配置")
            return {}

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config = json5.load(f)  # 使用json5支持注释
        except (OSError, ValueError) as e:
            logger.error(f"加载 search_config.json 失败: {e}")
            return {}

        # 加载速率限制
        if "rate_limits" in config:
            limits = config["rate_limits"]
            self.ARXIV_COOLDOWN_MS = limits.get("arxiv_cooldown_ms", self.ARXIV_COOLDOWN_MS)
            self.SEMANTIC_SCHOLAR_COOLDOWN_MS = limits.get(
                "semantic_scholar_cooldown_ms", self.SEMANTIC_SCHOLAR_COOLDOWN_MS
            )
            self.JSTAGE_COOLDOWN_MS = limits.get("jstage_cooldown_ms", self.JSTAGE_COOLDOWN_MS)

        # 加载HTTP设置
        if "http" in config:
            http = config["http"]
            self.REQUEST_TIMEOUT = http.get("timeout", self.REQUEST_TIMEOUT)
            self.USER_AGENT = http.get("user_agent", self.USER_AGENT)

        # 加载 Brave 检索设置
        if "brave_search" in config:
            brave = config["brave_search"]
            self.BRAVE_COUNTRY = brave.get("country", self.BRAVE_COUNTRY)
            self.BRAVE_SEARCH_LANG = brave.get("search_lang", self.BRAVE_SEARCH_LANG)
            self.BRAVE_UI_LANG = brave.get("ui_lang", self.BRAVE_UI_LANG)
            self.BRAVE_FRESHNESS = brave.get("freshness", self.BRAVE_FRESHNESS)

        # 加载会议检索设置
        if "conference_search" in config:
            conf = config["conference_search"]
            self.CONFERENCE_SEARCH_MODEL = conf.get("model", self.CONFERENCE_SEARCH_MODEL)
            self.CONFERENCE_SEARCH_TEMPERATURE = conf.get("temperature", self.CONFERENCE_SEARCH_TEMPERATURE)
            self.CONFERENCE_SEARCH_MAX_TOKENS = conf.get("max_output_tokens", self.CONFERENCE_SEARCH_MAX_TOKENS)

        # 加载Agent设置（模型名、温度等，不含 API Key）
        if "agent" in config:
            agent_cfg = config["agent"]
            self.AGENT_MAX_STEPS = agent_cfg.get("max_steps", self.AGENT_MAX_STEPS)
            if "base_url" in agent_cfg:
                self.AGENT_LLM.base_url = agent_cfg["base_url"]
            if "model_name" in agent_cfg:
                self.AGENT_LLM.model_name = agent_cfg["model_name"]
            if "temperature" in agent_cfg:
                self.AGENT_LLM.temperature = agent_cfg["temperature"]

        # 加载服务设置
        if "server" in config:
            server = config["server"]
            self.HOST = server.get("host", self.HOST)
            self.PORT = server.get("port", self.PORT)

        return config


# 实例化全局配置单例对象，应用程序全局共享
settings = Settings()

# 从 search_config.json 加载配置（会覆盖默认值）
settings.load_from_search_config()
