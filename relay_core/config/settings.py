"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("RELAY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI API 基础URL")
    openai_default_model: str = Field(default="gpt-5.1", description="OpenAI 默认模型")
    # Mistral
    mistral_api_key: Optional[str] = Field(default=None, description="Mistral API 密钥")
    mistral_base_url: str = Field(default="https://api.mistral.ai/v1", description="Mistral API 基础URL")
    mistral_default_model: str = Field(default="mistral-large-latest", description="Mistral 默认模型")
    # OpenRouter
    openrouter_api_key: Optional[str] = Field(default=None, description="OpenRouter API 密钥")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1", description="OpenRouter API 基础URL")
    openrouter_default_model: str = Field(default="openai/gpt-4o", description="OpenRouter 默认模型")
    openrouter_referer: str = Field(
        default="https://github.com/relay-core",
        description="OpenRouter 要求的 HTTP-Referer 头",
    )
    openrouter_title: str = Field(default="Kurosawa Bot", description="OpenRouter X-Title 头")
    # Gemini（OpenAI 兼容端点）
    gemini_api_key: Optional[str] = Field(default=None, description="Gemini API 密钥")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai",
        description="Gemini OpenAI 兼容端点",
    )
    gemini_default_model: str = Field(default="gemini-2.5-pro", description="Gemini 默认模型")

    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")
    retry_max_attempts: int = Field(default=5, ge=1, le=10, description="限流时的最大尝试次数（含首次）")
    retry_base_delay: float = Field(default=1.0, gt=0, description="首次退避等待时间（秒），之后每次翻倍")

    # ---- 存储与日志 ----
    storage_root: str = Field(default="user_data", description="每个租户一个 .db 文件的目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 对话编排 ----
    assistant_name: str = Field(default="Kurosawa", description="助手消息的显示名")
    history_limit: int = Field(default=20, ge=0, description="每轮成功对话后保留的历史条数，0 表示不裁剪")
    max_context_messages: int = Field(default=40, ge=1, le=200, description="发给后端的最大历史消息数")

    # ---- 传输层 ----
    max_message_length: int = Field(default=2000, ge=1, description="单条发送消息的长度上限")
    max_workers: int = Field(default=8, ge=1, le=64, description="后台处理线程数")
    max_pending: int = Field(default=64, ge=1, description="同时在途的消息上限")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "mistral_api_key", "openrouter_api_key", "gemini_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
