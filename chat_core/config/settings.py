"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。对外只暴露以下配置项：

- PERPLEXITY_API_KEY: Provider API 密钥（缺失时服务仍可启动，但依赖 Provider 的接口会返回未配置错误）。
- PERPLEXITY_DEFAULT_MODEL: 默认模型 ID。
- PORT: HTTP 服务端口。

其余字段（超时、日志目录等）都有固定默认值，一般无需修改。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
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
    perplexity_api_key: Optional[str] = Field(default=None, description="Perplexity API 密钥")
    default_model: str = Field(
        default="sonar",
        validation_alias=AliasChoices("PERPLEXITY_DEFAULT_MODEL", "default_model"),
        description="默认模型 ID",
    )
    perplexity_base_url: str = Field(
        default="https://api.perplexity.ai",
        description="Perplexity API 基础URL",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒），超时不重试")

    # ---- 服务相关配置 ----
    port: int = Field(default=3000, ge=1, le=65535, description="HTTP 服务端口")
    stream_delay: float = Field(default=0.05, ge=0.0, description="模拟流式输出时每段之间的间隔（秒）")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("perplexity_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v and len(v) < 10:
            warnings.warn("API key seems too short")
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
