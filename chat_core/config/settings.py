"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
编排器在每一轮对话开始时通过 snapshot() 取得只读快照，
之后对 settings 的修改不会影响进行中的请求。
"""

import warnings
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chat_core.providers.registry import OPENAI_CONFIG


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
        if path in seen:
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


@dataclass(frozen=True)
class SessionConfig:
    """单轮对话使用的配置快照（按值捕获）。"""

    api_key: str
    model: str
    use_streaming_response_mode: bool = False
    tts_enabled: bool = False
    tts_model: str = OPENAI_CONFIG.defaults.tts_model
    tts_voice: str = OPENAI_CONFIG.defaults.tts_voice
    title_model: str = OPENAI_CONFIG.defaults.title_model
    transcription_model: str = OPENAI_CONFIG.defaults.transcription_model
    base_url: str = OPENAI_CONFIG.base_url
    request_timeout: float = 60.0
    resource_timeout: float = 300.0

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key.strip())


class SettingsProvider(Protocol):
    def snapshot(self) -> SessionConfig:
        ...


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 凭据与模型 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(default=OPENAI_CONFIG.base_url, description="OpenAI API 基础URL")
    chat_model: str = Field(default=OPENAI_CONFIG.defaults.chat_model, description="对话使用的模型")

    # ---- 功能开关 ----
    use_streaming_response_mode: bool = Field(
        default=False,
        description="是否使用流式 responses 端点（否则使用 chat/completions）",
    )
    tts_enabled: bool = Field(default=False, description="回答完成后是否朗读")
    tts_model: str = Field(default=OPENAI_CONFIG.defaults.tts_model)
    tts_voice: str = Field(default=OPENAI_CONFIG.defaults.tts_voice)
    title_model: str = Field(default=OPENAI_CONFIG.defaults.title_model, description="生成会话标题使用的模型")
    transcription_model: str = Field(default=OPENAI_CONFIG.defaults.transcription_model)

    # ---- 超时 ----
    request_timeout: float = Field(default=60.0, ge=1.0, description="建立连接/发送请求的超时（秒）")
    resource_timeout: float = Field(default=300.0, ge=1.0, description="整体读取超时（秒），需覆盖慢速流式输出")

    # ---- 存储与日志 ----
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def strip_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("tts_voice")
    @classmethod
    def validate_voice(cls, v: str) -> str:
        if v not in OPENAI_CONFIG.tts_voices:
            warnings.warn(f"Unknown TTS voice {v!r}")
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

    def snapshot(self) -> SessionConfig:
        return SessionConfig(
            api_key=self.openai_api_key or "",
            model=self.chat_model,
            use_streaming_response_mode=self.use_streaming_response_mode,
            tts_enabled=self.tts_enabled,
            tts_model=self.tts_model,
            tts_voice=self.tts_voice,
            title_model=self.title_model,
            transcription_model=self.transcription_model,
            base_url=self.openai_base_url,
            request_timeout=self.request_timeout,
            resource_timeout=self.resource_timeout,
        )


settings = Settings()
