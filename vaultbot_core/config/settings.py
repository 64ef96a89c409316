"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。

宿主应用的配置形如::

    api_provider: openrouter
    ai_provider_settings:
      openrouter:
        api_key: sk-or-...
        model: openai/gpt-4o
        temperature: 0.7

各 Provider 的配置块以原始 dict 保存，由 registry 在每次调用开始时
校验为不可变的 ProviderSettings 快照，避免调用过程中观察到 UI 的半截修改。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Protocol

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
DEFAULT_TEMPERATURE = 1.0


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("VAULTBOT_CONFIG_FILE")
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


class ProviderSettings(BaseModel):
    """单个 Provider 的配置快照（只读）。"""

    model_config = ConfigDict(frozen=True, extra="ignore")

    api_key: str = ""
    model: str
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)

    @field_validator("api_key", "system_prompt", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class OpenAISettings(ProviderSettings):
    model: str = "gpt-4o"


class OpenRouterSettings(ProviderSettings):
    """OpenRouter 额外支持站点署名（HTTP-Referer / X-Title）。"""

    model: str = "openai/gpt-4o"
    site_url: str = ""
    site_name: str = "Vault-Bot"

    @field_validator("site_url", "site_name", mode="before")
    @classmethod
    def site_none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class ProviderConfigSource(Protocol):
    """核心只读取这两个字段；持久化与 UI 编辑由宿主负责。"""

    api_provider: str
    ai_provider_settings: Dict[str, Dict[str, Any]]


class AppSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    api_provider: str = Field(
        default="openai",
        description="当前使用的 Provider 名称，例如 openai、openrouter",
    )
    ai_provider_settings: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict,
        description="按 Provider 名称分组的配置块，缺失时由 registry 填充默认值",
    )

    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")
    debug_mode: bool = Field(default=False, description="调试模式：输出 debug/info/warning 日志")

    model_config = SettingsConfigDict(
        env_prefix="VAULTBOT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("api_provider")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "openai").strip().lower()

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


settings = AppSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AppSettings
