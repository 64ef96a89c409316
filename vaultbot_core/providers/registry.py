"""Provider 注册表。

集中维护每个后端的静态信息：

- base_url / display_name：请求地址与错误信息里的展示名。
- settings_cls：配置块对应的 Pydantic 模型，用于生成只读快照。
- fallback_models：模型目录拉取失败时返回的静态列表，保证 UI 选择器始终可用。

新增后端时在这里登记，再在 providers.wrapper 中注册适配器类即可。
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from pydantic import ValidationError as PydanticValidationError

from vaultbot_core.config.settings import (
    OpenAISettings,
    OpenRouterSettings,
    ProviderConfigSource,
    ProviderSettings,
)
from vaultbot_core.domain.exceptions import ValidationError
from vaultbot_core.domain.models import ModelInfo


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    display_name: str
    base_url: str
    settings_cls: Type[ProviderSettings]
    fallback_models: Tuple[ModelInfo, ...] = ()
    context_lengths: Mapping[str, int] = field(default_factory=dict)
    default_context_length: Optional[int] = None

    def context_length(self, model_id: str) -> Optional[int]:
        return self.context_lengths.get(model_id, self.default_context_length)

    def fallback(self) -> List[ModelInfo]:
        """返回回退列表的副本，调用方可以随意修改。"""

        return [
            ModelInfo(
                id=m.id,
                name=m.name,
                description=m.description,
                context_length=m.context_length,
                pricing=m.pricing,
            )
            for m in self.fallback_models
        ]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    display_name="OpenAI",
    base_url="https://api.openai.com/v1",
    settings_cls=OpenAISettings,
    fallback_models=(
        ModelInfo(id="gpt-4o", name="gpt-4o", description="GPT-4 Omni", context_length=128000),
        ModelInfo(id="gpt-4o-mini", name="gpt-4o-mini", description="GPT-4 Omni Mini", context_length=128000),
        ModelInfo(id="gpt-4-turbo", name="gpt-4-turbo", description="GPT-4 Turbo", context_length=128000),
        ModelInfo(id="gpt-3.5-turbo", name="gpt-3.5-turbo", description="GPT-3.5 Turbo", context_length=16385),
        ModelInfo(id="o1-preview", name="o1-preview", description="OpenAI o1 Preview", context_length=128000),
        ModelInfo(id="o1-mini", name="o1-mini", description="OpenAI o1 Mini", context_length=128000),
    ),
    context_lengths={
        "gpt-4o": 128000,
        "gpt-4o-mini": 128000,
        "gpt-4-turbo": 128000,
        "gpt-4": 8192,
        "gpt-3.5-turbo": 16385,
        "o1-preview": 128000,
        "o1-mini": 128000,
    },
    default_context_length=4096,
)

OPENROUTER_CONFIG = ProviderConfig(
    name="openrouter",
    display_name="OpenRouter",
    base_url="https://openrouter.ai/api/v1",
    settings_cls=OpenRouterSettings,
    fallback_models=(
        ModelInfo(
            id="openai/gpt-4o",
            name="GPT-4o",
            description="OpenAI GPT-4 Omni via OpenRouter",
            context_length=128000,
        ),
        ModelInfo(
            id="openai/gpt-4o-mini",
            name="GPT-4o Mini",
            description="OpenAI GPT-4 Omni Mini via OpenRouter",
            context_length=128000,
        ),
        ModelInfo(
            id="anthropic/claude-3.5-sonnet",
            name="Claude 3.5 Sonnet",
            description="Anthropic Claude 3.5 Sonnet via OpenRouter",
            context_length=200000,
        ),
        ModelInfo(
            id="google/gemini-pro",
            name="Gemini Pro",
            description="Google Gemini Pro via OpenRouter",
            context_length=32768,
        ),
        ModelInfo(
            id="meta-llama/llama-3.2-90b-vision-instruct",
            name="Llama 3.2 90B Vision",
            description="Meta Llama 3.2 90B Vision via OpenRouter",
            context_length=128000,
        ),
    ),
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
    "openrouter": OPENROUTER_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = (name or "").strip().lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def default_settings_block(name: str) -> Dict[str, Any]:
    """某个 Provider 的默认配置块（可直接写入宿主配置）。"""

    return get_provider_config(name).settings_cls().model_dump()


def snapshot_settings(config: ProviderConfigSource, name: Optional[str] = None) -> ProviderSettings:
    """读取一次配置块并校验为只读快照。

    配置块缺失时使用默认值，但不会回写宿主配置。
    """

    provider_name = (name or config.api_provider or "").strip().lower()
    try:
        cfg = get_provider_config(provider_name)
    except KeyError as e:
        raise ValidationError(code="UNKNOWN_PROVIDER", message=str(e.args[0])) from e
    blocks = getattr(config, "ai_provider_settings", None) or {}
    block = blocks.get(cfg.name)
    if block is None:
        return cfg.settings_cls()
    if isinstance(block, ProviderSettings):
        block = block.model_dump()
    try:
        return cfg.settings_cls.model_validate(dict(block))
    except PydanticValidationError as e:
        raise ValidationError(
            code="INVALID_SETTINGS",
            message=f"Invalid {cfg.display_name} settings: {e.errors()[0].get('msg', str(e))}",
            provider=cfg.name,
        ) from e
