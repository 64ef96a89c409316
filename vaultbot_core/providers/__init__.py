"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口与可选图片能力 (base)。
- 维护各后端的静态信息与默认配置 (registry)。
- 流式会话、取消令牌 (session) 与重试策略 (retry)。
- 提供各厂商的具体实现 (openai_client、openrouter_client)。
- 按配置选择当前后端并转发调用 (wrapper)。
"""

from typing import Literal, Optional

from vaultbot_core.config.settings import ProviderConfigSource, settings
from vaultbot_core.providers.base import ProviderClient, VisionCapable, supports_vision
from vaultbot_core.providers.openai_client import OpenAIClient
from vaultbot_core.providers.openrouter_client import OpenRouterClient
from vaultbot_core.providers.session import CancellationToken
from vaultbot_core.providers.wrapper import ProviderWrapper, build_client


def create_provider(name: Optional[str] = None, config: Optional[ProviderConfigSource] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认取配置中的 api_provider。"""

    cfg = config if config is not None else settings
    return build_client(cfg, name)


ProviderName = Literal["openai", "openrouter"]

__all__ = [
    "CancellationToken",
    "OpenAIClient",
    "OpenRouterClient",
    "ProviderClient",
    "ProviderName",
    "ProviderWrapper",
    "VisionCapable",
    "create_provider",
    "supports_vision",
]
