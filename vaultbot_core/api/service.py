"""对外 API 服务模块。

提供简化的函数接口供宿主应用调用，默认使用全局 settings。
宿主也可以传入自己的配置对象（只需具备 api_provider 与 ai_provider_settings）。
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from vaultbot_core.config.settings import ProviderConfigSource, settings
from vaultbot_core.domain.models import ChatMessage, ModelInfo, ROLES
from vaultbot_core.domain.exceptions import ValidationError
from vaultbot_core.providers.session import CancellationToken, UpdateCallback
from vaultbot_core.providers.wrapper import ProviderWrapper
from vaultbot_core.services.model_service import get_model_service
from vaultbot_core.services import title_generator


def _config(config: Optional[ProviderConfigSource]) -> ProviderConfigSource:
    return config if config is not None else settings


def to_messages(raw: Sequence[Any]) -> List[ChatMessage]:
    """把 {"role", "content"} 字典或 ChatMessage 统一转换为 ChatMessage。

    Raises:
        ValidationError: 元素既不是映射也不是 ChatMessage (INVALID_MESSAGE)，或角色非法 (INVALID_ROLE)
    """

    messages: List[ChatMessage] = []
    for item in raw:
        if isinstance(item, ChatMessage):
            messages.append(item)
            continue
        if not isinstance(item, Mapping):
            raise ValidationError(
                code="INVALID_MESSAGE",
                message=f"Unsupported message type: {type(item).__name__}",
            )
        role = item.get("role")
        if role not in ROLES:
            raise ValidationError(code="INVALID_ROLE", message=f"Unsupported message role: {role!r}")
        messages.append(ChatMessage(role=role, content=str(item.get("content") or "")))
    return messages


async def stream_chat(
    messages: Sequence[Any],
    on_update: UpdateCallback,
    cancel_token: Optional[CancellationToken] = None,
    config: Optional[ProviderConfigSource] = None,
) -> None:
    """流式对话。

    Args:
        messages: 有序会话，元素为 ChatMessage 或 {"role", "content"} 字典
        on_update: 每收到一个文本片段调用一次
        cancel_token: 取消令牌（可选），触发后静默结束

    Raises:
        ProviderError: 终态失败
        ValidationError: 消息角色非法
    """
    await ProviderWrapper(_config(config)).stream_completion(
        to_messages(messages), on_update, cancel_token or CancellationToken()
    )


async def stream_prompt(
    prompt: str,
    on_update: UpdateCallback,
    cancel_token: Optional[CancellationToken] = None,
    config: Optional[ProviderConfigSource] = None,
) -> None:
    await ProviderWrapper(_config(config)).stream_prompt(prompt, on_update, cancel_token or CancellationToken())


async def validate_api_key(config: Optional[ProviderConfigSource] = None) -> Dict[str, Any]:
    """校验当前 Provider 的 API Key。

    Returns:
        {"valid": bool, "error": Optional[str]}
    """
    result = await ProviderWrapper(_config(config)).validate_api_key()
    return {"valid": result.valid, "error": result.error}


async def list_models(
    force_refresh: bool = False,
    config: Optional[ProviderConfigSource] = None,
) -> List[ModelInfo]:
    return await get_model_service().get_models(_config(config), force_refresh=force_refresh)


async def generate_title(text: str, max_length: int = 50, config: Optional[ProviderConfigSource] = None) -> str:
    return await title_generator.generate_title(text, _config(config), max_length=max_length)
