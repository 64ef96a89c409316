"""Provider 分发器。

ProviderWrapper 只持有宿主配置的引用：每次调用时读取 api_provider，
用当时的配置块生成只读快照并实例化对应适配器，然后原样转发调用。
重试与错误分类都由适配器负责，这里不做任何处理。
"""

from typing import List, Mapping, Optional, Sequence, Type

from vaultbot_core.config.settings import ProviderConfigSource, settings
from vaultbot_core.domain.exceptions import ProviderError, ValidationError
from vaultbot_core.domain.models import ChatMessage, ModelInfo, ValidationResult
from vaultbot_core.infrastructure.logging.logger import logger
from vaultbot_core.providers.base import VisionCapable, supports_vision
from vaultbot_core.providers.chat_completions import ChatCompletionsClient, sort_models
from vaultbot_core.providers.openai_client import OpenAIClient
from vaultbot_core.providers.openrouter_client import OpenRouterClient
from vaultbot_core.providers.registry import get_provider_config, snapshot_settings
from vaultbot_core.providers.session import CancellationToken, UpdateCallback


CLIENT_CLASSES: Mapping[str, Type[ChatCompletionsClient]] = {
    "openai": OpenAIClient,
    "openrouter": OpenRouterClient,
}


def build_client(config: ProviderConfigSource, name: Optional[str] = None) -> ChatCompletionsClient:
    """根据配置实例化适配器；未知 Provider 或非法配置抛 ValidationError。"""

    snapshot = snapshot_settings(config, name)
    provider_cfg = get_provider_config(name or config.api_provider)
    client_cls = CLIENT_CLASSES[provider_cfg.name]
    timeout = getattr(config, "http_timeout", None) or settings.http_timeout
    return client_cls(snapshot, http_timeout=timeout)


class ProviderWrapper:
    """把调用转发给当前激活的适配器。"""

    def __init__(self, config: Optional[ProviderConfigSource] = None):
        self._config = config if config is not None else settings

    @property
    def provider_name(self) -> str:
        return (self._config.api_provider or "").strip().lower()

    def get_provider(self) -> ChatCompletionsClient:
        return build_client(self._config)

    def _resolve_for_stream(self) -> ChatCompletionsClient:
        try:
            return self.get_provider()
        except ValidationError as e:
            logger.error(
                "Cannot resolve provider",
                extra={"extra": {"provider": self.provider_name, "error": e.message}},
            )
            raise ProviderError(
                self.provider_name,
                f"Failed to get response from {self.provider_name or 'provider'}.",
            ) from e

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        await self._resolve_for_stream().stream_completion(messages, on_update, cancel_token)

    async def stream_prompt(
        self,
        prompt: str,
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        await self._resolve_for_stream().stream_prompt(prompt, on_update, cancel_token)

    async def validate_api_key(self) -> ValidationResult:
        try:
            provider = self.get_provider()
        except ValidationError as e:
            return ValidationResult(valid=False, error=e.message)
        return await provider.validate_api_key()

    async def list_models(self) -> List[ModelInfo]:
        try:
            provider = self.get_provider()
        except ValidationError as e:
            logger.error(
                "Cannot resolve provider for model listing",
                extra={"extra": {"provider": self.provider_name, "error": e.message}},
            )
            return self.fallback_models()
        return await provider.list_models()

    def fallback_models(self) -> List[ModelInfo]:
        """当前后端的静态回退列表（已排序）；未知后端返回空列表。"""

        try:
            provider_cfg = get_provider_config(self.provider_name)
        except KeyError:
            return []
        return sort_models(provider_cfg.fallback())

    def supports_vision(self) -> bool:
        try:
            return supports_vision(self.get_provider())
        except ValidationError:
            return False

    def vision_provider(self) -> Optional[VisionCapable]:
        """返回具备图片能力的适配器；不支持时返回 None。"""

        try:
            provider = self.get_provider()
        except ValidationError:
            return None
        return provider if supports_vision(provider) else None
