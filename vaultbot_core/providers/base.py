"""Provider 抽象接口。

宿主应用不直接依赖具体厂商的 HTTP 接口，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 OpenAIClient）。
- 负责：将会话转成具体 API 的流式请求，并把增量文本逐段交给 on_update。

图片上传/识别是可选能力（VisionCapable），只有部分适配器实现。调用方应先用
supports_vision() 探测，缺失即视为“不支持”，而不是错误。
"""

from typing import List, Optional, Protocol, Sequence, runtime_checkable

from vaultbot_core.domain.models import (
    ChatMessage,
    ImageAnalysis,
    ImageUpload,
    ModelInfo,
    ValidationResult,
)
from vaultbot_core.providers.session import CancellationToken, UpdateCallback


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name / display_name: Provider 名称，用于日志与错误信息。
    - stream_completion: 流式对话；取消时静默返回，终态失败抛 ProviderError。
    - validate_api_key / list_models: 从不抛异常。
    """

    name: str
    display_name: str

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        ...

    async def stream_prompt(
        self,
        prompt: str,
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """单条 prompt 的兼容入口，system prompt 由适配器从配置注入。"""

        ...

    async def validate_api_key(self) -> ValidationResult:
        ...

    async def list_models(self) -> List[ModelInfo]:
        ...


@runtime_checkable
class VisionCapable(Protocol):
    """可选的图片能力。所有方法在失败时返回 None。"""

    async def upload_image(self, data_uri: str, filename: Optional[str] = None) -> Optional[ImageUpload]:
        ...

    async def upload_image_from_url(self, url: str, filename: Optional[str] = None) -> Optional[ImageUpload]:
        ...

    async def analyze_image(self, image_url_or_id: str) -> Optional[ImageAnalysis]:
        ...


def supports_vision(provider: object) -> bool:
    return isinstance(provider, VisionCapable)
