"""OpenAI Provider 适配器。

- URL: https://api.openai.com/v1/chat/completions
- 认证: Authorization: Bearer <api_key>

空字符串增量（例如首块只带 role、末块只带 finish_reason）也会交给回调，
与 SDK 的 `delta.content || ''` 行为一致，调用方可将其视为心跳。
"""

from typing import Any, Dict, Optional

from vaultbot_core.domain.models import ModelInfo
from vaultbot_core.providers.chat_completions import ChatCompletionsClient
from vaultbot_core.providers.registry import OPENAI_CONFIG


class OpenAIClient(ChatCompletionsClient):
    """OpenAI 客户端实现。"""

    config = OPENAI_CONFIG
    forward_empty_fragments = True

    def _to_model_info(self, raw: Dict[str, Any]) -> Optional[ModelInfo]:
        # 只保留对话模型，过滤 embedding / whisper / dall-e 等
        model_id = raw.get("id") or ""
        if "gpt" not in model_id and "o1" not in model_id:
            return None
        return ModelInfo(
            id=model_id,
            name=model_id,
            description=f"OpenAI {model_id}",
            context_length=self.config.context_length(model_id),
        )
