"""用当前 Provider 为一段文本生成简短标题。"""

import re
from typing import List

from vaultbot_core.config.settings import ProviderConfigSource
from vaultbot_core.domain.exceptions import ProviderError
from vaultbot_core.domain.models import ChatMessage
from vaultbot_core.infrastructure.logging.logger import logger
from vaultbot_core.providers.session import CancellationToken
from vaultbot_core.providers.wrapper import ProviderWrapper


DEFAULT_TITLE = "Chat Conversation"

TITLE_PROMPT = (
    "Generate a short, descriptive title (max {max_length} characters) for the following text. "
    "Return only the title, no quotes or extra text:\n\n{text}"
)


async def generate_title(text: str, config: ProviderConfigSource, max_length: int = 50) -> str:
    """流式收集完整回答后清洗为标题；Provider 失败时退回到本地规则。"""

    prompt = TITLE_PROMPT.format(max_length=max_length, text=text[:500])
    parts: List[str] = []
    try:
        await ProviderWrapper(config).stream_completion(
            [ChatMessage(role="user", content=prompt)],
            parts.append,
            CancellationToken(),
        )
    except ProviderError as e:
        logger.error("Error generating title", extra={"extra": {"error": e.message}})
        return generate_fallback_title(text, max_length)

    full_response = "".join(parts)
    if not full_response:
        return DEFAULT_TITLE
    return clean_title(full_response, max_length) or DEFAULT_TITLE


def clean_title(response: str, max_length: int = 50) -> str:
    title = response.strip()
    title = re.sub(r"^[\"']|[\"']$", "", title)
    title = title.replace("\n", " ")
    title = re.sub(r"\s+", " ", title)
    title = title[:max_length]
    # 避免在单词中间截断，但只在损失不多时才回退到上一个空格
    if len(title) == max_length and len(response) > max_length:
        last_space = title.rfind(" ")
        if last_space > max_length * 0.7:
            title = title[:last_space]
    return title


def generate_fallback_title(text: str, max_length: int = 50) -> str:
    """不调用模型，取文本前几个词作为标题。"""

    if not text or not text.strip():
        return DEFAULT_TITLE
    clean_text = re.sub(r"[^\w\s-]", "", text.strip())
    clean_text = re.sub(r"\s+", " ", clean_text).strip()
    words = clean_text.split(" ")[:8]
    title = " ".join(words)
    if len(title) > max_length:
        title = title[: max_length - 3] + "..."
    return title or DEFAULT_TITLE
