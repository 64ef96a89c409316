"""参数拒绝重试与错误分类策略。

部分模型（如 o1 系列）只接受默认 temperature=1.0。当流建立失败且错误信息
表明模型不支持所配置的 temperature 时，以 1.0 重试同一次调用，且只重试一次。

匹配条件是可替换的谓词：厂商措辞变化时只需换一个函数，而不是在适配器里
改内联字符串判断。
"""

import math
from dataclasses import dataclass
from typing import Callable

from vaultbot_core.config.settings import DEFAULT_TEMPERATURE


ParameterRejection = Callable[[BaseException], bool]

# 这些错误码由适配器在读取流的过程中产生
STREAM_ERROR_CODES = frozenset({"STREAM_INTERRUPTED", "STREAM_CHUNK_ERROR"})


def error_text(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error)


def is_temperature_rejection(error: BaseException) -> bool:
    """默认谓词：错误信息同时包含 "temperature" 与 "does not support"。"""

    text = error_text(error)
    return "temperature" in text and "does not support" in text


def is_stream_error(error: BaseException) -> bool:
    """流/分块层面的错误，用于诊断时单独归类。"""

    if getattr(error, "code", None) in STREAM_ERROR_CODES:
        return True
    text = error_text(error)
    return "stream" in text or "chunk" in text


@dataclass(frozen=True)
class RetryPolicy:
    is_parameter_rejection: ParameterRejection = is_temperature_rejection
    default_temperature: float = DEFAULT_TEMPERATURE

    def should_retry(self, error: BaseException, temperature: float, fragments_delivered: int = 0) -> bool:
        # 已经投递过片段时重试会让调用方收到重复内容
        if fragments_delivered:
            return False
        if math.isclose(temperature, self.default_temperature):
            return False
        return self.is_parameter_rejection(error)


DEFAULT_RETRY_POLICY = RetryPolicy()
