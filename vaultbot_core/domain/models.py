"""统一的对话与模型元数据结构。

本模块定义了所有 Provider 适配器共享的标准数据结构：

- ChatMessage: 一条对话消息（system/user/assistant）。
- ModelInfo: 模型目录中的一项，供 UI 选择器展示。
- ValidationResult: API Key 校验结果，校验流程从不抛异常。
- StreamStats: 一次流式调用的统计信息，仅用于日志与观测。

适配器（如 OpenAIClient、OpenRouterClient）只依赖这些模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass
from typing import Literal, Optional, List


# 消息角色（与 OpenAI / OpenRouter 的 role 字段对应）
Role = Literal["system", "user", "assistant"]

ROLES = ("system", "user", "assistant")


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。

    消息一旦发出即不可变；有序的消息序列即为一次会话，顺序代表轮次。
    """

    role: Role
    content: str

    def to_payload(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass
class ModelPricing:
    """模型单价（按厂商返回的字符串原样保留）。"""

    prompt: Optional[str] = None
    completion: Optional[str] = None


@dataclass
class ModelInfo:
    """模型目录中的一项。

    - id: 厂商范围内唯一的模型 ID，例如 "openai/gpt-4o"。
    - name: 展示名，列表按此字段排序。
    - description / context_length / pricing: 可选元数据。
    """

    id: str
    name: str
    description: Optional[str] = None
    context_length: Optional[int] = None
    pricing: Optional[ModelPricing] = None


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None


@dataclass
class ImageUpload:
    """图片上传结果，url 与 id 至少有一个非空。"""

    url: Optional[str] = None
    id: Optional[str] = None


@dataclass
class ImageAnalysis:
    text: Optional[str] = None
    labels: Optional[List[str]] = None


@dataclass
class StreamStats:
    """一次流式调用（StreamSession）的统计信息。"""

    provider: str
    model: str
    fragments: int = 0
    characters: int = 0
    retried: bool = False
    cancelled: bool = False
    # 流读到结尾才为 True；终态失败与取消都保持 False
    completed: bool = False
    elapsed_seconds: float = 0.0
    temperature: Optional[float] = None

    @property
    def empty(self) -> bool:
        """流正常结束但一个片段也没收到。"""

        return self.completed and self.fragments == 0
