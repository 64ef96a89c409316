"""Vault-Bot Core 顶层包。

该包提供笔记助手的 AI 后端抽象，
包括配置加载、领域模型、OpenAI / OpenRouter 适配、
流式会话与取消、temperature 拒绝重试以及模型目录缓存等能力。
"""

from vaultbot_core.providers import CancellationToken, ProviderWrapper, create_provider

__all__ = ["CancellationToken", "ProviderWrapper", "create_provider"]
