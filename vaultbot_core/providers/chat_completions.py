"""OpenAI 兼容的 chat/completions 适配器基类。

OpenAI 与 OpenRouter 都使用同一套接口：
- URL: {base_url}/chat/completions，stream=true 时以 SSE 返回增量。
- URL: {base_url}/models，返回 {"data": [...]} 模型目录。
- 认证: Authorization: Bearer <api_key>

本模块负责：

1. 将会话转换为请求 payload，并打开流式请求。
2. 解析 SSE 行，逐段交给 StreamSession 投递。
3. 按 RetryPolicy 对 temperature 拒绝做一次重试；取消时静默返回。
4. 把其他终态错误包装成 ProviderError / StreamingError，原始细节只写日志。

子类只需提供 name/display_name、请求头以及模型目录的映射规则。
"""

import json
from typing import Any, ClassVar, Dict, List, Optional, Sequence

import httpx

from vaultbot_core.config.settings import ProviderSettings
from vaultbot_core.domain.exceptions import (
    ApiError,
    NetworkError,
    ProviderError,
    RateLimitError,
    StreamingError,
    ValidationError,
)
from vaultbot_core.domain.models import ChatMessage, ModelInfo, ValidationResult
from vaultbot_core.infrastructure.logging.logger import logger
from vaultbot_core.providers.registry import ProviderConfig
from vaultbot_core.providers.retry import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    error_text,
    is_stream_error,
)
from vaultbot_core.providers.session import (
    CancellationToken,
    StreamCancelled,
    StreamSession,
    UpdateCallback,
)


def sort_models(models: List[ModelInfo]) -> List[ModelInfo]:
    """按展示名升序（不区分大小写），名称相同再按 id。"""

    return sorted(models, key=lambda m: (m.name.casefold(), m.name, m.id))


def _extract_error_message(body: str) -> str:
    """从 {"error": {"message": ...}} 结构中取出可读信息，否则原样返回。"""

    text = (body or "").strip()
    if not text:
        return ""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
        if data.get("message"):
            return str(data["message"])
    return text


class ChatCompletionsClient:
    """chat/completions 流式适配器的公共实现。"""

    config: ClassVar[ProviderConfig]
    # 是否把空字符串片段也交给回调（部分后端用它充当心跳）
    forward_empty_fragments: ClassVar[bool] = False

    def __init__(
        self,
        provider_settings: ProviderSettings,
        http_timeout: float = 60.0,
        retry_policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    ):
        # 快照是不可变的 Pydantic 模型，调用过程中不会被 UI 修改
        self._settings = provider_settings
        self._timeout = http_timeout
        self._retry_policy = retry_policy

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def display_name(self) -> str:
        return self.config.display_name

    @property
    def settings(self) -> ProviderSettings:
        return self._settings

    @property
    def base_url(self) -> str:
        return self.config.base_url

    # ---- 流式 ----

    async def stream_prompt(
        self,
        prompt: str,
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        messages: List[ChatMessage] = []
        if self._settings.system_prompt:
            messages.append(ChatMessage(role="system", content=self._settings.system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))
        await self.stream_completion(messages, on_update, cancel_token)

    async def stream_completion(
        self,
        messages: Sequence[ChatMessage],
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        """流式获取一次完整会话的回答。

        - on_update 按到达顺序被调用零次或多次，全部发生在本协程返回之前。
        - cancel_token 触发后中断底层连接并静默返回。
        - 终态失败统一抛出 ProviderError（流/分块错误为 StreamingError）。
        """

        settings = self._settings
        temperature = settings.temperature
        session = StreamSession(
            provider=self.name,
            model=settings.model,
            on_update=on_update,
            cancel_token=cancel_token,
            forward_empty_fragments=self.forward_empty_fragments,
        )
        session.stats.temperature = temperature
        try:
            try:
                await session.run(self._stream_once(messages, temperature, session))
            except StreamCancelled:
                raise
            except Exception as exc:
                if not self._retry_policy.should_retry(exc, temperature, session.stats.fragments):
                    raise
                retry_temperature = self._retry_policy.default_temperature
                logger.warning(
                    f"Model {settings.model} rejected temperature={temperature}, "
                    f"retrying with temperature={retry_temperature}",
                    extra={"extra": {"provider": self.name, "model": settings.model}},
                )
                session.stats.retried = True
                session.stats.temperature = retry_temperature
                await session.run(self._stream_once(messages, retry_temperature, session))
        except StreamCancelled:
            session.stats.cancelled = True
            logger.info(
                f"{self.display_name} request was aborted.",
                extra={"extra": {"provider": self.name, "model": settings.model}},
            )
            return
        except Exception as exc:
            raise self._wrap_error(exc) from exc
        finally:
            session.close()

    async def _stream_once(
        self,
        messages: Sequence[ChatMessage],
        temperature: float,
        session: StreamSession,
    ) -> None:
        if not self._settings.api_key:
            raise ValidationError(code="MISSING_API_KEY", message=f"{self.display_name} API key not set")
        payload = self._build_payload(messages, temperature)
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                async with client.stream(
                    "POST",
                    f"{self.base_url}/chat/completions",
                    json=payload,
                    headers=self._headers(),
                ) as resp:
                    if resp.status_code >= 400:
                        body = (await resp.aread()).decode("utf-8", errors="replace")
                        message = _extract_error_message(body)
                        if resp.status_code == 429:
                            raise RateLimitError(
                                code="RATE_LIMIT",
                                message=message or f"{self.display_name} rate limit",
                                http_status=429,
                            )
                        raise ApiError(code="API_ERROR", message=message, http_status=resp.status_code)
                    await self._consume(resp, session)
                    session.complete()
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)

    async def _consume(self, resp: httpx.Response, session: StreamSession) -> None:
        """逐行解析 SSE，提取 choices[0].delta.content。"""

        try:
            async for line in resp.aiter_lines():
                if session.cancelled:
                    raise StreamCancelled()
                if not line:
                    continue
                data_str = line
                if data_str.startswith("data:"):
                    data_str = data_str[5:].strip()
                else:
                    data_str = data_str.strip()
                # SSE 注释行（": OPENROUTER PROCESSING"）与结束标记
                if not data_str or data_str.startswith(":") or data_str == "[DONE]":
                    continue
                try:
                    chunk = json.loads(data_str)
                except json.JSONDecodeError:
                    continue
                if not isinstance(chunk, dict):
                    continue
                err = chunk.get("error")
                if err:
                    detail = err.get("message") if isinstance(err, dict) else str(err)
                    raise ApiError(code="STREAM_CHUNK_ERROR", message=f"error chunk in stream: {detail}")
                fragment = self._extract_fragment(chunk)
                if fragment is None:
                    continue
                session.deliver(fragment)
        except httpx.TransportError as e:
            raise NetworkError(code="STREAM_INTERRUPTED", message=f"stream interrupted: {e}")

    @staticmethod
    def _extract_fragment(chunk: Dict[str, Any]) -> Optional[str]:
        """返回本块的文本增量；没有 choices 的块（如 usage）返回 None。"""

        choices = chunk.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else ""

    def _build_payload(self, messages: Sequence[ChatMessage], temperature: float) -> Dict[str, Any]:
        return {
            "model": self._settings.model,
            "messages": [m.to_payload() for m in messages],
            "temperature": temperature,
            "stream": True,
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

    def _wrap_error(self, exc: BaseException) -> ProviderError:
        detail = error_text(exc)
        ctx = {
            "provider": self.name,
            "model": self._settings.model,
            "error_type": type(exc).__name__,
            "error": detail,
            "http_status": getattr(exc, "http_status", None),
        }
        if is_stream_error(exc):
            logger.error(f"{self.display_name} streaming error detected", extra={"extra": ctx})
            return StreamingError(self.name, f"{self.display_name} streaming failed: {detail}")
        logger.error(f"Error in {self.display_name} API request", extra={"extra": ctx})
        return ProviderError(self.name, f"Failed to get response from {self.display_name}.")

    # ---- 校验 ----

    def _validation_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._settings.api_key}"}

    async def validate_api_key(self) -> ValidationResult:
        """用一次模型列表请求探测 API Key，结果只看状态码。"""

        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._validation_headers())
        except Exception as e:
            logger.error(
                f"{self.display_name} API key validation failed",
                extra={"extra": {"provider": self.name, "error": repr(e)}},
            )
            return ValidationResult(valid=False, error=str(e) or "Network error occurred")
        return self._classify_validation(resp)

    def _classify_validation(self, resp: httpx.Response) -> ValidationResult:
        status = resp.status_code
        if 200 <= status < 300:
            return ValidationResult(valid=True)
        logger.info(
            f"{self.display_name} API key rejected",
            extra={"extra": {"provider": self.name, "http_status": status}},
        )
        if status == 401:
            return ValidationResult(valid=False, error="Invalid API key")
        if status == 429:
            return ValidationResult(valid=False, error="Rate limit exceeded")
        if status >= 500:
            return ValidationResult(valid=False, error=f"{self.display_name} service temporarily unavailable")
        return ValidationResult(valid=False, error=resp.text or "Unknown error occurred")

    # ---- 模型目录 ----

    def _catalog_headers(self) -> Dict[str, str]:
        return self._validation_headers()

    def _to_model_info(self, raw: Dict[str, Any]) -> Optional[ModelInfo]:
        raise NotImplementedError

    def fallback_models(self) -> List[ModelInfo]:
        return sort_models(self.config.fallback())

    async def list_models(self) -> List[ModelInfo]:
        """拉取模型目录；任何失败都返回静态回退列表。

        可用性优先于准确性：UI 选择器总要有可选项。
        """

        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                resp = await client.get(f"{self.base_url}/models", headers=self._catalog_headers())
            if resp.status_code >= 400:
                raise ApiError(
                    code="API_ERROR",
                    message=f"HTTP {resp.status_code}: {resp.text}",
                    http_status=resp.status_code,
                )
            data = resp.json()
            raw_models = (data.get("data") or []) if isinstance(data, dict) else []
            models = [m for m in (self._to_model_info(raw) for raw in raw_models if isinstance(raw, dict)) if m]
        except Exception as e:
            logger.error(
                f"Failed to fetch {self.display_name} models",
                extra={"extra": {"provider": self.name, "error": repr(e)}},
            )
            return self.fallback_models()
        if not models:
            logger.warning(
                f"{self.display_name} returned no usable models, using fallback list",
                extra={"extra": {"provider": self.name}},
            )
            return self.fallback_models()
        return sort_models(models)
