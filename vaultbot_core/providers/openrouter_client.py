"""OpenRouter Provider 适配器。

接口与 OpenAI 兼容，额外支持：
- 站点署名：HTTP-Referer (site_url) 与 X-Title (site_name) 请求头，
  流式请求体中同时携带 site_url / site_name。
- 模型目录无需认证，返回名称、描述、上下文长度与单价。
- 可选的图片能力：上传（data URI 或 URL）与识别。

空字符串增量会被过滤，不交给回调。
"""

import base64
import binascii
import re
from typing import Any, Dict, Optional, Sequence

import httpx

from vaultbot_core.config.settings import OpenRouterSettings
from vaultbot_core.domain.models import (
    ChatMessage,
    ImageAnalysis,
    ImageUpload,
    ModelInfo,
    ModelPricing,
)
from vaultbot_core.infrastructure.logging.logger import logger
from vaultbot_core.providers.chat_completions import ChatCompletionsClient
from vaultbot_core.providers.registry import OPENROUTER_CONFIG


DATA_URI_PATTERN = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)


class OpenRouterClient(ChatCompletionsClient):
    """OpenRouter 客户端实现。"""

    config = OPENROUTER_CONFIG
    forward_empty_fragments = False

    def _attribution_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        settings = self._settings
        site_url = getattr(settings, "site_url", "")
        site_name = getattr(settings, "site_name", "")
        if site_url:
            headers["HTTP-Referer"] = site_url
        if site_name:
            headers["X-Title"] = site_name
        return headers

    def _headers(self) -> Dict[str, str]:
        return {**super()._headers(), **self._attribution_headers()}

    def _validation_headers(self) -> Dict[str, str]:
        return {**super()._validation_headers(), **self._attribution_headers()}

    def _catalog_headers(self) -> Dict[str, str]:
        # 模型目录是公开接口，不发送 API Key
        return self._attribution_headers()

    def _build_payload(self, messages: Sequence[ChatMessage], temperature: float) -> Dict[str, Any]:
        payload = super()._build_payload(messages, temperature)
        settings = self._settings
        if isinstance(settings, OpenRouterSettings):
            if settings.site_url:
                payload["site_url"] = settings.site_url
            if settings.site_name:
                payload["site_name"] = settings.site_name
        return payload

    def _to_model_info(self, raw: Dict[str, Any]) -> Optional[ModelInfo]:
        model_id = raw.get("id")
        if not model_id:
            return None
        top_provider = raw.get("top_provider") or {}
        pricing_raw = raw.get("pricing") or {}
        return ModelInfo(
            id=model_id,
            name=raw.get("name") or model_id,
            description=raw.get("description") or model_id,
            context_length=raw.get("context_length") or top_provider.get("context_length"),
            pricing=ModelPricing(
                prompt=pricing_raw.get("prompt"),
                completion=pricing_raw.get("completion"),
            ),
        )

    # ---- 图片能力（可选） ----

    async def upload_image(self, data_uri: str, filename: Optional[str] = None) -> Optional[ImageUpload]:
        """把 data URI 图片以 multipart 上传到 /uploads。"""

        match = DATA_URI_PATTERN.match(data_uri or "")
        if not match:
            return None
        mime, encoded = match.group(1), match.group(2)
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.warning("OpenRouter image upload failed: invalid base64 payload", extra={"extra": {"error": str(e)}})
            return None
        name = filename or f"upload.{mime.split('/')[1]}"
        return await self._post_upload(files={"file": (name, content, mime)})

    async def upload_image_from_url(self, url: str, filename: Optional[str] = None) -> Optional[ImageUpload]:
        """让 OpenRouter 服务端拉取 URL 并上传。"""

        return await self._post_upload(json_body={"url": url})

    async def analyze_image(self, image_url_or_id: str) -> Optional[ImageAnalysis]:
        data = await self._post_json("/vision/analyze", {"image": image_url_or_id})
        if data is None:
            return None
        labels = data.get("labels")
        return ImageAnalysis(
            text=data.get("text") or None,
            labels=list(labels) if isinstance(labels, list) else None,
        )

    async def _post_upload(
        self,
        files: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Optional[ImageUpload]:
        if files is not None:
            data = await self._post_json("/uploads", None, files=files)
        else:
            data = await self._post_json("/uploads", json_body)
        if data is None:
            return None
        url = data.get("url") or data.get("file") or None
        upload_id = data.get("id") or None
        if not url and not upload_id:
            return None
        return ImageUpload(url=url, id=upload_id)

    async def _post_json(
        self,
        path: str,
        body: Optional[Dict[str, Any]],
        files: Optional[Dict[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        """POST 并解析 JSON；任何失败都记录告警并返回 None。"""

        headers = {"Authorization": f"Bearer {self._settings.api_key}", **self._attribution_headers()}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, trust_env=False) as client:
                if files is not None:
                    resp = await client.post(f"{self.base_url}{path}", files=files, headers=headers)
                else:
                    resp = await client.post(f"{self.base_url}{path}", json=body, headers=headers)
            if resp.status_code >= 400:
                logger.warning(
                    f"OpenRouter request to {path} rejected",
                    extra={"extra": {"http_status": resp.status_code}},
                )
                return None
            data = resp.json()
        except Exception as e:
            logger.warning(f"OpenRouter request to {path} failed", extra={"extra": {"error": repr(e)}})
            return None
        return data if isinstance(data, dict) else None
