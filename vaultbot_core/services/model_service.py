"""模型目录服务。

按后端缓存模型列表，避免 UI 每次渲染都发起网络请求：

- 缓存键只取后端名称（不含 API Key），修改配置不会导致缓存失效；
  只有切换后端或 force_refresh=True 时才重新拉取。
- 缓存随进程存在，不做持久化。
- 本服务从不抛异常：适配器自身已在失败时返回回退列表；
  配置无法解析或仍有异常时，返回旧缓存或注册表中的回退列表，且不写入缓存，
  这样用户修正配置后下一次调用会重新拉取。
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import time

from vaultbot_core.config.settings import ProviderConfigSource
from vaultbot_core.domain.models import ModelInfo
from vaultbot_core.infrastructure.logging.logger import logger
from vaultbot_core.providers.wrapper import ProviderWrapper


@dataclass
class CachedModels:
    provider: str
    models: List[ModelInfo]
    fetched_at: float = field(default_factory=time.time)


class ModelService:
    def __init__(self) -> None:
        self._cache: Dict[str, CachedModels] = {}

    async def get_models(self, config: ProviderConfigSource, force_refresh: bool = False) -> List[ModelInfo]:
        provider = (config.api_provider or "").strip().lower()
        cached = self._cache.get(provider)
        if cached is not None and not force_refresh:
            return list(cached.models)

        wrapper = ProviderWrapper(config)
        try:
            client = wrapper.get_provider()
            models = await client.list_models()
        except Exception as e:
            logger.error(
                "Failed to fetch models",
                extra={"extra": {"provider": provider, "error": repr(e)}},
            )
            if cached is not None:
                return list(cached.models)
            return wrapper.fallback_models()

        self._cache[provider] = CachedModels(provider=provider, models=list(models))
        logger.debug(
            "Model catalog cached",
            extra={"extra": {"provider": provider, "count": len(models), "forced": force_refresh}},
        )
        return list(models)

    def clear_cache(self, provider: Optional[str] = None) -> None:
        if provider is None:
            self._cache.clear()
        else:
            self._cache.pop(provider.strip().lower(), None)

    def cache_info(self) -> Dict[str, object]:
        return {"size": len(self._cache), "keys": list(self._cache.keys())}


_service: Optional[ModelService] = None


def get_model_service() -> ModelService:
    """获取进程级 ModelService 单例。"""
    global _service
    if _service is None:
        _service = ModelService()
    return _service
