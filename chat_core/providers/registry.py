"""Provider 与模型配置。

集中维护 Provider 的基础 URL，以及每个已知模型的默认生成参数。
调用方未指定 max_tokens / temperature 时，网关从这里取默认值；
未登记的模型 ID 使用 Provider 级别的默认值，仍然可以直接调用。
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping


@dataclass
class ModelConfig:
    """单个模型的默认参数。"""

    model_id: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    default_model: str
    models: Dict[str, ModelConfig]

    def model(self, model_id: str) -> ModelConfig:
        """返回模型配置；未登记的模型沿用默认模型的参数。"""

        cfg = self.models.get(model_id)
        if cfg is not None:
            return cfg
        fallback = self.models[self.default_model]
        return ModelConfig(
            model_id=model_id,
            max_tokens=fallback.max_tokens,
            default_temperature=fallback.default_temperature,
        )

    def model_ids(self) -> List[str]:
        return list(self.models)


PERPLEXITY_CONFIG = ProviderConfig(
    name="perplexity",
    base_url="https://api.perplexity.ai",
    default_model="sonar",
    models={
        "sonar": ModelConfig(model_id="sonar", max_tokens=1000, default_temperature=0.2),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "perplexity": PERPLEXITY_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
