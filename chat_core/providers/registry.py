"""Provider 端点与默认模型配置。

把端点路径、默认模型等常量集中在这里，客户端只拼接 base_url + 路径，
便于后续切换到兼容 OpenAI 协议的其他服务。"""

from dataclasses import dataclass
from typing import Mapping, Tuple


@dataclass(frozen=True)
class EndpointPaths:
    """各端点相对 base_url 的路径。"""

    chat_completions: str = "/chat/completions"
    responses: str = "/responses"
    models: str = "/models"
    transcriptions: str = "/audio/transcriptions"
    speech: str = "/audio/speech"


@dataclass(frozen=True)
class ModelDefaults:
    """未配置时使用的模型。"""

    chat_model: str
    title_model: str
    transcription_model: str
    tts_model: str
    tts_voice: str


@dataclass(frozen=True)
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    paths: EndpointPaths
    defaults: ModelDefaults
    tts_voices: Tuple[str, ...]

    def url(self, base_url: str, path: str) -> str:
        return f"{(base_url or self.base_url).rstrip('/')}{path}"


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    paths=EndpointPaths(),
    defaults=ModelDefaults(
        chat_model="gpt-3.5-turbo",
        title_model="gpt-3.5-turbo",
        transcription_model="whisper-1",
        tts_model="tts-1",
        tts_voice="alloy",
    ),
    tts_voices=("alloy", "echo", "fable", "onyx", "nova", "shimmer"),
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
