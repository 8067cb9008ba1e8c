from .base import AIProviderConfig, AIResponse, ProviderAdapter, StreamChunk
from .catalog import MODEL_CATALOG, SUPPORTED_MODELS, ModelSpec, get_model_spec
from .content import ApiStyle, ChatMessage, ImagePart, PartsContent, TextContent, TextPart
from .router import ProviderClients, ProviderCredentials, ProviderRouter

__all__ = [
    "MODEL_CATALOG",
    "SUPPORTED_MODELS",
    "AIProviderConfig",
    "AIResponse",
    "ApiStyle",
    "ChatMessage",
    "ImagePart",
    "ModelSpec",
    "PartsContent",
    "ProviderAdapter",
    "ProviderClients",
    "ProviderCredentials",
    "ProviderRouter",
    "StreamChunk",
    "TextContent",
    "TextPart",
    "get_model_spec",
]
