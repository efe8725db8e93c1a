from src.providers.registry import (
    CODEX,
    DEFAULT_PROVIDERS,
    GEMINI,
    ProviderRegistry,
    ProviderSpec,
    UnknownProviderError,
)

__all__ = [
    "CODEX",
    "DEFAULT_PROVIDERS",
    "GEMINI",
    "ProviderRegistry",
    "ProviderSpec",
    "UnknownProviderError",
]
