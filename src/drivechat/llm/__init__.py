"""Chat providers and the fallback executor that orders them."""

from .circuit_breaker import BreakerState, CircuitBreaker
from .fallback import FallbackResult, ProviderFallbackExecutor
from .providers import ChatProvider, create_providers

__all__ = [
    "BreakerState",
    "ChatProvider",
    "CircuitBreaker",
    "FallbackResult",
    "ProviderFallbackExecutor",
    "create_providers",
]
