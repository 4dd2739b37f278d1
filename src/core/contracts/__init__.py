"""
Contract Validation Module

Конфигурация пределов декодирования и JSON Schema контракты
заголовков сетевых пакетов.
"""

from .limits import (
    DEFAULT_LIMITS,
    DEFAULT_MAX_BYTES,
    DEFAULT_MAX_DEPTH,
    CodecLimits,
    resolve_limits,
)
from .validators import (
    ContractValidator,
    PacketEnvelopeValidator,
    SchemaLoader,
    validate_packet_envelope,
)

__all__ = [
    # Limits
    "CodecLimits",
    "DEFAULT_LIMITS",
    "DEFAULT_MAX_BYTES",
    "DEFAULT_MAX_DEPTH",
    "resolve_limits",
    # Classes
    "SchemaLoader",
    "ContractValidator",
    "PacketEnvelopeValidator",
    # Functions
    "validate_packet_envelope",
]
