"""
CodecLimits — жёсткие ограничения для декодеров

Immutable Pydantic модель с пределами глубины вложенности и размера входа.
Превышение предела при декодировании — фатальная ошибка декодирования
(текстовый путь отдаёт Null, бинарный бросает DecodeLimitExceeded).
"""

from typing import Final

from pydantic import BaseModel, Field


# =============================================================================
# ЗНАЧЕНИЯ ПО УМОЛЧАНИЮ
# =============================================================================

# Максимальная глубина вложенности ARRAY/OBJECT
DEFAULT_MAX_DEPTH: Final[int] = 256

# Максимальный размер одного входного документа (байт)
DEFAULT_MAX_BYTES: Final[int] = 256 * 1024 * 1024


# =============================================================================
# MODEL
# =============================================================================


class CodecLimits(BaseModel):
    """
    Пределы ресурсов для разбора текста и бинарных форматов.

    Attributes:
        max_depth: Максимальная глубина вложенности композитных узлов
        max_bytes: Максимальный размер входа в байтах
    """

    max_depth: int = Field(DEFAULT_MAX_DEPTH, gt=0, description="Максимальная глубина вложенности")
    max_bytes: int = Field(DEFAULT_MAX_BYTES, gt=0, description="Максимальный размер входа (байт)")

    model_config = {"frozen": True}


DEFAULT_LIMITS: Final[CodecLimits] = CodecLimits()


def resolve_limits(limits: CodecLimits | None) -> CodecLimits:
    """Подстановка DEFAULT_LIMITS вместо None."""
    return DEFAULT_LIMITS if limits is None else limits
