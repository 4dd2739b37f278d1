"""
Numerical Safeguards — числовые примитивы для value tree

Модуль обеспечивает корректное хранение чисел в дереве и в бинарном формате:
- Границы signed int64 (INTEGER-вариант и целочисленные поля DTMI)
- NaN/Inf санитизация при приведении DOUBLE → int
- Fixed-point scale для DOUBLE: выбор делителя, при котором
  round(value * scale) / scale восстанавливает исходное значение

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Приведение типов никогда не бросает исключение (возвращается fallback)
2. NaN/Inf никогда не попадают в целочисленный канал
3. resolve_scale возвращает только scale, дающий точное восстановление
"""

import math
from decimal import Decimal
from typing import Final

# =============================================================================
# ГРАНИЦЫ ЦЕЛЫХ
# =============================================================================

INT64_MIN: Final[int] = -(2**63)
INT64_MAX: Final[int] = 2**63 - 1

UINT16_MAX: Final[int] = 0xFFFF
UINT32_MAX: Final[int] = 0xFFFFFFFF

# Максимальное число десятичных знаков, для которого float 10**N точен
# и scaled-представление имеет смысл
MAX_SCALE_DIGITS: Final[int] = 15

# Scale по умолчанию (no-op делитель)
SCALE_NONE: Final[float] = 1.0

# Литерал, переполняющий double при разборе (JSON-запись бесконечности)
INF_LITERAL: Final[str] = "1e999"


# =============================================================================
# NaN/Inf И INT64
# =============================================================================


def is_valid_float(value: float) -> bool:
    """
    Проверка, является ли float валидным (не NaN, не Inf).

    Args:
        value: Проверяемое значение

    Returns:
        True если значение валидное (finite), False если NaN или Inf
    """
    return math.isfinite(value)


def clamp_int64(value: int) -> int:
    """Насыщение целого до диапазона int64."""
    return max(INT64_MIN, min(INT64_MAX, value))


def float_to_int64(value: float) -> int:
    """
    Приведение float → int64 без исключений.

    Дробная часть отбрасывается (truncation), NaN/Inf дают 0,
    значения вне диапазона насыщаются.

    Examples:
        >>> float_to_int64(3.9)
        3
        >>> float_to_int64(-3.9)
        -3
        >>> float_to_int64(float('nan'))
        0
        >>> float_to_int64(1e300) == INT64_MAX
        True
    """
    if not is_valid_float(value):
        return 0
    if value >= INT64_MAX:
        return INT64_MAX
    if value <= INT64_MIN:
        return INT64_MIN
    return int(value)


def is_int64(value: int) -> bool:
    return INT64_MIN <= value <= INT64_MAX


# =============================================================================
# FIXED-POINT SCALE
# =============================================================================


def validate_scale(scale: float) -> float:
    """
    Проверка делителя DOUBLE-значения.

    Args:
        scale: Делитель (должен быть конечным и > 0)

    Returns:
        scale как float

    Raises:
        ValueError: Если scale не конечен или не положителен
    """
    scale = float(scale)
    if not is_valid_float(scale) or scale <= 0:
        raise ValueError(f"scale must be a finite positive number, got {scale}")
    return scale


def scale_digits(scale: float) -> int | None:
    """
    Число десятичных знаков, если scale — степень десяти (10**N, N >= 0).

    Examples:
        >>> scale_digits(1000.0)
        3
        >>> scale_digits(1.0)
        0
        >>> scale_digits(7.0) is None
        True
    """
    if not is_valid_float(scale) or scale < 1:
        return None
    digits = round(math.log10(scale))
    if digits > MAX_SCALE_DIGITS or 10.0**digits != scale:
        return None
    return digits


def decimal_scale(value: float) -> float | None:
    """
    Минимальный десятичный scale, при котором value представимо целым.

    Число знаков берётся из кратчайшего repr() значения.

    Returns:
        10**N или None, если N > MAX_SCALE_DIGITS либо value не конечно

    Examples:
        >>> decimal_scale(0.25)
        100.0
        >>> decimal_scale(12.0)
        1.0
        >>> decimal_scale(1e-30) is None
        True
    """
    if not is_valid_float(value):
        return None
    exponent = Decimal(repr(value)).normalize().as_tuple().exponent
    digits = max(0, -int(exponent))
    if digits > MAX_SCALE_DIGITS:
        return None
    return 10.0**digits


def scale_to_int(value: float, scale: float) -> int | None:
    """
    Целое представление round(value * scale), если оно точно и влезает в int64.

    Returns:
        Целое или None, если восстановление value по (целое, scale) неточно
    """
    if not is_valid_float(value):
        return None
    product = value * scale
    if not is_valid_float(product):
        return None
    scaled = round(product)
    if not is_int64(scaled) or scaled / scale != value:
        return None
    return scaled


def resolve_scale(value: float, scale: float = SCALE_NONE) -> float | None:
    """
    Выбор scale для передачи DOUBLE через целочисленный канал.

    Сначала пробуется заданный scale, затем десятичный scale из repr().

    Args:
        value: Значение DOUBLE
        scale: Текущий делитель значения

    Returns:
        Делитель с точным восстановлением или None (значение передаётся
        как сырой IEEE-754 double)

    Examples:
        >>> resolve_scale(2.5, 10.0)
        10.0
        >>> resolve_scale(0.3)
        10.0
        >>> resolve_scale(float('inf')) is None
        True
    """
    for candidate in (scale, decimal_scale(value)):
        if candidate is None:
            continue
        if scale_to_int(value, candidate) is not None:
            return candidate
    return None


# =============================================================================
# ТЕКСТОВОЕ ПРЕДСТАВЛЕНИЕ
# =============================================================================


def render_double(value: float, scale: float = SCALE_NONE) -> str:
    """
    JSON-представление DOUBLE с учётом scale.

    Если scale == 10**N и запись с N знаками точно восстанавливает value,
    используется фиксированная точка, иначе кратчайший repr().
    NaN в JSON непредставим и даёт "null"; бесконечности пишутся
    переполняющим литералом 1e999, который разбирается обратно в inf.

    Examples:
        >>> render_double(1.5, 100.0)
        '1.50'
        >>> render_double(0.1)
        '0.1'
        >>> render_double(1.23456, 10.0)
        '1.23456'
        >>> render_double(float("nan"))
        'null'
        >>> render_double(float("-inf"))
        '-1e999'
    """
    if math.isnan(value):
        return "null"
    if math.isinf(value):
        return INF_LITERAL if value > 0 else "-" + INF_LITERAL
    digits = scale_digits(scale)
    if digits:
        text = f"{value:.{digits}f}"
        if float(text) == value:
            return text
    return repr(value)
