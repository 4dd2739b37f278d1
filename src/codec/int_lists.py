"""
Int Lists — списки беззнаковых целых в STRING-узлах

Escaped-int упаковка (WORD16 / WORD32) кладётся в STRING как бинарный
payload, поэтому списки (например, смещения фрагментов) проходят через
текстовый и бинарный кодеки дерева без потерь.
"""

from typing import Iterable

from src.core.domain.value import Value
from src.core.math.escaped_ints import codec_for_width


def pack_int_list(values: Iterable[int], width: int = 2) -> Value:
    """
    Упаковка списка неотрицательных целых в STRING.

    Args:
        values: Неотрицательные целые
        width: Ширина слова (2 или 4 байта)

    Raises:
        ValueError: Отрицательное значение или неподдерживаемая ширина
    """
    return Value(codec_for_width(width).encode(values))


def unpack_int_list(value: Value, width: int = 2) -> list[int]:
    """
    Распаковка списка из STRING; для прочих вариантов — пустой список.

    Raises:
        EscapedIntDecodeError: Обрезанный payload
    """
    if not value.is_string():
        return []
    return codec_for_width(width).decode(value.as_bytes())
