"""
Escaped Integer Sequences — кодирование списков целых фиксированными словами

Последовательность неотрицательных целых кодируется big-endian словами
фиксированной ширины (2 или 4 байта) без отдельного поля длины:

- Кодирование v: пока v >= SENTINEL, пишется слово SENTINEL и v -= SENTINEL;
  затем пишется остаток (строго меньше SENTINEL) как завершающее слово.
- Декодирование: слова суммируются; слово == SENTINEL означает продолжение,
  слово < SENTINEL закрывает текущее значение.

Значение, равное ровно SENTINEL, кодируется парой [SENTINEL, 0].

Используется бинарным форматом для таблиц длин/смещений (см. src.codec.int_lists).
"""

from typing import Final, Iterable


# =============================================================================
# ИСКЛЮЧЕНИЯ
# =============================================================================


class EscapedIntDecodeError(ValueError):
    """
    Некорректный вход для декодирования.

    Возникает при неполном последнем слове или при обрыве на слове SENTINEL
    (значение не закрыто завершающим словом).
    """


# =============================================================================
# КОДЕК
# =============================================================================


class EscapedIntCodec:
    """
    Sentinel-carry кодек для слов заданной ширины.

    Экземпляры различаются только шириной слова; логика общая.

    Attributes:
        width: Ширина слова в байтах (2 или 4)
        sentinel: Максимальное значение слова (0xFFFF / 0xFFFFFFFF)
    """

    def __init__(self, width: int):
        if width not in (2, 4):
            raise ValueError(f"word width must be 2 or 4 bytes, got {width}")
        self.width = width
        self.sentinel = (1 << (8 * width)) - 1

    def __repr__(self) -> str:
        return f"EscapedIntCodec(width={self.width})"

    def encode(self, values: Iterable[int]) -> bytes:
        """
        Кодирование последовательности неотрицательных целых.

        Args:
            values: Последовательность целых >= 0

        Returns:
            Конкатенация big-endian слов

        Raises:
            ValueError: Если встречено отрицательное значение

        Examples:
            >>> WORD16.encode([65535]).hex()
            'ffff0000'
            >>> WORD16.encode([70000]).hex()
            'ffff1171'
        """
        sentinel_word = self.sentinel.to_bytes(self.width, "big")
        out = bytearray()
        for value in values:
            value = int(value)
            if value < 0:
                raise ValueError(f"cannot encode negative value {value}")
            carries, remainder = divmod(value, self.sentinel)
            out += sentinel_word * carries
            out += remainder.to_bytes(self.width, "big")
        return bytes(out)

    def decode(self, data: bytes) -> list[int]:
        """
        Декодирование слов обратно в последовательность целых.

        Args:
            data: Закодированные байты

        Returns:
            Список декодированных значений

        Raises:
            EscapedIntDecodeError: Неполное слово или незакрытое значение
        """
        if len(data) % self.width:
            raise EscapedIntDecodeError(
                f"input length {len(data)} is not a multiple of word width {self.width}"
            )
        result: list[int] = []
        pending = 0
        carrying = False
        for offset in range(0, len(data), self.width):
            word = int.from_bytes(data[offset : offset + self.width], "big")
            pending += word
            if word == self.sentinel:
                carrying = True
                continue
            result.append(pending)
            pending = 0
            carrying = False
        if carrying:
            raise EscapedIntDecodeError("input ends inside an escaped value")
        return result


# =============================================================================
# ЭКЗЕМПЛЯРЫ И CONVENIENCE FUNCTIONS
# =============================================================================

WORD16: Final[EscapedIntCodec] = EscapedIntCodec(2)
WORD32: Final[EscapedIntCodec] = EscapedIntCodec(4)


def codec_for_width(width: int) -> EscapedIntCodec:
    """Экземпляр кодека для ширины слова 2 или 4 байта."""
    if width == 2:
        return WORD16
    if width == 4:
        return WORD32
    raise ValueError(f"word width must be 2 or 4 bytes, got {width}")


def encode_vector(values: Iterable[int]) -> bytes:
    """Кодирование 16-битными словами."""
    return WORD16.encode(values)


def decode_vector(data: bytes) -> list[int]:
    """Декодирование 16-битных слов."""
    return WORD16.decode(data)


def encode_vector4(values: Iterable[int]) -> bytes:
    """Кодирование 32-битными словами."""
    return WORD32.encode(values)


def decode_vector4(data: bytes) -> list[int]:
    """Декодирование 32-битных слов."""
    return WORD32.decode(data)
