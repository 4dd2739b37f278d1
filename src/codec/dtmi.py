"""
DTMI Codec — бинарный формат дерева значений (поколения v1 / v2)

Self-describing формат: каждый узел начинается с байта-тега, все целые
big-endian, строки — length-prefixed байты (без нуль-терминатора).

ТАБЛИЦА ТЕГОВ (v1):
    0x01  INTEGER        int64
    0x02  STRING         uint32 длина + байты
    0x03  DOUBLE         int64 round(value * scale) + float64 scale
    0x04  DOUBLE (raw)   float64, если ни один scale не даёт точного целого
    0x05  BOOL           uint8
    0x06  Null           —
    0x0A  ARRAY          значения..., терминатор 00 00 EE
    0xE0  OBJECT         (uint16 длина имени, имя, значение)..., терминатор 00 00 EE
    0xFF  OBJECT         uint32 длина секции членов, далее как 0xE0

Пустое имя члена: длина 00 00 и сразу тег значения. Тег EE не существует,
поэтому 00 00 EE однозначно закрывает объект.

Кодировщик пишет 0x0A / 0xE0; декодер также принимает 0xFF и умеет
пропускать такие поддеревья по длине без разбора (skip_dtmi).

DTMI2 (v2) — пакет медиа-потока: 12-байтовый заголовок (uint32 trackid,
uint64 time) и OBJECT-тело в формате v1. При разборе trackid/time
возвращаются членами объекта.

ПОЛИТИКА ОШИБОК:
Обрыв или порча входа → DTMIDecodeError (никогда не Null и никогда не чтение
за пределами буфера). Превышение CodecLimits → DecodeLimitExceeded, в том
числе RecursionError при max_depth выше предела рекурсии интерпретатора.
"""

import math
import struct
from enum import IntEnum
from typing import Any, Final, Protocol

from jsonschema import ValidationError

from src.core.contracts.limits import CodecLimits, resolve_limits
from src.core.contracts.validators import validate_packet_envelope
from src.core.domain.iteration import ConstIter
from src.core.domain.value import Value, ValueType, bytes_to_text, text_to_bytes
from src.core.math.numerical_safeguards import (
    INT64_MAX,
    UINT16_MAX,
    UINT32_MAX,
    resolve_scale,
    scale_to_int,
)


# =============================================================================
# CONSTANTS
# =============================================================================

TAG_INT: Final[int] = 0x01
TAG_STRING: Final[int] = 0x02
TAG_SCALED_DOUBLE: Final[int] = 0x03
TAG_DOUBLE: Final[int] = 0x04
TAG_BOOL: Final[int] = 0x05
TAG_NULL: Final[int] = 0x06
TAG_ARRAY: Final[int] = 0x0A
TAG_OBJECT: Final[int] = 0xE0
TAG_SIZED_OBJECT: Final[int] = 0xFF

TERMINATOR: Final[bytes] = b"\x00\x00\xee"

# Размер заголовка DTMI2: uint32 trackid + uint64 time
DTMI2_HEADER_SIZE: Final[int] = 12

# Члены OBJECT, переносимые в заголовок DTMI2
PACKET_HEADER_MEMBERS: Final[frozenset[str]] = frozenset({"trackid", "time"})

# Размеры payload скалярных тегов (без байта тега)
_FIXED_PAYLOAD: Final[dict[int, int]] = {
    TAG_INT: 8,
    TAG_SCALED_DOUBLE: 16,
    TAG_DOUBLE: 8,
    TAG_BOOL: 1,
    TAG_NULL: 0,
}

_I64 = struct.Struct(">q")
_U32 = struct.Struct(">I")
_U16 = struct.Struct(">H")
_F64 = struct.Struct(">d")
_DTMI2_HEADER = struct.Struct(">IQ")


# =============================================================================
# EXCEPTIONS
# =============================================================================


class DTMIDecodeError(ValueError):
    """
    Вход не является корректным DTMI-значением.

    Attributes:
        offset: Смещение во входе, где обнаружена ошибка
    """

    def __init__(self, message: str, offset: int):
        super().__init__(f"{message} (offset {offset})")
        self.offset = offset


class DecodeLimitExceeded(DTMIDecodeError):
    """Превышен предел CodecLimits (глубина или размер)."""


class DTMIEncodeError(ValueError):
    """Дерево не может быть представлено в DTMI."""


class DTMIVersion(IntEnum):
    """Поколение формата, выбираемое явно на стороне вызова."""

    V1 = 1
    V2 = 2


# =============================================================================
# INPUT SOURCES
# =============================================================================


class _BufferSource:
    """Чтение из байтового буфера с курсором; никогда не выходит за len(data)."""

    def __init__(self, data: Any, pos: int, limits: CodecLimits):
        self.data = memoryview(data).cast("B")
        if not 0 <= pos <= len(self.data):
            raise DTMIDecodeError("cursor outside of buffer", pos)
        self.start = pos
        self.pos = pos
        self.max_bytes = limits.max_bytes

    @property
    def offset(self) -> int:
        return self.pos

    def _advance(self, n: int) -> int:
        end = self.pos + n
        if end > len(self.data):
            raise DTMIDecodeError(f"truncated input: {n} bytes needed, {len(self.data) - self.pos} left", self.pos)
        if end - self.start > self.max_bytes:
            raise DecodeLimitExceeded(f"value larger than {self.max_bytes} bytes", self.pos)
        begin, self.pos = self.pos, end
        return begin

    def take(self, n: int) -> bytes:
        begin = self._advance(n)
        return self.data[begin : self.pos].tobytes()

    def skip(self, n: int) -> None:
        self._advance(n)


class _StreamSource:
    """Чтение из бинарного потока; обрыв потока — DTMIDecodeError."""

    def __init__(self, stream: Any, limits: CodecLimits):
        self.stream = stream
        self.consumed = 0
        self.max_bytes = limits.max_bytes

    @property
    def offset(self) -> int:
        return self.consumed

    def take(self, n: int) -> bytes:
        if self.consumed + n > self.max_bytes:
            raise DecodeLimitExceeded(f"value larger than {self.max_bytes} bytes", self.consumed)
        chunks: list[bytes] = []
        remaining = n
        while remaining:
            chunk = self.stream.read(remaining)
            if not chunk:
                raise DTMIDecodeError(f"truncated stream: {remaining} of {n} bytes missing", self.consumed + n - remaining)
            chunks.append(chunk)
            remaining -= len(chunk)
        self.consumed += n
        return b"".join(chunks)

    def skip(self, n: int) -> None:
        self.take(n)


# =============================================================================
# DECODER
# =============================================================================


class _Decoder:
    """Рекурсивный разбор v1-значений из источника."""

    def __init__(self, source: _BufferSource | _StreamSource, limits: CodecLimits):
        self.source = source
        self.max_depth = limits.max_depth

    def fail(self, message: str, back: int = 0) -> DTMIDecodeError:
        return DTMIDecodeError(message, self.source.offset - back)

    def check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise DecodeLimitExceeded(f"nesting deeper than {self.max_depth}", self.source.offset)

    def read_tag(self) -> int:
        return self.source.take(1)[0]

    def read_u16(self) -> int:
        return _U16.unpack(self.source.take(2))[0]

    def read_u32(self) -> int:
        return _U32.unpack(self.source.take(4))[0]

    def expect_terminator_tail(self) -> None:
        # первый нулевой байт терминатора уже прочитан
        if self.source.take(2) != TERMINATOR[1:]:
            raise self.fail("malformed container terminator", 2)

    def value(self, depth: int = 0) -> Value:
        return self.value_with_tag(self.read_tag(), depth)

    def value_with_tag(self, tag: int, depth: int) -> Value:
        take = self.source.take
        if tag == TAG_INT:
            return Value(_I64.unpack(take(8))[0])
        if tag == TAG_STRING:
            return Value(bytes_to_text(take(self.read_u32())))
        if tag == TAG_SCALED_DOUBLE:
            scaled = _I64.unpack(take(8))[0]
            scale = _F64.unpack(take(8))[0]
            if not math.isfinite(scale) or scale <= 0:
                raise self.fail(f"invalid double scale {scale!r}", 8)
            return Value(scaled / scale, scale=scale)
        if tag == TAG_DOUBLE:
            return Value(_F64.unpack(take(8))[0])
        if tag == TAG_BOOL:
            return Value(take(1)[0] != 0)
        if tag == TAG_NULL:
            return Value()
        if tag == TAG_ARRAY:
            return self.array(depth + 1)
        if tag == TAG_OBJECT:
            return Value._wrap_object(self.members(depth + 1))
        if tag == TAG_SIZED_OBJECT:
            return self.sized_object(depth + 1)
        raise self.fail(f"unknown type tag 0x{tag:02x}", 1)

    def array(self, depth: int) -> Value:
        self.check_depth(depth)
        items: list[Value] = []
        while True:
            tag = self.read_tag()
            if tag == 0x00:
                self.expect_terminator_tail()
                return Value._wrap_array(items)
            items.append(self.value_with_tag(tag, depth))

    def members(self, depth: int) -> dict[str, Value]:
        self.check_depth(depth)
        members: dict[str, Value] = {}
        while True:
            key_length = self.read_u16()
            if key_length == 0:
                # 00 00 EE - конец, 00 00 <тег> - член с пустым именем
                tag = self.read_tag()
                if tag == TERMINATOR[2]:
                    return members
                members[""] = self.value_with_tag(tag, depth)
                continue
            key = bytes_to_text(self.source.take(key_length))
            members[key] = self.value(depth)

    def sized_object(self, depth: int) -> Value:
        length = self.read_u32()
        start = self.source.offset
        members = self.members(depth)
        if self.source.offset - start != length:
            raise self.fail(f"sized object declares {length} bytes, holds {self.source.offset - start}")
        return Value._wrap_object(members)

    # -------------------------------------------------------------------------
    # Skipping (без материализации)
    # -------------------------------------------------------------------------

    def skip(self, depth: int = 0) -> None:
        self.skip_with_tag(self.read_tag(), depth)

    def skip_with_tag(self, tag: int, depth: int) -> None:
        if tag in _FIXED_PAYLOAD:
            self.source.skip(_FIXED_PAYLOAD[tag])
        elif tag == TAG_STRING:
            self.source.skip(self.read_u32())
        elif tag == TAG_SIZED_OBJECT:
            self.source.skip(self.read_u32())
        elif tag == TAG_ARRAY:
            self.check_depth(depth + 1)
            while True:
                inner = self.read_tag()
                if inner == 0x00:
                    self.expect_terminator_tail()
                    return
                self.skip_with_tag(inner, depth + 1)
        elif tag == TAG_OBJECT:
            self.check_depth(depth + 1)
            while True:
                key_length = self.read_u16()
                if key_length == 0:
                    tag = self.read_tag()
                    if tag == TERMINATOR[2]:
                        return
                    self.skip_with_tag(tag, depth + 1)
                    continue
                self.source.skip(key_length)
                self.skip(depth + 1)
        else:
            raise self.fail(f"unknown type tag 0x{tag:02x}", 1)

    # -------------------------------------------------------------------------
    # DTMI2
    # -------------------------------------------------------------------------

    def packet(self) -> Value:
        trackid, time = _DTMI2_HEADER.unpack(self.source.take(DTMI2_HEADER_SIZE))
        if time > INT64_MAX:
            raise self.fail(f"packet time {time} outside int64 range", 8)
        body = self.value()
        if not body.is_object():
            raise self.fail(f"DTMI2 body must be an object, got {body.type.value}")
        body["time"] = time
        body["trackid"] = trackid
        return body


# =============================================================================
# ENCODER
# =============================================================================


class _Encoder:
    """Запись v1-значений в bytearray."""

    def __init__(self):
        self.out = bytearray()

    def value(self, value: Value) -> None:
        out = self.out
        kind = value.type
        if kind is ValueType.INTEGER:
            out.append(TAG_INT)
            out += _I64.pack(value.as_int())
        elif kind is ValueType.STRING:
            raw = value.as_bytes()
            if len(raw) > UINT32_MAX:
                raise DTMIEncodeError(f"string of {len(raw)} bytes cannot be encoded")
            out.append(TAG_STRING)
            out += _U32.pack(len(raw))
            out += raw
        elif kind is ValueType.DOUBLE:
            self.double(value.as_double(), value.scale)
        elif kind is ValueType.BOOL:
            out.append(TAG_BOOL)
            out.append(1 if value.as_bool() else 0)
        elif kind is ValueType.EMPTY:
            out.append(TAG_NULL)
        elif kind is ValueType.ARRAY:
            out.append(TAG_ARRAY)
            for cursor in ConstIter(value):
                self.value(cursor.value)
            out += TERMINATOR
        elif kind is ValueType.OBJECT:
            out.append(TAG_OBJECT)
            self.members(value, frozenset())
            out += TERMINATOR

    def double(self, number: float, scale: float) -> None:
        resolved = resolve_scale(number, scale)
        if resolved is None:
            self.out.append(TAG_DOUBLE)
            self.out += _F64.pack(number)
            return
        self.out.append(TAG_SCALED_DOUBLE)
        self.out += _I64.pack(scale_to_int(number, resolved))
        self.out += _F64.pack(resolved)

    def members(self, value: Value, exclude: frozenset[str]) -> None:
        for cursor in ConstIter(value):
            if cursor.key in exclude:
                continue
            raw = text_to_bytes(cursor.key)
            if len(raw) > UINT16_MAX:
                raise DTMIEncodeError(f"member name of {len(raw)} bytes cannot be encoded")
            self.out += _U16.pack(len(raw))
            self.out += raw
            self.value(cursor.value)


# =============================================================================
# ENCODE ENTRY POINTS
# =============================================================================


def to_dtmi(value: Value) -> bytes:
    """
    Сериализация дерева в DTMI v1 (packed form).

    Raises:
        DTMIEncodeError: Слишком длинное имя члена или строка > 4 GiB
    """
    encoder = _Encoder()
    encoder.value(value)
    return bytes(encoder.out)


def packet_envelope(value: Value, trackid: int | None = None) -> tuple[int, int]:
    """
    Заголовок пакета (trackid, time), проверенный контрактом packet_envelope.

    Args:
        value: OBJECT-пакет
        trackid: Явный trackid (иначе берётся член "trackid")

    Raises:
        DTMIEncodeError: Заголовок не проходит контракт
    """
    header = {
        "trackid": value.get("trackid").as_int() if trackid is None else trackid,
        "time": value.get("time").as_int(),
    }
    try:
        validate_packet_envelope(header)
    except ValidationError as e:
        raise DTMIEncodeError(f"invalid packet envelope: {e.message}") from e
    return header["trackid"], header["time"]


def to_dtmi2(
    value: Value,
    *,
    trackid: int | None = None,
    exclude: frozenset[str] = PACKET_HEADER_MEMBERS,
) -> bytes:
    """
    Сериализация OBJECT-пакета в DTMI2.

    Args:
        value: OBJECT с членами trackid / time (отсутствующие считаются 0)
        trackid: Явный trackid вместо члена "trackid"
        exclude: Члены, не попадающие в тело (по умолчанию trackid и time)

    Raises:
        DTMIEncodeError: Узел не OBJECT или заголовок не проходит контракт
    """
    if not value.is_object():
        raise DTMIEncodeError(f"DTMI2 packets must be objects, got {value.type.value}")
    track, time = packet_envelope(value, trackid)
    encoder = _Encoder()
    encoder.out += _DTMI2_HEADER.pack(track, time)
    encoder.out.append(TAG_OBJECT)
    encoder.members(value, frozenset(exclude) | PACKET_HEADER_MEMBERS)
    encoder.out += TERMINATOR
    return bytes(encoder.out)


def packed_size(value: Value) -> int:
    """Длина to_dtmi(value) в байтах без построения буфера."""
    kind = value.type
    if kind is ValueType.INTEGER:
        return 9
    if kind is ValueType.STRING:
        return 5 + len(value.as_bytes())
    if kind is ValueType.DOUBLE:
        return 17 if resolve_scale(value.as_double(), value.scale) is not None else 9
    if kind is ValueType.BOOL:
        return 2
    if kind is ValueType.ARRAY:
        return 1 + sum(packed_size(cursor.value) for cursor in ConstIter(value)) + len(TERMINATOR)
    if kind is ValueType.OBJECT:
        members = sum(
            2 + len(text_to_bytes(cursor.key)) + packed_size(cursor.value)
            for cursor in ConstIter(value)
        )
        return 1 + members + len(TERMINATOR)
    return 1


def _guarded(source: _BufferSource | _StreamSource, step: Any, decoder: _Decoder) -> Any:
    # max_depth выше предела рекурсии интерпретатора не должен ронять декодер
    try:
        return step(decoder)
    except RecursionError as e:
        raise DecodeLimitExceeded("nesting exceeds interpreter recursion limit", source.offset) from e


# =============================================================================
# CODECS
# =============================================================================


class TreeCodec(Protocol):
    """Общая возможность обоих поколений: decode-to-tree / encode-from-tree."""

    version: DTMIVersion

    def decode(self, data: Any, pos: int = 0) -> tuple[Value, int]: ...

    def read(self, stream: Any) -> Value: ...

    def encode(self, value: Value) -> bytes: ...


class DTMICodec:
    """DTMI v1."""

    version = DTMIVersion.V1

    def __init__(self, limits: CodecLimits | None = None):
        self.limits = resolve_limits(limits)

    def _decode_from(self, decoder: _Decoder) -> Value:
        return decoder.value()

    def decode(self, data: Any, pos: int = 0) -> tuple[Value, int]:
        """
        Разбор одного значения с позиции pos.

        Returns:
            (значение, позиция сразу за ним)

        Raises:
            DTMIDecodeError: Обрыв или порча входа
        """
        source = _BufferSource(data, pos, self.limits)
        result = _guarded(source, self._decode_from, _Decoder(source, self.limits))
        return result, source.offset

    def read(self, stream: Any) -> Value:
        """Разбор одного значения из бинарного потока (читается ровно его длина)."""
        source = _StreamSource(stream, self.limits)
        return _guarded(source, self._decode_from, _Decoder(source, self.limits))

    def encode(self, value: Value) -> bytes:
        return to_dtmi(value)

    def skip(self, data: Any, pos: int = 0) -> int:
        """Позиция за значением, начинающимся с pos, без его разбора."""
        source = _BufferSource(data, pos, self.limits)
        _guarded(source, _Decoder.skip, _Decoder(source, self.limits))
        return source.offset


class DTMI2Codec(DTMICodec):
    """DTMI v2: заголовок trackid/time + тело v1."""

    version = DTMIVersion.V2

    def _decode_from(self, decoder: _Decoder) -> Value:
        return decoder.packet()

    def encode(self, value: Value) -> bytes:
        return to_dtmi2(value)

    def skip(self, data: Any, pos: int = 0) -> int:
        source = _BufferSource(data, pos, self.limits)
        source.skip(DTMI2_HEADER_SIZE)
        _guarded(source, _Decoder.skip, _Decoder(source, self.limits))
        return source.offset


def codec_for(version: DTMIVersion | int, limits: CodecLimits | None = None) -> TreeCodec:
    """Кодек для явно заданного поколения формата."""
    if DTMIVersion(version) is DTMIVersion.V1:
        return DTMICodec(limits)
    return DTMI2Codec(limits)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


def decode_dtmi(data: Any, pos: int = 0, *, limits: CodecLimits | None = None) -> tuple[Value, int]:
    return DTMICodec(limits).decode(data, pos)


def from_dtmi(data: Any, *, limits: CodecLimits | None = None) -> Value:
    return DTMICodec(limits).decode(data)[0]


def read_dtmi(stream: Any, *, limits: CodecLimits | None = None) -> Value:
    return DTMICodec(limits).read(stream)


def decode_dtmi2(data: Any, pos: int = 0, *, limits: CodecLimits | None = None) -> tuple[Value, int]:
    return DTMI2Codec(limits).decode(data, pos)


def from_dtmi2(data: Any, *, limits: CodecLimits | None = None) -> Value:
    return DTMI2Codec(limits).decode(data)[0]


def read_dtmi2(stream: Any, *, limits: CodecLimits | None = None) -> Value:
    return DTMI2Codec(limits).read(stream)


def skip_dtmi(data: Any, pos: int = 0, *, limits: CodecLimits | None = None) -> int:
    return DTMICodec(limits).skip(data, pos)
