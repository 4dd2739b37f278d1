"""
Net Packets — сетевая форма DTSC / DTP2 с кэшированием в узле

ФОРМАТ:
    "DTSC" uint32 size | DTMI v1 body             — пакет без трека
    "DTP2" uint32 size | uint32 trackid | uint64 time | OBJECT body

Выбор формы:
1. Есть член "trackid" → DTP2 с этим trackid
2. Есть член "datatype" → DTP2, trackid по типу: video=1, audio=2, meta=3,
   прочие 0; при trackid != 0 член "datatype" не попадает в тело
3. Иначе → DTSC

Пакет кэшируется в корневом узле (Value.to_net_packed) до первой мутации
поддерева. Упаковывать можно только OBJECT: для прочих вариантов
пишется ошибка в лог и кэшируется пустой пакет.
"""

import logging
import struct
from typing import Any, Callable, Final, Literal

from pydantic import BaseModel, Field

from src.codec.dtmi import (
    DTMI2_HEADER_SIZE,
    DTMIDecodeError,
    DTMIVersion,
    codec_for,
    to_dtmi,
    to_dtmi2,
)
from src.core.contracts.limits import CodecLimits
from src.core.domain.iteration import Iter
from src.core.domain.value import Value, ValueType
from src.core.math.numerical_safeguards import resolve_scale

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MAGIC_DTSC: Final[bytes] = b"DTSC"
MAGIC_DTP2: Final[bytes] = b"DTP2"

# magic + uint32 size
NET_HEADER_SIZE: Final[int] = 8

# trackid по значению члена "datatype"
DATATYPE_TRACKS: Final[dict[str, int]] = {
    "video": 1,
    "audio": 2,
    "meta": 3,
}

_U32 = struct.Struct(">I")


# =============================================================================
# HEADER MODEL
# =============================================================================


class NetPacketHeader(BaseModel):
    """
    Заголовок сетевого пакета.

    Attributes:
        magic: "DTSC" или "DTP2"
        payload_size: Размер тела после заголовка (байт)
    """

    magic: Literal["DTSC", "DTP2"]
    payload_size: int = Field(..., ge=0)

    model_config = {"frozen": True}

    @property
    def version(self) -> DTMIVersion:
        return DTMIVersion.V2 if self.magic == "DTP2" else DTMIVersion.V1

    @property
    def packet_size(self) -> int:
        return NET_HEADER_SIZE + self.payload_size


# =============================================================================
# PREPARE / SEND
# =============================================================================


def resolve_scales(value: Value) -> None:
    """Фиксация точного fixed-point делителя у всех DOUBLE поддерева."""
    if value.type is ValueType.DOUBLE:
        resolved = resolve_scale(value.as_double(), value.scale)
        if resolved is not None:
            value.set_scale(resolved)
        return
    for cursor in Iter(value):
        resolve_scales(cursor.value)


def packet_track(value: Value) -> int | None:
    """trackid пакета или None, если пакет не привязан к треку (DTSC)."""
    if value.is_member("trackid"):
        return value.get("trackid").as_int()
    if value.is_member("datatype"):
        return DATATYPE_TRACKS.get(value.get("datatype").as_string(), 0)
    return None


def net_prepare(value: Value) -> None:
    """
    Построение сетевого пакета и сохранение его в кэше узла.

    Raises:
        DTMIEncodeError: Заголовок пакета не проходит контракт packet_envelope
    """
    if not value.is_object():
        logger.error("Only objects may be netpacked, got %s", value.type.value)
        value._store_packed(b"")
        return

    resolve_scales(value)
    trackid = packet_track(value)
    if trackid is None:
        magic, body = MAGIC_DTSC, to_dtmi(value)
    else:
        exclude = frozenset({"trackid", "time"})
        if trackid != 0:
            exclude |= {"datatype"}
        magic, body = MAGIC_DTP2, to_dtmi2(value, trackid=trackid, exclude=exclude)

    packet = magic + _U32.pack(len(body)) + body
    logger.debug("Prepared %s packet of %d bytes", magic.decode(), len(packet))
    value._store_packed(packet)


def send_to(value: Value, sink: Callable[[bytes], Any]) -> None:
    """Передача пакета (из кэша) в sink; пустой пакет не отправляется."""
    packet = value.to_net_packed()
    if not packet:
        logger.warning("Nothing to send: value of type %s has no net packet", value.type.value)
        return
    sink(packet)


# =============================================================================
# PARSING
# =============================================================================


def parse_net_header(data: Any, pos: int = 0) -> NetPacketHeader:
    """
    Разбор 8-байтового заголовка сетевого пакета.

    Raises:
        DTMIDecodeError: Обрыв или неизвестный magic
    """
    view = memoryview(data).cast("B")
    if pos < 0 or len(view) - pos < NET_HEADER_SIZE:
        raise DTMIDecodeError("truncated packet header", pos)
    magic = view[pos : pos + 4].tobytes()
    if magic not in (MAGIC_DTSC, MAGIC_DTP2):
        raise DTMIDecodeError(f"unknown packet magic {magic!r}", pos)
    (size,) = _U32.unpack(view[pos + 4 : pos + NET_HEADER_SIZE])
    return NetPacketHeader(magic=magic.decode("ascii"), payload_size=size)


def parse_net_packet(
    data: Any, pos: int = 0, *, limits: CodecLimits | None = None
) -> tuple[Value, int]:
    """
    Разбор сетевого пакета, начинающегося с pos.

    Для DTP2 trackid / time восстанавливаются членами объекта.

    Returns:
        (значение, позиция следующего пакета)

    Raises:
        DTMIDecodeError: Обрыв, порча тела или несовпадение заявленного размера
    """
    header = parse_net_header(data, pos)
    start = pos + NET_HEADER_SIZE
    end = start + header.payload_size
    view = memoryview(data).cast("B")
    if end > len(view):
        raise DTMIDecodeError(f"truncated packet: {header.payload_size} payload bytes declared", start)
    if header.version is DTMIVersion.V2 and header.payload_size < DTMI2_HEADER_SIZE:
        raise DTMIDecodeError("DTP2 payload shorter than its header", start)

    value, stop = codec_for(header.version, limits).decode(view[:end], start)
    if stop != end:
        raise DTMIDecodeError(f"packet body ends at {stop}, size declares {end}", stop)
    return value, end
