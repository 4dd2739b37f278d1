"""
Тесты для сетевых пакетов DTSC / DTP2

Проверяет:
1. Выбор формы пакета (DTSC / DTP2) и trackid по datatype
2. Фиксацию scale у DOUBLE перед упаковкой
3. Кэширование и сброс кэша при мутации
4. send_to
5. Разбор заголовка и пакета (NetPacketHeader)
"""

import logging
import struct

import pytest
from pydantic import ValidationError

from src.codec.dtmi import DTMIDecodeError, DTMIEncodeError, to_dtmi, to_dtmi2
from src.codec.netpacket import (
    DATATYPE_TRACKS,
    NET_HEADER_SIZE,
    NetPacketHeader,
    net_prepare,
    parse_net_header,
    parse_net_packet,
)
from src.core.domain import Value


def u32(value: int) -> bytes:
    return struct.pack(">I", value)


# =============================================================================
# ТЕСТЫ ФОРМЫ ПАКЕТА
# =============================================================================


class TestPacketForm:
    """Тесты выбора DTSC / DTP2"""

    def test_plain_object_is_dtsc(self) -> None:
        v = Value({"a": 1, "b": [1, 2]})
        packet = v.to_net_packed()
        body = to_dtmi(v)
        assert packet == b"DTSC" + u32(len(body)) + body

    def test_trackid_member_gives_dtp2(self) -> None:
        v = Value({"trackid": 5, "time": 42, "x": 1})
        packet = v.to_net_packed()
        assert packet[:4] == b"DTP2"
        assert packet[4:8] == u32(len(packet) - NET_HEADER_SIZE)
        assert packet[8:20] == struct.pack(">IQ", 5, 42)
        assert packet[8:] == to_dtmi2(v)

    @pytest.mark.parametrize("datatype, trackid", sorted(DATATYPE_TRACKS.items()))
    def test_datatype_track_inference(self, datatype: str, trackid: int) -> None:
        v = Value({"datatype": datatype, "time": 7, "data": "abc"})
        decoded, _ = parse_net_packet(v.to_net_packed())
        assert decoded == {"data": "abc", "time": 7, "trackid": trackid}

    def test_unknown_datatype_keeps_member(self) -> None:
        v = Value({"datatype": "subtitle", "time": 7})
        decoded, _ = parse_net_packet(v.to_net_packed())
        assert decoded == {"datatype": "subtitle", "time": 7, "trackid": 0}

    def test_explicit_trackid_wins_over_datatype(self) -> None:
        v = Value({"trackid": 9, "datatype": "audio", "time": 1})
        decoded, _ = parse_net_packet(v.to_net_packed())
        assert decoded.get("trackid").as_int() == 9
        assert not decoded.is_member("datatype")

    def test_non_object_gives_empty_packet(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="src.codec.netpacket"):
            assert Value([1, 2]).to_net_packed() == b""
        assert any("Only objects" in record.message for record in caplog.records)

    def test_invalid_envelope(self) -> None:
        with pytest.raises(DTMIEncodeError):
            Value({"trackid": 1, "time": -1}).to_net_packed()


class TestScaleResolution:
    """Тесты фиксации scale перед упаковкой"""

    def test_scale_resolved_in_place(self) -> None:
        v = Value({"x": 0.5, "nested": [{"y": 2.25}]})
        net_prepare(v)
        assert v.get("x").scale == 10.0
        assert v.get("nested").get(0).get("y").scale == 100.0

    def test_unrepresentable_scale_untouched(self) -> None:
        v = Value({"x": 1 / 3})
        net_prepare(v)
        assert v.get("x").scale == 1.0

    def test_packet_round_trip_keeps_doubles(self) -> None:
        v = Value({"x": 0.5, "y": 1 / 3})
        decoded, _ = parse_net_packet(v.to_net_packed())
        assert decoded == v


# =============================================================================
# ТЕСТЫ КЭША
# =============================================================================


class TestCache:
    """Тесты кэширования пакета в узле"""

    def test_cache_survives_scale_resolution(self) -> None:
        v = Value({"x": 0.5})
        first = v.to_net_packed()
        assert v.to_net_packed() is first

    def test_mutation_rebuilds_packet(self) -> None:
        v = Value({"trackid": 1, "time": 10})
        first = v.to_net_packed()
        v["time"] = 20
        second = v.to_net_packed()
        assert second != first
        assert parse_net_packet(second)[0].get("time").as_int() == 20


# =============================================================================
# ТЕСТЫ ОТПРАВКИ
# =============================================================================


class TestSendTo:
    """Тесты send_to"""

    def test_sends_cached_packet(self) -> None:
        sent: list[bytes] = []
        v = Value({"a": 1})
        v.send_to(sent.append)
        assert sent == [v.to_net_packed()]

    def test_nothing_sent_for_non_object(self, caplog: pytest.LogCaptureFixture) -> None:
        sent: list[bytes] = []
        with caplog.at_level(logging.WARNING, logger="src.codec.netpacket"):
            Value("scalar").send_to(sent.append)
        assert sent == []
        assert any("Nothing to send" in record.message for record in caplog.records)


# =============================================================================
# ТЕСТЫ РАЗБОРА
# =============================================================================


class TestParse:
    """Тесты parse_net_header / parse_net_packet"""

    def test_header(self) -> None:
        header = parse_net_header(b"DTSC" + u32(17))
        assert header.magic == "DTSC"
        assert header.payload_size == 17
        assert header.packet_size == 25

    def test_header_is_frozen(self) -> None:
        header = NetPacketHeader(magic="DTP2", payload_size=0)
        with pytest.raises(ValidationError):
            header.payload_size = 1

    def test_unknown_magic(self) -> None:
        with pytest.raises(DTMIDecodeError, match="magic"):
            parse_net_header(b"XXXX" + u32(0))

    def test_truncated_header(self) -> None:
        with pytest.raises(DTMIDecodeError):
            parse_net_header(b"DTSC")

    def test_packet_sequence(self) -> None:
        first = Value({"a": 1})
        second = Value({"trackid": 3, "time": 99, "b": "x"})
        data = first.to_net_packed() + second.to_net_packed()
        decoded, pos = parse_net_packet(data)
        assert decoded == first
        decoded, end = parse_net_packet(data, pos)
        assert decoded == second
        assert end == len(data)

    def test_truncated_payload(self) -> None:
        packet = Value({"a": 1}).to_net_packed()
        with pytest.raises(DTMIDecodeError, match="truncated"):
            parse_net_packet(packet[:-1])

    def test_declared_size_too_small(self) -> None:
        packet = Value({"a": 1}).to_net_packed()
        forged = packet[:4] + u32(len(packet) - NET_HEADER_SIZE - 1) + packet[8:]
        with pytest.raises(DTMIDecodeError):
            parse_net_packet(forged)

    def test_declared_size_too_large(self) -> None:
        packet = Value({"a": 1}).to_net_packed() + b"\x00"
        forged = packet[:4] + u32(len(packet) - NET_HEADER_SIZE) + packet[8:]
        with pytest.raises(DTMIDecodeError, match="size"):
            parse_net_packet(forged)

    def test_short_dtp2_payload(self) -> None:
        with pytest.raises(DTMIDecodeError, match="DTP2"):
            parse_net_packet(b"DTP2" + u32(4) + b"\x00" * 4)
