"""
Codecs для дерева значений

- text: JSON текст <-> Value (ошибки разбора дают Null)
- dtmi: бинарные DTMI v1 / DTMI2 (ошибки разбора — DTMIDecodeError)
- netpacket: сетевые пакеты DTSC / DTP2 с кэшированием
- int_lists: escaped-int списки внутри STRING
"""

from src.codec.dtmi import (
    PACKET_HEADER_MEMBERS,
    DecodeLimitExceeded,
    DTMI2Codec,
    DTMICodec,
    DTMIDecodeError,
    DTMIEncodeError,
    DTMIVersion,
    TreeCodec,
    codec_for,
    decode_dtmi,
    decode_dtmi2,
    from_dtmi,
    from_dtmi2,
    packed_size,
    read_dtmi,
    read_dtmi2,
    skip_dtmi,
    to_dtmi,
    to_dtmi2,
)
from src.codec.int_lists import pack_int_list, unpack_int_list
from src.codec.netpacket import (
    DATATYPE_TRACKS,
    NetPacketHeader,
    net_prepare,
    parse_net_header,
    parse_net_packet,
    send_to,
)
from src.codec.text import (
    from_file,
    from_stream,
    from_string,
    string_escape,
    to_pretty_string,
    to_string,
)

__all__ = [
    # Text
    "from_string",
    "from_stream",
    "from_file",
    "to_string",
    "to_pretty_string",
    "string_escape",
    # DTMI — Types
    "DTMIVersion",
    "TreeCodec",
    "DTMICodec",
    "DTMI2Codec",
    "PACKET_HEADER_MEMBERS",
    # DTMI — Errors
    "DTMIDecodeError",
    "DTMIEncodeError",
    "DecodeLimitExceeded",
    # DTMI — Functions
    "codec_for",
    "decode_dtmi",
    "decode_dtmi2",
    "from_dtmi",
    "from_dtmi2",
    "read_dtmi",
    "read_dtmi2",
    "skip_dtmi",
    "to_dtmi",
    "to_dtmi2",
    "packed_size",
    # Net packets
    "DATATYPE_TRACKS",
    "NetPacketHeader",
    "net_prepare",
    "parse_net_header",
    "parse_net_packet",
    "send_to",
    # Int lists
    "pack_int_list",
    "unpack_int_list",
]
