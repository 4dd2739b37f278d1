"""
Тесты для Text Codec (JSON текст <-> Value)

Проверяет:
1. Разбор стандартной грамматики JSON и escape-последовательностей
2. Числа: INTEGER / DOUBLE, scale для десятичных дробей
3. Политику ошибок: любой сбой разбора даёт Null
4. CodecLimits (глубина, размер)
5. Компактную и pretty сериализацию
6. Round-trip text → Value → text
"""

import io
import logging
import math

import pytest

from src.codec.text import from_file, from_stream, from_string, string_escape, to_pretty_string, to_string
from src.core.contracts import CodecLimits
from src.core.domain import Value, ValueType


def quoted(*parts) -> str:
    """JSON-строка из \\uXXXX escape-последовательностей (int) и литералов (str)."""
    body = "".join("\\u%04x" % part if isinstance(part, int) else part for part in parts)
    return '"' + body + '"'


# =============================================================================
# ТЕСТЫ РАЗБОРА
# =============================================================================


class TestParse:
    """Тесты разбора корректного JSON"""

    def test_document(self) -> None:
        v = from_string('{"b":1,"a":[true,false,null],"c":"x"}')
        assert v.to_python() == {"a": [True, False, None], "b": 1, "c": "x"}

    def test_whitespace_tolerated(self) -> None:
        assert from_string(' \t\n[1, 2 ,\r\n3 ]\n').to_python() == [1, 2, 3]

    def test_empty_composites(self) -> None:
        assert from_string("{}").is_object()
        assert from_string("[ ]").is_array()

    def test_bytes_input(self) -> None:
        assert from_string(b'{"a":"\xc3\xa9"}').get("a").as_string() == "é"

    def test_duplicate_keys_last_wins(self) -> None:
        v = from_string('{"k":1,"k":2}')
        assert v.size() == 1
        assert v.get("k").as_int() == 2


class TestParseStrings:
    """Тесты escape-последовательностей"""

    def test_named_escapes(self) -> None:
        v = from_string(r'"\"\\\/\b\f\n\r\t"')
        assert v.as_string() == '"\\/\b\f\n\r\t'

    def test_unicode_escape(self) -> None:
        assert from_string(quoted(0xE9)).as_string() == "\N{LATIN SMALL LETTER E WITH ACUTE}"

    def test_surrogate_pair(self) -> None:
        assert from_string(quoted(0xD83D, 0xDE00)).as_string() == "\U0001F600"

    def test_lone_surrogates_replaced(self) -> None:
        assert from_string(quoted(0xD83D, "x")).as_string() == "\N{REPLACEMENT CHARACTER}x"
        assert from_string(quoted(0xDE00)).as_string() == "\N{REPLACEMENT CHARACTER}"

    def test_escaped_raw_bytes_kept(self) -> None:
        assert from_string(quoted(0xDCFF)).as_bytes() == b"\xff"

    def test_raw_control_character_rejected(self) -> None:
        assert from_string('"a\nb"').is_null()

    def test_invalid_escape_rejected(self) -> None:
        assert from_string(r'"\x41"').is_null()
        assert from_string(r'"\u12"').is_null()


class TestParseNumbers:
    """Тесты разбора чисел"""

    def test_integer(self) -> None:
        v = from_string("-42")
        assert v.type is ValueType.INTEGER
        assert v.as_int() == -42

    def test_decimal_fraction_keeps_scale(self) -> None:
        v = from_string("1.50")
        assert v.type is ValueType.DOUBLE
        assert v.scale == 100.0
        assert to_string(v) == "1.50"

    def test_exponent_is_double(self) -> None:
        v = from_string("1e3")
        assert v.type is ValueType.DOUBLE
        assert v.as_double() == 1000.0
        assert v.scale == 1.0

    def test_integer_overflow_becomes_double(self) -> None:
        v = from_string("9223372036854775808")
        assert v.type is ValueType.DOUBLE
        assert v.as_double() == 9223372036854775808.0

    def test_int64_bounds(self) -> None:
        assert from_string("-9223372036854775808").is_int()
        assert from_string("9223372036854775807").is_int()

    @pytest.mark.parametrize("text", ["01", "1.", ".5", "-", "+1", "1e"])
    def test_malformed_numbers(self, text: str) -> None:
        assert from_string(text).is_null()

    @pytest.mark.parametrize("digit", [chr(0x663), chr(0xFF11), chr(0x0967)])
    def test_non_ascii_digits_rejected(self, digit: str) -> None:
        assert from_string("1" + digit).is_null()
        assert from_string("[1." + digit + "]").is_null()
        assert from_string("1e" + digit).is_null()
        assert from_string(digit).is_null()

    def test_huge_integer_literal(self) -> None:
        v = from_string("1" * 5000)
        assert v.type is ValueType.DOUBLE
        assert v.as_double() == math.inf


# =============================================================================
# ТЕСТЫ ОШИБОК РАЗБОРА
# =============================================================================


class TestParseFailures:
    """Любая ошибка разбора даёт Null"""

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "[1] x",
            "[1,]",
            '{"a":1,}',
            '{"a" 1}',
            "{1:2}",
            '"unterminated',
            "[1, 2",
            "tru",
            "nul",
        ],
    )
    def test_malformed_input(self, text: str) -> None:
        assert from_string(text).is_null()

    def test_syntax_error_logged_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.DEBUG, logger="src.codec.text")
        from_string("[1,")
        assert any("JSON parse failed" in record.message for record in caplog.records)


class TestLimits:
    """Тесты CodecLimits в текстовом пути"""

    def test_depth_within_limit(self) -> None:
        text = "[" * 10 + "]" * 10
        assert from_string(text, limits=CodecLimits(max_depth=10)).is_array()

    def test_depth_limit_exceeded(self, caplog: pytest.LogCaptureFixture) -> None:
        text = "[" * 10 + "]" * 10
        with caplog.at_level(logging.WARNING, logger="src.codec.text"):
            assert from_string(text, limits=CodecLimits(max_depth=5)).is_null()
        assert any("nesting" in record.message for record in caplog.records)

    def test_size_limit_exceeded(self) -> None:
        assert from_string("[1,2,3]", limits=CodecLimits(max_bytes=4)).is_null()

    def test_default_depth_guard(self) -> None:
        text = "[" * 10000 + "]" * 10000
        assert from_string(text).is_null()


# =============================================================================
# ТЕСТЫ ПОТОКОВ И ФАЙЛОВ
# =============================================================================


class TestStreams:
    """Тесты from_stream / from_file"""

    def test_text_stream(self) -> None:
        assert from_stream(io.StringIO('{"a":1}')).to_python() == {"a": 1}

    def test_binary_stream(self) -> None:
        assert from_stream(io.BytesIO(b"[true]")).to_python() == [True]

    def test_value_from_stream(self) -> None:
        assert Value.from_stream(io.StringIO("[1, 2]")) == [1, 2]

    def test_file(self, tmp_path) -> None:
        path = tmp_path / "meta.json"
        path.write_text('{"tracks": {"1": {"codec": "H264"}}}', encoding="utf-8")
        assert from_file(path)["tracks"]["1"]["codec"].as_string() == "H264"

    def test_missing_file(self, tmp_path, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="src.codec.text"):
            assert from_file(tmp_path / "missing.json").is_null()
        assert any("Cannot read" in record.message for record in caplog.records)


# =============================================================================
# ТЕСТЫ СЕРИАЛИЗАЦИИ
# =============================================================================


class TestSerialize:
    """Тесты компактной сериализации"""

    def test_sorted_keys_no_whitespace(self) -> None:
        v = Value()
        v["b"] = [1, "x"]
        v["a"] = None
        assert to_string(v) == '{"a":null,"b":[1,"x"]}'

    def test_scalars(self) -> None:
        assert to_string(Value(True)) == "true"
        assert to_string(Value()) == "null"
        assert to_string(Value(2.0)) == "2.0"
        assert to_string(Value(-7)) == "-7"

    def test_non_finite_double(self) -> None:
        assert to_string(Value({"x": float("nan")})) == '{"x":null}'

    def test_infinite_double(self) -> None:
        assert to_string(Value([math.inf, -math.inf])) == "[1e999,-1e999]"

    def test_string_escape(self) -> None:
        assert string_escape('a"b') == '"a\\"b"'
        assert string_escape("a/b") == '"a/b"'
        assert string_escape("\t\x01") == '"\\t\\u0001"'
        assert string_escape("é") == '"é"'

    def test_binary_payload_round_trip(self) -> None:
        raw = b"\x00\xff\x10abc"
        text = to_string(Value(raw))
        assert text == '"\\u0000\\udcff\\u0010abc"'
        assert from_string(text).as_bytes() == raw


class TestPrettyString:
    """Тесты многострочной сериализации"""

    def test_layout(self) -> None:
        v = Value({"a": 1, "b": [1, 2]})
        assert to_pretty_string(v) == '{\n  "a": 1,\n  "b": [\n    1,\n    2\n  ]\n}'

    def test_indentation_and_step(self) -> None:
        v = Value([1])
        assert v.to_pretty_string(indentation=2, step=4) == "[\n      1\n  ]"

    def test_empty_composites(self) -> None:
        assert to_pretty_string(Value([])) == "[]"
        assert to_pretty_string(Value({})) == "{}"

    def test_binary_summary(self) -> None:
        v = Value({"data": b"\x00\x01\x02abc"})
        assert to_pretty_string(v) == '{\n  "data": "6 bytes of binary data"\n}'

    def test_plain_text_not_summarized(self) -> None:
        assert to_pretty_string(Value("hello")) == '"hello"'


# =============================================================================
# ТЕСТЫ ROUND-TRIP
# =============================================================================


class TestRoundTrip:
    """text → Value → text → Value"""

    @pytest.mark.parametrize(
        "text",
        [
            '{"a":[1,2.5,"x",null,true],"b":{"c":{}}}',
            "[0.1, 1.50, -3e-7, 12345678901234]",
            '"\\u00e9\\n"',
            "[[[[]]]]",
        ],
    )
    def test_text_round_trip(self, text: str) -> None:
        parsed = from_string(text)
        assert not parsed.is_null()
        assert from_string(to_string(parsed)) == parsed

    @pytest.mark.parametrize(
        "raw",
        [
            {"int": 9223372036854775807, "neg": -1, "f": 0.1, "big": 1e20},
            [None, False, "", [], {}],
            {"nested": {"deep": [1, [2, [3, {"k": "v"}]]]}},
            b"\x00\x01\xfe\xff",
        ],
    )
    def test_value_round_trip(self, raw) -> None:
        v = Value(raw)
        assert from_string(to_string(v)) == v

    @pytest.mark.parametrize("text", ["1e400", "-1e400", "1" + "0" * 400])
    def test_overflowing_number_round_trip(self, text: str) -> None:
        parsed = from_string(text)
        assert math.isinf(parsed.as_double())
        assert from_string(to_string(parsed)) == parsed
        assert from_string(to_string(Value([parsed])))[0] == parsed
