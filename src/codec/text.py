"""
Text Codec — JSON текст <-> Value

Разбор (recursive descent) и сериализация стандартной JSON-грамматики.

ПОЛИТИКА ОШИБОК:
Любая ошибка разбора (синтаксис, превышение CodecLimits, ошибка чтения файла)
даёт Null-значение, а не исключение. Вызывающий код трактует Null как
"отсутствует или не разобрано".

ЧИСЛА:
- Литерал без '.', 'e', 'E' — INTEGER (вне int64 — DOUBLE)
- Десятичная дробь с N знаками без экспоненты — DOUBLE со scale = 10**N,
  поэтому "1.50" сериализуется обратно как "1.50"

СТРОКИ:
Сырые байты внутри STRING хранятся как surrogate escapes U+DC80..U+DCFF и
выводятся как \\udcXX; разбор сохраняет такие одиночные суррогаты, остальные
одиночные суррогаты заменяются на U+FFFD.
"""

import logging
import re
from pathlib import Path
from typing import Any, Final, NoReturn

from src.core.contracts.limits import CodecLimits, resolve_limits
from src.core.domain.iteration import ConstIter
from src.core.domain.value import Value, ValueType, bytes_to_text, text_to_bytes
from src.core.math.numerical_safeguards import MAX_SCALE_DIGITS, is_int64, render_double

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

_WHITESPACE: Final[str] = " \t\n\r"

# Escape-последовательности разбора
_ESCAPES_IN: Final[dict[str, str]] = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}

# Обратная таблица для string_escape
_ESCAPES_OUT: Final[dict[str, str]] = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}

_NEEDS_ESCAPE = re.compile('["\\\\\x00-\x1f\udc80-\udcff]')
_PLAIN_RUN = re.compile('[^"\\\\\x00-\x1f]+')
_NUMBER = re.compile(r"-?(?:0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?", re.ASCII)
_HEX4 = re.compile(r"[0-9a-fA-F]{4}")

# Сколько символов начала строки проверяется на "бинарность" в pretty-выводе
_BINARY_PROBE_CHARS: Final[int] = 5


# =============================================================================
# EXCEPTIONS (внутренние, наружу не выходят)
# =============================================================================


class _TextSyntaxError(ValueError):
    pass


class _TextLimitError(ValueError):
    pass


# =============================================================================
# PARSER
# =============================================================================


class _TextParser:
    """Recursive descent parser по одной строке JSON-текста."""

    def __init__(self, text: str, limits: CodecLimits):
        self.text = text
        self.pos = 0
        self.max_depth = limits.max_depth

    def fail(self, reason: str) -> NoReturn:
        raise _TextSyntaxError(f"{reason} at offset {self.pos}")

    def skip_whitespace(self) -> None:
        text, pos = self.text, self.pos
        while pos < len(text) and text[pos] in _WHITESPACE:
            pos += 1
        self.pos = pos

    def parse_document(self) -> Value:
        self.skip_whitespace()
        result = self.parse_value(0)
        self.skip_whitespace()
        if self.pos != len(self.text):
            self.fail("trailing data")
        return result

    def parse_value(self, depth: int) -> Value:
        if self.pos >= len(self.text):
            self.fail("unexpected end of input")
        ch = self.text[self.pos]
        if ch == "{":
            return self.parse_object(depth + 1)
        if ch == "[":
            return self.parse_array(depth + 1)
        if ch == '"':
            return Value(self.parse_string())
        if ch == "-" or "0" <= ch <= "9":
            return self.parse_number()
        for literal, value in (("true", True), ("false", False), ("null", None)):
            if self.text.startswith(literal, self.pos):
                self.pos += len(literal)
                return Value(value)
        self.fail(f"unexpected character {ch!r}")

    def check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise _TextLimitError(f"nesting deeper than {self.max_depth}")

    def parse_object(self, depth: int) -> Value:
        self.check_depth(depth)
        self.pos += 1
        members: dict[str, Value] = {}
        self.skip_whitespace()
        if self.text.startswith("}", self.pos):
            self.pos += 1
            return Value._wrap_object(members)
        while True:
            self.skip_whitespace()
            if not self.text.startswith('"', self.pos):
                self.fail("expected member name")
            key = self.parse_string()
            self.skip_whitespace()
            if not self.text.startswith(":", self.pos):
                self.fail("expected ':'")
            self.pos += 1
            self.skip_whitespace()
            members[key] = self.parse_value(depth)
            self.skip_whitespace()
            if self.text.startswith(",", self.pos):
                self.pos += 1
                continue
            if self.text.startswith("}", self.pos):
                self.pos += 1
                return Value._wrap_object(members)
            self.fail("expected ',' or '}'")

    def parse_array(self, depth: int) -> Value:
        self.check_depth(depth)
        self.pos += 1
        items: list[Value] = []
        self.skip_whitespace()
        if self.text.startswith("]", self.pos):
            self.pos += 1
            return Value._wrap_array(items)
        while True:
            self.skip_whitespace()
            items.append(self.parse_value(depth))
            self.skip_whitespace()
            if self.text.startswith(",", self.pos):
                self.pos += 1
                continue
            if self.text.startswith("]", self.pos):
                self.pos += 1
                return Value._wrap_array(items)
            self.fail("expected ',' or ']'")

    def parse_hex4(self) -> int:
        # self.pos указывает на 'u'
        digits = self.text[self.pos + 1 : self.pos + 5]
        if not _HEX4.fullmatch(digits):
            self.fail("invalid \\u escape")
        self.pos += 5
        return int(digits, 16)

    def parse_unicode_escape(self) -> str:
        code = self.parse_hex4()
        if 0xD800 <= code <= 0xDBFF:
            resume = self.pos
            if self.text.startswith("\\u", self.pos):
                self.pos += 1
                low = self.parse_hex4()
                if 0xDC00 <= low <= 0xDFFF:
                    return chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00))
            self.pos = resume
            return "\ufffd"
        if 0xDC80 <= code <= 0xDCFF:
            # сырой байт, см. bytes_to_text
            return chr(code)
        if 0xDC00 <= code <= 0xDFFF:
            return "\ufffd"
        return chr(code)

    def parse_string(self) -> str:
        self.pos += 1
        chunks: list[str] = []
        text = self.text
        while True:
            if self.pos >= len(text):
                self.fail("unterminated string")
            ch = text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chunks)
            if ch == "\\":
                self.pos += 1
                if self.pos >= len(text):
                    self.fail("unterminated escape")
                escape = text[self.pos]
                if escape == "u":
                    chunks.append(self.parse_unicode_escape())
                elif escape in _ESCAPES_IN:
                    chunks.append(_ESCAPES_IN[escape])
                    self.pos += 1
                else:
                    self.fail(f"invalid escape \\{escape}")
                continue
            run = _PLAIN_RUN.match(text, self.pos)
            if run is None:
                self.fail("control character in string")
            chunks.append(run.group())
            self.pos = run.end()

    def parse_number(self) -> Value:
        match = _NUMBER.match(self.text, self.pos)
        if match is None:
            self.fail("invalid number")
        self.pos = match.end()
        literal = match.group()
        fraction, exponent = match.group(1), match.group(2)
        if fraction is None and exponent is None:
            # int64 укладывается в 20 знаков вместе с минусом
            if len(literal) <= 20 and is_int64(int(literal)):
                return Value(int(literal))
            return Value(float(literal))
        scale = 1.0
        if fraction is not None and exponent is None and len(fraction) - 1 <= MAX_SCALE_DIGITS:
            scale = 10.0 ** (len(fraction) - 1)
        return Value(float(literal), scale=scale)


# =============================================================================
# PARSE ENTRY POINTS
# =============================================================================


def from_string(data: str | bytes, *, limits: CodecLimits | None = None) -> Value:
    """
    Разбор JSON-текста.

    Args:
        data: Текст (str) или UTF-8 байты
        limits: Пределы глубины/размера (default: DEFAULT_LIMITS)

    Returns:
        Разобранное дерево; Null при любой ошибке разбора
    """
    limits = resolve_limits(limits)
    if isinstance(data, (bytes, bytearray, memoryview)):
        size = len(data)
        text = bytes_to_text(data)
    else:
        size = len(data)
        text = data
    if size > limits.max_bytes:
        logger.warning("JSON input of %d bytes exceeds limit of %d", size, limits.max_bytes)
        return Value()
    try:
        return _TextParser(text, limits).parse_document()
    except _TextSyntaxError as e:
        logger.debug("JSON parse failed: %s", e)
    except (_TextLimitError, RecursionError) as e:
        logger.warning("JSON parse aborted: %s", e)
    return Value()


def from_stream(stream: Any, *, limits: CodecLimits | None = None) -> Value:
    """
    Разбор JSON из file-like объекта (текстового или бинарного).

    Поток читается целиком; ошибки чтения дают Null.
    """
    try:
        data = stream.read()
    except OSError as e:
        logger.warning("Cannot read JSON stream: %s", e)
        return Value()
    return from_string(data, limits=limits)


def from_file(path: str | Path, *, limits: CodecLimits | None = None) -> Value:
    """
    Разбор JSON-файла.

    Любая ошибка ввода-вывода трактуется как "нет входа" и даёт Null.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        logger.warning("Cannot read JSON file %s: %s", path, e)
        return Value()
    return from_string(data, limits=limits)


# =============================================================================
# SERIALIZATION
# =============================================================================


def _escape_char(match: re.Match) -> str:
    ch = match.group()
    return _ESCAPES_OUT.get(ch) or f"\\u{ord(ch):04x}"


def string_escape(text: str) -> str:
    """
    JSON-экранирование строки (с кавычками).

    Examples:
        >>> string_escape('a"b')
        '"a\\\\"b"'
        >>> string_escape("\\x01")
        '"\\\\u0001"'
    """
    return '"' + _NEEDS_ESCAPE.sub(_escape_char, text) + '"'


def _scalar_to_string(value: Value) -> str:
    kind = value.type
    if kind is ValueType.STRING:
        return string_escape(value.as_string())
    if kind is ValueType.INTEGER:
        return str(value.as_int())
    if kind is ValueType.DOUBLE:
        return render_double(value.as_double(), value.scale)
    if kind is ValueType.BOOL:
        return "true" if value.as_bool() else "false"
    return "null"


def _write_compact(value: Value, out: list[str]) -> None:
    kind = value.type
    if kind is ValueType.ARRAY:
        out.append("[")
        for cursor in ConstIter(value):
            if cursor.num:
                out.append(",")
            _write_compact(cursor.value, out)
        out.append("]")
    elif kind is ValueType.OBJECT:
        out.append("{")
        for cursor in ConstIter(value):
            if cursor.num:
                out.append(",")
            out.append(string_escape(cursor.key))
            out.append(":")
            _write_compact(cursor.value, out)
        out.append("}")
    else:
        out.append(_scalar_to_string(value))


def to_string(value: Value) -> str:
    """Компактная сериализация: ключи OBJECT в порядке сортировки, без пробелов."""
    out: list[str] = []
    _write_compact(value, out)
    return "".join(out)


def _looks_binary(text: str) -> bool:
    for ch in text[:_BINARY_PROBE_CHARS]:
        code = ord(ch)
        if code < 0x20 or 0xDC80 <= code <= 0xDCFF:
            return True
    return False


def to_pretty_string(value: Value, indentation: int = 0, step: int = 2) -> str:
    """
    Многострочная сериализация для диагностики и логов.

    Args:
        value: Сериализуемое дерево
        indentation: Начальный отступ (пробелы)
        step: Прирост отступа на уровень вложенности

    Returns:
        Текст; STRING с бинарным содержимым заменяется на
        "<n> bytes of binary data"
    """
    kind = value.type
    inner = " " * (indentation + step)
    if kind is ValueType.STRING:
        text = value.as_string()
        if _looks_binary(text):
            return f'"{len(text_to_bytes(text))} bytes of binary data"'
        return string_escape(text)
    if kind is ValueType.ARRAY:
        if not value.size():
            return "[]"
        lines = [
            inner + to_pretty_string(cursor.value, indentation + step, step)
            for cursor in ConstIter(value)
        ]
        return "[\n" + ",\n".join(lines) + "\n" + " " * indentation + "]"
    if kind is ValueType.OBJECT:
        if not value.size():
            return "{}"
        lines = [
            inner + string_escape(cursor.key) + ": " + to_pretty_string(cursor.value, indentation + step, step)
            for cursor in ConstIter(value)
        ]
        return "{\n" + ",\n".join(lines) + "\n" + " " * indentation + "}"
    return _scalar_to_string(value)
