"""
Value — динамически типизированное дерево значений (JSON-like)

Tagged union: в каждый момент активен ровно один вариант ValueType.
Композитные узлы (ARRAY / OBJECT) единолично владеют дочерними узлами;
любая вставка копирует значение, поэтому дерево ацикличное по построению.

ПОЛИТИКИ:
1. Приведение типов (as_int / as_double / as_string / as_bool) никогда не
   бросает исключение: несовпадающий вариант даёт best-effort значение.
2. Структурная мутация узла другого типа перетипизирует узел, отбрасывая
   прежнее содержимое ("last writer wins").
3. Доступ v[key] / v[index] создаёт недостающий слот (auto-vivification);
   get() никогда не мутирует и для отсутствующих слотов отдаёт общий
   неизменяемый NULL_VALUE.
4. Кэш сетевой упаковки (to_net_packed) сбрасывается у узла и всех его
   владельцев при любой мутации поддерева.
"""

import re
import weakref
from enum import Enum
from typing import Any, Callable, Final, Iterable, Iterator

from src.core.math.numerical_safeguards import (
    SCALE_NONE,
    clamp_int64,
    float_to_int64,
    is_int64,
    is_valid_float,
    render_double,
    validate_scale,
)


# =============================================================================
# ENUMS
# =============================================================================


class ValueType(str, Enum):
    """Активный вариант Value."""

    EMPTY = "EMPTY"
    BOOL = "BOOL"
    INTEGER = "INTEGER"
    DOUBLE = "DOUBLE"
    STRING = "STRING"
    ARRAY = "ARRAY"
    OBJECT = "OBJECT"


_COMPOSITES: Final[frozenset[ValueType]] = frozenset({ValueType.ARRAY, ValueType.OBJECT})


# =============================================================================
# EXCEPTIONS
# =============================================================================


class FrozenValueError(TypeError):
    """Попытка мутации неизменяемого NULL_VALUE."""


# =============================================================================
# TEXT <-> BYTES
# =============================================================================

# Префиксы чисел для приведения STRING → число (поведение atoll/strtod)
_INT_PREFIX = re.compile(r"\s*[+-]?[0-9]+", re.ASCII)
_FLOAT_PREFIX = re.compile(r"\s*[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?", re.ASCII)


def bytes_to_text(data: bytes) -> str:
    """
    Байты → str без потерь.

    Невалидные UTF-8 байты сохраняются как surrogate escapes, поэтому
    бинарные payload (например, медиа-данные) проходят через STRING без искажений.
    """
    return bytes(data).decode("utf-8", "surrogateescape")


def text_to_bytes(text: str) -> bytes:
    """Обратное преобразование к bytes_to_text."""
    try:
        return text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        # одиночные суррогаты вне диапазона surrogateescape
        return text.encode("utf-8", "replace")


# =============================================================================
# VALUE
# =============================================================================


class Value:
    """
    Узел дерева значений.

    Конструируется из None, bool, int (int64), float, str, bytes, list/tuple,
    dict или другого Value (глубокая копия). Для float можно задать scale —
    fixed-point делитель для передачи через целочисленный бинарный канал.

    Examples:
        >>> v = Value()
        >>> v["x"][2] = 5
        >>> v.to_string()
        '{"x":[null,null,5]}'
    """

    __slots__ = ("_type", "_data", "_scale", "_owner", "_packed", "_frozen", "__weakref__")

    def __init__(self, value: Any = None, *, scale: float = SCALE_NONE):
        self._type = ValueType.EMPTY
        self._data: Any = None
        self._scale = SCALE_NONE
        self._owner: weakref.ref | None = None
        self._packed: bytes | None = None
        self._frozen = False
        if value is not None:
            self._load(value, scale)

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    def _load(self, value: Any, scale: float) -> None:
        if isinstance(value, Value):
            self._copy_from(value, None)
        elif isinstance(value, bool):
            self._type, self._data = ValueType.BOOL, value
        elif isinstance(value, int):
            if not is_int64(value):
                raise OverflowError(f"integer {value} outside int64 range")
            self._type, self._data = ValueType.INTEGER, int(value)
        elif isinstance(value, float):
            self._type, self._data = ValueType.DOUBLE, value
            self._scale = validate_scale(scale)
        elif isinstance(value, str):
            self._type, self._data = ValueType.STRING, value
        elif isinstance(value, (bytes, bytearray, memoryview)):
            self._type, self._data = ValueType.STRING, bytes_to_text(value)
        elif isinstance(value, (list, tuple)):
            self._type = ValueType.ARRAY
            self._data = [self._adopt(Value(item)) for item in value]
        elif isinstance(value, dict):
            self._type = ValueType.OBJECT
            self._data = {str(key): self._adopt(Value(item)) for key, item in value.items()}
        else:
            raise TypeError(f"cannot build Value from {type(value).__name__}")

    def _copy_from(self, other: "Value", skip: frozenset[str] | None) -> None:
        kind = other._type
        if kind is ValueType.ARRAY:
            self._data = [self._adopt(child._clone(skip)) for child in other._data]
        elif kind is ValueType.OBJECT:
            self._data = {
                key: self._adopt(child._clone(skip))
                for key, child in other._data.items()
                if skip is None or key not in skip
            }
        else:
            self._data = other._data
        self._scale = other._scale
        self._type = kind

    def _clone(self, skip: frozenset[str] | None = None) -> "Value":
        result = Value()
        result._copy_from(self, skip)
        return result

    @classmethod
    def _wrap_array(cls, children: list["Value"]) -> "Value":
        """ARRAY из свежих узлов без копирования (для декодеров)."""
        result = cls()
        result._type, result._data = ValueType.ARRAY, children
        for child in children:
            result._adopt(child)
        return result

    @classmethod
    def _wrap_object(cls, members: dict[str, "Value"]) -> "Value":
        """OBJECT из свежих узлов без копирования (для декодеров)."""
        result = cls()
        result._type, result._data = ValueType.OBJECT, members
        for child in members.values():
            result._adopt(child)
        return result

    def _adopt(self, child: "Value") -> "Value":
        child._owner = weakref.ref(self)
        return child

    def _take(self, other: "Value") -> None:
        """Перенос содержимого свежего узла other в self."""
        self._type, self._data, self._scale = other._type, other._data, other._scale
        if self._type is ValueType.ARRAY:
            for child in self._data:
                self._adopt(child)
        elif self._type is ValueType.OBJECT:
            for child in self._data.values():
                self._adopt(child)

    def _clear(self) -> None:
        if self._type is ValueType.ARRAY:
            for child in self._data:
                child._owner = None
        elif self._type is ValueType.OBJECT:
            for child in self._data.values():
                child._owner = None
        self._type, self._data, self._scale = ValueType.EMPTY, None, SCALE_NONE

    def _become(self, kind: ValueType) -> None:
        if self._type is not kind:
            self._clear()
            self._type = kind
            self._data = [] if kind is ValueType.ARRAY else {}

    def _touch(self) -> None:
        """Сброс кэша упаковки у узла и всех владельцев перед мутацией."""
        if self._frozen:
            raise FrozenValueError("NULL_VALUE is immutable")
        node: Value | None = self
        while node is not None:
            node._packed = None
            owner = node._owner
            node = owner() if owner is not None else None

    # -------------------------------------------------------------------------
    # Type information
    # -------------------------------------------------------------------------

    @property
    def type(self) -> ValueType:
        return self._type

    @property
    def scale(self) -> float:
        """Fixed-point делитель DOUBLE (1.0 для остальных вариантов)."""
        return self._scale

    def set_scale(self, scale: float) -> None:
        """Замена делителя DOUBLE без изменения числового значения."""
        if self._type is not ValueType.DOUBLE:
            return
        scale = validate_scale(scale)
        if scale != self._scale:
            self._touch()
            self._scale = scale

    def is_null(self) -> bool:
        return self._type is ValueType.EMPTY

    def is_bool(self) -> bool:
        return self._type is ValueType.BOOL

    def is_int(self) -> bool:
        return self._type is ValueType.INTEGER

    def is_double(self) -> bool:
        return self._type is ValueType.DOUBLE

    def is_string(self) -> bool:
        return self._type is ValueType.STRING

    def is_array(self) -> bool:
        return self._type is ValueType.ARRAY

    def is_object(self) -> bool:
        return self._type is ValueType.OBJECT

    def is_member(self, name: str) -> bool:
        return self._type is ValueType.OBJECT and name in self._data

    def size(self) -> int:
        """
        Размер узла.

        Returns:
            ARRAY/OBJECT — число элементов, STRING — длина строки,
            прочие скаляры — 1, Null — 0
        """
        if self._type in _COMPOSITES or self._type is ValueType.STRING:
            return len(self._data)
        if self._type is ValueType.EMPTY:
            return 0
        return 1

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, name: object) -> bool:
        if isinstance(name, str):
            return self.is_member(name)
        if isinstance(name, int) and self._type is ValueType.ARRAY:
            return 0 <= name < len(self._data)
        return False

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def _equals(self, other: "Value", skip: frozenset[str] | None) -> bool:
        if self._type is not other._type:
            return False
        if self._type is ValueType.OBJECT:
            if skip is None:
                mine, theirs = self._data.keys(), other._data.keys()
            else:
                mine = {key for key in self._data if key not in skip}
                theirs = {key for key in other._data if key not in skip}
            if mine != theirs:
                return False
            return all(self._data[key]._equals(other._data[key], skip) for key in mine)
        if self._type is ValueType.ARRAY:
            if len(self._data) != len(other._data):
                return False
            return all(a._equals(b, skip) for a, b in zip(self._data, other._data))
        return self._data == other._data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            try:
                other = Value(other)
            except (TypeError, OverflowError):
                return NotImplemented
        return self._equals(other, None)

    def __ne__(self, other: object) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None  # type: ignore[assignment]

    def compare_except(self, rhs: "Value", skip: Iterable[str]) -> bool:
        """
        Глубокое сравнение, игнорирующее члены OBJECT с именами из skip.

        Имена пропускаются на любой глубине (например, timestamp-поля).
        """
        return self._equals(rhs, frozenset(skip))

    def compare_only(self, rhs: "Value", check: Iterable[str]) -> bool:
        """
        Сравнение OBJECT только по членам с именами из check.

        Ограничение действует на любой глубине: в каждом OBJECT присутствие
        членов из check должно совпадать, и они сравниваются рекурсивно тем же
        правилом; ARRAY сравниваются поэлементно. Скаляры сравниваются ==.
        """
        return self._equals_only(rhs, frozenset(check))

    def _equals_only(self, other: "Value", check: frozenset[str]) -> bool:
        if self._type is not other._type:
            return False
        if self._type is ValueType.OBJECT:
            for name in check:
                mine, theirs = self._data.get(name), other._data.get(name)
                if (mine is None) != (theirs is None):
                    return False
                if mine is not None and not mine._equals_only(theirs, check):
                    return False
            return True
        if self._type is ValueType.ARRAY:
            if len(self._data) != len(other._data):
                return False
            return all(a._equals_only(b, check) for a, b in zip(self._data, other._data))
        return self._data == other._data

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    def assign(self, value: Any, *, scale: float = SCALE_NONE) -> "Value":
        """Замена содержимого узла копией value (аналог operator=)."""
        if value is self:
            return self
        fresh = Value(value, scale=scale)
        self._touch()
        self._clear()
        self._take(fresh)
        return self

    def assign_from(self, rhs: "Value", skip: Iterable[str]) -> "Value":
        """Глубокая копия rhs без членов OBJECT с именами из skip (на любой глубине)."""
        fresh = rhs._clone(frozenset(skip))
        self._touch()
        self._clear()
        self._take(fresh)
        return self

    def null(self) -> None:
        """Сброс узла в Null."""
        self._touch()
        self._clear()

    def copy(self) -> "Value":
        return self._clone()

    def __copy__(self) -> "Value":
        return self._clone()

    def __deepcopy__(self, memo: dict) -> "Value":
        return self._clone()

    # -------------------------------------------------------------------------
    # Coercion
    # -------------------------------------------------------------------------

    def as_int(self) -> int:
        kind = self._type
        if kind is ValueType.INTEGER:
            return self._data
        if kind is ValueType.BOOL:
            return int(self._data)
        if kind is ValueType.DOUBLE:
            return float_to_int64(self._data)
        if kind is ValueType.STRING:
            match = _INT_PREFIX.match(self._data)
            return clamp_int64(int(match.group())) if match else 0
        if kind in _COMPOSITES:
            return len(self._data)
        return 0

    def as_double(self) -> float:
        kind = self._type
        if kind is ValueType.DOUBLE:
            return self._data
        if kind in (ValueType.INTEGER, ValueType.BOOL):
            return float(self._data)
        if kind is ValueType.STRING:
            match = _FLOAT_PREFIX.match(self._data)
            return float(match.group()) if match else 0.0
        if kind in _COMPOSITES:
            return float(len(self._data))
        return 0.0

    def as_string(self) -> str:
        kind = self._type
        if kind is ValueType.STRING:
            return self._data
        if kind is ValueType.INTEGER:
            return str(self._data)
        if kind is ValueType.BOOL:
            return "true" if self._data else "false"
        if kind is ValueType.DOUBLE:
            if not is_valid_float(self._data):
                return repr(self._data)
            return render_double(self._data, self._scale)
        if kind in _COMPOSITES:
            return self.to_string()
        return ""

    def as_bool(self) -> bool:
        kind = self._type
        if kind is ValueType.STRING:
            return self._data != ""
        if kind in (ValueType.BOOL, ValueType.INTEGER, ValueType.DOUBLE):
            return self._data != 0
        if kind in _COMPOSITES:
            return len(self._data) > 0
        return False

    def as_bytes(self) -> bytes:
        """Сырые байты STRING-payload (для прочих вариантов — UTF-8 от as_string)."""
        return text_to_bytes(self.as_string())

    def __int__(self) -> int:
        return self.as_int()

    def __float__(self) -> float:
        return self.as_double()

    def __str__(self) -> str:
        return self.as_string()

    def __bool__(self) -> bool:
        return self.as_bool()

    def __repr__(self) -> str:
        if self._type is ValueType.DOUBLE and not is_valid_float(self._data):
            return f"Value({self._data!r})"
        return f"Value({self.to_string()})"

    def to_python(self) -> Any:
        """Преобразование в обычные объекты Python (dict / list / скаляры)."""
        kind = self._type
        if kind is ValueType.ARRAY:
            return [child.to_python() for child in self._data]
        if kind is ValueType.OBJECT:
            return {key: self._data[key].to_python() for key in sorted(self._data)}
        return self._data

    # -------------------------------------------------------------------------
    # Item access
    # -------------------------------------------------------------------------

    def _slot(self, key: str | int) -> "Value":
        if isinstance(key, bool):
            raise TypeError("Value indices must be str or int, not bool")
        if isinstance(key, str):
            if self._type is not ValueType.OBJECT:
                self._touch()
                self._become(ValueType.OBJECT)
            child = self._data.get(key)
            if child is None:
                self._touch()
                child = self._adopt(Value())
                self._data[key] = child
            return child
        if isinstance(key, int):
            if key < 0:
                raise IndexError(f"negative index {key}")
            if self._type is not ValueType.ARRAY:
                self._touch()
                self._become(ValueType.ARRAY)
            if key >= len(self._data):
                self._touch()
                while key >= len(self._data):
                    self._data.append(self._adopt(Value()))
            return self._data[key]
        raise TypeError(f"Value indices must be str or int, not {type(key).__name__}")

    def __getitem__(self, key: str | int) -> "Value":
        return self._slot(key)

    def __setitem__(self, key: str | int, value: Any) -> None:
        fresh = Value(value)
        slot = self._slot(key)
        slot._touch()
        slot._clear()
        slot._take(fresh)

    def __delitem__(self, key: str | int) -> None:
        self.remove_member(key)

    def get(self, key: str | int) -> "Value":
        """
        Доступ без мутации.

        Returns:
            Дочерний узел или NULL_VALUE, если слота нет или тип узла не совпадает
        """
        if isinstance(key, str):
            if self._type is ValueType.OBJECT:
                return self._data.get(key, NULL_VALUE)
        elif isinstance(key, int) and not isinstance(key, bool):
            if self._type is ValueType.ARRAY and 0 <= key < len(self._data):
                return self._data[key]
        return NULL_VALUE

    def __iter__(self) -> Iterator["Value"]:
        from src.core.domain.iteration import ConstIter

        for cursor in ConstIter(self):
            yield cursor.value

    def keys(self) -> list[str]:
        if self._type is ValueType.OBJECT:
            return sorted(self._data)
        return []

    def items(self) -> Iterator[tuple[str, "Value"]]:
        from src.core.domain.iteration import ConstIter

        for cursor in ConstIter(self):
            yield cursor.key, cursor.value

    # -------------------------------------------------------------------------
    # Structural mutation
    # -------------------------------------------------------------------------

    def append(self, value: Any) -> None:
        fresh = Value(value)
        self._touch()
        self._become(ValueType.ARRAY)
        self._data.append(self._adopt(fresh))

    def prepend(self, value: Any) -> None:
        fresh = Value(value)
        self._touch()
        self._become(ValueType.ARRAY)
        self._data.insert(0, self._adopt(fresh))

    def shrink(self, size: int) -> None:
        """
        Удаление элементов ARRAY с начала, пока их не останется не больше size.

        Сохраняются самые новые (последние добавленные) элементы.
        """
        if self._type is not ValueType.ARRAY or len(self._data) <= size:
            return
        self._touch()
        excess = len(self._data) - max(size, 0)
        for child in self._data[:excess]:
            child._owner = None
        del self._data[:excess]

    def remove_member(self, key: "str | int | Any") -> None:
        """
        Удаление члена по имени (OBJECT), позиции (ARRAY) или позиции итератора.

        Отсутствующий член — no-op.
        """
        from src.core.domain.iteration import Iter

        if isinstance(key, Iter):
            if key.root is not self:
                raise ValueError("iterator does not belong to this value")
            key.remove()
            return
        if isinstance(key, str):
            if self._type is ValueType.OBJECT and key in self._data:
                self._touch()
                self._data.pop(key)._owner = None
        elif isinstance(key, int) and not isinstance(key, bool):
            if self._type is ValueType.ARRAY and 0 <= key < len(self._data):
                self._touch()
                self._data.pop(key)._owner = None

    def remove_null_members(self) -> None:
        """
        Рекурсивное удаление Null-членов OBJECT.

        Null-элементы ARRAY сохраняются (удаление сдвинуло бы индексы),
        но вложенные композиты обходятся.
        """
        from src.core.domain.iteration import Iter

        for cursor in Iter(self):
            child = cursor.value
            if self._type is ValueType.OBJECT and child.is_null():
                cursor.remove()
            elif child._type in _COMPOSITES:
                child.remove_null_members()

    # -------------------------------------------------------------------------
    # Codecs
    # -------------------------------------------------------------------------

    @classmethod
    def from_stream(cls, stream, limits=None) -> "Value":
        """Разбор JSON-текста из file-like объекта (ошибки разбора дают Null)."""
        from src.codec.text import from_stream

        return from_stream(stream, limits=limits)

    def to_string(self) -> str:
        from src.codec.text import to_string

        return to_string(self)

    def to_pretty_string(self, indentation: int = 0, step: int = 2) -> str:
        from src.codec.text import to_pretty_string

        return to_pretty_string(self, indentation, step)

    def to_packed(self) -> bytes:
        from src.codec.dtmi import to_dtmi

        return to_dtmi(self)

    def packed_size(self) -> int:
        from src.codec.dtmi import packed_size

        return packed_size(self)

    def net_prepare(self) -> None:
        from src.codec.netpacket import net_prepare

        net_prepare(self)

    def to_net_packed(self) -> bytes:
        """
        Сетевой пакет (DTSC / DTP2) из кэша узла.

        Первый вызов вычисляет пакет через net_prepare(); повторные вызовы
        на неизменённом дереве возвращают кэш. Любая мутация поддерева
        сбрасывает кэш.
        """
        if self._packed is None:
            self.net_prepare()
        return self._packed if self._packed is not None else b""

    def send_to(self, sink: Callable[[bytes], Any]) -> None:
        """Передача сетевого пакета транспортному sink (например, socket.sendall)."""
        from src.codec.netpacket import send_to

        send_to(self, sink)

    def _store_packed(self, packet: bytes) -> None:
        self._packed = packet


# Общий неизменяемый Null для get() и ConstIter
NULL_VALUE: Final[Value] = Value()
NULL_VALUE._frozen = True
