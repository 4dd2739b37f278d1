"""
Tree iteration — курсоры по ARRAY / OBJECT узлам Value

Один интерфейс для двух видов контейнеров; диспетчеризация по ValueType:
- ARRAY: порядок вставки, key == ""
- OBJECT: порядок сортировки ключей (снимок ключей на момент создания)
- скаляры и Null: обход нулевой длины

ConstIter — только чтение. Iter дополнительно умеет remove(): текущий
элемент удаляется, курсор встаёт на следующий, и ближайший advance()
его не пропускает.

Examples:
    >>> from src.core.domain.value import Value
    >>> v = Value([3, 1, 2])
    >>> [cursor.value.as_int() for cursor in ConstIter(v)]
    [3, 1, 2]
"""

from typing import Iterator

from src.core.domain.value import NULL_VALUE, Value, ValueType


class _TreeCursor:
    """Общая часть курсоров: позиция и разыменование."""

    def __init__(self, root: Value):
        self._root = root
        self._kind = root.type
        self._index = 0
        self._keys: list[str] = sorted(root._data) if self._kind is ValueType.OBJECT else []

    @property
    def root(self) -> Value:
        return self._root

    def _length(self) -> int:
        if self._root.type is not self._kind:
            # корень перетипизирован во время обхода
            return 0
        if self._kind is ValueType.ARRAY:
            return len(self._root._data)
        if self._kind is ValueType.OBJECT:
            return len(self._keys)
        return 0

    def __bool__(self) -> bool:
        """True, пока обход не завершён."""
        return self._index < self._length()

    def advance(self) -> "_TreeCursor":
        self._index += 1
        return self

    @property
    def value(self) -> Value:
        """Текущий дочерний узел."""
        if not self:
            raise IndexError("iterator is exhausted")
        if self._kind is ValueType.ARRAY:
            return self._root._data[self._index]
        return self._root._data.get(self._keys[self._index], NULL_VALUE)

    @property
    def key(self) -> str:
        """Имя текущего члена OBJECT ("" для ARRAY)."""
        if self._kind is ValueType.OBJECT and self:
            return self._keys[self._index]
        return ""

    @property
    def num(self) -> int:
        """Позиция текущего элемента."""
        return self._index

    def __iter__(self) -> Iterator["_TreeCursor"]:
        while self:
            yield self
            self.advance()


class ConstIter(_TreeCursor):
    """Курсор только для чтения."""


class Iter(_TreeCursor):
    """Курсор с поддержкой удаления текущего элемента."""

    def __init__(self, root: Value):
        super().__init__(root)
        self._removed = False

    def advance(self) -> "Iter":
        if self._removed:
            # после remove() курсор уже стоит на следующем элементе
            self._removed = False
            return self
        self._index += 1
        return self

    def remove(self) -> None:
        """Удаление текущего элемента из корневого узла."""
        if not self:
            raise IndexError("iterator is exhausted")
        if self._kind is ValueType.ARRAY:
            self._root.remove_member(self._index)
        else:
            self._root.remove_member(self._keys.pop(self._index))
        self._removed = True
