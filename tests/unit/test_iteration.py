"""
Тесты для курсоров обхода Iter / ConstIter

Проверяет:
1. Порядок обхода: ARRAY — порядок вставки, OBJECT — сортировка ключей
2. key / num / value для обоих видов контейнеров
3. Обход нулевой длины для скаляров и Null
4. Iter.remove(): следующий элемент не пропускается
"""

import pytest

from src.core.domain import ConstIter, Iter, Value


# =============================================================================
# ТЕСТЫ ПОРЯДКА ОБХОДА
# =============================================================================


class TestConstIter:
    """Тесты ConstIter"""

    def test_sequence_order(self) -> None:
        v = Value()
        for item in (3, 1, 2):
            v.append(item)
        assert [it.value.as_int() for it in ConstIter(v)] == [3, 1, 2]

    def test_mapping_sorted_keys(self) -> None:
        v = Value()
        v["b"] = 1
        v["a"] = 2
        assert [it.key for it in ConstIter(v)] == ["a", "b"]

    def test_positions(self) -> None:
        v = Value(["x", "y", "z"])
        assert [it.num for it in ConstIter(v)] == [0, 1, 2]

    def test_sequence_key_is_empty(self) -> None:
        it = ConstIter(Value([1]))
        assert it
        assert it.key == ""

    @pytest.mark.parametrize("raw", [None, 5, "text", 1.5, True])
    def test_scalar_walk_is_empty(self, raw) -> None:
        it = ConstIter(Value(raw))
        assert not it
        assert list(it) == []

    def test_manual_advance(self) -> None:
        it = ConstIter(Value({"a": 1, "b": 2}))
        assert it.key == "a"
        it.advance()
        assert it.key == "b"
        assert it.value.as_int() == 2
        it.advance()
        assert not it

    def test_exhausted_dereference(self) -> None:
        it = ConstIter(Value([]))
        with pytest.raises(IndexError):
            it.value

    def test_retyped_root_ends_walk(self) -> None:
        v = Value([1, 2, 3])
        it = ConstIter(v)
        v.assign("scalar")
        assert not it


# =============================================================================
# ТЕСТЫ УДАЛЕНИЯ
# =============================================================================


class TestIterRemove:
    """Тесты Iter.remove()"""

    def test_remove_from_sequence(self) -> None:
        v = Value([1, None, 2, None, 3])
        seen = []
        for it in Iter(v):
            if it.value.is_null():
                it.remove()
            else:
                seen.append(it.value.as_int())
        assert seen == [1, 2, 3]
        assert v.to_python() == [1, 2, 3]

    def test_remove_consecutive_mapping_members(self) -> None:
        v = Value({"a": 1, "b": None, "c": None, "d": 4})
        for it in Iter(v):
            if it.value.is_null():
                it.remove()
        assert v.to_python() == {"a": 1, "d": 4}

    def test_remove_all(self) -> None:
        v = Value([1, 2, 3])
        for it in Iter(v):
            it.remove()
        assert v.size() == 0

    def test_remove_exhausted(self) -> None:
        it = Iter(Value([]))
        with pytest.raises(IndexError):
            it.remove()

    def test_remove_member_by_iterator(self) -> None:
        v = Value(["a", "b", "c"])
        it = Iter(v)
        it.advance()
        v.remove_member(it)
        assert v.to_python() == ["a", "c"]
        assert it.value.as_string() == "c"

    def test_remove_member_foreign_iterator(self) -> None:
        with pytest.raises(ValueError):
            Value([1]).remove_member(Iter(Value([1])))

    def test_removal_invalidates_packed_cache(self) -> None:
        v = Value({"a": 1, "b": None})
        packed = v.to_net_packed()
        for it in Iter(v):
            if it.value.is_null():
                it.remove()
        assert v.to_net_packed() != packed
