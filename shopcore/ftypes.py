# shopcore/ftypes.py
# Maybe для результатов поиска в хранилищах и Either для проверок без исключений.

from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")
L = TypeVar("L")
R = TypeVar("R")


@dataclass(frozen=True)
class Maybe(Generic[T]):
    """
    Результат поиска, который может ничего не найти.
    Хранилища возвращают Maybe, а менеджеры превращают Nothing
    в доменное исключение через get_or_raise — None дальше не протекает.
    """

    value: Optional[T]

    @staticmethod
    def some(value: T) -> "Maybe[T]":
        return Maybe(value)

    @staticmethod
    def nothing() -> "Maybe[None]":
        return Maybe(None)

    @staticmethod
    def of(value: Optional[T]) -> "Maybe[T]":
        """Some(value), если значение есть, иначе Nothing"""
        return Maybe(value)

    def is_some(self) -> bool:
        return self.value is not None

    def is_none(self) -> bool:
        return self.value is None

    def map(self, fn: Callable[[T], U]) -> "Maybe[U]":
        return Maybe.of(fn(self.value)) if self.is_some() else Maybe.nothing()

    def bind(self, fn: Callable[[T], "Maybe[U]"]) -> "Maybe[U]":
        return fn(self.value) if self.is_some() else Maybe.nothing()

    def filter(self, predicate: Callable[[T], bool]) -> "Maybe[T]":
        return self if self.is_some() and predicate(self.value) else Maybe.nothing()

    def get_or_else(self, default: U) -> T | U:
        return self.value if self.is_some() else default

    def get_or_raise(self, make_error: Callable[[], Exception]) -> T:
        """Значение или исключение, построенное фабрикой"""
        if self.is_none():
            raise make_error()
        return self.value

    def __repr__(self) -> str:
        return f"Some({self.value})" if self.is_some() else "Nothing"


@dataclass(frozen=True)
class Either(Generic[L, R]):
    """
    Either<L, R>: Left — сообщение об ошибке проверки, Right — прошедшее значение.
    Используется там, где ошибки нужно собрать, а не бросить
    (например, проверка остатков корзины перед оформлением).
    """

    is_left: bool
    value: Union[L, R]

    @staticmethod
    def left(value: L) -> "Either[L, R]":
        return Either(True, value)

    @staticmethod
    def right(value: R) -> "Either[L, R]":
        return Either(False, value)

    @property
    def is_right(self) -> bool:
        return not self.is_left

    def map(self, fn: Callable[[R], U]) -> "Either[L, U]":
        return Either.right(fn(self.value)) if self.is_right else self  # type: ignore[return-value]

    def bind(self, fn: Callable[[R], "Either[L, U]"]) -> "Either[L, U]":
        return fn(self.value) if self.is_right else self  # type: ignore[return-value]

    def get_or_else(self, default: U) -> R | U:
        return self.value if self.is_right else default  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"Left({self.value})" if self.is_left else f"Right({self.value})"


def lefts(results: Iterable[Either[L, R]]) -> List[L]:
    """Все ошибки из последовательности Either (порядок сохраняется)"""
    return [r.value for r in results if r.is_left]
