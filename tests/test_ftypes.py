import sys
import os

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
import pytest
from shopcore.errors import ProductNotFound
from shopcore.ftypes import Either, Maybe, lefts


def test_maybe_some_and_none_behavior():
    just = Maybe.some(42)
    nothing = Maybe.nothing()

    assert not just.is_none()
    assert nothing.is_none()
    assert just.get_or_else(0) == 42
    assert nothing.get_or_else(0) == 0


def test_maybe_map_bind_filter():
    assert Maybe.some(2).map(lambda x: x * 10).value == 20
    assert Maybe.nothing().map(lambda x: x * 10).is_none()
    assert Maybe.some(2).bind(lambda x: Maybe.nothing()).is_none()
    assert Maybe.some(3).filter(lambda x: x > 5).is_none()


def test_maybe_get_or_raise():
    assert Maybe.of("p1").get_or_raise(lambda: ProductNotFound("p1")) == "p1"
    with pytest.raises(ProductNotFound):
        Maybe.of(None).get_or_raise(lambda: ProductNotFound("p1"))


def test_either_chain():
    ok = Either.right(5).map(lambda x: x + 1).bind(lambda x: Either.right(x * 2))
    assert ok.is_right
    assert ok.get_or_else(0) == 12

    failed = Either.right(5).bind(lambda x: Either.left("bad")).map(lambda x: x + 1)
    assert not failed.is_right
    assert failed.get_or_else(0) == 0


def test_lefts_collects_errors_in_order():
    results = [Either.right(1), Either.left("a"), Either.right(2), Either.left("b")]
    assert lefts(results) == ["a", "b"]
