from functools import reduce


def pipe(*funcs):
    """pipe(f, g, h)(x) == h(g(f(x)))"""
    return reduce(lambda f, g: lambda x: g(f(x)), funcs, lambda x: x)


def all_of(*predicates):
    """Предикат, истинный только если истинны все переданные (пустой набор — всегда True)"""
    return lambda item: all(p(item) for p in predicates)
