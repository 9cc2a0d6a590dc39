from dataclasses import replace
from typing import Dict, Iterable, Optional, Tuple

from .domain import Category, Product
from .ftypes import Maybe

# Рекурсивный обход дерева категорий


def flatten_categories(cats: Tuple[Category, ...], root: str) -> Tuple[Category, ...]:
    """
    Возвращает все категории поддерева, включая сам root

    Пример:
      root -> (cat1, cat2)
        cat1 -> (cat3)
      flatten_categories(...) -> (root, cat1, cat3, cat2)
    """
    root_cat = next((c for c in cats if c.id == root), None)
    if not root_cat:
        return ()

    children = tuple(filter(lambda c: c.parent_id == root, cats))
    nested = tuple(cat for child in children for cat in flatten_categories(cats, child.id))
    return (root_cat,) + nested


def category_path(cats: Tuple[Category, ...], category_id: str) -> Tuple[Category, ...]:
    """Путь от корня до категории (хлебные крошки)"""
    current = next((c for c in cats if c.id == category_id), None)
    if current is None:
        return ()
    if current.parent_id is None:
        return (current,)
    return category_path(cats, current.parent_id) + (current,)


def collect_products_recursive(
    cats: Tuple[Category, ...],
    prods: Iterable[Product],
    root_id: str,
) -> Tuple[Product, ...]:
    """Все товары категории root_id и её потомков"""
    cat_ids = {c.id for c in flatten_categories(cats, root_id)}
    return tuple(filter(lambda p: p.category_id in cat_ids, prods))


def category_tree(cats: Tuple[Category, ...], parent_id: Optional[str] = None) -> list:
    """Вложенное представление дерева: [{"category": ..., "children": [...]}]"""
    return [
        {"category": c, "children": category_tree(cats, c.id)}
        for c in cats
        if c.parent_id == parent_id
    ]


class CategoryStore:
    """Таксономия каталога. С корзиной и заказами не связана."""

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories: Dict[str, Category] = {c.id: c for c in categories}

    def add(self, category: Category) -> Category:
        if category.parent_id is not None and category.parent_id not in self._categories:
            raise ValueError(f"Parent category not found: {category.parent_id}")
        if category.parent_id is not None and category.id in {
            c.id for c in category_path(self.all(), category.parent_id)
        }:
            raise ValueError(f"Category cannot be its own ancestor: {category.id}")
        self._categories[category.id] = category
        return category

    def get(self, category_id: str) -> Maybe[Category]:
        return Maybe.of(self._categories.get(category_id))

    def get_by_slug(self, slug: str) -> Maybe[Category]:
        return Maybe.of(next((c for c in self._categories.values() if c.slug == slug), None))

    def all(self) -> Tuple[Category, ...]:
        return tuple(self._categories.values())

    def active(self) -> Tuple[Category, ...]:
        return tuple(c for c in self._categories.values() if c.status == "active")

    def children(self, category_id: str) -> Tuple[Category, ...]:
        return tuple(c for c in self._categories.values() if c.parent_id == category_id)

    def subtree(self, category_id: str) -> Tuple[Category, ...]:
        return flatten_categories(self.all(), category_id)

    def breadcrumbs(self, category_id: str) -> Tuple[Category, ...]:
        return category_path(self.all(), category_id)

    def tree(self) -> list:
        return category_tree(self.all())

    def products_in(self, category_id: str, products: Iterable[Product]) -> Tuple[Product, ...]:
        return collect_products_recursive(self.all(), products, category_id)

    def product_counts(self, products: Iterable[Product]) -> Dict[str, int]:
        """Количество товаров в каждой категории с учётом подкатегорий"""
        products = tuple(products)
        return {cid: len(self.products_in(cid, products)) for cid in self._categories}

    def delete(self, category_id: str) -> bool:
        """Мягкое удаление: категория становится inactive"""
        current = self._categories.get(category_id)
        if current is None:
            return False
        self._categories[category_id] = replace(current, status="inactive")
        return True
