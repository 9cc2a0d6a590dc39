import asyncio
from datetime import date
from typing import Dict, Optional, Tuple

from Analytics_Service.report import (
    dashboard_stats,
    inventory_alerts,
    sales_by_day,
    sales_summary,
    top_products,
)

from .domain import Category, Order, Product


# ============ Асинхронные агрегации ============


async def _run(func, *args, **kwargs):
    """Свёртка выполняется в пуле потоков, чтобы не блокировать цикл событий"""
    return await asyncio.to_thread(func, *args, **kwargs)


async def dashboard_snapshot_async(
    products: Tuple[Product, ...],
    categories: Tuple[Category, ...],
    orders: Tuple[Order, ...],
    period: Optional[Tuple[date, date]] = None,
    low_stock_threshold: int = 10,
    k: int = 5,
) -> Dict:
    """
    Все отчёты дашборда параллельно.
    На вход подаются снимки (кортежи): отчёты ничего не меняют в хранилищах.
    """
    if period is None:
        days = sorted({o.created_at.date() for o in orders})
        period = (days[0], days[-1]) if days else None

    daily = (
        _run(sales_by_day, orders, period[0], period[1]) if period else asyncio.sleep(0, {})
    )

    stats, alerts, summary, top, by_day = await asyncio.gather(
        _run(dashboard_stats, products, categories, orders, low_stock_threshold),
        _run(inventory_alerts, products, low_stock_threshold),
        _run(sales_summary, orders),
        _run(top_products, orders, k),
        daily,
    )

    return {
        "stats": stats,
        "inventory_alerts": alerts,
        "sales": summary,
        "top_products": top,
        "sales_by_day": by_day,
    }


# ============ Синхронная обёртка ============


def run_dashboard_snapshot(
    products: Tuple[Product, ...],
    categories: Tuple[Category, ...],
    orders: Tuple[Order, ...],
    **kwargs,
) -> Dict:
    """Синхронная обёртка для использования в UI"""
    return asyncio.run(dashboard_snapshot_async(products, categories, orders, **kwargs))
