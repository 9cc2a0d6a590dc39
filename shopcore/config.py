"""Настройки магазина и конфигурация логирования."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

import structlog


@dataclass(frozen=True)
class ShopSettings:
    """
    Параметры ценообразования и жизненного цикла корзины.
    Значения по умолчанию совпадают с эталонным поведением магазина.
    """

    tax_rate: Decimal = Decimal("15")
    flat_shipping: Decimal = Decimal("5")
    free_shipping_threshold: Decimal = Decimal("100")
    currency: str = "USD"
    cart_ttl_days: int = 7
    low_stock_threshold: int = 10
    order_number_attempts: int = 20
    log_level: str = "INFO"

    @property
    def cart_ttl(self) -> timedelta:
        return timedelta(days=self.cart_ttl_days)

    @classmethod
    def from_env(cls) -> "ShopSettings":
        """Читает SHOP_* переменные окружения, отсутствующие берутся по умолчанию"""
        defaults = cls()
        return cls(
            tax_rate=Decimal(os.getenv("SHOP_TAX_RATE", str(defaults.tax_rate))),
            flat_shipping=Decimal(
                os.getenv("SHOP_FLAT_SHIPPING", str(defaults.flat_shipping))
            ),
            free_shipping_threshold=Decimal(
                os.getenv(
                    "SHOP_FREE_SHIPPING_THRESHOLD", str(defaults.free_shipping_threshold)
                )
            ),
            currency=os.getenv("SHOP_CURRENCY", defaults.currency),
            cart_ttl_days=int(os.getenv("SHOP_CART_TTL_DAYS", defaults.cart_ttl_days)),
            low_stock_threshold=int(
                os.getenv("SHOP_LOW_STOCK_THRESHOLD", defaults.low_stock_threshold)
            ),
            order_number_attempts=int(
                os.getenv("SHOP_ORDER_NUMBER_ATTEMPTS", defaults.order_number_attempts)
            ),
            log_level=os.getenv("SHOP_LOG_LEVEL", defaults.log_level).upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Консольный вывод structlog с фильтрацией по уровню"""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )
