import sys
import os
import time
import uuid
from decimal import Decimal

import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from shopcore.config import ShopSettings, configure_logging
from shopcore.domain import ShippingAddress
from shopcore.errors import ShopError
from shopcore.events import EventBus, SalesFeed
from shopcore.orders import OrderFilters
from shopcore.pricing import format_currency
from shopcore.service import Storefront
from shopcore.transforms import by_price_range, by_product_status, in_stock
from shopcore.compose import pipe
from Analytics_Service.report import dashboard_stats, inventory_alerts, sales_summary, top_products
from shopcore.async_ops import run_dashboard_snapshot


SEED_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "seed.json")


# ============ Общие ресурсы приложения ============
@st.cache_resource
def get_shop():
    settings = ShopSettings.from_env()
    configure_logging(settings.log_level)
    feed = SalesFeed()
    shop = Storefront.from_seed(SEED_PATH, settings=settings, events=feed.attach(EventBus()))
    return shop, feed


# ============ Инициализация ============
st.set_page_config(
    page_title="Shop Admin",
    page_icon="🛒",
    layout="wide",
    initial_sidebar_state="expanded",
)

shop, feed = get_shop()
settings = shop.settings

if "session_id" not in st.session_state:
    st.session_state.session_id = f"sess_{uuid.uuid4().hex[:12]}"
if "user_id" not in st.session_state:
    st.session_state.user_id = None

session_id = st.session_state.session_id


def money(amount) -> str:
    return format_currency(amount, settings.currency)


def show_error(err: ShopError):
    st.error(f"❌ {err}")


# ============ HEADER ============
st.title("🛒 Магазин: корзина, заказы, склад")

# ============ SIDEBAR ============
with st.sidebar:
    st.header("📂 Навигация")
    page = st.radio(
        "Раздел:",
        ["📊 Дашборд", "🏪 Каталог", "🛒 Корзина", "🧾 Заказы", "⚡ События"],
        label_visibility="collapsed",
    )

    st.divider()
    user = st.text_input("Пользователь (пусто — гость)", value=st.session_state.user_id or "")
    if user and user != st.session_state.user_id:
        # вход: гостевая корзина переносится в корзину пользователя
        shop.carts.merge_carts(session_id, user)
        st.session_state.user_id = user
    elif not user:
        st.session_state.user_id = None

    summary = shop.carts.get_summary(session_id, st.session_state.user_id)
    st.metric("🛒 В корзине", summary.item_count)


user_id = st.session_state.user_id


# ============ PAGE: ДАШБОРД ============
if page == "📊 Дашборд":
    st.header("📊 Дашборд")

    products = shop.inventory.list()
    orders = shop.orders.orders.all()
    stats = dashboard_stats(
        products, shop.categories.all(), orders, settings.low_stock_threshold
    )

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("📦 Товары", stats["products"]["total"])
    with col2:
        st.metric("📂 Категории", stats["categories"]["total"])
    with col3:
        st.metric("🧾 Заказы", stats["orders"]["total"])
    with col4:
        st.metric("💰 Выручка", money(stats["revenue"]))

    st.divider()

    sales = sales_summary(orders)
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("💵 Чистая выручка", money(sales["net_revenue"]))
    with col2:
        st.metric("↩️ Возвраты", money(sales["total_refunded"]))
    with col3:
        st.metric("📊 Средний чек", money(sales["average_order_value"]))

    st.subheader("⚠️ Склад")
    alerts = inventory_alerts(products, settings.low_stock_threshold)
    for item in alerts["out_of_stock"]:
        st.error(f"{item['name']} ({item['sku']}): нет в наличии")
    for item in alerts["low_stock"]:
        st.warning(f"{item['name']} ({item['sku']}): осталось {item['stock']}")

    st.subheader("🏆 Топ товаров")
    for idx, row in enumerate(top_products(orders, k=5), 1):
        st.write(f"{idx}. **{row['product_name']}**: {row['quantity_sold']} шт, {money(row['revenue'])}")

    if st.button("▶️ Асинхронный снимок", key="async_run"):
        start = time.perf_counter()
        snapshot = run_dashboard_snapshot(products, shop.categories.all(), orders)
        st.caption(f"⏱️ {(time.perf_counter() - start) * 1000:.2f} ms")
        for day, total in snapshot["sales_by_day"].items():
            st.write(f"**{day}**: {money(total)}")


# ============ PAGE: КАТАЛОГ ============
elif page == "🏪 Каталог":
    st.header("🏪 Каталог")

    categories = shop.categories.active()
    col1, col2 = st.columns(2)
    with col1:
        selected = st.selectbox("📂 Категория", ["Все"] + [c.name for c in categories])
    with col2:
        price_range = st.slider("💰 Цена", 0, 2000, (0, 2000), step=50)

    cat = next((c for c in categories if c.name == selected), None)
    if cat is not None:
        st.caption(" / ".join(c.name for c in shop.categories.breadcrumbs(cat.id)))
        listed = shop.catalog.products_by_category(cat.id)
    else:
        listed = shop.catalog.filter_products(by_product_status("published"))

    price_ok = by_price_range(Decimal(price_range[0]), Decimal(price_range[1]))
    visible = tuple(filter(price_ok, listed))
    st.info(f"🔍 Найдено товаров: **{len(visible)}**")

    for p in visible:
        cols = st.columns([5, 2, 2, 2])
        with cols[0]:
            st.markdown(f"**{p.name}**")
            st.caption(f"SKU {p.sku} · на складе {p.stock}")
        with cols[1]:
            st.write(money(p.price))
        with cols[2]:
            qty = st.number_input(
                "Кол-во", min_value=1, value=1, key=f"qty_{p.id}", label_visibility="collapsed"
            )
        with cols[3]:
            if st.button("➕ В корзину", key=f"add_{p.id}", disabled=not in_stock()(p)):
                try:
                    shop.carts.add_item(session_id, p.id, int(qty), user_id)
                    st.success(f"✅ {p.name} × {qty}")
                except ShopError as err:
                    show_error(err)


# ============ PAGE: КОРЗИНА ============
elif page == "🛒 Корзина":
    st.header("🛒 Корзина")

    cart = shop.carts.get_or_create(session_id, user_id)

    if not cart.items:
        st.info("🛍️ Корзина пуста")
    else:
        for item in cart.items:
            cols = st.columns([5, 2, 2, 1])
            with cols[0]:
                st.write(f"**{item.product_name}**")
            with cols[1]:
                qty = st.number_input(
                    "Кол-во",
                    min_value=0,
                    value=item.quantity,
                    key=f"cart_qty_{item.id}",
                    label_visibility="collapsed",
                )
                if qty != item.quantity:
                    try:
                        shop.carts.update_item(session_id, item.id, int(qty), user_id)
                        st.rerun()
                    except ShopError as err:
                        show_error(err)
            with cols[2]:
                st.write(money(item.subtotal))
            with cols[3]:
                if st.button("🗑️", key=f"remove_{item.id}"):
                    shop.carts.remove_item(session_id, item.id, user_id)
                    st.rerun()

        st.divider()
        code = st.text_input("Код скидки", value=cart.discount_code or "")
        if st.button("Применить", key="apply_code") and code:
            try:
                shop.carts.apply_discount(session_id, code, user_id)
                st.rerun()
            except ShopError as err:
                show_error(err)

        st.write(f"Подытог: {money(cart.subtotal)}")
        st.write(f"Скидка: −{money(cart.discount)}")
        st.write(f"Налог: {money(cart.tax)}")
        st.write(f"Доставка: {money(cart.shipping)}")
        st.markdown(f"### 💰 Итого: **{money(cart.total)}**")

        for problem in shop.carts.validate_stock(cart).errors:
            st.warning(problem)

        with st.form("checkout"):
            full_name = st.text_input("Имя", "Jane Doe")
            phone = st.text_input("Телефон", "+10000000000")
            line1 = st.text_input("Адрес", "1 Main St")
            city = st.text_input("Город", "Springfield")
            submitted = st.form_submit_button("✅ Оформить заказ", type="primary")

        if submitted:
            address = ShippingAddress(full_name, phone, line1, city, "State", "US")
            try:
                order = shop.checkout(session_id, address, "card", user_id=user_id)
                st.success(f"🎉 Заказ {order.order_number} на {money(order.total)}")
                st.balloons()
            except ShopError as err:
                show_error(err)


# ============ PAGE: ЗАКАЗЫ ============
elif page == "🧾 Заказы":
    st.header("🧾 Заказы")

    status = st.selectbox("Статус", ["Все", "pending", "confirmed", "processing", "shipped", "delivered", "cancelled", "refunded"])
    page_no = st.number_input("Страница", min_value=1, value=1)
    result = shop.orders.get_orders(
        OrderFilters(status=None if status == "Все" else status, page=int(page_no), limit=10)
    )
    st.caption(f"Всего: {result.total}, страниц: {result.pages}")

    for order in result.items:
        with st.expander(f"{order.order_number} · {order.status} · {money(order.total)}"):
            tracking = shop.orders.get_order_tracking(order.id)
            for step in tracking.history:
                st.write(f"• {step.description} {step.timestamp or ''}")

            target = st.selectbox(
                "Новый статус",
                ["confirmed", "processing", "shipped", "delivered", "cancelled"],
                key=f"status_{order.id}",
            )
            cols = st.columns(2)
            with cols[0]:
                if st.button("Обновить", key=f"upd_{order.id}"):
                    try:
                        shop.orders.update_status(order.id, target)
                        st.rerun()
                    except ShopError as err:
                        show_error(err)
            with cols[1]:
                if st.button("Возврат средств", key=f"refund_{order.id}"):
                    try:
                        shop.orders.request_refund(order.id, reason="Admin refund")
                        st.rerun()
                    except ShopError as err:
                        show_error(err)


# ============ PAGE: СОБЫТИЯ ============
elif page == "⚡ События":
    st.header("⚡ Лента продаж")

    state = feed.state
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric("💰 Выручка", money(state["total_revenue"]))
    with col2:
        st.metric("↩️ Возвраты", money(state["total_refunded"]))
    with col3:
        st.metric("🔄 Смен статуса", state["status_changes"])

    recent = pipe(lambda sales: sales[-10:], reversed, list)(state["current_sales"])
    for sale in recent:
        st.write(f"• {sale['order_number']}: {money(sale['total'])}")

    st.caption(f"Последнее событие: **{state.get('last_event') or 'N/A'}**")
