from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from atelier.config import get_settings
from atelier.errors import InvalidRequestError, NotFoundError
from atelier.models import ArchivedOrder, Assignment, Order, OrderItem, ProductionStatus, ProductionType
from atelier.services.archive import ArchiveService, period_starts
from atelier.services.dispatcher import ProductionDispatcher
from atelier.services.orders import OrdersService, dominant_production_type
from atelier.services.reconciler import AssignmentReconciler


async def seed(db, order_id, order_date, items, dispatch=True):
    """items: (line_item_id, product_name) pairs."""
    db.add(Order(
        order_id=order_id,
        order_number=str(order_id),
        order_date=order_date,
        status="processing",
        customer_name="Camille Durand",
    ))
    for line_item_id, name in items:
        db.add(OrderItem(order_id=order_id, line_item_id=line_item_id, product_name=name, quantity=1, price=50))
    await db.flush()
    if dispatch:
        for line_item_id, name in items:
            await ProductionDispatcher(db).dispatch(order_id, line_item_id, name)


async def count(db, model):
    return await db.scalar(select(func.count()).select_from(model))


@pytest.mark.asyncio
async def test_list_orders_enriches_and_flags_late(db):
    await seed(db, 2, datetime(2024, 5, 7, 9, 0), [(1, "Robe")])
    await seed(db, 1, datetime(2024, 5, 6, 18, 0), [(1, "Gilet tricoté")], dispatch=False)

    orders = await OrdersService(db).list_orders(deadline=date(2024, 5, 6))

    assert [o["order_id"] for o in orders] == [1, 2]
    assert [o["is_late"] for o in orders] == [True, False]
    undispatched = orders[0]["items"][0]["production_status"]
    assert undispatched == {"status": "a_faire", "production_type": None, "assigned_to": None}
    assert orders[1]["items"][0]["production_status"]["production_type"] == "couture"


@pytest.mark.asyncio
async def test_list_orders_concurrent_batches(db, session_factory):
    for order_id in (1, 2, 3):
        await seed(db, order_id, datetime(2024, 5, order_id), [(1, "Robe"), (2, "Pull knitted")])
    await db.commit()

    service = OrdersService(db, session_factory)
    service.settings = get_settings().model_copy(update={"ENRICH_BATCH_SIZE": 2, "ENRICH_BATCH_DELAY": 0})
    orders = await service.list_orders()

    assert [o["order_id"] for o in orders] == [1, 2, 3]
    assert all(len(o["items"]) == 2 for o in orders)
    assert all(o["is_late"] is None for o in orders)


@pytest.mark.asyncio
async def test_get_order(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe")])

    assert (await OrdersService(db).get_order(1))["customer_name"] == "Camille Durand"
    with pytest.raises(NotFoundError):
        await OrdersService(db).get_order(2)


def test_dominant_type_tie_goes_to_first_seen():
    def item(production_type):
        return {"production_status": {"production_type": production_type}}

    assert dominant_production_type([item("couture"), item("maille")]) == "couture"
    assert dominant_production_type([item("couture"), item("maille"), item("maille")]) == "maille"
    assert dominant_production_type([item(None)]) is None


@pytest.mark.asyncio
async def test_search_by_number(db):
    await seed(db, 1001, datetime(2024, 5, 6), [(1, "Robe"), (2, "Gilet tricoté"), (3, "Pull tricoté")])
    db.add(Order(order_id=1002, order_number="1002", order_date=datetime(2024, 5, 6), status="processing"))
    await db.flush()
    service = OrdersService(db)

    found = await service.search_by_number("#1001")

    assert found["order_id"] == 1001
    assert found["production_type"] == "maille"
    assert len(found["items"]) == 3
    with pytest.raises(NotFoundError):
        await service.search_by_number("1002")
    with pytest.raises(NotFoundError):
        await service.search_by_number("9999")


@pytest.mark.asyncio
async def test_production_queue_dispatches_on_first_read(db):
    await seed(db, 10, datetime(2024, 5, 10), [(1, "Gilet tricoté"), (2, "Pull tricoté")], dispatch=False)
    await seed(db, 11, datetime(2024, 5, 5), [(1, "Écharpe tricotée"), (2, "Robe")], dispatch=False)

    entries = await OrdersService(db).list_by_production_type(ProductionType.MAILLE)

    assert [e["order_id"] for e in entries] == [11, 10, 10]
    assert all(len(e["items"]) == 1 for e in entries)
    assert all(e["items"][0]["production_status"]["production_type"] == "maille" for e in entries)
    assert await ProductionDispatcher(db).get_status(11, 2) is None


@pytest.mark.asyncio
async def test_delete_order_cascades(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe"), (2, "Jupe")])
    await AssignmentReconciler(db).assign("1_1", "w1", "Alice")

    counts = await OrdersService(db).delete_order(1)

    assert counts == {"order": 1, "items": 2, "statuses": 2, "assignments": 1}
    assert await count(db, OrderItem) == 0
    with pytest.raises(NotFoundError):
        await OrdersService(db).delete_order(1)


@pytest.mark.asyncio
async def test_delete_item(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe"), (2, "Jupe")])
    await AssignmentReconciler(db).assign("1_2", "w1", "Alice")

    assert await OrdersService(db).delete_item(1, 2) == {"item": 1, "status": 1}
    assert await count(db, OrderItem) == 1
    assert await count(db, Assignment) == 0
    with pytest.raises(NotFoundError):
        await OrdersService(db).delete_item(1, 2)


@pytest.mark.asyncio
async def test_update_customer_note(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe")])
    service = OrdersService(db)

    assert (await service.update_customer_note(1, "Emballage cadeau")).customer_note == "Emballage cadeau"
    assert (await service.update_customer_note(1, None)).customer_note == ""
    with pytest.raises(NotFoundError):
        await service.update_customer_note(2, "x")


@pytest.mark.asyncio
async def test_create_manual_order_dispatches_items(db):
    service = OrdersService(db)

    order = await service.create_order({
        "order_number": "#M-1",
        "order_date": datetime(2024, 5, 6),
        "customer": " Camille Durand ",
        "items": [
            {"product_name": "Robe", "quantity": 2, "price": 40, "production_type": "maille"},
            {"product_name": "Gilet tricoté", "meta_data": [{"key": "taille", "value": "M"}]},
        ],
    })

    assert order["order_id"] == -1
    assert (order["order_number"], order["customer_name"]) == ("M-1", "Camille Durand")
    assert order["total"] == 80
    assert [i["line_item_id"] for i in order["items"]] == [1, 2]
    assert [i["production_status"]["production_type"] for i in order["items"]] == ["maille", "maille"]
    assert all(i["production_status"]["status"] == "a_faire" for i in order["items"])
    stored = await db.scalar(select(Order).where(Order.order_id == -1))
    assert [i["product_name"] for i in stored.items] == ["Robe", "Gilet tricoté"]

    second = await service.create_order({"order_number": "M-2", "items": [{"product_name": "Jupe"}]})
    assert second["order_id"] == -2


@pytest.mark.asyncio
async def test_create_manual_order_validation(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe")])
    service = OrdersService(db)

    with pytest.raises(InvalidRequestError):
        await service.create_order({"order_number": " ", "items": [{"product_name": "Robe"}]})
    with pytest.raises(InvalidRequestError):
        await service.create_order({"order_number": "M-1", "items": []})
    with pytest.raises(InvalidRequestError):
        await service.create_order({"order_number": "M-1", "order_id": 1, "items": [{"product_name": "Robe"}]})
    with pytest.raises(InvalidRequestError):
        await service.create_order({"order_number": "M-1", "items": [{"product_name": "Robe", "production_type": "broderie"}]})
    with pytest.raises(InvalidRequestError):
        await service.create_order({"order_number": "M-1", "items": [
            {"product_name": "Robe", "line_item_id": 4}, {"product_name": "Jupe", "line_item_id": 4},
        ]})
    assert await count(db, Order) == 1


@pytest.mark.asyncio
async def test_update_order(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe")])
    service = OrdersService(db)

    order = await service.update_order(1, {"customer_email": "camille@example.com", "shipping_carrier": "DHL"})

    assert (order["customer_email"], order["shipping_carrier"]) == ("camille@example.com", "DHL")
    assert order["customer_name"] == "Camille Durand"
    with pytest.raises(InvalidRequestError):
        await service.update_order(1, {"order_number": ""})
    with pytest.raises(NotFoundError):
        await service.update_order(2, {"status": "completed"})


@pytest.mark.asyncio
async def test_archive_order_and_stats(db):
    await seed(db, 1, datetime(2024, 5, 6), [(1, "Robe"), (2, "Gilet tricoté")])
    reconciler = AssignmentReconciler(db)
    await reconciler.assign("1_1", "w1", "Alice", status="termine")
    await reconciler.assign("1_2", "w2", "Bea", status="en_pause")
    service = ArchiveService(db)

    archive_id = await service.archive_order(1)

    archive = await db.get(ArchivedOrder, archive_id)
    assert archive.order["order_number"] == "1"
    assert len(archive.items) == 2
    assert {s["status"] for s in archive.statuses} == {"termine", "en_pause"}
    assert await count(db, Order) == 0
    assert await count(db, ProductionStatus) == 0
    assert await count(db, Assignment) == 0

    listing = await service.list_archives()
    assert listing["total"] == 1

    stats = await service.stats(now=datetime.utcnow())
    assert stats["week"] == {"total": 1, "by_type": {"couture": 1}, "by_worker": {"Alice": 1}}
    assert stats["year"]["total"] == 1


def test_period_starts():
    starts = period_starts(datetime(2024, 5, 15, 14, 30))

    assert starts == {
        "week": datetime(2024, 5, 13),
        "month": datetime(2024, 5, 1),
        "year": datetime(2024, 1, 1),
    }


@pytest.mark.asyncio
async def test_archive_unknown_order(db):
    with pytest.raises(NotFoundError):
        await ArchiveService(db).archive_order(404)
