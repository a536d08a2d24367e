"""
Tests for receiving a purchase request into inventory.

Verifies:
- Only non-rejected lines with a received quantity touch inventory
- Linked lines increment their inventory item, unlinked lines create one
- Exactly one stocked event per run
- A request is stocked once; failed lines are retried on the next run
- A line whose quantity already reached inventory is never counted twice
"""

import io

import pytest

from conftest import run
from models.purchase_request import LineItemCreate
from workflow.errors import AlreadyStocked, InvalidTransition, PermissionDenied


def lines_by_description(detail):
    return {item["description"]: item for item in detail["items"]}


def set_received(workflow, detail, receiver, **quantities):
    items = lines_by_description(detail)
    for description, qty in quantities.items():
        run(workflow.save_line(detail["id"], items[description]["id"], receiver, {"received_qty": qty}))


def add_inventory(store, **fields):
    item = {"name": "Cordless drill", "quantity": 2, "unit": "ea", "image_url": None, "image_url_2": None}
    item.update(fields)
    return run(store.add_inventory_item(item))


class TestReceiveToStock:

    def test_three_line_batch(self, workflow, store, received_request, pm, receiver):
        detail = received_request(
            LineItemCreate(description="A", quantity=5, application_location="Level 2", est_unit_price=12.5),
            LineItemCreate(description="B", quantity=4),
            LineItemCreate(description="C", quantity=5),
        )
        lines = lines_by_description(detail)
        run(workflow.reject_item(detail["id"], lines["C"]["id"], pm, "Not needed"))
        set_received(workflow, detail, receiver, A=5, B=0, C=5)

        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["created"] == [lines["A"]["id"]]
        assert result["updated"] == []
        assert sorted(result["skipped"]) == sorted([lines["B"]["id"], lines["C"]["id"]])
        assert result["failed"] == []
        assert result["complete"] is True

        (inventory_id,) = store.inventory
        inventory_item = store.inventory[inventory_id]
        assert inventory_item["quantity"] == 5
        assert inventory_item["name"] == "A"
        assert inventory_item["description"] == "Second floor fit-out"
        assert inventory_item["location"] == "Level 2"
        assert inventory_item["purchase_price"] == 12.5
        assert inventory_item["source_request_id"] == detail["id"]
        assert inventory_item["created_by"] == receiver.id

        assert store.items[lines["A"]["id"]]["item_id"] == inventory_id
        assert store.items[lines["A"]["id"]]["stocked_qty"] == 5
        assert store.items[lines["B"]["id"]].get("stocked_at") is None
        assert store.items[lines["C"]["id"]].get("stocked_at") is None

        (event,) = store.events_of(detail["id"], "stocked")
        assert event["comment"] == result["message"]
        assert "1 created" in result["message"]
        assert store.requests[detail["id"]]["stocked_by"] == receiver.id
        assert store.requests[detail["id"]]["stocked_at"] is not None

    def test_new_item_takes_received_photos(self, workflow, store, received_request, receiver):
        detail = received_request()
        item_id = detail["items"][0]["id"]
        set_received(workflow, detail, receiver, **{"Cordless drill": 10})
        run(workflow.upload_line_photo(detail["id"], item_id, receiver, 1, "a.jpg", io.BytesIO(b"1")))
        run(workflow.upload_line_photo(detail["id"], item_id, receiver, 2, "b.jpg", io.BytesIO(b"2")))

        run(workflow.receive_to_stock(detail["id"], receiver))

        (inventory_item,) = store.inventory.values()
        line = store.items[item_id]
        assert inventory_item["image_url"] == line["received_photo_url_1"]
        assert inventory_item["image_url_2"] == line["received_photo_url_2"]

    def test_linked_line_increments_and_backfills_photos(self, workflow, store, received_request, receiver):
        inventory_id = add_inventory(store, quantity=2)
        detail = received_request()
        item_id = detail["items"][0]["id"]
        store.set_item(item_id, item_id=inventory_id)
        set_received(workflow, detail, receiver, **{"Cordless drill": 3})
        run(workflow.upload_line_photo(detail["id"], item_id, receiver, 1, "a.jpg", io.BytesIO(b"1")))

        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["updated"] == [item_id]
        assert result["created"] == []
        assert len(store.inventory) == 1
        assert store.inventory[inventory_id]["quantity"] == 5
        assert store.inventory[inventory_id]["image_url"] == store.items[item_id]["received_photo_url_1"]
        assert store.inventory[inventory_id]["image_url_2"] is None

    def test_existing_photos_are_kept(self, workflow, store, received_request, receiver):
        inventory_id = add_inventory(store, image_url_2="/inventory-images/original.jpg")
        detail = received_request()
        item_id = detail["items"][0]["id"]
        store.set_item(item_id, item_id=inventory_id)
        set_received(workflow, detail, receiver, **{"Cordless drill": 1})
        run(workflow.upload_line_photo(detail["id"], item_id, receiver, 1, "a.jpg", io.BytesIO(b"1")))

        run(workflow.receive_to_stock(detail["id"], receiver))

        assert store.inventory[inventory_id]["image_url"] is None
        assert store.inventory[inventory_id]["image_url_2"] == "/inventory-images/original.jpg"

    def test_second_run_is_refused(self, workflow, store, received_request, receiver):
        detail = received_request()
        set_received(workflow, detail, receiver, **{"Cordless drill": 10})
        run(workflow.receive_to_stock(detail["id"], receiver))

        with pytest.raises(AlreadyStocked):
            run(workflow.receive_to_stock(detail["id"], receiver))
        (inventory_item,) = store.inventory.values()
        assert inventory_item["quantity"] == 10
        assert len(store.events_of(detail["id"], "stocked")) == 1

    def test_failed_line_is_retried(self, workflow, store, received_request, receiver):
        broken_id = add_inventory(store, name="Rotary hammer", quantity=1)
        detail = received_request(
            LineItemCreate(description="Rotary hammer", quantity=2),
            LineItemCreate(description="Laser level", quantity=1),
        )
        lines = lines_by_description(detail)
        store.set_item(lines["Rotary hammer"]["id"], item_id=broken_id)
        set_received(workflow, detail, receiver, **{"Rotary hammer": 2, "Laser level": 1})
        store.fail_inventory_writes_for.add(broken_id)

        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["failed"] == [lines["Rotary hammer"]["id"]]
        assert result["created"] == [lines["Laser level"]["id"]]
        assert result["complete"] is False
        assert "1 failed" in result["message"]
        assert store.items[lines["Rotary hammer"]["id"]]["stocked_at"] is None
        assert store.requests[detail["id"]].get("stocked_at") is None
        assert store.inventory[broken_id]["quantity"] == 1

        store.fail_inventory_writes_for.clear()
        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["updated"] == [lines["Rotary hammer"]["id"]]
        assert result["created"] == []
        assert result["skipped"] == [lines["Laser level"]["id"]]
        assert result["complete"] is True
        assert store.inventory[broken_id]["quantity"] == 3
        assert len(store.inventory) == 2
        assert len(store.events_of(detail["id"], "stocked")) == 2

    def test_missing_linked_item_fails_line(self, workflow, store, received_request, receiver):
        detail = received_request()
        item_id = detail["items"][0]["id"]
        store.set_item(item_id, item_id="gone")
        set_received(workflow, detail, receiver, **{"Cordless drill": 4})

        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["failed"] == [item_id]
        assert store.inventory == {}
        assert len(store.events_of(detail["id"], "stocked")) == 1

    def test_nothing_received(self, workflow, store, received_request, receiver):
        detail = received_request()
        result = run(workflow.receive_to_stock(detail["id"], receiver))

        assert result["skipped"] == [detail["items"][0]["id"]]
        assert store.inventory == {}
        assert len(store.events_of(detail["id"], "stocked")) == 1

    def test_requires_received_status(self, workflow, store, new_request, receiver):
        detail = new_request()
        with pytest.raises(InvalidTransition):
            run(workflow.receive_to_stock(detail["id"], receiver))
        assert store.events_of(detail["id"], "stocked") == []

    def test_requires_receive_capability(self, workflow, received_request, purchaser):
        detail = received_request()
        with pytest.raises(PermissionDenied):
            run(workflow.receive_to_stock(detail["id"], purchaser))


class TestPartialFailures:
    """Writes failing after the line claim, without a transaction to roll back."""

    def test_backfill_failure_does_not_double_count(self, workflow, store, received_request, receiver):
        inventory_id = add_inventory(store, quantity=2)
        detail = received_request()
        item_id = detail["items"][0]["id"]
        store.set_item(item_id, item_id=inventory_id)
        set_received(workflow, detail, receiver, **{"Cordless drill": 3})
        run(workflow.upload_line_photo(detail["id"], item_id, receiver, 1, "a.jpg", io.BytesIO(b"1")))
        store.fail_inventory_item_updates = True

        first = run(workflow.receive_to_stock(detail["id"], receiver))

        assert first["failed"] == [item_id]
        assert store.inventory[inventory_id]["quantity"] == 2
        assert store.items[item_id]["stocked_at"] is None

        store.fail_inventory_item_updates = False
        second = run(workflow.receive_to_stock(detail["id"], receiver))

        assert second["updated"] == [item_id]
        assert second["complete"] is True
        assert store.inventory[inventory_id]["quantity"] == 5
        assert store.inventory[inventory_id]["image_url"] == store.items[item_id]["received_photo_url_1"]

    def test_insert_failure_is_retried(self, workflow, store, received_request, receiver):
        detail = received_request()
        item_id = detail["items"][0]["id"]
        set_received(workflow, detail, receiver, **{"Cordless drill": 4})
        store.fail_inventory_inserts = True

        first = run(workflow.receive_to_stock(detail["id"], receiver))

        assert first["failed"] == [item_id]
        assert store.inventory == {}
        assert store.items[item_id]["stocked_at"] is None

        store.fail_inventory_inserts = False
        second = run(workflow.receive_to_stock(detail["id"], receiver))

        assert second["created"] == [item_id]
        (inventory_item,) = store.inventory.values()
        assert inventory_item["quantity"] == 4

    def test_back_link_failure_keeps_line_stocked(self, workflow, store, received_request, receiver):
        detail = received_request()
        item_id = detail["items"][0]["id"]
        set_received(workflow, detail, receiver, **{"Cordless drill": 4})
        store.fail_line_update_when = lambda update: "item_id" in update

        first = run(workflow.receive_to_stock(detail["id"], receiver))

        assert first["failed"] == [item_id]
        assert first["complete"] is False
        (inventory_item,) = store.inventory.values()
        assert inventory_item["quantity"] == 4
        assert store.items[item_id]["stocked_at"] is not None
        assert store.items[item_id]["item_id"] is None

        store.fail_line_update_when = None
        second = run(workflow.receive_to_stock(detail["id"], receiver))

        assert second["skipped"] == [item_id]
        assert second["complete"] is True
        assert len(store.inventory) == 1
        assert inventory_item["quantity"] == 4

    def test_claim_release_failure_leaves_line_claimed(self, workflow, store, received_request, receiver):
        inventory_id = add_inventory(store, quantity=2)
        detail = received_request()
        item_id = detail["items"][0]["id"]
        store.set_item(item_id, item_id=inventory_id)
        set_received(workflow, detail, receiver, **{"Cordless drill": 3})
        store.fail_inventory_writes_for.add(inventory_id)
        store.fail_line_update_when = lambda update: "stocked_at" in update and update["stocked_at"] is None

        first = run(workflow.receive_to_stock(detail["id"], receiver))

        assert first["failed"] == [item_id]
        assert store.items[item_id]["stocked_at"] is not None
        assert store.inventory[inventory_id]["quantity"] == 2

        store.fail_inventory_writes_for.clear()
        store.fail_line_update_when = None
        second = run(workflow.receive_to_stock(detail["id"], receiver))

        assert second["skipped"] == [item_id]
        assert store.inventory[inventory_id]["quantity"] == 2
