"""
Shared fixtures: an in-memory data service with the same coroutine functions
as database.operations, a photo storage double, and one actor per role.
"""

import asyncio
import copy
import uuid
from contextlib import asynccontextmanager
from datetime import datetime

import pytest

from models.purchase_request import PurchaseRequestCreate, LineItemCreate
from models.user import Actor, UserRole
from workflow.engine import PurchaseRequestWorkflow


def run(coro):
    return asyncio.run(coro)


class InMemoryStore:
    def __init__(self):
        self.projects = {}
        self.requests = {}
        self.items = {}
        self.events = []
        self.inventory = {}
        self.verifications = []
        # Failure injection
        self.fail_inventory_writes_for = set()
        self.fail_inventory_item_updates = False
        self.fail_inventory_inserts = False
        self.fail_line_update_when = None
        self.fail_event_writes = False
        self.calls = []

    @staticmethod
    def _new_id():
        return uuid.uuid4().hex[:24]

    @asynccontextmanager
    async def transaction(self):
        yield None

    def _versioned_update(self, table, doc_id, update_data, expected_version):
        doc = table.get(doc_id)
        if not doc:
            return False
        if expected_version is not None and doc.get("version") != expected_version:
            return False
        doc.update(copy.deepcopy(update_data))
        doc["updated_at"] = datetime.utcnow()
        doc["version"] = doc.get("version", 0) + 1
        return True

    # Projects
    async def get_project(self, project_id, session=None):
        self.calls.append("get_project")
        return copy.deepcopy(self.projects.get(project_id))

    def add_project(self, name="Riverside Clinic", code="RC-01"):
        project_id = self._new_id()
        self.projects[project_id] = {"id": project_id, "name": name, "code": code, "created_at": datetime.utcnow()}
        return project_id

    # Purchase requests
    async def create_purchase_request(self, request_data, items, session=None):
        self.calls.append("create_purchase_request")
        now = datetime.utcnow()
        request_id = self._new_id()
        self.requests[request_id] = {
            **copy.deepcopy(request_data),
            "id": request_id,
            "created_at": now,
            "updated_at": now,
            "version": 1,
        }
        for item in items:
            item_id = self._new_id()
            self.items[item_id] = {
                **copy.deepcopy(item),
                "id": item_id,
                "request_id": request_id,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            }
        return request_id

    async def get_purchase_request(self, request_id, session=None):
        self.calls.append("get_purchase_request")
        return copy.deepcopy(self.requests.get(request_id))

    async def get_requests_by_requester(self, user_id):
        return [copy.deepcopy(r) for r in self.requests.values() if r.get("requested_by") == user_id]

    async def get_requests_by_status(self, statuses):
        return [copy.deepcopy(r) for r in self.requests.values() if r.get("status") in statuses]

    async def get_requests_by_ids(self, request_ids):
        return [copy.deepcopy(self.requests[rid]) for rid in request_ids if rid in self.requests]

    async def update_purchase_request(self, request_id, update_data, expected_version=None, session=None):
        self.calls.append("update_purchase_request")
        return self._versioned_update(self.requests, request_id, update_data, expected_version)

    async def get_request_items(self, request_id, session=None):
        return [copy.deepcopy(i) for i in self.items.values() if i["request_id"] == request_id]

    async def get_request_item(self, item_id, session=None):
        return copy.deepcopy(self.items.get(item_id))

    async def update_request_item(self, item_id, update_data, expected_version=None, session=None):
        self.calls.append("update_request_item")
        if self.fail_line_update_when and self.fail_line_update_when(update_data):
            raise RuntimeError("line write failed")
        return self._versioned_update(self.items, item_id, update_data, expected_version)

    # Events
    async def add_workflow_event(self, event_data, session=None):
        self.calls.append("add_workflow_event")
        if self.fail_event_writes:
            raise RuntimeError("event log unavailable")
        event_id = self._new_id()
        self.events.append({**copy.deepcopy(event_data), "id": event_id, "created_at": datetime.utcnow()})
        return event_id

    async def get_request_events(self, request_id):
        return [copy.deepcopy(e) for e in self.events if e["request_id"] == request_id]

    async def get_request_ids_by_actor(self, user_id):
        ids = []
        for event in self.events:
            if event["performed_by"] == user_id and event["request_id"] not in ids:
                ids.append(event["request_id"])
        return ids

    # Inventory
    async def add_inventory_item(self, item_data, session=None):
        self.calls.append("add_inventory_item")
        if self.fail_inventory_inserts:
            raise RuntimeError("inventory insert failed")
        item_id = self._new_id()
        self.inventory[item_id] = {**copy.deepcopy(item_data), "id": item_id, "created_at": datetime.utcnow()}
        return item_id

    async def get_inventory_item(self, item_id, session=None):
        return copy.deepcopy(self.inventory.get(item_id))

    async def update_inventory_quantity(self, item_id, quantity_change, session=None):
        self.calls.append("update_inventory_quantity")
        if item_id in self.fail_inventory_writes_for:
            raise RuntimeError("inventory write failed")
        if item_id not in self.inventory:
            return False
        self.inventory[item_id]["quantity"] += quantity_change
        return True

    async def update_inventory_item(self, item_id, update_data, session=None):
        self.calls.append("update_inventory_item")
        if self.fail_inventory_item_updates:
            raise RuntimeError("inventory item update failed")
        if item_id not in self.inventory:
            return False
        self.inventory[item_id].update(copy.deepcopy(update_data))
        return True

    async def get_inventory_items(self, location=None, category=None):
        items = [
            copy.deepcopy(i) for i in self.inventory.values()
            if (not location or i.get("location") == location) and (not category or i.get("category") == category)
        ]
        return sorted(items, key=lambda i: i["name"])

    async def delete_inventory_item(self, item_id):
        self.calls.append("delete_inventory_item")
        return self.inventory.pop(item_id, None) is not None

    # Stock verifications
    async def add_stock_verification(self, verification_data):
        verification_id = self._new_id()
        self.verifications.append({**copy.deepcopy(verification_data), "id": verification_id, "created_at": datetime.utcnow()})
        return verification_id

    async def get_stock_verifications(self, item_id):
        return [copy.deepcopy(v) for v in reversed(self.verifications) if v["item_id"] == item_id]

    # Helpers for tests
    def events_of(self, request_id, event_type):
        return [e for e in self.events if e["request_id"] == request_id and e["event_type"] == event_type]

    def set_item(self, line_id, **fields):
        self.items[line_id].update(fields)

    def set_request(self, doc_id, **fields):
        self.requests[doc_id].update(fields)


class FakePhotoStorage:
    def __init__(self):
        self.saved = []

    async def save_line_photo(self, request_id, item_id, slot, filename, fileobj):
        self.saved.append((request_id, item_id, slot, filename, fileobj.read()))
        return f"/request-photos/{request_id}/{item_id}/photo{slot}-20261017120000000000.jpg"


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def photo_storage():
    return FakePhotoStorage()


@pytest.fixture
def workflow(store, photo_storage):
    return PurchaseRequestWorkflow(store=store, storage=photo_storage)


@pytest.fixture
def project_id(store):
    return store.add_project()


@pytest.fixture
def requester():
    return Actor(id="u-requester", role=UserRole.REQUESTER)


@pytest.fixture
def pm():
    return Actor(id="u-pm", role=UserRole.PM)


@pytest.fixture
def president():
    return Actor(id="u-president", role=UserRole.PRESIDENT)


@pytest.fixture
def purchaser():
    return Actor(id="u-purchaser", role=UserRole.REQUESTER, can_purchase=True)


@pytest.fixture
def receiver():
    return Actor(id="u-receiver", role=UserRole.REQUESTER, can_receive=True)


@pytest.fixture
def admin():
    return Actor(id="u-admin", role=UserRole.ADMIN)


@pytest.fixture
def new_request(workflow, requester, project_id):
    """Factory creating a submitted request; returns the request detail."""
    def _create(*lines, notes="Second floor fit-out"):
        lines = lines or (LineItemCreate(description="Cordless drill", quantity=10, unit="ea"),)
        data = PurchaseRequestCreate(project_id=project_id, notes=notes, items=list(lines))
        return run(workflow.create_request(requester, data))
    return _create


@pytest.fixture
def received_request(workflow, store, new_request, pm, president, purchaser, receiver):
    """Factory walking a new request to the received status."""
    def _create(*lines, notes="Second floor fit-out"):
        detail = new_request(*lines, notes=notes)
        request_id = detail["id"]
        run(workflow.approve(request_id, pm))
        run(workflow.approve(request_id, president))
        run(workflow.mark_purchased(request_id, purchaser))
        run(workflow.mark_received(request_id, receiver))
        return run(workflow.get_request_detail(request_id))
    return _create
