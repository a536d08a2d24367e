from bson import ObjectId
from datetime import datetime
from typing import List, Dict, Any, Optional

from database.db import (
    start_transaction,
    users_collection,
    projects_collection,
    purchase_requests_collection,
    request_items_collection,
    request_events_collection,
    inventory_collection,
    stock_verifications_collection
)

# Helper to convert ObjectId to string
def serialize_object_id(doc):
    if doc.get("_id"):
        doc["id"] = str(doc["_id"])
        del doc["_id"]
    return doc

async def _collect(cursor) -> List[Dict[str, Any]]:
    docs = []
    async for doc in cursor:
        docs.append(serialize_object_id(doc))
    return docs

def _versioned_filter(doc_id: str, expected_version: Optional[int]) -> Dict[str, Any]:
    query = {"_id": ObjectId(doc_id)}
    if expected_version is not None:
        query["version"] = expected_version
    return query

def transaction():
    """Open a data-service transaction (see database.db.start_transaction)."""
    return start_transaction()

# User operations
async def create_user(user_data: Dict[str, Any]) -> str:
    user_data["created_at"] = datetime.utcnow()
    user_data.setdefault("can_purchase", False)
    user_data.setdefault("can_receive", False)
    result = await users_collection.insert_one(user_data)
    return str(result.inserted_id)

async def get_user_by_username(username: str) -> Optional[Dict[str, Any]]:
    user = await users_collection.find_one({"username": username})
    if user:
        return serialize_object_id(user)
    return None

async def get_user_by_id(user_id: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(user_id):
        return None
    user = await users_collection.find_one({"_id": ObjectId(user_id)})
    if user:
        return serialize_object_id(user)
    return None

async def get_users() -> List[Dict[str, Any]]:
    return await _collect(users_collection.find().sort("username", 1))

async def update_user(user_id: str, update_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(user_id):
        return None

    result = await users_collection.update_one(
        {"_id": ObjectId(user_id)},
        {"$set": update_data}
    )

    if result.matched_count == 0:
        return None

    # Return the updated user
    return await get_user_by_id(user_id)

# Project operations
async def create_project(project_data: Dict[str, Any]) -> str:
    project_data["created_at"] = datetime.utcnow()
    result = await projects_collection.insert_one(project_data)
    return str(result.inserted_id)

async def get_project(project_id: str, session=None) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(project_id):
        return None
    project = await projects_collection.find_one({"_id": ObjectId(project_id)}, session=session)
    if project:
        return serialize_object_id(project)
    return None

async def get_projects() -> List[Dict[str, Any]]:
    return await _collect(projects_collection.find().sort("name", 1))

# Purchase request operations
async def create_purchase_request(
    request_data: Dict[str, Any],
    items: List[Dict[str, Any]],
    session=None
) -> str:
    now = datetime.utcnow()
    request_data["created_at"] = now
    request_data["updated_at"] = now
    request_data["version"] = 1
    result = await purchase_requests_collection.insert_one(request_data, session=session)
    request_id = str(result.inserted_id)

    line_docs = []
    for item in items:
        line_docs.append({
            **item,
            "request_id": request_id,
            "created_at": now,
            "updated_at": now,
            "version": 1
        })
    if line_docs:
        await request_items_collection.insert_many(line_docs, ordered=True, session=session)

    return request_id

async def get_purchase_request(request_id: str, session=None) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(request_id):
        return None
    request = await purchase_requests_collection.find_one({"_id": ObjectId(request_id)}, session=session)
    if request:
        return serialize_object_id(request)
    return None

async def get_requests_by_requester(user_id: str) -> List[Dict[str, Any]]:
    cursor = purchase_requests_collection.find({"requested_by": user_id}).sort("created_at", -1)
    return await _collect(cursor)

async def get_requests_by_status(statuses: List[str]) -> List[Dict[str, Any]]:
    if not statuses:
        return []
    cursor = purchase_requests_collection.find({"status": {"$in": statuses}}).sort("created_at", -1)
    return await _collect(cursor)

async def get_requests_by_ids(request_ids: List[str]) -> List[Dict[str, Any]]:
    object_ids = [ObjectId(rid) for rid in request_ids if ObjectId.is_valid(rid)]
    if not object_ids:
        return []
    cursor = purchase_requests_collection.find({"_id": {"$in": object_ids}}).sort("created_at", -1)
    return await _collect(cursor)

async def update_purchase_request(
    request_id: str,
    update_data: Dict[str, Any],
    expected_version: Optional[int] = None,
    session=None
) -> bool:
    """
    Apply ``update_data`` to a purchase request. When ``expected_version`` is
    given the write only lands if the stored version still matches; returns
    False when nothing matched.
    """
    if not ObjectId.is_valid(request_id):
        return False
    result = await purchase_requests_collection.update_one(
        _versioned_filter(request_id, expected_version),
        {"$set": {**update_data, "updated_at": datetime.utcnow()}, "$inc": {"version": 1}},
        session=session
    )
    return result.matched_count > 0

async def get_request_items(request_id: str, session=None) -> List[Dict[str, Any]]:
    cursor = request_items_collection.find(
        {"request_id": request_id},
        session=session
    ).sort([("created_at", 1), ("_id", 1)])
    return await _collect(cursor)

async def get_request_item(item_id: str, session=None) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(item_id):
        return None
    item = await request_items_collection.find_one({"_id": ObjectId(item_id)}, session=session)
    if item:
        return serialize_object_id(item)
    return None

async def update_request_item(
    item_id: str,
    update_data: Dict[str, Any],
    expected_version: Optional[int] = None,
    session=None
) -> bool:
    if not ObjectId.is_valid(item_id):
        return False
    result = await request_items_collection.update_one(
        _versioned_filter(item_id, expected_version),
        {"$set": {**update_data, "updated_at": datetime.utcnow()}, "$inc": {"version": 1}},
        session=session
    )
    return result.matched_count > 0

# Workflow event operations (append-only)
async def add_workflow_event(event_data: Dict[str, Any], session=None) -> str:
    event_data["created_at"] = datetime.utcnow()
    result = await request_events_collection.insert_one(event_data, session=session)
    return str(result.inserted_id)

async def get_request_events(request_id: str) -> List[Dict[str, Any]]:
    cursor = request_events_collection.find({"request_id": request_id}).sort([("created_at", 1), ("_id", 1)])
    return await _collect(cursor)

async def get_request_ids_by_actor(user_id: str) -> List[str]:
    return await request_events_collection.distinct("request_id", {"performed_by": user_id})

# Inventory operations
async def add_inventory_item(item_data: Dict[str, Any], session=None) -> str:
    item_data["created_at"] = datetime.utcnow()
    result = await inventory_collection.insert_one(item_data, session=session)
    return str(result.inserted_id)

async def get_inventory_item(item_id: str, session=None) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(item_id):
        return None
    item = await inventory_collection.find_one({"_id": ObjectId(item_id)}, session=session)
    if item:
        return serialize_object_id(item)
    return None

async def get_inventory_items(location: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
    query = {}
    if location:
        query["location"] = location
    if category:
        query["category"] = category
    return await _collect(inventory_collection.find(query).sort("name", 1))

async def update_inventory_quantity(item_id: str, quantity_change: float, session=None) -> bool:
    if not ObjectId.is_valid(item_id):
        return False
    result = await inventory_collection.update_one(
        {"_id": ObjectId(item_id)},
        {"$inc": {"quantity": quantity_change}},
        session=session
    )
    return result.matched_count > 0

async def update_inventory_item(item_id: str, update_data: Dict[str, Any], session=None) -> bool:
    if not ObjectId.is_valid(item_id):
        return False
    result = await inventory_collection.update_one(
        {"_id": ObjectId(item_id)},
        {"$set": update_data},
        session=session
    )
    return result.matched_count > 0

async def delete_inventory_item(item_id: str) -> bool:
    if not ObjectId.is_valid(item_id):
        return False
    result = await inventory_collection.delete_one({"_id": ObjectId(item_id)})
    return result.deleted_count > 0

# Stock verification operations
async def add_stock_verification(verification_data: Dict[str, Any]) -> str:
    verification_data["created_at"] = datetime.utcnow()
    result = await stock_verifications_collection.insert_one(verification_data)
    return str(result.inserted_id)

async def get_stock_verifications(item_id: str) -> List[Dict[str, Any]]:
    cursor = stock_verifications_collection.find({"item_id": item_id}).sort([("verified_at", -1), ("created_at", -1)])
    return await _collect(cursor)
