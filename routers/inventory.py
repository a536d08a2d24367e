from fastapi import APIRouter, Depends, HTTPException, status, Body, UploadFile, File, Form
from typing import Annotated, List, Optional
from datetime import date, datetime
import traceback
import os
import uuid

from models.inventory import InventoryItem, StockVerification, StockVerificationCreate
from models.user import Actor, UserRole
from database.operations import (
    add_inventory_item,
    get_inventory_item,
    get_inventory_items,
    update_inventory_item,
    delete_inventory_item,
    add_stock_verification,
    get_stock_verifications
)
from database.storage import save_inventory_image
from routers.auth import get_current_actor, check_user_role
from logging_config import logger

router = APIRouter()

async def store_item_image(upload: Optional[UploadFile]) -> Optional[str]:
    """Save an uploaded item image under a random name; returns its URL or None."""
    if not upload:
        return None
    try:
        file_extension = os.path.splitext(upload.filename or "")[1]
        return await save_inventory_image(f"{uuid.uuid4()}{file_extension}", upload.file)
    finally:
        upload.file.close()

# Add inventory item
@router.post(
    "",
    response_model=InventoryItem,
    status_code=status.HTTP_201_CREATED,
    summary="Add inventory item",
    description="""
    Add a new tool or piece of equipment to the inventory.

    The inventory item includes details such as name, quantity, category and
    location. Up to two images can be uploaded.

    An initial stock verification is recorded for the created quantity unless
    `verify_on_create` is false.
    """,
    response_description="Returns the newly created inventory item with an ID and creation timestamp"
)
async def add_item_to_inventory(
    actor: Annotated[Actor, Depends(get_current_actor)],
    name: str = Form(..., description="Name of the inventory item", examples=["Hilti TE 30 rotary hammer"]),
    quantity: float = Form(..., description="Quantity of the item", examples=[2]),
    description: Optional[str] = Form(None, description="Description of the item"),
    category: Optional[str] = Form(None, description="Category name", examples=["Power tools"]),
    location: Optional[str] = Form(None, description="Storage location", examples=["Main yard"]),
    te_number: Optional[str] = Form(None, description="Tool/equipment tag number", examples=["TE-0042"]),
    unit: Optional[str] = Form(None, description="Unit of measurement", examples=["ea"]),
    purchase_price: Optional[float] = Form(None, description="Purchase price per unit"),
    purchase_date: Optional[date] = Form(None, description="Purchase date in YYYY-MM-DD format"),
    verify_on_create: bool = Form(True, description="Record an initial stock verification"),
    verify_notes: Optional[str] = Form(None, description="Notes for the initial verification"),
    item_image: Optional[UploadFile] = File(None, description="Primary image of the item"),
    item_image_2: Optional[UploadFile] = File(None, description="Secondary image of the item")
):
    if not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Item name is required.")
    if quantity <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be a positive number.")

    try:
        logger.info(f"Adding inventory item: {name}")

        image_urls = [await store_item_image(upload) for upload in (item_image, item_image_2)]

        item_data = {
            "name": name.strip(),
            "description": (description or "").strip() or None,
            "category": category or None,
            "location": location or None,
            "te_number": (te_number or "").strip() or None,
            "quantity": quantity,
            "unit": unit or None,
            "image_url": image_urls[0],
            "image_url_2": image_urls[1],
            "purchase_price": purchase_price,
            "purchase_date": purchase_date.isoformat() if purchase_date else None,
            "created_by": actor.id
        }

        item_id = await add_inventory_item(item_data)
        logger.debug(f"Inventory item created with ID: {item_id}")

        # Optional initial verification; the item stands even if this fails
        if verify_on_create:
            try:
                await add_stock_verification({
                    "item_id": item_id,
                    "verified_at": date.today().isoformat(),
                    "verified_qty": quantity,
                    "notes": (verify_notes or "").strip() or "Initial stock on creation",
                    "verified_by": actor.id
                })
            except Exception as e:
                logger.error(f"Error recording initial verification for item {item_id}: {str(e)}")

        logger.info(f"Inventory item added successfully: {name}, ID: {item_id}")
        return {**item_data, "id": item_id, "created_at": datetime.utcnow()}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error adding inventory item: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save item. Please try again."
        )

# List inventory items
@router.get(
    "",
    response_model=List[InventoryItem],
    summary="List inventory items",
    description="All inventory items, optionally filtered by location or category."
)
async def list_inventory_items(
    actor: Annotated[Actor, Depends(get_current_actor)],
    location: Optional[str] = None,
    category: Optional[str] = None
):
    try:
        items = await get_inventory_items(location=location, category=category)
        logger.debug(f"Found {len(items)} inventory items")
        return items
    except Exception as e:
        logger.error(f"Error getting inventory items: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error getting inventory items"
        )

# Get inventory item
@router.get(
    "/{item_id}",
    response_model=InventoryItem,
    summary="Get inventory item"
)
async def read_inventory_item(item_id: str, actor: Annotated[Actor, Depends(get_current_actor)]):
    item = await get_inventory_item(item_id)
    if not item:
        logger.warning(f"Inventory item not found: {item_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inventory item not found"
        )
    return item

# Edit inventory item
@router.patch(
    "/{item_id}",
    response_model=InventoryItem,
    summary="Edit inventory item",
    description="""
    Update an inventory item as multipart/form-data. Only the fields sent are
    written; an uploaded image replaces the image in that slot.

    `quantity` may be set to 0 but not below.
    """
)
async def edit_inventory_item(
    item_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    name: Optional[str] = Form(None, description="Name of the inventory item"),
    description: Optional[str] = Form(None, description="Description of the item"),
    category: Optional[str] = Form(None, description="Category name"),
    location: Optional[str] = Form(None, description="Storage location"),
    te_number: Optional[str] = Form(None, description="Tool/equipment tag number"),
    quantity: Optional[float] = Form(None, description="Quantity of the item", examples=[3]),
    unit: Optional[str] = Form(None, description="Unit of measurement"),
    purchase_price: Optional[float] = Form(None, description="Purchase price per unit"),
    purchase_date: Optional[date] = Form(None, description="Purchase date in YYYY-MM-DD format"),
    item_image: Optional[UploadFile] = File(None, description="Replacement primary image"),
    item_image_2: Optional[UploadFile] = File(None, description="Replacement secondary image")
):
    if name is not None and not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Item name is required.")
    if quantity is not None and quantity < 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity cannot be negative.")

    try:
        item = await get_inventory_item(item_id)
        if not item:
            logger.warning(f"Inventory item not found: {item_id}")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Inventory item not found"
            )

        sent = {
            "name": name.strip() if name is not None else None,
            "description": description.strip() if description is not None else None,
            "category": category,
            "location": location,
            "te_number": te_number.strip() if te_number is not None else None,
            "quantity": quantity,
            "unit": unit,
            "purchase_price": purchase_price,
            "purchase_date": purchase_date.isoformat() if purchase_date else None,
        }
        update_data = {field: value for field, value in sent.items() if value is not None}

        for field, upload in (("image_url", item_image), ("image_url_2", item_image_2)):
            if upload:
                update_data[field] = await store_item_image(upload)

        if update_data:
            logger.info(f"Updating inventory item {item_id} by {actor.id}: {sorted(update_data)}")
            await update_inventory_item(item_id, update_data)
        return await get_inventory_item(item_id)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating inventory item: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error saving item. Please try again."
        )

# Delete inventory item (admin only)
@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete inventory item (Admin only)",
    description="Permanently remove an inventory item. Accessible only to users with the **admin** role."
)
async def remove_inventory_item(
    item_id: str,
    actor: Annotated[Actor, Depends(check_user_role([UserRole.ADMIN]))]
):
    item = await get_inventory_item(item_id)
    if not item:
        logger.warning(f"Inventory item not found: {item_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inventory item not found"
        )

    deleted = await delete_inventory_item(item_id)
    if not deleted:
        logger.error(f"Failed to delete inventory item {item_id}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error deleting item. Please try again."
        )

    logger.info(f"Inventory item {item_id} ({item['name']}) deleted by {actor.id}")
    return None

# Record a stock verification
@router.post(
    "/{item_id}/verifications",
    response_model=StockVerification,
    status_code=status.HTTP_201_CREATED,
    summary="Record stock verification",
    description="""
    Record that the quantity of an item was physically counted.

    `verified_at` defaults to today.
    """
)
async def record_stock_verification(
    item_id: str,
    actor: Annotated[Actor, Depends(get_current_actor)],
    verification: StockVerificationCreate = Body(
        ...,
        examples=[{"verified_qty": 3, "verified_at": "2026-10-17", "notes": "Counted in main yard"}]
    )
):
    try:
        item = await get_inventory_item(item_id)
        if not item:
            logger.warning(f"Inventory item not found: {item_id}")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Inventory item not found"
            )

        verification_data = {
            "item_id": item_id,
            "verified_at": verification.verified_at.isoformat(),
            "verified_qty": verification.verified_qty,
            "notes": (verification.notes or "").strip() or None,
            "verified_by": actor.id
        }
        verification_id = await add_stock_verification(verification_data)
        logger.info(f"Stock verification {verification_id} recorded for item {item_id}")
        return {**verification_data, "id": verification_id}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error recording stock verification: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error recording stock verification"
        )

# List stock verifications
@router.get(
    "/{item_id}/verifications",
    response_model=List[StockVerification],
    summary="List stock verifications",
    description="Stock verifications for an item, newest first."
)
async def list_stock_verifications(item_id: str, actor: Annotated[Actor, Depends(get_current_actor)]):
    item = await get_inventory_item(item_id)
    if not item:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Inventory item not found"
        )
    return await get_stock_verifications(item_id)
