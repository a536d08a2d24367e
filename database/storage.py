import os
import shutil
from datetime import datetime
from typing import BinaryIO

from dotenv import load_dotenv

from logging_config import logger

load_dotenv()

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

# Public mount points (see main.py)
REQUEST_PHOTOS_URL = "/request-photos"
INVENTORY_IMAGES_URL = "/inventory-images"

REQUEST_PHOTOS_DIR = os.path.join(UPLOAD_DIR, "requests")
INVENTORY_IMAGES_DIR = os.path.join(UPLOAD_DIR, "inventory")

def line_photo_path(request_id: str, item_id: str, slot: int, filename: str, now: datetime = None) -> str:
    """Relative object path for a received-condition photo of one line."""
    now = now or datetime.utcnow()
    extension = os.path.splitext(filename or "")[1].lower()
    timestamp = now.strftime("%Y%m%d%H%M%S%f")
    return f"{request_id}/{item_id}/photo{slot}-{timestamp}{extension}"

def _write(base_dir: str, relative_path: str, fileobj: BinaryIO) -> None:
    destination = os.path.join(base_dir, *relative_path.split("/"))
    os.makedirs(os.path.dirname(destination), exist_ok=True)
    logger.debug(f"Saving upload to: {destination}")
    with open(destination, "wb") as buffer:
        shutil.copyfileobj(fileobj, buffer)

async def save_line_photo(request_id: str, item_id: str, slot: int, filename: str, fileobj: BinaryIO) -> str:
    """Store a line photo and return its public URL."""
    relative_path = line_photo_path(request_id, item_id, slot, filename)
    _write(REQUEST_PHOTOS_DIR, relative_path, fileobj)
    return f"{REQUEST_PHOTOS_URL}/{relative_path}"

async def save_inventory_image(image_name: str, fileobj: BinaryIO) -> str:
    _write(INVENTORY_IMAGES_DIR, image_name, fileobj)
    return f"{INVENTORY_IMAGES_URL}/{image_name}"
