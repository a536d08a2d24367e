from contextlib import asynccontextmanager
import os

from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv

from logging_config import logger

# Load environment variables
load_dotenv()

# MongoDB connection string
MONGO_CONNECTION_STRING = os.getenv("MONGO_CONNECTION_STRING", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "stokstak")

# Multi-document transactions need a replica set; standalone servers leave this off
USE_TRANSACTIONS = os.getenv("MONGO_USE_TRANSACTIONS", "false").lower() in ("1", "true", "yes")

# Async client for API operations
async_client = AsyncIOMotorClient(MONGO_CONNECTION_STRING)
async_db = async_client[DATABASE_NAME]

# Collections
users_collection = async_db.users
projects_collection = async_db.projects
purchase_requests_collection = async_db.purchase_requests
request_items_collection = async_db.purchase_request_items
request_events_collection = async_db.purchase_request_events
inventory_collection = async_db.inventory_items
stock_verifications_collection = async_db.stock_verifications

@asynccontextmanager
async def start_transaction():
    """
    Yield a session bound to an open transaction, or None when transactions
    are disabled. Callers pass the yielded value as ``session=`` to every
    operation that must commit together.
    """
    if not USE_TRANSACTIONS:
        yield None
        return

    async with await async_client.start_session() as session:
        async with session.start_transaction():
            yield session

# Create indexes for better performance
async def create_indexes():
    # User indexes
    await users_collection.create_index("username", unique=True)

    # Project indexes
    await projects_collection.create_index("name")

    # Purchase request indexes
    await purchase_requests_collection.create_index("requested_by")
    await purchase_requests_collection.create_index("status")
    await purchase_requests_collection.create_index("project_id")

    # Line item indexes
    await request_items_collection.create_index([("request_id", 1), ("created_at", 1)])

    # Event indexes
    await request_events_collection.create_index([("request_id", 1), ("created_at", 1)])
    await request_events_collection.create_index("performed_by")

    # Stock verification indexes
    await stock_verifications_collection.create_index("item_id")

# Initialize database
async def init_db():
    try:
        await create_indexes()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Error initializing database: {e}")
