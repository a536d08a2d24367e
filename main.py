import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
import traceback
from starlette.middleware.base import BaseHTTPMiddleware

# Import logging
from logging_config import logger, log_request_info, log_response_info

# Import routers
from routers import purchase_requests, events, inventory, projects, users
from database.db import init_db
from database.storage import (
    REQUEST_PHOTOS_DIR,
    REQUEST_PHOTOS_URL,
    INVENTORY_IMAGES_DIR,
    INVENTORY_IMAGES_URL,
)

# Create FastAPI app
app = FastAPI(
    title="StokStak Purchasing API",
    description="""
    # StokStak Purchasing API

    Inventory tracking and purchase-request workflow for companies that manage
    tools and equipment across projects and locations.

    ## Features

    - **Purchase Requests**: Raise requests with line items against a project
    - **Approval Workflow**: submitted → PM approved → president approved → purchased → delivered → received
    - **Line Decisions**: Approve (fully or partially) or reject individual lines
    - **Receiving**: Track purchased, delivered and received quantities and photos per line
    - **Receive into Stock**: Turn received quantities into inventory
    - **Inventory**: Track items, locations and stock verifications
    - **History**: Every workflow action is recorded as an event

    ## Roles and Capabilities

    - **requester**: Raises purchase requests
    - **pm**: First approval
    - **president**: Second approval
    - **purchaser** / `can_purchase`: Marks requests purchased and delivered
    - `can_receive`: Marks requests received and receives them into stock
    - **admin**: Every action

    ## Authentication

    All endpoints require a bearer token issued by the identity provider:

    ```
    Authorization: Bearer your_access_token
    ```
    """,
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Purchase Requests",
            "description": "Purchase request workflow: approvals, line decisions, receiving and stocking"
        },
        {
            "name": "Events",
            "description": "Workflow event history"
        },
        {
            "name": "Inventory",
            "description": "Inventory items and stock verifications"
        },
        {
            "name": "Projects",
            "description": "Projects that purchase requests are raised against"
        },
        {
            "name": "Users",
            "description": "User roles and capability flags"
        },
        {
            "name": "Root",
            "description": "Root endpoint for the API"
        }
    ]
)

# Logging middleware
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        log_request_info(request)
        try:
            response = await call_next(request)
            log_response_info(response)
            return response
        except Exception as e:
            logger.error(f"Request failed: {str(e)}")
            logger.error(traceback.format_exc())
            raise

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount static files for received-condition photos
os.makedirs(REQUEST_PHOTOS_DIR, exist_ok=True)
app.mount(REQUEST_PHOTOS_URL, StaticFiles(directory=REQUEST_PHOTOS_DIR), name="request_photos")

# Mount static files for inventory images
os.makedirs(INVENTORY_IMAGES_DIR, exist_ok=True)
app.mount(INVENTORY_IMAGES_URL, StaticFiles(directory=INVENTORY_IMAGES_DIR), name="inventory_images")

# Include routers
app.include_router(purchase_requests.router, prefix="/purchase-requests", tags=["Purchase Requests"])
app.include_router(events.router, prefix="/events", tags=["Events"])
app.include_router(inventory.router, prefix="/inventory", tags=["Inventory"])
app.include_router(projects.router, prefix="/projects", tags=["Projects"])
app.include_router(users.router, prefix="/users", tags=["Users"])

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    logger.info("Root endpoint accessed")
    return {"message": "Welcome to StokStak Purchasing API"}

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.error(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred"}
    )

# Startup event to initialize database
@app.on_event("startup")
async def startup_event():
    logger.info("Starting application...")
    await init_db()
    logger.info("Application started successfully")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
