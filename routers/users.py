from fastapi import APIRouter, Depends, HTTPException, status, Body
from typing import Annotated, List
import traceback

from models.user import Actor, User, UserRole, UserUpdate
from database.operations import get_users, get_user_by_id, update_user
from routers.auth import get_current_actor, check_user_role
from logging_config import logger

router = APIRouter()

# Current user profile
@router.get(
    "/me",
    response_model=Actor,
    summary="Get current user",
    description="The current user's role and capability flags as the workflow sees them."
)
async def read_users_me(actor: Annotated[Actor, Depends(get_current_actor)]):
    return actor

# Get all users (admin only)
@router.get(
    "",
    response_model=List[User],
    summary="Get all users (Admin only)",
    description="""
    Retrieve a list of all users with their role and capability flags.

    This endpoint is accessible only to users with the **admin** role.
    """,
    response_description="Returns a list of all users"
)
async def read_users(
    current_user: Annotated[Actor, Depends(check_user_role([UserRole.ADMIN]))]
):
    try:
        logger.info("Getting all users")
        users = await get_users()
        logger.info(f"Retrieved {len(users)} users")
        return users
    except Exception as e:
        logger.error(f"Error retrieving users: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error retrieving users"
        )

# Update role and capabilities (admin only)
@router.patch(
    "/{user_id}",
    response_model=User,
    summary="Update user role and capabilities (Admin only)",
    description="""
    Update a user's display name, role, `can_purchase` or `can_receive` flag.

    This endpoint is accessible only to users with the **admin** role.
    Fields that are not provided remain unchanged.
    """,
    response_description="Returns the updated user information"
)
async def update_user_capabilities(
    user_id: str,
    current_user: Annotated[Actor, Depends(check_user_role([UserRole.ADMIN]))],
    user_update: UserUpdate = Body(
        ...,
        examples=[{"role": "purchaser", "can_purchase": True, "can_receive": True}]
    )
):
    try:
        logger.info(f"Updating user {user_id}")

        existing_user = await get_user_by_id(user_id)
        if not existing_user:
            logger.warning(f"User not found with ID: {user_id}")
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )

        update_data = {k: v for k, v in user_update.model_dump().items() if v is not None}
        if "role" in update_data:
            update_data["role"] = UserRole(update_data["role"]).value
        if not update_data:
            logger.warning("No valid update data provided")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No valid update data provided"
            )

        # An admin may not drop their own admin role
        if user_id == current_user.id and update_data.get("role", UserRole.ADMIN.value) != UserRole.ADMIN.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot remove your own admin role"
            )

        updated_user = await update_user(user_id, update_data)
        if not updated_user:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to update user"
            )

        logger.info(f"User {user_id} updated: {update_data}")
        return updated_user
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error updating user"
        )
