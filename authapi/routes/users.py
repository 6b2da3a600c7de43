"""
User Management Routes
Admin user administration and self-service profile updates
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query
import logging

from authapi.models.user import UpdateProfileRequest, UpdateRoleRequest, UserResponse, UserRole
from authapi.utils.dependencies import AdminUserDep, CurrentUserDep, UserServiceDep

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_payload(user) -> dict:
    return UserResponse.from_user(user).model_dump(mode="json")


@router.patch("/profile/me")
async def update_profile(
    payload: UpdateProfileRequest,
    current_user: CurrentUserDep,
    user_service: UserServiceDep
):
    """Update own profile (full_name, avatar_url)"""
    user = await user_service.update_profile(current_user.id, payload.to_updates())
    return {
        "success": True,
        "message": "Profile updated successfully",
        "data": {"user": _user_payload(user)}
    }


@router.get("")
async def list_users(
    admin: AdminUserDep,
    user_service: UserServiceDep,
    role: Optional[UserRole] = Query(None, description="Filter by role")
):
    """Get all users, newest first (admin only)"""
    users = await user_service.list_users(role)
    return {
        "success": True,
        "data": {
            "users": [_user_payload(user) for user in users],
            "count": len(users)
        }
    }


@router.get("/{user_id}")
async def get_user(user_id: UUID, admin: AdminUserDep, user_service: UserServiceDep):
    """Get user by ID (admin only)"""
    user = await user_service.get_user(str(user_id))
    return {
        "success": True,
        "data": {"user": _user_payload(user)}
    }


@router.patch("/{user_id}/role")
async def update_user_role(
    user_id: UUID,
    payload: UpdateRoleRequest,
    admin: AdminUserDep,
    user_service: UserServiceDep
):
    """Update another user's role (admin only)"""
    user = await user_service.update_user_role(admin, str(user_id), payload.role)
    logger.info(f"User {user_id} role set to {user.role.value} by {admin.email}")
    return {
        "success": True,
        "message": "User role updated successfully",
        "data": {"user": _user_payload(user)}
    }


@router.delete("/{user_id}")
async def delete_user(user_id: UUID, admin: AdminUserDep, user_service: UserServiceDep):
    """Delete another user (admin only)"""
    await user_service.delete_user(admin, str(user_id))
    logger.info(f"User {user_id} deleted by {admin.email}")
    return {
        "success": True,
        "message": "User deleted successfully"
    }
