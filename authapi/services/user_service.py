"""
User Service
Admin user management and self-service profile updates
"""

from typing import Dict, List, Optional
import logging

from authapi.models.user import CurrentUser, User, UserRole
from authapi.utils.database import UserStore
from authapi.utils.errors import Forbidden, NotFound, ValidationError
from authapi.utils.logger import get_audit_logger

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("full_name", "avatar_url")


class UserService:
    """User management operations on top of the user store"""

    def __init__(self, store: UserStore):
        self.store = store
        self.audit = get_audit_logger()

    async def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        """List users, newest first, optionally filtered by role"""
        return await self.store.find_all(role)

    async def get_user(self, user_id: str) -> User:
        user = await self.store.find_by_id(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def update_user_role(self, actor: CurrentUser, user_id: str, role: UserRole) -> User:
        """
        Change another user's role

        Args:
            actor: Admin performing the change
            user_id: Target user ID
            role: New role

        Returns:
            User: Updated user

        Raises:
            Forbidden: If the admin targets their own account
            NotFound: If the target user does not exist
        """
        if str(user_id) == actor.id:
            raise Forbidden("You cannot change your own role")

        user = await self.store.update_role(str(user_id), role)
        self.audit.log_admin_action(actor.id, "update_role", str(user_id), {"role": user.role.value})
        return user

    async def delete_user(self, actor: CurrentUser, user_id: str) -> None:
        """
        Delete another user's account

        Raises:
            Forbidden: If the admin targets their own account
            NotFound: If the target user does not exist
        """
        if str(user_id) == actor.id:
            raise Forbidden("You cannot delete your own account")

        await self.store.delete(str(user_id))
        self.audit.log_admin_action(actor.id, "delete_user", str(user_id))

    async def update_profile(self, user_id: str, updates: Dict) -> User:
        """
        Update the caller's own profile

        Only full_name and avatar_url can be changed here; role changes go
        through update_user_role.
        """
        updates = {k: v for k, v in updates.items() if k in PROFILE_FIELDS and v}
        if not updates:
            raise ValidationError("No valid fields to update")

        user = await self.store.update(user_id, updates)
        logger.info(f"Profile updated: {user.email}")
        return user
