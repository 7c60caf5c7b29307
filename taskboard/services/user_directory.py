"""User directory: resolves principal IDs to display names."""

import logging
from typing import Any

from taskboard.core import db_client
from taskboard.core.errors import UserNotFoundError
from taskboard.core.logging import span
from taskboard.domain.create_models import UserCreate
from taskboard.domain.user import User, UserRef


logger = logging.getLogger(__name__)


async def create_user(*, user: UserCreate) -> dict[str, Any]:
    """Create a user record.

    Args:
        user: Validated user payload

    Returns:
        Created user record
    """
    with span("user_directory.create_user"):
        record = await db_client.create_record(collection="users", data=user.model_dump())
        logger.info("Created user %s", user.name, extra={"user_id": record["id"]})
        return record


async def get_user(*, user_id: str) -> User:
    """Get a user by ID.

    Raises:
        UserNotFoundError: If no such user exists
    """
    with span("user_directory.get_user"):
        try:
            record = await db_client.get_record(collection="users", record_id=user_id)
        except db_client.RecordNotFoundError as e:
            raise UserNotFoundError(f"User not found: {user_id}") from e
        return User.model_validate(record)


async def lookup_names(*, user_ids: list[str]) -> list[UserRef]:
    """Resolve user IDs to ``{id, name}`` pairs, preserving the requested order.

    Args:
        user_ids: User IDs to resolve

    Returns:
        One UserRef per requested ID

    Raises:
        UserNotFoundError: If any ID does not exist
    """
    with span("user_directory.lookup_names"):
        refs: list[UserRef] = []
        for user_id in user_ids:
            user = await get_user(user_id=user_id)
            refs.append(UserRef(id=user.id, name=user.name))
        return refs
