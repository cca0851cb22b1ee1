"""Database operations for users."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from advisor_engine.context.models import UserProfile
from advisor_engine.core.schemas_chat import User, UserCreate, UserUpdate
from advisor_engine.db.supabase_client import get_supabase as get_client


def _dump_session(session) -> Optional[dict]:
    if session is None:
        return None
    return session.model_dump(by_alias=True, exclude_none=True)


async def get_user_by_id(user_id: UUID) -> Optional[User]:
    """Get a user by ID."""
    client = get_client()
    result = client.table("users").select("*").eq("id", str(user_id)).execute()
    if result.data:
        return User(**result.data[0])
    return None


async def get_user_by_email(email: str) -> Optional[User]:
    """Get a user by email."""
    client = get_client()
    result = client.table("users").select("*").eq("email", email.lower()).execute()
    if result.data:
        return User(**result.data[0])
    return None


async def create_user(data: UserCreate) -> User:
    """Create a new user."""
    client = get_client()
    user_data = {
        "email": data.email.lower(),
        "name": data.name,
        "role": data.role,
        "custom_role": data.custom_role,
        "topic": data.topic,
        "custom_topic": data.custom_topic,
        "identification": data.identification,
        "data_access": data.data_access,
        "microsoft_session": _dump_session(data.microsoft_session),
    }
    result = client.table("users").insert(user_data).execute()
    return User(**result.data[0])


async def update_user(user_id: UUID, data: UserUpdate) -> Optional[User]:
    """Update a user."""
    client = get_client()
    update_data = {
        k: v for k, v in data.model_dump(exclude={"microsoft_session"}).items() if v is not None
    }
    if data.microsoft_session is not None:
        update_data["microsoft_session"] = _dump_session(data.microsoft_session)
    if not update_data:
        return await get_user_by_id(user_id)

    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
    result = client.table("users").update(update_data).eq("id", str(user_id)).execute()
    if result.data:
        return User(**result.data[0])
    return None


async def get_or_create_user(
    email: str,
    profile: UserProfile,
    name: Optional[str] = None,
    refresh_profile: bool = True,
) -> tuple[User, bool]:
    """
    Find the user for an email or create one from the chat profile.

    An existing user's profile fields are refreshed from the profile only
    when refresh_profile is set, i.e. when the email was verified.

    Returns:
        (user, created)
    """
    fields = {
        "role": profile.role,
        "custom_role": profile.custom_role,
        "topic": profile.topic,
        "custom_topic": profile.custom_topic,
        "identification": profile.identification,
        "data_access": list(profile.data_access),
        "microsoft_session": profile.federated_session,
    }

    existing = await get_user_by_email(email)
    if existing:
        if not refresh_profile:
            return existing, False
        updated = await update_user(existing.id, UserUpdate(name=name, **fields))
        return updated or existing, False

    user = await create_user(UserCreate(email=email, name=name, **fields))
    return user, True
