"""Role resolution: maps an authenticated actor to a Role via their stored profile."""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from documove.domain.enums import Role
from documove.domain.errors import ProfileNotFoundError
from documove.domain.models import Profile
from documove.domain.schemas import ProfileRecord, load_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleFallbackPolicy:
    """What to do when an actor has no stored profile.

    The default keeps the workflow available by assuming ``default_role``;
    ``strict=True`` surfaces ProfileNotFoundError to the caller instead.
    """

    default_role: Role = Role.AGENT
    strict: bool = False

    def resolve(self, error: ProfileNotFoundError) -> Role:
        if self.strict:
            raise error
        logger.warning(
            "No profile for actor %s, falling back to role %s",
            error.actor_id,
            self.default_role.value,
        )
        return self.default_role

    @classmethod
    def from_settings(cls, settings) -> "RoleFallbackPolicy":
        return cls(default_role=Role(settings.default_role), strict=settings.strict_role_resolution)


class RoleResolver:
    """Looks up actor profiles and resolves their role."""

    def __init__(self, db: AsyncSession, fallback: RoleFallbackPolicy | None = None):
        self.db = db
        self.fallback = fallback or RoleFallbackPolicy()

    async def get_profile(self, actor_id: str) -> ProfileRecord:
        """Return the actor's validated profile or raise ProfileNotFoundError."""
        result = await self.db.execute(select(Profile).where(Profile.id == actor_id))
        profile = result.scalar_one_or_none()
        if profile is None:
            raise ProfileNotFoundError(actor_id)
        return load_record(ProfileRecord, profile)

    async def resolve_role(self, actor_id: str) -> Role:
        """Return the actor's role, applying the fallback policy when no profile exists."""
        try:
            profile = await self.get_profile(actor_id)
        except ProfileNotFoundError as e:
            return self.fallback.resolve(e)
        return profile.role
