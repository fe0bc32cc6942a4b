"""Request dependencies: the authenticated actor, their role and the configured state machine."""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from documove.app.config import get_settings
from documove.domain.enums import Role
from documove.domain.errors import WorkflowError
from documove.infra.database import get_db
from documove.services.auth_service import decode_token
from documove.services.milestone_state_machine import MilestoneStateMachine
from documove.services.role_resolver import RoleFallbackPolicy, RoleResolver


@dataclass(frozen=True)
class Actor:
    """Authenticated caller with their resolved role."""

    id: str
    role: Role


def http_error(e: WorkflowError) -> HTTPException:
    """Translate a workflow error into an HTTP error the dashboard can render inline."""
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def get_state_machine() -> MilestoneStateMachine:
    """Dependency: state machine configured with the policies from settings."""
    return MilestoneStateMachine.from_settings(get_settings())


async def get_current_actor_dep(
    request: Request, db: AsyncSession = Depends(get_db)
) -> Actor:
    """Dependency: extract the actor from the Bearer token and resolve their role."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid token",
        )
    token = auth_header.removeprefix("Bearer ")
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    resolver = RoleResolver(db, RoleFallbackPolicy.from_settings(get_settings()))
    try:
        role = await resolver.resolve_role(payload["sub"])
    except WorkflowError as e:
        raise http_error(e)
    return Actor(id=payload["sub"], role=role)


def require_role(*roles: Role):
    """Factory: dependency that checks the actor has one of the required roles."""

    async def checker(actor: Actor = Depends(get_current_actor_dep)):
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "permission_denied",
                    "message": f"This action is not available to the {actor.role.value}",
                },
            )
        return actor

    return checker
