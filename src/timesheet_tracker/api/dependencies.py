"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_tracker.exceptions import AuthenticationError
from timesheet_tracker.services.auth_service import AuthService
from timesheet_tracker.services.policy import Actor

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_actor(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Actor:
    """Resolve the bearer token into a verified actor."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError()
    return await AuthService(db).authenticate(credentials.credentials)


def get_client_ip(request: Request) -> str | None:
    """Client address, honouring X-Forwarded-For from a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
ClientIp = Annotated[str | None, Depends(get_client_ip)]
