"""FastAPI glue for identity resolution and session enforcement."""

from collections.abc import Awaitable, Callable
from datetime import timedelta

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from playerlink.config import get_settings
from playerlink.dependencies import get_db
from playerlink.directory import service as directory
from playerlink.errors import SessionInvalidError
from playerlink.identity.credentials import write_session
from playerlink.identity.resolver import Identity, resolve
from playerlink.identity.sources import RequestView
from playerlink.sessions import service as sessions


def identity_dependency(
    *,
    require_player_id: bool = False,
    require_session_id: bool = False,
    require_device_id: bool = False,
) -> Callable[..., Awaitable[Identity]]:
    """Build a dependency resolving the request identity with the given requirements."""

    async def dependency(
        request: Request,
        db: AsyncSession = Depends(get_db),  # noqa: B008
    ) -> Identity:
        view = await RequestView.from_request(request)
        return await resolve(
            view,
            db,
            require_player_id=require_player_id,
            require_session_id=require_session_id,
            require_device_id=require_device_id,
        )

    return dependency


get_identity = identity_dependency()
get_player_identity = identity_dependency(require_player_id=True)


async def require_active_session(
    request: Request,
    response: Response,
    identity: Identity = Depends(get_identity),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> Identity:
    """Gate a private endpoint on a valid session for the resolved player.

    Slides the session's expiry, re-issues the session cookie so the browser
    keeps it as long as the server does, and touches the device. Failures
    raise SessionInvalidError, whose handler also deletes the session cookie.
    """
    if identity.player_id is None or identity.session_id is None:
        raise SessionInvalidError("No session.")

    ttl = timedelta(hours=get_settings().session_ttl_hours)
    if not await sessions.validate(db, identity.player_id, identity.session_id, sliding=True, ttl=ttl):
        raise SessionInvalidError

    write_session(response, request, identity.session_id)

    if identity.device_id is not None:
        await directory.touch(
            db,
            directory.DeviceContext(
                player_id=identity.player_id,
                device_id=identity.device_id,
                player_short_id=identity.player_short_id or "",
            ),
        )
    return identity
