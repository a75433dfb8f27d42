from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from bizdesk.actions.executor import ActionExecutor
from bizdesk.database import get_db
from bizdesk.models.action_context import RequestMetadata
from bizdesk.services.identity import JWTIdentityProvider

# auto_error=False: a missing token must reach the executor so it can return
# the structured auth_required result
security = HTTPBearer(auto_error=False)


def get_request_metadata(request: Request) -> RequestMetadata:
    """
    Client IP and user agent for audit rows.

    IP precedence: first X-Forwarded-For entry, then X-Real-IP, then the
    socket peer.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    else:
        ip_address = request.headers.get("x-real-ip") or (
            request.client.host if request.client else None
        )
    return RequestMetadata(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


async def get_action_executor(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    metadata: RequestMetadata = Depends(get_request_metadata),
    db: Session = Depends(get_db),
) -> ActionExecutor:
    """
    FastAPI dependency building the executor for one request.

    Authentication is deferred: the JWT is only validated when the action
    pipeline reaches its authenticate stage.
    """
    token = credentials.credentials if credentials else None
    return ActionExecutor(db, JWTIdentityProvider(db, token), request=metadata)
