from functools import lru_cache

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import InsufficientRole, InvalidToken, MissingToken
from .schemas import Role, TokenIdentity
from .security import decode_access_token
from .storage import StorageGateway, create_storage

# Missing credentials are reported as MissingToken rather than FastAPI's default.
security = HTTPBearer(auto_error=False)


@lru_cache
def get_storage() -> StorageGateway:
    return create_storage()


def get_current_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenIdentity:
    if credentials is None or not credentials.credentials:
        raise MissingToken()
    return decode_access_token(credentials.credentials)


def require_admin(identity: TokenIdentity = Depends(get_current_identity)) -> TokenIdentity:
    if identity.role is Role.ADMIN:
        return identity
    if identity.role is Role.USER:
        raise InsufficientRole()
    raise InvalidToken()
