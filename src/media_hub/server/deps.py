"""FastAPI dependencies: services and the authenticated owner."""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..common.exceptions import AuthenticationError
from ..services import Services
from ..store.models import Owner

security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: Services = Depends(get_services),
) -> Owner:
    """Resolve the bearer token to an owner.

    Raises:
        AuthenticationError: If the token is missing or unknown
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing bearer token")

    email = services.settings.api_tokens.get(credentials.credentials)
    if not email:
        raise AuthenticationError("Unknown bearer token")
    return Owner(id=email, email=email)
