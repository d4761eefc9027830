"""
Session/auth collaborator interface.

The tracker only ever asks two questions: is anyone signed in, and what is
the current access token. Hosts adapt their own auth service to this shape.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from .models import AuthSession


class AuthProvider(Protocol):
    async def is_authenticated(self) -> bool: ...

    async def current_session(self) -> Optional[AuthSession]: ...


class StaticTokenAuthProvider:
    """AuthProvider backed by a token the host sets and clears explicitly.

    Example:
        auth = StaticTokenAuthProvider()
        auth.sign_in("eyJhbGciOi...", expires_at=session.expires_at)
        ...
        auth.sign_out()
    """

    def __init__(self, access_token: Optional[str] = None, expires_at: Optional[datetime] = None):
        self._session: Optional[AuthSession] = None
        if access_token:
            self.sign_in(access_token, expires_at=expires_at)

    def sign_in(self, access_token: str, *, expires_at: Optional[datetime] = None) -> None:
        self._session = AuthSession(access_token=access_token, expires_at=expires_at)

    def sign_out(self) -> None:
        self._session = None

    async def is_authenticated(self) -> bool:
        return self._session is not None

    async def current_session(self) -> Optional[AuthSession]:
        return self._session
