from __future__ import annotations

from collections.abc import Mapping

from ingestion_service.domain.interfaces import SessionProviderPort
from ingestion_service.domain.models import AuthSession

AUTHENTICATED_USER_HEADER = "X-Authenticated-User-Id"


class GatewayHeaderSessionProvider(SessionProviderPort):
    """Session resolved by the upstream auth gateway.

    The gateway validates the caller's token and forwards the user id in
    ``X-Authenticated-User-Id``; requests without it are unauthenticated.
    """

    def __init__(self, headers: Mapping[str, str]) -> None:
        self._headers = headers

    async def get_session(self) -> AuthSession:
        owner_id = (self._headers.get(AUTHENTICATED_USER_HEADER) or "").strip()
        if not owner_id:
            return AuthSession(authenticated=False)
        return AuthSession(authenticated=True, owner_id=owner_id)
