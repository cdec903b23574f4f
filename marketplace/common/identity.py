"""Caller identity as established by the upstream auth gateway.

Token verification happens before requests reach these services; handlers only
read the verified identity headers and forward the credential downstream.
"""

from dataclasses import dataclass

from fastapi import Header

from marketplace.common.errors import Unauthorized


@dataclass(frozen=True)
class Caller:
    user_id: str | None = None
    email: str | None = None
    authorization: str | None = None

    def forward_headers(self) -> dict[str, str]:
        """Headers that carry this caller into a collaborator call."""

        headers = {}
        if self.authorization:
            headers["Authorization"] = self.authorization
        if self.user_id:
            headers["x-user-id"] = self.user_id
        if self.email:
            headers["x-user-email"] = self.email
        return headers


def caller_identity(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
) -> Caller:
    return Caller(user_id=x_user_id or None, email=x_user_email or None, authorization=authorization or None)


def require_user(caller: Caller) -> str:
    """Return the caller's user id or reject the request."""

    if not caller.user_id:
        raise Unauthorized("Unauthorized: no user id found")
    return caller.user_id
