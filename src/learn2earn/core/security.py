"""Moderator authentication helpers."""
from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from learn2earn.core.settings import settings


def verify_moderator_key(presented: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a presented moderator key.

    Always False while no key is configured.
    """
    if not expected or not presented:
        return False
    return secrets.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_moderator(
    x_moderator_key: Annotated[str | None, Header(alias="x-moderator-key")] = None,
) -> None:
    """Reject the request unless it carries the configured moderator key."""
    if not verify_moderator_key(x_moderator_key, settings.moderator_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
        )


ModeratorDep = Annotated[None, Depends(require_moderator)]
