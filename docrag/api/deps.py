"""FastAPI dependencies for owner resolution and service access."""

import uuid
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from docrag.core.container import Container


class OwnerContext:
    """Identity carried through a request.

    Authentication happens upstream (gateway / session layer); by the time a
    request reaches this service the owner id is in ``X-Owner-Id``.
    """

    __slots__ = ("owner_id",)

    def __init__(self, owner_id: uuid.UUID) -> None:
        self.owner_id = owner_id


async def get_owner_context(
    x_owner_id: Annotated[str | None, Header()] = None,
) -> OwnerContext:
    if not x_owner_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Owner-Id header",
        )
    try:
        return OwnerContext(owner_id=uuid.UUID(x_owner_id))
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed X-Owner-Id header",
        ) from exc


def get_container(request: Request) -> Container:
    return request.app.state.container


# Typed shorthand for use in route signatures
Owner = Annotated[OwnerContext, Depends(get_owner_context)]
Services = Annotated[Container, Depends(get_container)]
