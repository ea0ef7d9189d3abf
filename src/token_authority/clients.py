"""Client lookup.

The authority never owns client registration; it asks a ``ClientResolver``
for the client behind a ``client_id``.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from token_authority.models.entities import (
    Client,
    generate_client_secret,
    hash_client_secret,
)
from token_authority.models.types import ClientID

__all__ = [
    "Client",
    "ClientResolver",
    "StaticClientResolver",
    "generate_client_secret",
    "hash_client_secret",
]


@runtime_checkable
class ClientResolver(Protocol):
    async def resolve(self, client_id: ClientID) -> Client | None: ...


class StaticClientResolver:
    """Resolve clients from a fixed, in-process registry.

    Example:
        >>> client, _ = Client.register("Docs", ["https://docs.example.com/cb"])
        >>> resolver = StaticClientResolver([client])
        >>> client.public_id in resolver
        True
    """

    def __init__(self, clients: Iterable[Client] = ()) -> None:
        self._clients: dict[ClientID, Client] = {client.public_id: client for client in clients}

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._clients

    def add(self, client: Client) -> None:
        self._clients[client.public_id] = client

    def remove(self, client_id: ClientID) -> None:
        self._clients.pop(client_id, None)

    async def resolve(self, client_id: ClientID) -> Client | None:
        return self._clients.get(client_id)
