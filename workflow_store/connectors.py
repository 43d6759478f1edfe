"""
Channel connector contract.

A connector delivers messages from one chat platform and carries responses
back. The store only consumes this capability set; real platform adapters
live outside it. ``MemoryConnector`` is an in-process implementation backed by
an asyncio queue.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import cast

from .entities import User
from .errors import NotFoundError
from .repositories.base import UserRepository
from .values import Channel


@dataclass(frozen=True)
class InboundMessage:
    """A message received from a channel."""

    user_id: str
    channel_id: str
    content: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboundResponse:
    """A response to send back through a channel."""

    content: str
    metadata: dict[str, str] = field(default_factory=dict)


class ChannelConnector(ABC):
    """Abstract base class for channel connectors."""

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def stop(self) -> None: ...

    @abstractmethod
    def is_running(self) -> bool: ...

    @abstractmethod
    def incoming(self) -> AsyncIterator[InboundMessage]:
        """Inbound messages until the connector stops."""

    @abstractmethod
    async def send_response(self, user_id: str, response: OutboundResponse) -> None: ...

    @abstractmethod
    async def get_user(self, channel_user_id: str) -> User: ...

    @abstractmethod
    async def create_user(self, channel_user_id: str) -> User: ...

    async def get_or_create_user(self, channel_user_id: str) -> User:
        try:
            return await self.get_user(channel_user_id)
        except NotFoundError:
            return await self.create_user(channel_user_id)


_STOP = object()


class MemoryConnector(ChannelConnector):
    """Queue-backed connector for one channel; records every response sent."""

    def __init__(self, channel: Channel | str, users: UserRepository) -> None:
        self.channel = Channel.parse(channel)
        self._users = users
        self._queue: asyncio.Queue[InboundMessage | object] = asyncio.Queue()
        self._running = False
        self.sent: list[tuple[str, OutboundResponse]] = []

    def name(self) -> str:
        return self.channel.value

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        if self._running:
            self._running = False
            await self._queue.put(_STOP)

    def is_running(self) -> bool:
        return self._running

    async def deliver(self, message: InboundMessage) -> None:
        """Queue a message as if it had arrived from the platform."""
        if not self._running:
            raise RuntimeError(f"{self.name()} connector is not running")
        await self._queue.put(message)

    async def incoming(self) -> AsyncIterator[InboundMessage]:
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            yield cast(InboundMessage, item)

    async def send_response(self, user_id: str, response: OutboundResponse) -> None:
        if not self._running:
            raise RuntimeError(f"{self.name()} connector is not running")
        self.sent.append((user_id, response))

    async def get_user(self, channel_user_id: str) -> User:
        return await self._users.find_by_channel(self.channel, channel_user_id)

    async def create_user(self, channel_user_id: str) -> User:
        user = User.create(self.channel, channel_user_id)
        await self._users.create(user)
        return user
