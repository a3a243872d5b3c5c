"""Routing of messages to a consumer."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ampersand.message import Message


class MessageConsumer(ABC):
    """Anything that accepts messages."""

    @abstractmethod
    def consume(self, message: Message) -> None:
        """Accept one message."""


class MessageBus(MessageConsumer):
    """Forwards every message to the target channel, if one is set."""

    def __init__(self, target_channel: MessageConsumer | None = None) -> None:
        self.target_channel = target_channel

    def consume(self, message: Message) -> None:
        if self.target_channel is not None:
            self.target_channel.consume(message)