"""
ZeroMQ messaging between the slideshow core and the display shell.

Every message travels as two frames: the topic (the message type) and a JSON
document with the payload, the sender and a timestamp. The core publishes
PAGE and STATUS messages and listens for COMMAND messages from the shell.
"""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import zmq

from photoframe.common.logger import setup_logger

logger = setup_logger(__name__)


class MessageType(Enum):
    """Message topics."""
    PAGE = "page"          # Core -> shell: a slideshow page to display
    STATUS = "status"      # Core -> shell: online/offline/empty, settings
    COMMAND = "command"    # Shell -> core: navigate, set_interval, ...


@dataclass
class Message:
    """A decoded message."""

    msg_type: MessageType
    data: Dict[str, Any]
    sender: str
    timestamp: float = field(default_factory=time.time)

    def to_json(self) -> str:
        return json.dumps({
            "type": self.msg_type.value,
            "data": self.data,
            "sender": self.sender,
            "timestamp": self.timestamp,
        })

    @classmethod
    def from_json(cls, payload: str) -> "Message":
        """
        Decode a JSON payload.

        Raises:
            ValueError: Invalid JSON or unknown message type
            KeyError: A required field is missing
        """
        obj = json.loads(payload)
        return cls(
            msg_type=MessageType(obj["type"]),
            data=obj["data"],
            sender=obj["sender"],
            timestamp=obj.get("timestamp") or time.time(),
        )

    def to_frames(self):
        return [self.msg_type.value.encode(), self.to_json().encode()]


class MessagePublisher:
    """PUB socket bound on a local port."""

    def __init__(self, port: int, service_name: str, bind_host: str = "*"):
        self.port = port
        self.service_name = service_name
        self._context = zmq.Context()
        self.socket = self._context.socket(zmq.PUB)
        self.socket.bind(f"tcp://{bind_host}:{port}")
        logger.info("%s publishing on port %d", service_name, port)

    def publish(self, msg_type: MessageType, data: Dict[str, Any]) -> Message:
        """Send a message to every connected subscriber."""
        message = Message(msg_type, data, self.service_name)
        self.socket.send_multipart(message.to_frames())
        logger.debug("Published %s message", msg_type.value)
        return message

    def close(self) -> None:
        self.socket.close(linger=0)
        self._context.term()
        logger.info("%s publisher closed", self.service_name)


class MessageSubscriber:
    """SUB socket connected to a peer's publisher."""

    def __init__(
        self,
        host: str,
        port: int,
        service_name: str,
        topics: Iterable[MessageType] = ()
    ):
        """
        Args:
            host: Publisher host
            port: Publisher port
            service_name: Name of this service (for logging)
            topics: Message types to subscribe to right away
        """
        self.host = host
        self.port = port
        self.service_name = service_name
        self._context = zmq.Context()
        self.socket = self._context.socket(zmq.SUB)
        self.socket.connect(f"tcp://{host}:{port}")
        for topic in topics:
            self.subscribe_to(topic)
        logger.info("%s subscribed to %s:%d", service_name, host, port)

    def subscribe_to(self, msg_type: MessageType) -> None:
        self.socket.setsockopt(zmq.SUBSCRIBE, msg_type.value.encode())

    def receive(self, timeout_ms: int = 1000) -> Optional[Message]:
        """
        Wait up to timeout_ms for the next message.

        Returns:
            The message, or None on timeout or an undecodable message
        """
        if not self.socket.poll(timeout_ms, zmq.POLLIN):
            return None

        try:
            frames = self.socket.recv_multipart(zmq.NOBLOCK)
        except zmq.Again:
            return None

        if len(frames) != 2:
            logger.warning("Dropping message with %d frames", len(frames))
            return None

        try:
            return Message.from_json(frames[1].decode('utf-8'))
        except (ValueError, KeyError) as e:
            logger.error("Dropping undecodable %r message: %s", frames[0][:32], e)
            return None

    def close(self) -> None:
        self.socket.close(linger=0)
        self._context.term()
        logger.info("%s subscriber closed", self.service_name)
