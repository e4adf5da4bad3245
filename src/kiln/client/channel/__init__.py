"""Channel protocol — Phoenix v2 frames over one shared connection."""

from kiln.client.channel.client import ChannelClient
from kiln.client.channel.message import ChannelMessage
from kiln.client.channel.slot import TopicSlot
from kiln.client.channel.topic import ChannelTopic, Reply, TopicState
from kiln.client.channel.transport import Transport, WebSocketTransport

__all__ = [
    "ChannelClient",
    "ChannelMessage",
    "ChannelTopic",
    "Reply",
    "TopicSlot",
    "TopicState",
    "Transport",
    "WebSocketTransport",
]
