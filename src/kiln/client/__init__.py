"""Client side — hydration, navigation, and the state-sync channel."""

from kiln.client.channel import ChannelClient, TopicSlot
from kiln.client.navigation import Location, NavigationService
from kiln.client.session import SessionContext, hydrate_store

__all__ = [
    "ChannelClient",
    "Location",
    "NavigationService",
    "SessionContext",
    "TopicSlot",
    "hydrate_store",
]
