"""
================================================================================
SOCIALNET - REALTIME FAN-OUT
================================================================================

Process-local table of conversation key -> currently subscribed websocket
channels. Messages are stored first, then pushed to whoever is subscribed at
that moment. Nothing is queued or replayed; clients reload history over REST.

CONVERSATION KEYS
================================================================================
    direct message   conversation_<lower user id>_<higher user id>
    group message    group_<group id>

SUBSCRIPTION LIFECYCLE
================================================================================
    Unsubscribed --subscribe()--> Subscribed
    Subscribed --unsubscribe() | revoke_user() | close_key() | drop()--> Unsubscribed

drop() is called when a websocket disconnects and removes the channel from
every key it was subscribed to. revoke_user() removes one user from a group
key after they leave or are removed, and close_key() empties the key of a
deleted group. The table is never persisted and is not shared between
processes.

PUSH FORMAT
================================================================================
Each subscriber receives a channel-layer message handled by
ChatConsumer.chat_event and forwarded to the client as:

    {"event": "<event name>", "data": {...}}

================================================================================
"""

import logging
import threading
from collections import defaultdict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer


logger = logging.getLogger(__name__)


# Server -> client event names
RECEIVE_DIRECT_MESSAGE = "receive_direct_message"
DIRECT_MESSAGE_DELETED = "direct_message_deleted"
RECEIVE_GROUP_MESSAGE = "receive_group_message"
GROUP_MESSAGE_DELETED = "group_message_deleted"
USER_TYPING = "user_typing"


def conversation_key(user_id, other_user_id):
    low, high = sorted((int(user_id), int(other_user_id)))
    return f"conversation_{low}_{high}"


def group_key(group_id):
    return f"group_{int(group_id)}"


class SubscriptionRegistry:
    """
    Explicit key -> channel-name table with a reverse index per channel and
    the user each channel belongs to.

    All mutation goes through subscribe(), unsubscribe(), revoke_user(),
    close_key() and drop(). The lock is held only while the dicts are
    updated, never while sending.
    """

    def __init__(self, channel_layer=None):
        self._subscribers = defaultdict(set)
        self._keys_by_channel = defaultdict(set)
        self._user_by_channel = {}
        self._lock = threading.Lock()
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    def subscribe(self, key, channel_name, user_id=None):
        with self._lock:
            self._subscribers[key].add(channel_name)
            self._keys_by_channel[channel_name].add(key)
            if user_id is not None:
                self._user_by_channel[channel_name] = user_id

    def unsubscribe(self, key, channel_name):
        with self._lock:
            self._discard(key, channel_name)

    def drop(self, channel_name):
        """Forget every subscription held by a disconnected channel."""
        with self._lock:
            for key in list(self._keys_by_channel.get(channel_name, ())):
                self._discard(key, channel_name)
            self._keys_by_channel.pop(channel_name, None)
            self._user_by_channel.pop(channel_name, None)

    def revoke_user(self, key, user_id):
        """Unsubscribe every channel of user_id from key. Returns how many were removed."""
        with self._lock:
            channels = [
                name for name in self._subscribers.get(key, ())
                if self._user_by_channel.get(name) == user_id
            ]
            for channel_name in channels:
                self._discard(key, channel_name)
        return len(channels)

    def close_key(self, key):
        """Unsubscribe everyone from key, e.g. when a group is deleted."""
        with self._lock:
            for channel_name in list(self._subscribers.get(key, ())):
                self._discard(key, channel_name)

    def subscribers(self, key):
        with self._lock:
            return set(self._subscribers.get(key, ()))

    def keys_for(self, channel_name):
        with self._lock:
            return set(self._keys_by_channel.get(channel_name, ()))

    def clear(self):
        with self._lock:
            self._subscribers.clear()
            self._keys_by_channel.clear()
            self._user_by_channel.clear()

    def _discard(self, key, channel_name):
        channels = self._subscribers.get(key)
        if channels is not None:
            channels.discard(channel_name)
            if not channels:
                del self._subscribers[key]
        keys = self._keys_by_channel.get(channel_name)
        if keys is not None:
            keys.discard(key)
            if not keys:
                del self._keys_by_channel[channel_name]
                self._user_by_channel.pop(channel_name, None)

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def _message(self, event, data):
        return {"type": "chat.event", "event": event, "data": data}

    async def apublish(self, key, event, data, exclude=None):
        """Send to every subscriber of key. Returns the number of successful sends."""
        layer = self.channel_layer
        if layer is None:
            logger.warning(f"No channel layer configured, dropping {event} for {key}")
            return 0

        delivered = 0
        for channel_name in self.subscribers(key):
            if channel_name == exclude:
                continue
            try:
                await layer.send(channel_name, self._message(event, data))
                delivered += 1
            except Exception as e:
                logger.warning(f"Realtime push {event} to {channel_name} failed: {e}")
        return delivered

    def publish(self, key, event, data, exclude=None):
        """Synchronous wrapper for views. Never raises."""
        try:
            return async_to_sync(self.apublish)(key, event, data, exclude=exclude)
        except Exception as e:
            logger.warning(f"Realtime publish {event} for {key} failed: {e}")
            return 0


subscriptions = SubscriptionRegistry()
