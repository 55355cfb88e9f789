import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from . import permissions
from .models import User
from .realtime import USER_TYPING, conversation_key, group_key, subscriptions


logger = logging.getLogger(__name__)


@database_sync_to_async
def _user_exists(user_id):
    return User.objects.filter(pk=user_id, is_active=True).exists()


@database_sync_to_async
def _is_group_member(user_id, group_id):
    return permissions.is_group_member(user_id, group_id)


def _as_id(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    One websocket per client. The client joins conversation and group keys
    explicitly and receives pushes for the keys it is subscribed to.

    Client -> server:
        {"action": "join_conversation", "user_id": 7}
        {"action": "leave_conversation", "user_id": 7}
        {"action": "join_group", "group_id": 3}
        {"action": "leave_group", "group_id": 3}
        {"action": "typing", "user_id": 7, "is_typing": true}

    Server -> client:
        {"event": "<name>", "data": {...}}
    """

    registry = subscriptions

    async def connect(self):
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            await self.close(code=4401)
            return
        self.user = user
        await self.accept()

    async def disconnect(self, code):
        self.registry.drop(self.channel_name)

    async def receive_json(self, content, **kwargs):
        action = content.get("action") if isinstance(content, dict) else None
        handler = {
            "join_conversation": self.join_conversation,
            "leave_conversation": self.leave_conversation,
            "join_group": self.join_group,
            "leave_group": self.leave_group,
            "typing": self.typing,
        }.get(action)

        if handler is None:
            await self.send_error(f"Unknown action: {action}")
            return
        await handler(content)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def join_conversation(self, content):
        other_id = _as_id(content.get("user_id"))
        if other_id is None or other_id == self.user.id or not await _user_exists(other_id):
            await self.send_error("Invalid conversation partner.")
            return
        key = conversation_key(self.user.id, other_id)
        self.registry.subscribe(key, self.channel_name, user_id=self.user.id)
        await self.send_event("subscribed", {"key": key})

    async def leave_conversation(self, content):
        other_id = _as_id(content.get("user_id"))
        if other_id is None:
            await self.send_error("Invalid conversation partner.")
            return
        key = conversation_key(self.user.id, other_id)
        self.registry.unsubscribe(key, self.channel_name)
        await self.send_event("unsubscribed", {"key": key})

    async def join_group(self, content):
        group_id = _as_id(content.get("group_id"))
        if group_id is None or not await _is_group_member(self.user.id, group_id):
            await self.send_error("You are not a member of this group.")
            return
        key = group_key(group_id)
        self.registry.subscribe(key, self.channel_name, user_id=self.user.id)
        await self.send_event("subscribed", {"key": key})

    async def leave_group(self, content):
        group_id = _as_id(content.get("group_id"))
        if group_id is None:
            await self.send_error("Invalid group.")
            return
        key = group_key(group_id)
        self.registry.unsubscribe(key, self.channel_name)
        await self.send_event("unsubscribed", {"key": key})

    async def typing(self, content):
        other_id = _as_id(content.get("user_id"))
        if other_id is None or other_id == self.user.id:
            await self.send_error("Invalid conversation partner.")
            return
        await self.registry.apublish(
            conversation_key(self.user.id, other_id),
            USER_TYPING,
            {
                "user_id": self.user.id,
                "username": self.user.username,
                "is_typing": bool(content.get("is_typing", True)),
            },
            exclude=self.channel_name,
        )

    # ------------------------------------------------------------------
    # Outgoing
    # ------------------------------------------------------------------

    async def chat_event(self, message):
        await self.send_event(message["event"], message["data"])

    async def send_event(self, event, data):
        await self.send_json({"event": event, "data": data})

    async def send_error(self, message):
        await self.send_event("error", {"message": message})
