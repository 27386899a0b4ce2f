"""Realtime chat: connection registry, presence/typing tracking and the message protocol.

Frames in both directions are JSON objects of the form {"event": name, "data": payload}.
"""
import json
import logging
from typing import List, Optional, Set

from starlette.concurrency import run_in_threadpool

from . import schemas
from .errors import ErrorReporter, ValidationError
from .messages import MessageStore

logger = logging.getLogger(__name__)


class Connection:
    """One open WebSocket plus the username it joined the chat with."""

    def __init__(self, websocket, session_username: Optional[str] = None):
        self.websocket = websocket
        self.session_username = session_username
        self.username: Optional[str] = None

    async def send(self, event: str, data=None):
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))


class ChatSessionManager:
    """Owns the open connections and the presence and typing sets.

    Everything runs on the event loop, so the sets are only touched between awaits.
    Every change is followed by a broadcast of the complete set, never a diff.
    """

    def __init__(self):
        self.active_connections: List[Connection] = []
        self._online: Set[str] = set()
        self._typing: Set[str] = set()

    def online_users(self) -> List[str]:
        return sorted(self._online)

    def typing_users(self) -> List[str]:
        return sorted(self._typing)

    def connect(self, connection: Connection):
        self.active_connections.append(connection)

    async def join(self, connection: Connection, username: Optional[str]):
        if username:
            if connection.username and connection.username != username:
                self._online.discard(connection.username)
            connection.username = username
            self._online.add(username)
            logger.info(f"{username} joined the chat")
        await self.broadcast("updateUsers", self.online_users())

    async def start_typing(self, username: Optional[str]):
        if not username:
            return
        self._typing.add(username)
        await self.broadcast("userTyping", self.typing_users())

    async def stop_typing(self, username: Optional[str]):
        if username and username in self._typing:
            self._typing.discard(username)
            await self.broadcast("userTyping", self.typing_users())

    async def disconnect(self, connection: Connection):
        if connection in self.active_connections:
            self.active_connections.remove(connection)
        username = connection.username
        if not username:
            return
        if username in self._typing:
            self._typing.discard(username)
            await self.broadcast("userTyping", self.typing_users())
        self._online.discard(username)
        await self.broadcast("updateUsers", self.online_users())
        logger.info(f"{username} left the chat")

    async def broadcast(self, event: str, data=None):
        for connection in list(self.active_connections):
            try:
                await connection.send(event, data)
            except Exception as exc:
                logger.warning(f"Dropping connection after failed send of {event}: {exc!r}")
                if connection in self.active_connections:
                    self.active_connections.remove(connection)

    def reset(self):
        self.active_connections.clear()
        self._online.clear()
        self._typing.clear()


# ===== Identity resolution =====

class ClaimedIdentity:
    """Trusts whatever username the client puts in the payload."""

    def resolve(self, connection: Connection, claimed) -> Optional[str]:
        if isinstance(claimed, str) and claimed.strip():
            return claimed.strip()
        return None


class SessionIdentity:
    """Ignores the payload and uses the user logged in on the HTTP session."""

    def resolve(self, connection: Connection, claimed) -> Optional[str]:
        return connection.session_username


IDENTITY_POLICIES = {
    "claimed": ClaimedIdentity,
    "session": SessionIdentity,
}


def identity_from_config(name: str):
    try:
        return IDENTITY_POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown chat identity policy: {name}") from None


# ===== Protocol =====

class ChatProtocol:
    """Turns inbound chat signals into store writes and broadcasts."""

    def __init__(self, store: MessageStore, sessions: ChatSessionManager = None, identity=None,
                 reporter: ErrorReporter = None, mirror=None):
        self.store = store
        self.sessions = sessions or ChatSessionManager()
        self.identity = identity or ClaimedIdentity()
        self.reporter = reporter or ErrorReporter()
        self.mirror = mirror
        self._handlers = {
            "joinChat": self.on_join,
            "chatMessage": self.on_chat_message,
            "editMessage": self.on_edit_message,
            "deleteMessage": self.on_delete_message,
            "deleteAllMessages": self.on_delete_all,
            "addReaction": self.on_add_reaction,
            "removeReaction": self.on_remove_reaction,
            "typingStart": self.on_typing_start,
            "typingStop": self.on_typing_stop,
        }

    async def broadcast(self, event: str, data=None):
        await self.sessions.broadcast(event, data)
        if self.mirror is not None:
            self.mirror.publish_chat_event(event, data)

    async def open(self, connection: Connection):
        """Register a new connection and send it the history snapshot."""
        self.sessions.connect(connection)
        try:
            history = await run_in_threadpool(self.store.history)
            await connection.send("loadMessages", history)
        except Exception as exc:
            self.reporter.report("loadMessages", exc)

    async def close(self, connection: Connection):
        await self.sessions.disconnect(connection)

    async def handle(self, connection: Connection, raw: str):
        """Dispatch one frame. A failing signal is reported and otherwise dropped."""
        try:
            frame = json.loads(raw)
            if not isinstance(frame, dict):
                raise ValidationError("Frame must be a JSON object")
        except (ValueError, ValidationError) as exc:
            self.reporter.report("frame", exc)
            return

        event = frame.get("event")
        handler = self._handlers.get(event)
        if handler is None:
            logger.warning(f"Ignoring unknown chat event {event!r}")
            return
        try:
            await handler(connection, frame.get("data"))
        except Exception as exc:
            self.reporter.report(str(event), exc)

    def _author(self, connection: Connection, claimed) -> str:
        username = self.identity.resolve(connection, claimed)
        if not username:
            raise ValidationError("No username for chat signal")
        return username

    async def on_join(self, connection: Connection, data):
        await self.sessions.join(connection, self.identity.resolve(connection, data))

    async def on_chat_message(self, connection: Connection, data):
        payload = schemas.ChatMessageIn.model_validate(data)
        author = self._author(connection, payload.username)
        reply = None
        if payload.reply_to is not None and payload.reply_to.id:
            reply = {
                "id": str(payload.reply_to.id),
                "username": payload.reply_to.username,
                "text": payload.reply_to.text,
            }
        message = await run_in_threadpool(self.store.create, author, payload.text, reply)
        await self.broadcast("newMessage", message)

    async def on_edit_message(self, connection: Connection, data):
        payload = schemas.EditMessageIn.model_validate(data)
        author = self._author(connection, payload.username)
        message = await run_in_threadpool(self.store.edit, payload.id, payload.new_text, author)
        if message is not None:
            await self.broadcast("messageEdited", message)

    async def on_delete_message(self, connection: Connection, data):
        # JSON true/false and floats are not ids
        if isinstance(data, bool) or not isinstance(data, (int, str)):
            raise ValidationError(f"Bad message id {data!r}")
        try:
            message_id = int(data)
        except ValueError as exc:
            raise ValidationError(f"Bad message id {data!r}") from exc
        await run_in_threadpool(self.store.delete, message_id)
        await self.broadcast("messageDeleted", message_id)

    async def on_delete_all(self, connection: Connection, data=None):
        count = await run_in_threadpool(self.store.delete_all)
        logger.info(f"Cleared {count} chat messages")
        await self.broadcast("allMessagesDeleted")

    async def on_add_reaction(self, connection: Connection, data):
        payload = schemas.ReactionIn.model_validate(data)
        username = self._author(connection, payload.username)
        reactions = await run_in_threadpool(self.store.add_reaction, payload.message_id, payload.emoji, username)
        if reactions is not None:
            await self.broadcast("updateReactions", schemas.reactions_payload(payload.message_id, reactions))

    async def on_remove_reaction(self, connection: Connection, data):
        payload = schemas.ReactionIn.model_validate(data)
        username = self._author(connection, payload.username)
        reactions = await run_in_threadpool(self.store.remove_reaction, payload.message_id, payload.emoji, username)
        if reactions is not None:
            await self.broadcast("updateReactions", schemas.reactions_payload(payload.message_id, reactions))

    async def on_typing_start(self, connection: Connection, data):
        await self.sessions.start_typing(self.identity.resolve(connection, data))

    async def on_typing_stop(self, connection: Connection, data):
        await self.sessions.stop_typing(self.identity.resolve(connection, data))
