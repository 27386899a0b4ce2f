"""Chat message store.

Each method opens its own short-lived session; callers on the event loop run
them through the thread pool.
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models
from .schemas import message_payload

logger = logging.getLogger(__name__)


class MessageStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session = session_factory

    def history(self) -> List[dict]:
        with self._session() as db:
            messages = (
                db.query(models.Message)
                .options(selectinload(models.Message.reactions))
                .order_by(models.Message.created_at.asc(), models.Message.id.asc())
                .all()
            )
            return [message_payload(m) for m in messages]

    def create(self, username: str, text: str, reply: Optional[dict] = None) -> dict:
        reply = reply or {}
        with self._session() as db:
            message = models.Message(
                username=username,
                text=text,
                reply_id=reply.get("id"),
                reply_username=reply.get("username"),
                reply_text=reply.get("text"),
                seen_by=[],
            )
            db.add(message)
            db.commit()
            db.refresh(message)
            return message_payload(message)

    def edit(self, message_id: int, new_text: str, username: str) -> Optional[dict]:
        """Overwrite the text of a message written by `username`.

        Returns None when the message is gone or belongs to someone else.
        """
        with self._session() as db:
            message = db.get(models.Message, message_id)
            if message is None:
                return None
            if message.username != username:
                logger.warning(f"Edit denied: {username} trying to edit {message.username}'s message {message_id}")
                return None
            message.text = new_text
            message.edited = True
            db.commit()
            db.refresh(message)
            return message_payload(message)

    def delete(self, message_id: int) -> bool:
        with self._session() as db:
            message = db.get(models.Message, message_id)
            if message is None:
                return False
            db.delete(message)
            db.commit()
            return True

    def delete_all(self) -> int:
        with self._session() as db:
            db.query(models.Reaction).delete(synchronize_session=False)
            count = db.query(models.Message).delete(synchronize_session=False)
            db.commit()
            return count

    def add_reaction(self, message_id: int, emoji: str, username: str) -> Optional[list]:
        """Insert a reaction; the unique index turns a repeat into a no-op.

        Returns the message's reactions afterwards, or None if there is no such message.
        """
        with self._session() as db:
            if db.get(models.Message, message_id) is None:
                return None
            db.add(models.Reaction(message_id=message_id, emoji=emoji, username=username))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.debug(f"Duplicate reaction {emoji} by {username} on {message_id}")
            return self._reactions(db, message_id)

    def remove_reaction(self, message_id: int, emoji: str, username: str) -> Optional[list]:
        with self._session() as db:
            if db.get(models.Message, message_id) is None:
                return None
            (
                db.query(models.Reaction)
                .filter(
                    models.Reaction.message_id == message_id,
                    models.Reaction.username == username,
                    models.Reaction.emoji == emoji,
                )
                .delete(synchronize_session=False)
            )
            db.commit()
            return self._reactions(db, message_id)

    def _reactions(self, db: Session, message_id: int) -> list:
        rows = (
            db.query(models.Reaction)
            .filter(models.Reaction.message_id == message_id)
            .order_by(models.Reaction.id.asc())
            .all()
        )
        return [{"emoji": r.emoji, "username": r.username} for r in rows]
