from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from .database import Base
from datetime import datetime, timezone


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, unique=True, index=True, nullable=True)
    hashed_password = Column(String, nullable=False)

    expenses = relationship("Expense", back_populates="owner")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String)
    amount = Column(Float, default=0.0)
    category = Column(String, nullable=True)
    date = Column(DateTime, default=utcnow)

    owner = relationship("User", back_populates="expenses")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String)
    text = Column(String)
    # Copy of the parent message taken when the reply was sent; never refreshed
    reply_id = Column(String, nullable=True)
    reply_username = Column(String, nullable=True)
    reply_text = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    edited = Column(Boolean, default=False, nullable=False)
    seen_by = Column(JSON, default=list)

    reactions = relationship(
        "Reaction",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="Reaction.id",
    )

    @property
    def reply_to(self):
        if self.reply_id is None:
            return None
        return {"id": self.reply_id, "username": self.reply_username, "text": self.reply_text}


class Reaction(Base):
    __tablename__ = "message_reactions"
    __table_args__ = (UniqueConstraint("message_id", "username", "emoji", name="_message_user_emoji_uc"),)

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), index=True, nullable=False)
    emoji = Column(String, nullable=False)
    username = Column(String, nullable=False)

    message = relationship("Message", back_populates="reactions")
