from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field
from datetime import datetime

class User(BaseModel):
    id: int
    username: str
    email: Optional[str] = None

    class Config:
        from_attributes = True

class Expense(BaseModel):
    id: int
    user_id: int
    title: Optional[str] = None
    amount: float
    category: Optional[str] = None
    date: Optional[datetime] = None

    class Config:
        from_attributes = True

class Aggregates(BaseModel):
    category_totals: Dict[str, float]
    monthly_totals: Dict[str, float]
    total: float

# ===== Chat: outbound =====

class ReplySnapshot(BaseModel):
    id: Optional[str] = None
    username: Optional[str] = None
    text: Optional[str] = None

class Reaction(BaseModel):
    emoji: str
    username: str

    class Config:
        from_attributes = True

class Message(BaseModel):
    id: int
    username: Optional[str] = None
    text: Optional[str] = None
    reply_to: Optional[ReplySnapshot] = Field(None, serialization_alias="replyTo")
    created_at: datetime = Field(serialization_alias="createdAt")
    edited: bool = False
    seen_by: List[str] = Field(default_factory=list, serialization_alias="seenBy")
    reactions: List[Reaction] = []

    class Config:
        from_attributes = True

def message_payload(message) -> dict:
    """Serialize a stored message into the JSON shape sent to chat clients."""
    return Message.model_validate(message).model_dump(mode="json", by_alias=True)

def reactions_payload(message_id: int, reactions) -> dict:
    return {
        "messageId": message_id,
        "reactions": [Reaction.model_validate(r).model_dump() for r in reactions],
    }

# ===== Chat: inbound =====

class ReplyIn(BaseModel):
    id: Optional[Union[int, str]] = None
    username: Optional[str] = None
    text: Optional[str] = None

class ChatMessageIn(BaseModel):
    username: Optional[str] = None
    text: str
    reply_to: Optional[ReplyIn] = Field(None, alias="replyTo")

class EditMessageIn(BaseModel):
    id: int
    new_text: str = Field(alias="newText")
    username: Optional[str] = None

class ReactionIn(BaseModel):
    message_id: int = Field(alias="messageId")
    emoji: str
    username: Optional[str] = None
