from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


# Session / user related models
class LoginRequest(BaseModel):
    name: str


class LoginResponse(BaseModel):
    identifier: int


class User(BaseModel):
    id: int
    name: str
    photo_url: Optional[str] = Field(None, alias="photoUrl")

    class Config:
        from_attributes = True
        populate_by_name = True


class UpdateUserNameRequest(BaseModel):
    new_name: str = Field(..., alias="newName")

    class Config:
        populate_by_name = True


class PhotoUrlRequest(BaseModel):
    photo_url: str = Field(..., alias="photoUrl")

    class Config:
        populate_by_name = True


class PhotoUrlResponse(BaseModel):
    photo_url: str = Field(..., alias="photoUrl")

    class Config:
        populate_by_name = True


# Conversation related models
class CreateConversationRequest(BaseModel):
    recipient_name: str = Field(..., alias="recipientName")

    class Config:
        populate_by_name = True


class Conversation(BaseModel):
    id: int = Field(..., alias="conversationId")
    name: Optional[str] = None
    is_group: bool = Field(..., alias="isGroup")
    photo_url: Optional[str] = Field(None, alias="photoUrl")
    last_message_at: Optional[datetime] = Field(None, alias="latestMessageTime")

    class Config:
        from_attributes = True
        populate_by_name = True


class ConversationSummary(Conversation):
    latest_message_preview: str = Field("", alias="latestMessagePreview")
    latest_message_sender_id: Optional[int] = Field(None, alias="latestMessageSenderId")
    latest_message_status: Optional[int] = Field(None, alias="latestMessageStatus")
    latest_message_deleted: bool = Field(False, alias="latestMessageDeleted")
    unread_count: int = Field(0, alias="unreadCount")


# Message related models
class Reaction(BaseModel):
    user_id: int = Field(..., alias="userId")
    reactor_name: str = Field(..., alias="reactorName")
    emoticon: str

    class Config:
        populate_by_name = True


class Message(BaseModel):
    id: int
    conversation_id: int = Field(..., alias="conversationId")
    sender_id: int = Field(..., alias="senderId")
    sender_name: str = Field(..., alias="senderName")
    content: str
    content_type: str = Field(..., alias="contentType")
    reply_to_id: Optional[int] = Field(None, alias="replyToId")
    created_at: datetime = Field(..., alias="timeStamp")
    status: int
    is_deleted: bool = Field(False, alias="isDeleted")
    reactions: List[Reaction] = []

    class Config:
        populate_by_name = True


class SendMessageRequest(BaseModel):
    conversation_id: int = Field(..., alias="conversationId")
    content: str
    content_type: str = Field("text", alias="contentType")
    reply_to_id: Optional[int] = Field(None, alias="replyToId")

    class Config:
        populate_by_name = True


class ForwardMessageRequest(BaseModel):
    conversation_ids: List[int] = Field(..., alias="conversationIds")

    class Config:
        populate_by_name = True


class ReactionRequest(BaseModel):
    emoticon: str


# Group related models
class CreateGroupRequest(BaseModel):
    name: str
    initial_members: List[int] = Field(..., alias="initialMembers")

    class Config:
        populate_by_name = True


class GroupCreated(BaseModel):
    group_id: int = Field(..., alias="groupId")

    class Config:
        populate_by_name = True


class UserIdsRequest(BaseModel):
    user_ids: List[int] = Field(..., alias="userIds")

    class Config:
        populate_by_name = True


class MembersAdded(BaseModel):
    added: List[int]


class GroupNameRequest(BaseModel):
    new_name: str = Field(..., alias="newName")

    class Config:
        populate_by_name = True
