"""Database table definitions for comments, newsletter subscribers, the newsletter queue and visits"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Text
from sqlmodel import Field, SQLModel


class CommentStatus(str, Enum):
    """Moderation states. spam has no moderation action that reaches it"""
    pending = "pending"
    approved = "approved"
    archived = "archived"
    spam = "spam"
    deleted = "deleted"


class SubscriberStatus(str, Enum):
    active = "active"
    unsubscribed = "unsubscribed"


class Comment(SQLModel, table=True):
    """A reader comment attached to an article by uid, with denormalized path"""
    __tablename__ = "comments"
    id:           Optional[int] = Field(default=None, primary_key=True)
    article_uid:  str = Field(..., index=True, nullable=False)
    article_path: str = Field(..., index=True, nullable=False)
    author_name:  Optional[str] = Field(default=None)
    author_email: Optional[str] = Field(default=None)
    content:      str = Field(..., sa_column=Column(Text, nullable=False))
    status:       str = Field(default=CommentStatus.pending.value, index=True, nullable=False)
    parent_id:    Optional[int] = Field(default=None, index=True, description="Replied-to comment; not enforced")
    upvotes:      int = Field(default=0, nullable=False)
    downvotes:    int = Field(default=0, nullable=False)
    ip_hash:      Optional[str] = Field(default=None)
    user_agent:   Optional[str] = Field(default=None)
    created_at:   datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at:   datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


class NewsletterSubscriber(SQLModel, table=True):
    __tablename__ = "newsletter_subscribers"
    id:         Optional[int] = Field(default=None, primary_key=True)
    email:      str = Field(..., index=True, unique=True, nullable=False)
    status:     str = Field(default=SubscriberStatus.active.value, index=True, nullable=False)
    source:     Optional[str] = Field(default=None)
    ip:         Optional[str] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    updated_at: datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))


class NewsletterQueueItem(SQLModel, table=True):
    """A newly published article waiting for the next digest; sent_at is set once mailed"""
    __tablename__ = "newsletter_queue"
    id:           Optional[int] = Field(default=None, primary_key=True)
    article_uid:  str = Field(..., unique=True, nullable=False)
    article_path: str = Field(..., nullable=False)
    created_at:   datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
    sent_at:      Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=False), nullable=True))


class Visit(SQLModel, table=True):
    __tablename__ = "visits"
    id:           Optional[int] = Field(default=None, primary_key=True)
    article_uid:  str = Field(..., index=True, nullable=False)
    article_path: str = Field(..., nullable=False)
    ip:           Optional[str] = Field(default=None)
    ua:           Optional[str] = Field(default=None)
    created_at:   datetime = Field(default_factory=datetime.now, sa_column=Column(DateTime(timezone=False), nullable=False))
