import datetime as dt
import enum
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class QuoteStatus(str, enum.Enum):
    REQUESTED = "requested"
    PROVIDED = "provided"
    CONFIRMED = "confirmed"
    IN_PRODUCTION = "in_production"
    QUALITY_CHECK = "quality_check"
    SHIPPED = "shipped"
    DELIVERED = "delivered"

    @property
    def stage(self) -> int:
        """1-based position in the fixed stage sequence."""
        return list(QuoteStatus).index(self) + 1

    @property
    def is_terminal(self) -> bool:
        return self is QuoteStatus.DELIVERED


class User(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)


class AccessGroupMember(Base):
    __tablename__ = "access_group_members"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_access_group_member"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(String(128), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)


class Quote(Base):
    __tablename__ = "quotes"

    id = Column(String(64), primary_key=True, index=True, default=_new_id)
    user_id = Column(String(64), nullable=False, index=True)

    service = Column(String(64), nullable=False)
    part_name = Column(String(255), nullable=True)
    material = Column(String(128), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    finish_types = Column(JSON, nullable=False, default=list)
    quality_standard = Column(String(32), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String(32), nullable=False, default=QuoteStatus.REQUESTED.value)
    target_price = Column(Numeric(12, 2), nullable=True)
    final_price = Column(Numeric(12, 2), nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
    )

    files = relationship(
        "QuoteFile",
        back_populates="quote",
        order_by="QuoteFile.created_at",
        cascade="all, delete-orphan",
    )
    status_history = relationship(
        "QuoteStatusHistory",
        back_populates="quote",
        order_by="QuoteStatusHistory.id",
        cascade="save-update, merge",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def current_status(self) -> QuoteStatus:
        return QuoteStatus(self.status)


class QuoteFile(Base):
    __tablename__ = "quote_files"

    id = Column(String(64), primary_key=True, default=_new_id)
    quote_id = Column(String(64), ForeignKey("quotes.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(Text, nullable=False)
    file_type = Column(String(32), nullable=False, default="")
    file_size = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)

    quote = relationship("Quote", back_populates="files")


class QuoteStatusHistory(Base):
    __tablename__ = "quote_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(String(64), ForeignKey("quotes.id"), nullable=False, index=True)
    status = Column(String(32), nullable=False)
    notes = Column(Text, nullable=True)
    actor_id = Column(String(64), nullable=False)

    created_at = Column(DateTime, nullable=False, default=dt.datetime.utcnow)

    quote = relationship("Quote", back_populates="status_history")
