from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    Column, Integer, String, BigInteger, Float, Date, DateTime,
    ForeignKey, Enum, Boolean, Text, UniqueConstraint, Index, text
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class RaffleStatus(PyEnum):
    OPEN = "open"
    DRAWN = "drawn"
    CANCELLED = "cancelled"


class SubscriptionStatus(PyEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AdminRole(PyEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MODERATOR = "moderator"


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


class Group(Base):
    __tablename__ = "groups"

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # Telegram chat ID
    name = Column(String, nullable=True)
    requires_subscription = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    raffles = relationship("Raffle", back_populates="group")
    subscriptions = relationship("Subscription", back_populates="group")


class Raffle(Base):
    __tablename__ = "raffles"

    id = Column(String(64), primary_key=True)
    group_id = Column(BigInteger, ForeignKey("groups.id"), nullable=False, index=True)
    num_winners = Column(Integer, nullable=False, default=1)
    prize_description = Column(Text, nullable=True)
    status = Column(
        Enum(RaffleStatus, values_callable=_enum_values, name="rafflestatus"),
        default=RaffleStatus.OPEN,
        nullable=False,
        index=True,
    )
    participant_count = Column(Integer, default=0, nullable=False)
    created_by = Column(BigInteger, nullable=True)  # Telegram ID of the admin
    created_at = Column(DateTime, default=datetime.utcnow)
    performed_at = Column(DateTime, nullable=True)  # Set when drawn or cancelled

    # Relationships
    group = relationship("Group", back_populates="raffles")
    participants = relationship("Participant", back_populates="raffle")


class Participant(Base):
    __tablename__ = "participants"
    __table_args__ = (
        UniqueConstraint("raffle_id", "user_id", name="uq_participant_raffle_user"),
    )

    id = Column(Integer, primary_key=True, index=True)
    raffle_id = Column(String(64), ForeignKey("raffles.id"), nullable=False, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)  # Telegram user ID
    user_name = Column(String, nullable=True)
    is_winner = Column(Boolean, default=False, nullable=False)
    win_position = Column(Integer, nullable=True)  # 1-based, draw order
    joined_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    raffle = relationship("Raffle", back_populates="participants")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_subscription_user_group"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    group_id = Column(BigInteger, ForeignKey("groups.id"), nullable=False, index=True)
    user_name = Column(String, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False, index=True)
    amount_paid = Column(Float, default=0.0, nullable=False)
    status = Column(
        Enum(SubscriptionStatus, values_callable=_enum_values, name="subscriptionstatus"),
        default=SubscriptionStatus.ACTIVE,
        nullable=False,
    )
    payment_reference = Column(Text, nullable=True)  # Receipt file ID or free-form note
    payment_method = Column(String(32), default="PIX", nullable=False)
    registered_by = Column(BigInteger, nullable=True)  # Admin who registered the payment
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    group = relationship("Group", back_populates="subscriptions")


class GroupAdmin(Base):
    """
    Privileged users
    A NULL group_id grants the role in every group
    """
    __tablename__ = "group_admins"
    __table_args__ = (
        UniqueConstraint("user_id", "group_id", name="uq_group_admin_user_group"),
        # NULLs are distinct in the constraint above
        Index(
            "uq_group_admin_global_user",
            "user_id",
            unique=True,
            postgresql_where=text("group_id IS NULL"),
            sqlite_where=text("group_id IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    group_id = Column(BigInteger, nullable=True)
    user_name = Column(String, nullable=True)
    role = Column(
        Enum(AdminRole, values_callable=_enum_values, name="adminrole"),
        default=AdminRole.ADMIN,
        nullable=False,
    )
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<GroupAdmin(user_id={self.user_id}, group_id={self.group_id}, role={self.role})>"
