"""
SQLAlchemy Database Models

Only stock counts and push subscriptions are durable; the live order queue
is owned by the queue service (see ``barqueue.services.order_queue``).
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from barqueue.database import Base


class Drink(Base):
    """
    One row per catalog drink: the stock ledger.

    Rows are created by the catalog seed (upsert keyed by ``canonical``) and
    mutated by orders and admin stock operations.
    """
    __tablename__ = "drinks"
    __table_args__ = (
        CheckConstraint("stock_count >= 0", name="ck_drinks_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    canonical = Column(String(100), nullable=False, unique=True, index=True)
    display_name = Column(String(150), nullable=False)
    stock_count = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Drink #{self.id} - {self.canonical} - stock {self.stock_count}>"


class PushSubscription(Base):
    """
    Push delivery target registered by a web client.

    Keyed by the client tag the browser attaches to its orders; removed when
    the push provider reports the target as stale.
    """
    __tablename__ = "push_subscriptions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    client_tag = Column(String(100), nullable=False, unique=True, index=True)
    player_id = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<PushSubscription {self.client_tag}>"
