"""
Collections group a user's leads. Membership goes through lead_collections so a
lead can sit in several collections without its own columns changing.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from leadflow.database import Base


class Collection(Base):
    __tablename__ = 'collections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class LeadCollection(Base):
    __tablename__ = 'lead_collections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=False, index=True)
    collection_id = Column(Integer, ForeignKey('collections.id'), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('lead_id', 'collection_id', name='uq_lead_collection'),
    )
