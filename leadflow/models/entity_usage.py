"""
Append-only usage ledger: one row per (entity, enrichment attempt).
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class EntityScraperUsage(Base):
    __tablename__ = 'entity_scraper_usages'

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(Text, nullable=False)  # lead | company
    entity_id = Column(Integer, nullable=False, index=True)
    scraper_id = Column(Integer, nullable=True)
    run_id = Column(Text, nullable=True, index=True)
    source = Column(Text, nullable=False)
    has_result = Column(Boolean, nullable=False, default=False)
    item_count = Column(Integer, nullable=False, default=0)
    config_used = Column(JSON, default=dict)
    user_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
