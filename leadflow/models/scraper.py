"""
Scraper catalog row: which adapter (mapper_type) to build and with what config.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class Scraper(Base):
    __tablename__ = 'scrapers'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    mapper_type = Column(Text, nullable=False)
    provider_config = Column(JSON, default=dict)  # e.g. {"actorId": "code_crafter~leads-finder"}
    description = Column(Text, default='')
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
