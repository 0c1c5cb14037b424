"""
Persistent ledger row for one provider job, keyed by the provider's run id.
"""
from sqlalchemy import Column, Text, Integer, Float, DateTime, JSON
from sqlalchemy.sql import func

from leadflow.database import Base


class ScraperRun(Base):
    __tablename__ = 'scraper_runs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Text, nullable=False, unique=True)
    scraper_id = Column(Integer, nullable=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    source = Column(Text, nullable=False)
    collection_id = Column(Integer, nullable=True)
    company_id = Column(Integer, nullable=True)
    lead_id = Column(Integer, nullable=True)
    item_count = Column(Integer, nullable=False, default=0)
    status = Column(Text, nullable=False)
    cost_usd = Column(Float, nullable=True)
    usage_details = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            'runId': self.run_id,
            'scraperId': self.scraper_id,
            'userId': self.user_id,
            'source': self.source,
            'collectionId': self.collection_id,
            'companyId': self.company_id,
            'leadId': self.lead_id,
            'itemCount': self.item_count,
            'status': self.status,
            'costUsd': self.cost_usd,
            'startedAt': self.started_at.isoformat() if self.started_at else None,
            'finishedAt': self.finished_at.isoformat() if self.finished_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
