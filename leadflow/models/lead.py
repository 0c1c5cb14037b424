"""
Lead model, one row per person owned by a user.

Identity is a mapping-time rule (normalized email or LinkedIn URL within a
collection), not a DB constraint.
"""
from sqlalchemy import Column, Integer, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func

from leadflow.database import Base


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    full_name = Column(Text, nullable=True)
    position = Column(Text, nullable=True)
    headline = Column(Text, nullable=True)
    seniority = Column(Text, nullable=True)
    functional = Column(Text, nullable=True)
    linkedin_url = Column(Text, nullable=True, index=True)
    email = Column(Text, nullable=True, index=True)
    email_certainty = Column(Text, nullable=True)
    personal_email = Column(Text, nullable=True)
    phone_numbers = Column(JSON, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    person_linkedin_post = Column(Text, nullable=True)   # enriched | no-posts
    company_linkedin_post = Column(Text, nullable=True)  # enriched | no-posts
    email_verify_status = Column(Text, nullable=True)    # ok | invalid | ok_for_all | unknown ...
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    validated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class LeadPost(Base):
    __tablename__ = 'lead_posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Integer, ForeignKey('leads.id'), nullable=False, index=True)
    linkedin_url = Column(Text, nullable=False)
    post_url = Column(Text, nullable=False)
    posted_date = Column(DateTime(timezone=True), nullable=True)
    language = Column(Text, nullable=True)
    author = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    reactions = Column(Integer, nullable=True)
    likes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('lead_id', 'post_url', name='uq_lead_post'),
    )
