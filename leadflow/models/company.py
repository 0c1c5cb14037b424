"""
Company model plus the per-company enrichment rows (LinkedIn posts, reviews).

Companies are not user-scoped. domain and linkedin_url are unique so that two
concurrent runs resolving the same company collide on insert instead of
creating a duplicate.
"""
from sqlalchemy import (
    Column, Integer, Float, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.sql import func

from leadflow.database import Base


class Company(Base):
    __tablename__ = 'companies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    domain = Column(Text, nullable=True, unique=True)
    website = Column(Text, nullable=True)
    linkedin_url = Column(Text, nullable=True, unique=True)
    industry = Column(Text, nullable=True)
    size = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    technologies = Column(Text, nullable=True)
    founded_year = Column(Integer, nullable=True)
    city = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    country = Column(Text, nullable=True)
    employees_scraped = Column(Boolean, nullable=False, default=False)
    employees_scraped_at = Column(DateTime(timezone=True), nullable=True)
    seo_score = Column(Integer, nullable=True)
    seo_data = Column(JSON, nullable=True)
    seo_analyzed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class CompanyPost(Base):
    __tablename__ = 'company_posts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=True, index=True)
    organization_linkedin_url = Column(Text, nullable=False, index=True)
    post_url = Column(Text, nullable=False, unique=True)
    posted_date = Column(DateTime(timezone=True), nullable=True)
    language = Column(Text, nullable=True)
    author = Column(Text, nullable=True)
    text = Column(Text, nullable=True)
    reactions = Column(Integer, nullable=True)
    likes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CompanyReview(Base):
    __tablename__ = 'company_reviews'

    id = Column(Integer, primary_key=True, autoincrement=True)
    company_id = Column(Integer, ForeignKey('companies.id'), nullable=False, index=True)
    trustpilot_id = Column(Text, nullable=False)
    rating = Column(Float, nullable=False)
    title = Column(Text, nullable=True)
    body = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('company_id', 'trustpilot_id', name='uq_company_review'),
    )
