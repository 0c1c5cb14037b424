#!/usr/bin/env python3
"""
Seed the scrapers catalog with one row per supported adapter.

Existing rows (matched by name) are updated in place, so the script can be
re-run after changing an actor id.

Usage:
    python scripts/seed_scrapers.py              # create tables if needed, upsert rows
    python scripts/seed_scrapers.py --list       # print the catalog and exit

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from leadflow.database import get_session, engine, Base, import_models
from leadflow.models.scraper import Scraper
from leadflow.pipeline.run_config import get_default_actor
from leadflow.scrapers.base import MapperType
from leadflow.scrapers.registry import ADAPTERS


SCRAPERS = [
    ('Lead Scraper (Apollo)',        MapperType.APIFY),
    ('Leads Finder',                 MapperType.LEADS_FINDER),
    ('LinkedIn Company Employees',   MapperType.LINKEDIN_COMPANY_EMPLOYEES),
    ('Bulk Email Finder',            MapperType.BULK_EMAIL_FINDER),
    ('LinkedIn Company Posts',       MapperType.LINKEDIN_COMPANY_POSTS),
    ('LinkedIn Profile Posts',       MapperType.LINKEDIN_PROFILE_POSTS),
    ('Bulk Email Validator',         MapperType.EMAIL_VALIDATOR),
    ('Trustpilot Reviews',           MapperType.TRUSTPILOT_REVIEWS),
    ('PageSpeed SEO',                MapperType.PAGESPEED_SEO),
]


def seed():
    import_models()
    Base.metadata.create_all(engine)

    session = get_session()
    try:
        for name, mapper_type in SCRAPERS:
            actor = get_default_actor(mapper_type.value)
            config = {'actorId': actor} if actor else {}
            row = session.query(Scraper).filter_by(name=name).first()
            if row is None:
                row = Scraper(name=name, mapper_type=mapper_type.value)
                session.add(row)
                action = 'created'
            else:
                action = 'updated'
            row.mapper_type = mapper_type.value
            row.provider_config = config
            row.description = ADAPTERS[mapper_type].description
            row.is_active = True
            print(f"  {action:8s} {name} ({mapper_type.value})")
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def list_catalog():
    import_models()
    session = get_session()
    try:
        for row in session.query(Scraper).order_by(Scraper.id):
            state = 'active' if row.is_active else 'inactive'
            print(f"  #{row.id:<3} {row.name:32s} {row.mapper_type:28s} {state}")
    finally:
        session.close()


def main():
    parser = argparse.ArgumentParser(description='Seed the scrapers catalog')
    parser.add_argument('--list', action='store_true', help='Print the catalog and exit')
    args = parser.parse_args()

    if args.list:
        list_catalog()
        return
    print("Seeding scrapers...")
    seed()
    print("Done.")


if __name__ == '__main__':
    main()
