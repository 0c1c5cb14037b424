"""
Usage and cost ledger writes.

Nothing here raises to the caller: every write is wrapped in try/except so
the pipeline never fails on a ledger error. The provider cost lookup runs as
detached background work after the run row is stored.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional

from leadflow.database import get_session
from leadflow.models.entity_usage import EntityScraperUsage
from leadflow.models.scraper_run import ScraperRun
from leadflow.services.background import get_background_runner

logger = logging.getLogger('services.usage')


class UsageRecorder:

    def __init__(self, session_factory: Callable = None, runner=None):
        self.session_factory = session_factory or get_session
        self._runner = runner

    @property
    def runner(self):
        if self._runner is None:
            self._runner = get_background_runner()
        return self._runner

    def _open_session(self):
        try:
            return self.session_factory()
        except Exception:
            logger.error("Could not open a session for the usage ledger", exc_info=True)
            return None

    # ── Runs ─────────────────────────────────────────────────────────────────

    def record_run(self, run_id: str, scraper_id: Optional[int], user_id: int, source: str,
                   status: str, item_count: int = 0, collection_id: int = None,
                   company_id: int = None, lead_id: int = None, cost_usd: float = None,
                   started_at: datetime = None, finished_at: datetime = None,
                   adapter=None, fetch_cost: bool = False) -> bool:
        """
        INSERT or UPDATE the scraper_runs row for `run_id`.

        With fetch_cost=True and no cost given, the adapter's cost lookup is
        spawned in the background and fills cost_usd/usage_details later.
        Returns False when the write failed (already logged).
        """
        if not run_id:
            return False
        session = self._open_session()
        if session is None:
            return False
        stored = False
        try:
            row = session.query(ScraperRun).filter_by(run_id=run_id).first()
            if row is None:
                row = ScraperRun(
                    run_id=run_id,
                    scraper_id=scraper_id,
                    user_id=user_id,
                    source=source,
                    collection_id=collection_id,
                    company_id=company_id,
                    lead_id=lead_id,
                    status=status,
                    item_count=item_count or 0,
                    started_at=started_at,
                )
                session.add(row)
            else:
                row.status = status
                row.item_count = item_count or 0
            if cost_usd is not None:
                row.cost_usd = cost_usd
            if finished_at is not None:
                row.finished_at = finished_at
            session.commit()
            stored = True
        except Exception:
            session.rollback()
            logger.error("Failed to record run %s", run_id, exc_info=True, extra={'run_id': run_id})
        finally:
            session.close()

        if stored and fetch_cost and cost_usd is None and adapter is not None:
            try:
                self.runner.spawn(f'cost:{run_id}', self.fetch_cost, adapter, run_id)
            except Exception:
                logger.error("Could not schedule cost lookup for run %s", run_id, exc_info=True)
        return stored

    def fetch_cost(self, adapter, run_id: str) -> Optional[Dict[str, Any]]:
        """Ask the adapter for the run's cost and store it on the run row."""
        cost = adapter.get_cost(run_id)
        if not cost:
            logger.info("No cost reported for run %s", run_id, extra={'run_id': run_id})
            return None

        session = self.session_factory()
        try:
            row = session.query(ScraperRun).filter_by(run_id=run_id).first()
            if row is None:
                logger.warning("Cost for unknown run %s dropped", run_id)
                return None
            if cost.get('cost_usd') is not None:
                row.cost_usd = float(cost['cost_usd'])
            if cost.get('usage_details'):
                row.usage_details = cost['usage_details']
            if cost.get('started_at'):
                row.started_at = cost['started_at']
            if cost.get('finished_at'):
                row.finished_at = cost['finished_at']
            session.commit()
            logger.info("Run %s cost $%.4f", run_id, row.cost_usd or 0.0, extra={'run_id': run_id})
            return cost
        except Exception:
            session.rollback()
            logger.error("Failed to store cost for run %s", run_id, exc_info=True)
            return None
        finally:
            session.close()

    # ── Entity usage ─────────────────────────────────────────────────────────

    def record_entity_usage(self, entity_type: str, entity_id: int, scraper_id: Optional[int],
                            user_id: int, source: str, has_result: bool, item_count: int = 0,
                            run_id: str = None, config_used: Dict[str, Any] = None) -> bool:
        """Append one usage row. Errors are logged and swallowed."""
        session = self._open_session()
        if session is None:
            return False
        try:
            session.add(EntityScraperUsage(
                entity_type=entity_type,
                entity_id=entity_id,
                scraper_id=scraper_id,
                run_id=run_id,
                source=source,
                has_result=bool(has_result),
                item_count=item_count or 0,
                config_used=config_used or {},
                user_id=user_id,
                created_at=datetime.now(timezone.utc),
            ))
            session.commit()
            return True
        except Exception:
            session.rollback()
            logger.error("Failed to record %s %s usage for run %s", entity_type, entity_id, run_id,
                         exc_info=True)
            return False
        finally:
            session.close()

    def record_touches(self, touches: Iterable, scraper_id: Optional[int], user_id: int,
                       source: str, run_id: str = None, config_used: Dict[str, Any] = None) -> int:
        """record_entity_usage() for every EntityTouch; returns how many were stored."""
        stored = 0
        for touch in touches:
            try:
                ok = self.record_entity_usage(touch.entity_type, touch.entity_id, scraper_id, user_id,
                                              source, touch.has_result, touch.item_count,
                                              run_id=run_id, config_used=config_used)
            except Exception:
                logger.error("Usage recording raised for %s %s", touch.entity_type, touch.entity_id,
                             exc_info=True)
                ok = False
            stored += int(bool(ok))
        return stored
