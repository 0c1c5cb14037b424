"""
RunController: submit one provider job and poll it to a terminal outcome.

    execute() -> SUBMITTED -> poll every `interval` seconds ->
        SUCCEEDED                  -> fetch results, record run, return RunOutcome
        FAILED / ABORTED / TIMED-OUT -> record run (item_count=0), raise RunFailedError
        ceiling reached            -> record run as last seen, raise RunTimeoutError

The poll budget is `max_attempts = ceiling // interval`. ProviderError from
get_status() is transient and consumes budget like any other poll;
RateLimitError stops the loop unless the caller passed
retry_on_rate_limit=True. The loop also stops once `ceiling` seconds of
wall clock have passed, however slow the status reads are.

The scraper_runs row is written when the provider accepts the job and
finalized once at the terminal outcome, success or failure; only the
final write schedules the cost lookup.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from leadflow.errors import ProviderError, RateLimitError, RunFailedError, RunTimeoutError
from leadflow.models.live_run import LiveRun
from leadflow.pipeline.run_config import get_poll_interval, get_max_run_seconds
from leadflow.scrapers.base import ProviderAdapter, RunStatus

logger = logging.getLogger('pipeline.run_controller')


@dataclass
class RunOutcome:
    run_id: str
    status: RunStatus
    items: List[Dict[str, Any]] = field(default_factory=list)
    attempts: int = 0
    duration: float = 0.0


class RunController:

    def __init__(self, adapter: ProviderAdapter, recorder=None,
                 poll_interval: float = None, max_seconds: float = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 track: bool = True):
        self.adapter = adapter
        self.recorder = recorder
        self.poll_interval = poll_interval if poll_interval is not None else get_poll_interval()
        self.max_seconds = max_seconds if max_seconds is not None else get_max_run_seconds()
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.sleep = sleep
        self.clock = clock
        self.track = track

    @property
    def max_attempts(self) -> int:
        return int(self.max_seconds // self.poll_interval)

    def run(self, params: Dict[str, Any], user_id: int, source: str, scraper_id: int = None,
            collection_id: int = None, company_id: int = None, lead_id: int = None,
            retry_on_rate_limit: bool = False) -> RunOutcome:
        """
        Submit `params` and block until the run is terminal or the ceiling is hit.

        Raises ValidationError/ProviderError/RateLimitError from execute()
        (nothing recorded, no run id yet), RunFailedError, RunTimeoutError.
        """
        ledger = {
            'scraper_id': scraper_id, 'user_id': user_id, 'source': source,
            'collection_id': collection_id, 'company_id': company_id, 'lead_id': lead_id,
        }
        log_extra = {'scraper_id': scraper_id, 'user_id': user_id}

        start = self.clock()
        submitted_at = datetime.now(timezone.utc)
        provider_run = self.adapter.execute(params)
        run_id = provider_run.id
        log_extra['run_id'] = run_id
        logger.info("Run %s submitted (%s, source=%s)", run_id,
                    self.adapter.mapper_type.value, source, extra=log_extra)

        self._record(run_id, provider_run.status, 0, ledger, submitted_at, fetch_cost=False)
        live = self._track(run_id, provider_run.status, ledger)
        status = provider_run.status
        attempts = 0

        while not status.is_terminal:
            elapsed = self.clock() - start
            if attempts >= self.max_attempts or elapsed >= self.max_seconds:
                logger.warning("Run %s still %s after %d polls (%.0fs), giving up", run_id,
                               status.value, attempts, elapsed, extra=log_extra)
                self._record(run_id, status, 0, ledger, submitted_at)
                self._update(live, status, attempts, error='poll ceiling reached')
                raise RunTimeoutError(
                    f"Run {run_id} did not finish within {self.max_seconds:.0f}s",
                    run_id=run_id, elapsed=elapsed, attempts=attempts, last_status=status.value,
                )

            self.sleep(self.poll_interval)
            attempts += 1
            try:
                status = self.adapter.get_status(run_id)
            except RateLimitError as e:
                if not retry_on_rate_limit:
                    self._record(run_id, status, 0, ledger, submitted_at)
                    self._update(live, status, attempts, error='rate limited')
                    e.run_id = run_id
                    raise
                logger.info("Run %s status read rate limited, retrying", run_id, extra=log_extra)
                continue
            except ProviderError as e:
                logger.warning("Run %s status read failed (attempt %d/%d): %s", run_id,
                               attempts, self.max_attempts, e, extra=log_extra)
                continue
            self._update(live, status, attempts)

        if status != RunStatus.SUCCEEDED:
            self._record(run_id, status, 0, ledger, submitted_at, finished=True)
            self._update(live, status, attempts, error=status.classification)
            logger.error("Run %s ended %s", run_id, status.value, extra=log_extra)
            raise RunFailedError(f"Run {run_id} ended with status {status.value}", run_id=run_id,
                                 status=status.value, classification=status.classification)

        try:
            items = self.adapter.get_results(run_id)
        except ProviderError as e:
            self._record(run_id, status, 0, ledger, submitted_at, finished=True)
            self._update(live, status, attempts, error='results unavailable')
            logger.error("Run %s succeeded but results could not be fetched: %s", run_id, e,
                         extra=log_extra)
            raise RunFailedError(f"Run {run_id} finished but its results could not be fetched: {e}",
                                 run_id=run_id, status=status.value, classification='finished-with-error')

        self._record(run_id, status, len(items), ledger, submitted_at, finished=True)
        self._update(live, status, attempts, item_count=len(items))
        duration = self.clock() - start
        logger.info("Run %s succeeded with %d items after %d polls (%.1fs)", run_id, len(items),
                    attempts, duration, extra=log_extra)
        return RunOutcome(run_id=run_id, status=status, items=items, attempts=attempts, duration=duration)

    # ------------------------------------------------------------------

    def _record(self, run_id: str, status: RunStatus, item_count: int, ledger: Dict,
                submitted_at: datetime, finished: bool = False, fetch_cost: bool = True):
        if self.recorder is None:
            return
        try:
            self.recorder.record_run(
                run_id, status=status.value, item_count=item_count,
                started_at=submitted_at,
                finished_at=datetime.now(timezone.utc) if finished else None,
                adapter=self.adapter, fetch_cost=fetch_cost, **ledger,
            )
        except Exception:
            logger.error("Recording run %s raised", run_id, exc_info=True)

    def _track(self, run_id: str, status: RunStatus, ledger: Dict) -> Optional[LiveRun]:
        if not self.track:
            return None
        return LiveRun(run_id, status=status.value, scraper_id=ledger['scraper_id'],
                       user_id=ledger['user_id'], source=ledger['source']).save()

    @staticmethod
    def _update(live: Optional[LiveRun], status: RunStatus, attempts: int, **kwargs):
        if live is not None:
            live.update(status.value, attempts=attempts, **kwargs)
