"""Bulk email validator: up to 1000 addresses per run, verdicts written back onto leads."""
import logging
from typing import Dict, Any

from leadflow.errors import ValidationError
from leadflow.pipeline.normalize import normalize_email
from leadflow.scrapers.apify import ApifyAdapter
from leadflow.scrapers.base import MappingResult, Capability, MapperType

logger = logging.getLogger('scrapers.email_validator')

MAX_EMAILS_PER_RUN = 1000


class EasyBulkEmailValidatorAdapter(ApifyAdapter):
    mapper_type = MapperType.EMAIL_VALIDATOR
    capability = Capability.EMAIL_VALIDATOR
    description = 'Bulk email validation (valid / invalid / catch-all)'
    max_batch_size = MAX_EMAILS_PER_RUN

    def build_input(self, params: Dict[str, Any]) -> Dict[str, Any]:
        emails = params.get('emails')
        if isinstance(emails, str):
            emails = [emails]
        emails = [e.strip() for e in emails or [] if isinstance(e, str) and e.strip()]
        if not emails:
            raise ValidationError("At least one email is required")
        if len(emails) > MAX_EMAILS_PER_RUN:
            raise ValidationError(f"At most {MAX_EMAILS_PER_RUN} emails per run (got {len(emails)})")
        return {'emails': emails}

    def map_to_leads(self, items, collection_id, user_id, options=None) -> MappingResult:
        index = {normalize_email(k): v for k, v in ((options or {}).get('email_index') or {}).items()}
        if not index:
            logger.warning("No email index given, %d validator rows skipped", len(items))
            return MappingResult(skipped=len(items))
        return self.mapper.apply_email_verification(items, index)
