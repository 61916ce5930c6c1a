import json
import logging

from django.core.serializers.json import DjangoJSONEncoder

from ..models import EventLog

logger = logging.getLogger(__name__)


def log_event(type, action, account=None, entity_type=None, entity_id=None, entity_name=None, details=None):
    """Record an audit row for a mutating operation."""
    # Round-trip through the encoder so datetimes land as ISO strings
    payload = json.loads(json.dumps(details or {}, cls=DjangoJSONEncoder))

    event = EventLog.objects.create(
        type=type,
        action=action,
        account=account,
        performed_by=account.email if account else 'System',
        entity_type=entity_type or type,
        entity_id=str(entity_id) if entity_id is not None else None,
        entity_name=entity_name,
        details=payload,
    )
    logger.info(f"[EVENT] {type}/{action} {entity_type or type} {entity_id} by {event.performed_by}")
    return event
