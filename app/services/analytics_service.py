import logging
from datetime import datetime
from typing import Optional
from app.core.config import settings
from app.core.firebase import get_firestore_client

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = 'analytics_events'
ERRORS_COLLECTION = 'crashlytics_errors'


class AnalyticsService:
    """
    Product analytics sink backed by Firestore.

    Events such as ``quota_exceeded`` or ``answer_generation_fallback`` and
    ``<action>_success`` / ``<action>_failure`` pairs land in
    ``analytics_events``; failures are mirrored to ``crashlytics_errors``.
    With ``ANALYTICS_ENABLED=false`` (development, tests, CLI) nothing is
    written and only the log line remains. Writing never raises.
    """

    def __init__(self, client=None, enabled: Optional[bool] = None):
        self.enabled = settings.analytics_enabled if enabled is None else enabled
        self._client = client
        self.logger = logging.getLogger(__name__)

    @property
    def db(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    def _write(self, collection: str, document: dict):
        if not self.enabled:
            return

        try:
            self.db.collection(collection).add({
                **document,
                'environment': settings.environment,
                'timestamp': datetime.utcnow(),
            })
        except Exception as e:
            # Analytics failures should not break main functionality
            logger.error(f"analytics: Failed to write to {collection} - {e}")

    def log_event(self, event_name: str, user_id: str = None, parameters: dict = None):
        logger.info(f"log_event: {event_name}, user: {user_id}")
        self._write(EVENTS_COLLECTION, {
            'event_name': event_name,
            'user_id': user_id,
            'parameters': parameters or {},
        })

    def log_crash(
        self,
        error: str,
        action: str,
        user_id: str = None,
        parameters: dict = None,
        fatal: bool = False
    ):
        logger.info(f"log_crash: {action}, error: {error}, fatal: {fatal}")
        self._write(ERRORS_COLLECTION, {
            'action': action,
            'user_id': user_id,
            'error_message': error,
            'parameters': parameters or {},
            'fatal': fatal,
        })

    def log_success(self, action: str, user_id: str = None, parameters: dict = None):
        self.log_event(
            event_name=f'{action}_success',
            user_id=user_id,
            parameters={'status': 'success', **(parameters or {})}
        )

    def log_failure(self, action: str, error: str, user_id: str = None, parameters: dict = None):
        """Record a failed action as an event and as an error report."""
        self.log_event(
            event_name=f'{action}_failure',
            user_id=user_id,
            parameters={'status': 'failure', 'error': error, **(parameters or {})}
        )
        self.log_crash(error=error, action=action, user_id=user_id, parameters=parameters)
