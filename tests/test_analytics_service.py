"""
Tests for the Firestore analytics sink
"""

from unittest.mock import MagicMock

from app.services.analytics_service import ERRORS_COLLECTION, EVENTS_COLLECTION, AnalyticsService


def _written(client, collection):
    return [c.args[0] for c in client.collection(collection).add.call_args_list]


class TestAnalyticsService:

    def test_event_document(self):
        client = MagicMock()

        AnalyticsService(client=client, enabled=True).log_event(
            'quota_exceeded', user_id='student-1', parameters={'limit': 20}
        )

        document = _written(client, EVENTS_COLLECTION)[0]
        assert document['event_name'] == 'quota_exceeded'
        assert document['parameters'] == {'limit': 20}
        assert 'timestamp' in document
        assert 'environment' in document

    def test_failure_writes_event_and_error(self):
        client = MagicMock()

        AnalyticsService(client=client, enabled=True).log_failure('create_question', 'boom', user_id='student-1')

        client.collection.assert_any_call(EVENTS_COLLECTION)
        client.collection.assert_any_call(ERRORS_COLLECTION)
        assert _written(client, EVENTS_COLLECTION)[0]['event_name'] == 'create_question_failure'

    def test_disabled_writes_nothing(self):
        client = MagicMock()

        AnalyticsService(client=client, enabled=False).log_success('create_question', user_id='student-1')

        client.collection.assert_not_called()

    def test_firestore_errors_are_swallowed(self):
        client = MagicMock()
        client.collection.side_effect = RuntimeError("firestore unavailable")

        AnalyticsService(client=client, enabled=True).log_event('user_created', user_id='student-1')
