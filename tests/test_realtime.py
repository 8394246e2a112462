import json
from datetime import timedelta

import pytest

from opsboard.models import Announcement, Flight, SessionLocal, get_session
from opsboard.models.base import utcnow
from opsboard.realtime import (
    DELETE,
    INSERT,
    UPDATE,
    ChangeEvent,
    ChangeFeed,
    change_feed,
    format_sse,
    stream_events,
)


@pytest.fixture
def received(app):
    events = []
    unsubscribe = [
        change_feed.subscribe('flights', events.append),
        change_feed.subscribe('announcements', events.append),
    ]
    yield events
    for handle in unsubscribe:
        handle()


def _flight(**extra) -> Flight:
    departure = utcnow() + timedelta(hours=2)
    return Flight(
        flight_number='OK0501',
        departure_airport='PRG',
        arrival_airport='CDG',
        departure_time=departure,
        arrival_time=departure + timedelta(hours=2),
        **extra,
    )


class TestChangeFeed:

    def test_subscribe_and_unsubscribe(self):
        feed = ChangeFeed()
        seen = []
        unsubscribe = feed.subscribe('flights', seen.append)

        feed.publish(ChangeEvent('flights', INSERT, 'f1'))
        feed.publish(ChangeEvent('announcements', INSERT, 'a1'))
        unsubscribe()
        feed.publish(ChangeEvent('flights', DELETE, 'f1'))

        assert [(c.table, c.type) for c in seen] == [('flights', INSERT)]
        assert feed.subscriber_count('flights') == 0
        assert feed.stats['published'] == 3

    def test_failing_callback_does_not_block_others(self):
        feed = ChangeFeed()
        seen = []

        def broken(change):
            raise RuntimeError('listener blew up')

        feed.subscribe('flights', broken)
        feed.subscribe('flights', seen.append)
        feed.publish(ChangeEvent('flights', UPDATE, 'f1'))

        assert len(seen) == 1

    def test_event_dict_round_trip_keeps_timestamp(self):
        change = ChangeEvent('flights', UPDATE, 'f1')
        assert ChangeEvent.from_dict(change.to_dict()) == change


class TestOrmHooks:

    def test_insert_update_delete_published_after_commit(self, received):
        with get_session() as session:
            flight = _flight()
            session.add(flight)
            session.flush()
            assert received == []
        flight_id = flight.id

        assert [(c.table, c.type, c.record_id) for c in received] == [('flights', INSERT, flight_id)]

        with get_session() as session:
            session.get(Flight, flight_id).gate = 'A1'
        with get_session() as session:
            session.delete(session.get(Flight, flight_id))

        assert [c.type for c in received] == [INSERT, UPDATE, DELETE]

    def test_rolled_back_write_not_published(self, received):
        session = SessionLocal()
        try:
            session.add(Announcement(title='Draft', content='Never sent'))
            session.flush()
            session.rollback()
        finally:
            session.close()

        assert received == []

    def test_failed_commit_not_published(self, received):
        with pytest.raises(RuntimeError):
            with get_session() as session:
                session.add(_flight())
                session.flush()
                raise RuntimeError('abort')

        assert received == []


class TestServerSentEvents:

    def test_format(self):
        frame = format_sse(ChangeEvent('flights', INSERT, 'f1', commit_timestamp='2026-10-19T12:00:00'))
        assert frame.startswith('event: change\ndata: ')
        assert frame.endswith('\n\n')
        payload = json.loads(frame.split('data: ', 1)[1])
        assert payload == {
            'table': 'flights',
            'type': INSERT,
            'record_id': 'f1',
            'commit_timestamp': '2026-10-19T12:00:00',
        }

    def test_stream_frames_and_cleanup(self):
        feed = ChangeFeed()
        stream = stream_events('flights', feed=feed, keepalive=0.01)

        assert next(stream) == ': connected\n\n'
        assert feed.subscriber_count('flights') == 1

        feed.publish(ChangeEvent('flights', DELETE, 'f9'))
        assert '"record_id": "f9"' in next(stream)
        assert next(stream) == ': keepalive\n\n'

        stream.close()
        assert feed.subscriber_count('flights') == 0
