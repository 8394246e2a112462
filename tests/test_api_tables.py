from datetime import timedelta

import pytest

from opsboard.models.base import utcnow


def _flight(number='AA1234', hours_ahead=4, duration=6, **extra):
    departure = utcnow() + timedelta(hours=hours_ahead)
    return {
        'flight_number': number,
        'departure_airport': 'JFK',
        'arrival_airport': 'LAX',
        'departure_time': departure.isoformat(),
        'arrival_time': (departure + timedelta(hours=duration)).isoformat(),
        'status': 'scheduled',
        **extra,
    }


@pytest.fixture
def announcement(client, admin_headers):
    response = client.post(
        '/api/tables/announcements',
        json={'title': 'Maintenance', 'content': 'Runway 2 closed', 'priority': 'high'},
        headers=admin_headers,
    )
    assert response.status_code == 201
    return response.get_json()['row']


class TestSelect:

    def test_requires_session(self, client):
        response = client.get('/api/tables/announcements')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Unauthorized'

    def test_unknown_table(self, client, staff_headers):
        response = client.get('/api/tables/aircraft', headers=staff_headers)
        assert response.status_code == 404

    def test_empty_table(self, client, staff_headers):
        response = client.get('/api/tables/flights', headers=staff_headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data['rows'] == []
        assert data['count'] == 0
        assert 'timestamp' in data

    def test_filter_order_limit(self, client, admin_headers):
        for number, hours in (('AA0003', 3), ('AA0001', 1), ('AA0002', 2), ('AA0000', -2)):
            response = client.post('/api/tables/flights', json=_flight(number, hours), headers=admin_headers)
            assert response.status_code == 201

        now = utcnow().isoformat()
        response = client.get(
            f'/api/tables/flights?departure_time=gte.{now}&order=departure_time&limit=2',
            headers=admin_headers,
        )
        rows = response.get_json()['rows']
        assert [r['flight_number'] for r in rows] == ['AA0001', 'AA0002']

    def test_descending_order(self, client, admin_headers):
        for number, hours in (('AA0001', 1), ('AA0002', 2)):
            client.post('/api/tables/flights', json=_flight(number, hours), headers=admin_headers)

        response = client.get('/api/tables/flights?order=departure_time&desc=true', headers=admin_headers)
        assert [r['flight_number'] for r in response.get_json()['rows']] == ['AA0002', 'AA0001']

    def test_bad_filter_operator(self, client, staff_headers):
        response = client.get('/api/tables/flights?status=like.sched', headers=staff_headers)
        assert response.status_code == 400
        assert response.get_json()['field'] == 'status'

    def test_profiles_include_roles(self, client, admin_headers, accounts):
        response = client.get(f'/api/tables/profiles?id=eq.{accounts["admin"]}', headers=admin_headers)
        [profile] = response.get_json()['rows']
        assert profile['user_roles'] == [{'role': 'admin'}]


class TestInsert:

    def test_announcement_defaults(self, announcement, accounts):
        assert announcement['title'] == 'Maintenance'
        assert announcement['priority'] == 'high'
        assert announcement['read'] is False
        assert announcement['created_by'] == accounts['admin']
        assert announcement['id']
        assert announcement['created_at']

    def test_staff_cannot_insert(self, client, staff_headers):
        response = client.post(
            '/api/tables/announcements',
            json={'title': 'Hi', 'content': 'There'},
            headers=staff_headers,
        )
        assert response.status_code == 403

    def test_invalid_enum_rejected(self, client, admin_headers):
        response = client.post('/api/tables/flights', json=_flight(status='landed'), headers=admin_headers)
        assert response.status_code == 400
        assert response.get_json()['field'] == 'status'

    def test_arrival_before_departure_rejected(self, client, admin_headers):
        response = client.post('/api/tables/flights', json=_flight(duration=-1), headers=admin_headers)
        assert response.status_code == 400
        assert 'constraint' in response.get_json()['error']

    def test_read_only_column_rejected(self, client, admin_headers):
        response = client.post(
            '/api/tables/announcements',
            json={'id': 'mine', 'title': 'a', 'content': 'b'},
            headers=admin_headers,
        )
        assert response.status_code == 400

    def test_profiles_managed_by_auth(self, client, admin_headers):
        response = client.post('/api/tables/profiles', json={'email': 'x@y.test'}, headers=admin_headers)
        assert response.status_code == 403


class TestUpdate:

    def test_staff_can_mark_read(self, client, staff_headers, announcement):
        response = client.patch(
            f'/api/tables/announcements/{announcement["id"]}',
            json={'read': True},
            headers=staff_headers,
        )
        assert response.status_code == 200
        row = response.get_json()['row']
        assert row['read'] is True
        assert row['title'] == 'Maintenance'

    def test_staff_cannot_edit_other_fields(self, client, staff_headers, announcement):
        response = client.patch(
            f'/api/tables/announcements/{announcement["id"]}',
            json={'title': 'Hijacked'},
            headers=staff_headers,
        )
        assert response.status_code == 403

    def test_missing_row(self, client, admin_headers):
        response = client.patch('/api/tables/flights/nope', json={'gate': 'A1'}, headers=admin_headers)
        assert response.status_code == 404


class TestDelete:

    def test_delete_row(self, client, admin_headers, announcement):
        response = client.delete(f'/api/tables/announcements/{announcement["id"]}', headers=admin_headers)
        assert response.status_code == 204

        rows = client.get('/api/tables/announcements', headers=admin_headers).get_json()['rows']
        assert rows == []

    def test_staff_cannot_delete(self, client, staff_headers, announcement):
        response = client.delete(f'/api/tables/announcements/{announcement["id"]}', headers=staff_headers)
        assert response.status_code == 403

    def test_delete_missing_row(self, client, admin_headers):
        response = client.delete('/api/tables/flights/nope', headers=admin_headers)
        assert response.status_code == 404

    def test_delete_matching_requires_filter(self, client, admin_headers):
        response = client.delete('/api/tables/user_roles', headers=admin_headers)
        assert response.status_code == 400

    def test_revoke_role_by_filter(self, client, admin_headers, accounts):
        staff_id = accounts['staff']
        response = client.post(
            '/api/tables/user_roles',
            json={'user_id': staff_id, 'role': 'admin'},
            headers=admin_headers,
        )
        assert response.status_code == 201

        response = client.delete(f'/api/tables/user_roles?user_id=eq.{staff_id}&role=eq.admin', headers=admin_headers)
        assert response.get_json() == {'deleted': 1}

    def test_duplicate_role_rejected(self, client, admin_headers, accounts):
        response = client.post(
            '/api/tables/user_roles',
            json={'user_id': accounts['admin'], 'role': 'admin'},
            headers=admin_headers,
        )
        assert response.status_code == 400


class TestChangeStream:

    def test_stream_requires_session(self, client):
        response = client.get('/api/tables/flights/changes')
        assert response.status_code == 401

    def test_stream_opens(self, client, staff_headers):
        response = client.get('/api/tables/flights/changes', headers=staff_headers)
        assert response.status_code == 200
        assert response.mimetype == 'text/event-stream'
        response.close()

    def test_token_in_query_string(self, client, staff_headers):
        token = staff_headers['Authorization'].split(' ', 1)[1]
        response = client.get(f'/api/tables/flights/changes?access_token={token}')
        assert response.status_code == 200
        response.close()


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'ok'
