import pytest

from conftest import ADMIN_EMAIL, PASSWORD, STAFF_EMAIL
from opsboard.models import AuthAccount, SessionLocal, UserRole


def _call(client, headers, action, **params):
    return client.post('/api/admin-users', json={'action': action, **params}, headers=headers)


class TestAuthorization:

    def test_no_session(self, client, accounts):
        response = client.post('/api/admin-users', json={'action': 'delete', 'user_id': accounts['staff']})
        assert response.status_code == 401
        assert response.get_json() == {'error': 'Unauthorized'}

    def test_non_admin_forbidden(self, client, staff_headers, accounts):
        response = _call(client, staff_headers, 'delete', user_id=accounts['admin'])
        assert response.status_code == 403
        assert response.get_json() == {'error': 'Forbidden: Admin access required'}

        with SessionLocal() as session:
            assert session.get(AuthAccount, accounts['admin']) is not None

    def test_invalid_action(self, client, admin_headers):
        response = _call(client, admin_headers, 'promote')
        assert response.status_code == 400
        assert response.get_json() == {'error': 'Invalid action'}


class TestActions:

    def test_create_admin_user(self, client, admin_headers):
        response = _call(
            client, admin_headers, 'create',
            email='ops@flyprague.test', password='Runway123', full_name='Olga Ops', is_admin=True,
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert data['user']['email'] == 'ops@flyprague.test'
        assert data['user']['user_roles'] == [{'role': 'admin'}]

        signed_in = client.post('/api/auth/sign-in', json={'email': 'ops@flyprague.test', 'password': 'Runway123'})
        assert signed_in.status_code == 200

    def test_create_duplicate_email(self, client, admin_headers):
        response = _call(
            client, admin_headers, 'create',
            email=STAFF_EMAIL, password='Runway123', full_name='Dup',
        )
        assert response.status_code == 400
        assert 'already been registered' in response.get_json()['error']

    def test_update_to_taken_email(self, client, admin_headers, accounts):
        response = _call(client, admin_headers, 'update', user_id=accounts['staff'], email=ADMIN_EMAIL)
        assert response.status_code == 400
        assert response.get_json() == {
            'error': 'A user with this email address has already been registered',
            'field': 'email',
        }

        with SessionLocal() as session:
            assert session.get(AuthAccount, accounts['staff']).email == STAFF_EMAIL

    def test_update_keeping_own_email(self, client, admin_headers, accounts):
        response = _call(client, admin_headers, 'update', user_id=accounts['staff'], email=STAFF_EMAIL.upper())
        assert response.get_json() == {'success': True}

    @pytest.mark.parametrize('params, field', [
        ({'email': 'bad', 'password': 'Runway123', 'full_name': 'X'}, 'email'),
        ({'email': 'a@b.test', 'password': 'runway', 'full_name': 'X'}, 'password'),
        ({'email': 'a@b.test', 'password': 'Runway123', 'full_name': ' '}, 'full_name'),
    ])
    def test_create_validation(self, client, admin_headers, params, field):
        response = _call(client, admin_headers, 'create', **params)
        assert response.status_code == 400
        assert response.get_json()['field'] == field

    def test_update_user(self, client, admin_headers, accounts):
        response = _call(client, admin_headers, 'update', user_id=accounts['staff'], full_name='Sam Renamed')
        assert response.get_json() == {'success': True}

        rows = client.get(f'/api/tables/profiles?id=eq.{accounts["staff"]}', headers=admin_headers).get_json()['rows']
        assert rows[0]['full_name'] == 'Sam Renamed'

    def test_reset_password(self, client, admin_headers, accounts):
        response = _call(client, admin_headers, 'reset-password', user_id=accounts['staff'], new_password='Fresh1234')
        assert response.status_code == 200

        old = client.post('/api/auth/sign-in', json={'email': STAFF_EMAIL, 'password': PASSWORD})
        new = client.post('/api/auth/sign-in', json={'email': STAFF_EMAIL, 'password': 'Fresh1234'})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_delete_user_removes_profile_and_roles(self, client, admin_headers, accounts):
        client.post('/api/tables/user_roles', json={'user_id': accounts['staff'], 'role': 'admin'}, headers=admin_headers)

        response = _call(client, admin_headers, 'delete', user_id=accounts['staff'])
        assert response.get_json() == {'success': True}

        with SessionLocal() as session:
            assert session.get(AuthAccount, accounts['staff']) is None
            assert session.query(UserRole).filter_by(user_id=accounts['staff']).count() == 0

    def test_delete_unknown_user(self, client, admin_headers):
        response = _call(client, admin_headers, 'delete', user_id='missing')
        assert response.status_code == 404

    def test_missing_user_id(self, client, admin_headers):
        response = _call(client, admin_headers, 'delete')
        assert response.status_code == 400
        assert response.get_json()['field'] == 'user_id'
