import pytest

from opsboard.client import ApiClient, AuthClient, Dashboard


def _auth(session):
    auth = AuthClient(ApiClient(base_url='http://ops.test'))
    auth.session = session
    return auth


def test_admin_gets_user_panel(admin_session):
    auth = _auth(admin_session)
    dashboard = Dashboard(auth.api, auth)

    assert dashboard.users is not None
    assert dashboard.user_dialog.users is dashboard.users
    assert [s.label for s in dashboard.lists] == ['announcements', 'flights', 'users']


def test_staff_has_no_user_panel(staff_session):
    auth = _auth(staff_session)
    dashboard = Dashboard(auth.api, auth)

    assert dashboard.users is None
    assert dashboard.user_dialog is None
    assert [s.label for s in dashboard.lists] == ['announcements', 'flights']


def test_requires_sign_in():
    auth = AuthClient(ApiClient(base_url='http://ops.test'))
    with pytest.raises(ValueError):
        Dashboard(auth.api, auth)
