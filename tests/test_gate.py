"""Session token codec and the per-request authentication gate."""
from datetime import timedelta

import pytest

from auth import issue_session_token, read_session_claims
from errors import AuthenticationError
from models import db


class TestSessionTokenCodec:
    """issue_session_token / read_session_claims."""

    def test_claims_round_trip(self, make_role, make_user):
        user = make_user(make_role('User'), email='u1@example.com')
        claims = read_session_claims(issue_session_token(user))

        assert claims['sub'] == str(user.id)
        assert claims['email'] == 'u1@example.com'
        assert claims['role_name'] == 'User'
        assert claims['exp'] - claims['iat'] == 3600

    def test_expired_token_is_rejected(self, make_role, make_user):
        user = make_user(make_role('User'))
        token = issue_session_token(user, expires_delta=timedelta(seconds=-1))

        with pytest.raises(AuthenticationError):
            read_session_claims(token)

    def test_tampered_token_is_rejected(self, make_role, make_user):
        user = make_user(make_role('User'))
        header, payload, signature = issue_session_token(user).split('.')
        forged = '.'.join([header, payload, signature[::-1]])

        with pytest.raises(AuthenticationError):
            read_session_claims(forged)

    def test_garbage_token_is_rejected(self, app):
        with pytest.raises(AuthenticationError):
            read_session_claims('not-a-token')


class TestAuthenticationGate:
    """Status codes produced before any route logic runs."""

    @pytest.fixture
    def viewer(self, make_role, make_user):
        return make_user(make_role('Viewer', ['VIEW_FARMER_RECORDS']))

    def test_missing_token_is_401(self, client):
        response = client.get('/api/farmers')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Authentication token required.'

    def test_non_bearer_header_is_401(self, client):
        response = client.get('/api/farmers', headers={'Authorization': 'Basic dXNlcjpwYXNz'})
        assert response.status_code == 401

    def test_malformed_token_is_401(self, client):
        response = client.get('/api/farmers', headers={'Authorization': 'Bearer abc.def'})
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Invalid or expired token.'

    def test_expired_token_is_401(self, client, viewer, auth_headers):
        headers = auth_headers(viewer, expires_delta=timedelta(seconds=-1))
        response = client.get('/api/farmers', headers=headers)
        assert response.status_code == 401

    def test_valid_token_passes(self, client, viewer, auth_headers):
        response = client.get('/api/farmers', headers=auth_headers(viewer))
        assert response.status_code == 200

    @pytest.mark.parametrize('field', ['is_active', 'activation_status'])
    def test_inactive_account_is_403_with_fresh_token(self, client, viewer, auth_headers, field):
        headers = auth_headers(viewer)
        setattr(viewer, field, False)
        db.session.commit()

        for path in ('/api/farmers', '/api/auth/me', f'/api/chats/{viewer.id}'):
            response = client.get(path, headers=headers)
            assert response.status_code == 403, path
            assert response.get_json()['error'] == 'User is inactive or not found.'

    def test_deleted_account_is_403(self, client, viewer, auth_headers):
        headers = auth_headers(viewer)
        db.session.delete(viewer)
        db.session.commit()

        response = client.get('/api/farmers', headers=headers)
        assert response.status_code == 403

    def test_reactivation_takes_effect_immediately(self, client, viewer, auth_headers):
        headers = auth_headers(viewer)
        viewer.is_active = False
        db.session.commit()
        assert client.get('/api/farmers', headers=headers).status_code == 403

        viewer.is_active = True
        db.session.commit()
        assert client.get('/api/farmers', headers=headers).status_code == 200

    def test_me_reports_live_role_and_permissions(self, client, viewer, auth_headers):
        response = client.get('/api/auth/me', headers=auth_headers(viewer))

        assert response.status_code == 200
        data = response.get_json()
        assert data['email'] == viewer.email
        assert data['role']['name'] == 'Viewer'
        assert data['permissions'] == ['VIEW_FARMER_RECORDS']
