"""Session tokens, the request gate and permission checks.

Tokens are plain Flask-JWT-Extended access tokens. The role name they carry
is informational only: every protected request reloads the user row (see
``load_active_user``) and resolves permissions from ``role_permissions``.
"""
from functools import wraps

from flask import current_app, jsonify
from flask_jwt_extended import (
    create_access_token, current_user, decode_token, verify_jwt_in_request
)
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import InvalidTokenError

from errors import AuthenticationError, AuthorizationError
from models import db, Permission, User, role_permissions


# ============ Session Token Codec ============

def issue_session_token(user, expires_delta=None):
    claims = {
        'email': user.email,
        'role_name': user.role.name if user.role else None
    }
    kwargs = {'additional_claims': claims}
    if expires_delta is not None:
        kwargs['expires_delta'] = expires_delta
    return create_access_token(identity=str(user.id), **kwargs)


def read_session_claims(token):
    """Verify signature, structure and expiry; return the decoded claims."""
    try:
        return decode_token(token)
    except (InvalidTokenError, JWTExtendedException) as e:
        raise AuthenticationError() from e


# ============ Authentication Gate ============

def load_active_user(jwt_header, jwt_data):
    try:
        user_id = int(jwt_data['sub'])
    except (KeyError, TypeError, ValueError):
        return None

    user = db.session.get(User, user_id)
    if user is None or not user.can_sign_in:
        current_app.logger.info('Rejected token for inactive or unknown user %s', user_id)
        return None
    return user


def register_jwt_callbacks(jwt):
    jwt.user_lookup_loader(load_active_user)

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'Authentication token required.'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid or expired token.'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Invalid or expired token.'}), 401

    @jwt.user_lookup_error_loader
    def inactive_user(jwt_header, jwt_payload):
        return jsonify({'error': 'User is inactive or not found.'}), 403


# ============ Permission Resolver ============

def has_permission(user, code):
    if user is None or user.role_id is None:
        return False
    match = db.session.query(Permission.id).join(
        role_permissions, role_permissions.c.permission_id == Permission.id
    ).filter(
        role_permissions.c.role_id == user.role_id,
        Permission.code == code
    ).first()
    return match is not None


def authorize(user, code):
    if not has_permission(user, code):
        current_app.logger.info('User %s denied %s', getattr(user, 'id', None), code)
        raise AuthorizationError(permission=code)


def permission_codes(user):
    rows = db.session.query(Permission.code).join(
        role_permissions, role_permissions.c.permission_id == Permission.id
    ).filter(role_permissions.c.role_id == user.role_id).order_by(Permission.code).all()
    return [code for (code,) in rows]


def permission_required(code):
    """Gate the view behind a valid token, an active account and ``code``."""
    def wrapper(fn):
        @wraps(fn)
        def decorator(*args, **kwargs):
            verify_jwt_in_request()
            authorize(current_user, code)
            return fn(*args, **kwargs)
        return decorator
    return wrapper
