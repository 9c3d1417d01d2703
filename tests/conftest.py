"""Pytest fixtures for the FORS API.

Each test gets a fresh app on in-memory SQLite plus factories for the
access-control records most tests need.
"""
import pytest

from app import create_app
from auth import issue_session_token
from models import db, Permission, Role, User, Project, FarmerType, Farmer


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_permission(app):
    def _make(code, name=None):
        permission = Permission.query.filter_by(code=code).first()
        if permission is None:
            permission = Permission(code=code, name=name or code.replace('_', ' ').title())
            db.session.add(permission)
            db.session.commit()
        return permission
    return _make


@pytest.fixture
def make_role(app, make_permission):
    def _make(name, codes=(), unscoped=False):
        role = Role(name=name, unscoped=unscoped, permissions=[make_permission(c) for c in codes])
        db.session.add(role)
        db.session.commit()
        return role
    return _make


@pytest.fixture
def make_user(app):
    counter = {'n': 0}

    def _make(role, email=None, password='password123', **fields):
        counter['n'] += 1
        user = User(
            full_name=fields.pop('full_name', f"Test User {counter['n']}"),
            email=email or f"user{counter['n']}@example.com",
            role=role,
            **fields
        )
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_project(app):
    counter = {'n': 0}

    def _make(name=None, users=()):
        counter['n'] += 1
        project = Project(
            name=name or f"Project {counter['n']}",
            description='Outreach project',
            assigned_users=list(users)
        )
        db.session.add(project)
        db.session.commit()
        return project
    return _make


@pytest.fixture
def farmer_type(app):
    farmer_type = FarmerType(name='Smallholder')
    db.session.add(farmer_type)
    db.session.commit()
    return farmer_type


@pytest.fixture
def make_farmer(app, farmer_type):
    def _make(project, full_name='Aung Min', **fields):
        farmer = Farmer(full_name=full_name, project=project, farmer_type=farmer_type, **fields)
        db.session.add(farmer)
        db.session.commit()
        return farmer
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user, **kwargs):
        return {'Authorization': f'Bearer {issue_session_token(user, **kwargs)}'}
    return _headers


@pytest.fixture
def admin(make_role, make_user):
    """Unscoped administrator holding every permission used by the routes."""
    codes = [
        f'{action}_{entity}'
        for entity in ('USERS', 'ROLES', 'PERMISSIONS', 'FARMER_TYPES', 'QUARTERS')
        for action in ('VIEW', 'ADD', 'EDIT', 'DELETE')
    ] + [
        'VIEW_PROJECTS', 'CREATE_PROJECTS', 'EDIT_PROJECTS', 'DELETE_PROJECTS',
        'VIEW_FARMER_RECORDS', 'ADD_FARMER_RECORDS', 'EDIT_FARMER_RECORDS', 'DELETE_FARMER_RECORDS',
    ]
    role = make_role('Administrator', codes, unscoped=True)
    return make_user(role, email='admin@example.com', full_name='Admin')
