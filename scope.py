"""Project-scope filtering for project-linked records.

Users whose role is flagged ``unscoped`` see every project. Everyone else
only reads and writes inside the projects they are assigned to.
"""
from errors import AuthorizationError
from models import db, project_users


def is_unscoped(user):
    return bool(user.role and user.role.unscoped)


def assigned_project_ids(user):
    rows = db.session.query(project_users.c.project_id).filter(
        project_users.c.user_id == user.id
    ).all()
    return {project_id for (project_id,) in rows}


def scope_to_projects(query, column, user):
    """Restrict ``query`` to rows whose ``column`` is an assigned project."""
    if is_unscoped(user):
        return query
    # An empty assignment set yields an empty result, not an error
    return query.filter(column.in_(sorted(assigned_project_ids(user))))


def can_access_project(user, project_id):
    return is_unscoped(user) or project_id in assigned_project_ids(user)


def require_project_access(user, project_id, message='Access denied to this project.'):
    if not can_access_project(user, project_id):
        raise AuthorizationError(message)
