"""Seeded roles: the administrator holds every permission explicitly."""
from auth import has_permission
from models import Permission, Quarter
from scope import is_unscoped
from seed import PERMISSIONS, seed_access_control, seed_quarters, seed_users


def test_administrator_holds_every_permission(app):
    admin_role, user_role = seed_access_control()
    admin, users = seed_users(admin_role, user_role)

    assert Permission.query.count() == len(PERMISSIONS)
    assert all(has_permission(admin, code) for code in PERMISSIONS)
    assert is_unscoped(admin)

    field = users[0]
    assert has_permission(field, 'VIEW_FARMER_RECORDS')
    assert not has_permission(field, 'DELETE_FARMER_RECORDS')
    assert not is_unscoped(field)


def test_quarters_do_not_overlap(app):
    seed_quarters()

    quarters = Quarter.query.order_by(Quarter.start_date).all()
    assert len(quarters) == 4
    for earlier, later in zip(quarters, quarters[1:]):
        assert earlier.end_date < later.start_date
