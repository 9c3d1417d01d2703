import os
import random
from datetime import date
from faker import Faker
from app import create_app
from models import db, Permission, Role, User, Project, FarmerType, Farmer, Quarter

# Initialize Faker
fake = Faker()

# code -> display name
PERMISSIONS = {
    'VIEW_USERS': 'Can View Users',
    'ADD_USERS': 'Can Add Users',
    'EDIT_USERS': 'Can Edit Users',
    'DELETE_USERS': 'Can Delete Users',
    'VIEW_ROLES': 'Can View Roles',
    'ADD_ROLES': 'Can Add Roles',
    'EDIT_ROLES': 'Can Edit Roles',
    'DELETE_ROLES': 'Can Delete Roles',
    'VIEW_PERMISSIONS': 'Can View Permissions',
    'ADD_PERMISSIONS': 'Can Add Permissions',
    'EDIT_PERMISSIONS': 'Can Edit Permissions',
    'DELETE_PERMISSIONS': 'Can Delete Permissions',
    'VIEW_PROJECTS': 'Can View Projects',
    'CREATE_PROJECTS': 'Can Create Projects',
    'EDIT_PROJECTS': 'Can Edit Projects',
    'DELETE_PROJECTS': 'Can Delete Projects',
    'VIEW_FARMER_RECORDS': 'Can View Farmer Records',
    'ADD_FARMER_RECORDS': 'Can Add Farmer Records',
    'EDIT_FARMER_RECORDS': 'Can Edit Farmer Records',
    'DELETE_FARMER_RECORDS': 'Can Delete Farmer Records',
    'VIEW_FARMER_TYPES': 'Can View Farmer Types',
    'ADD_FARMER_TYPES': 'Can Add Farmer Types',
    'EDIT_FARMER_TYPES': 'Can Edit Farmer Types',
    'DELETE_FARMER_TYPES': 'Can Delete Farmer Types',
    'VIEW_QUARTERS': 'Can View Quarters',
    'ADD_QUARTERS': 'Can Add Quarters',
    'EDIT_QUARTERS': 'Can Edit Quarters',
    'DELETE_QUARTERS': 'Can Delete Quarters',
}

FIELD_USER_PERMISSIONS = [
    'VIEW_PROJECTS', 'VIEW_FARMER_RECORDS', 'ADD_FARMER_RECORDS',
    'EDIT_FARMER_RECORDS', 'VIEW_FARMER_TYPES', 'VIEW_QUARTERS',
]

FARMER_TYPES = ['Smallholder', 'Commercial', 'Lead Farmer', 'Cooperative Member']

def clear_data():
    """Deletes existing data to avoid duplicates (Order matters for Foreign Keys)"""
    print("Cleaning old data...")
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

def seed_access_control():
    """Permission catalogue plus the Administrator and User roles."""
    print("Seeding permissions and roles...")
    permissions = {code: Permission(code=code, name=name) for code, name in PERMISSIONS.items()}
    db.session.add_all(permissions.values())

    admin_role = Role(name='Administrator', unscoped=True, permissions=list(permissions.values()))
    user_role = Role(name='User', permissions=[permissions[c] for c in FIELD_USER_PERMISSIONS])
    db.session.add_all([admin_role, user_role])
    db.session.commit()
    return admin_role, user_role

def seed_users(admin_role, user_role):
    print("Seeding users...")
    admin = User(
        full_name="System Administrator",
        email=os.environ.get('ADMIN_EMAIL', 'admin@fors.local'),
        role=admin_role
    )
    admin.set_password(os.environ.get('ADMIN_PASSWORD', 'password123'))
    db.session.add(admin)

    users = []
    for i in range(8):
        u = User(full_name=fake.name(), email=f"user{i}@fors.local", role=user_role)
        u.set_password("password123")
        db.session.add(u)
        users.append(u)

    db.session.commit()
    return admin, users

def seed_projects(users):
    print("Seeding projects...")
    projects = []
    for _ in range(4):
        project = Project(
            name=fake.unique.catch_phrase(),
            description=fake.text(max_nb_chars=200),
            status=random.choice([True, True, False]),
            assigned_users=random.sample(users, random.randint(1, 3))
        )
        db.session.add(project)
        projects.append(project)
    db.session.commit()
    return projects

def seed_farmers(projects, admin):
    print("Seeding farmer types and farmers...")
    farmer_types = [FarmerType(name=name) for name in FARMER_TYPES]
    db.session.add_all(farmer_types)
    db.session.commit()

    for _ in range(40):
        project = random.choice(projects)
        encoder = random.choice(project.assigned_users or [admin])
        birth_date = fake.date_of_birth(minimum_age=20, maximum_age=75)
        db.session.add(Farmer(
            full_name=fake.name(),
            mobile_number=fake.phone_number()[:50],
            date_of_birth=birth_date,
            age=date.today().year - birth_date.year,
            gender=random.choice(['Male', 'Female']),
            farmer_type=random.choice(farmer_types),
            project=project,
            added_by_user=encoder,
            country_name=fake.country()[:100],
            state_name=fake.state()[:100],
            district_name=fake.city()[:100],
            village_name=fake.street_name()[:100],
            latitude=float(fake.latitude()),
            longitude=float(fake.longitude())
        ))
    db.session.commit()

def seed_quarters():
    print("Seeding quarters...")
    year = date.today().year
    bounds = [((1, 1), (3, 31)), ((4, 1), (6, 30)), ((7, 1), (9, 30)), ((10, 1), (12, 31))]
    for i, (start, end) in enumerate(bounds, start=1):
        db.session.add(Quarter(name=f"Q{i} {year}", start_date=date(year, *start), end_date=date(year, *end)))
    db.session.commit()

# --------------------------------------------------
# RUNNER
# --------------------------------------------------
if __name__ == '__main__':
    app = create_app(os.environ.get('FLASK_CONFIG', 'development'))
    with app.app_context():
        # Create tables first if they don't exist
        db.create_all()

        clear_data()

        admin_role, user_role = seed_access_control()
        admin, users = seed_users(admin_role, user_role)
        projects = seed_projects(users)
        seed_farmers(projects, admin)
        seed_quarters()

        print("\nSeeding complete!")
