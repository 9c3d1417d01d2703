from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()


def utcnow():
    # Naive UTC, matching what the DateTime columns hand back
    return datetime.now(timezone.utc).replace(tzinfo=None)

# --- ASSOCIATION TABLES (Defined first to avoid reference errors) ---

role_permissions = db.Table('role_permissions',
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    db.Column('permission_id', db.Integer, db.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True)
)

project_users = db.Table('project_users',
    db.Column('project_id', db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
    db.Column('created_at', db.DateTime, default=utcnow)
)

# --- MODELS ---

class Permission(db.Model):
    __tablename__ = 'permissions'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(100), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'code': self.code
        }

class Role(db.Model):
    __tablename__ = 'roles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), unique=True, nullable=False)
    # Unscoped roles see every project; permissions still come from links
    unscoped = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    permissions = db.relationship('Permission', secondary=role_permissions, backref='roles',
                                  order_by='Permission.code')

    def to_dict(self, include_permissions=False):
        data = {
            'id': self.id,
            'name': self.name,
            'unscoped': self.unscoped
        }
        if include_permissions:
            data['permissions'] = [p.to_dict() for p in self.permissions]
        return data

class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey('roles.id'), nullable=False)
    role = db.relationship('Role', backref='users')
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    activation_status = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    projects = db.relationship('Project', secondary=project_users, back_populates='assigned_users')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def can_sign_in(self):
        return bool(self.is_active and self.activation_status)

    def to_dict(self):
        return {
            'id': self.id,
            'full_name': self.full_name,
            'email': self.email,
            'role': self.role.to_dict() if self.role else None,
            'is_active': self.is_active,
            'activation_status': self.activation_status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

    def to_summary(self):
        return {'id': self.id, 'full_name': self.full_name, 'email': self.email}

class OtpTicket(db.Model):
    """Pending login code for one user; a new login overwrites it."""
    __tablename__ = 'otp_tickets'

    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    code = db.Column(db.String(6), nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    attempts = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def is_expired(self, now=None):
        return (now or utcnow()) > self.expires_at

class Project(db.Model):
    __tablename__ = 'projects'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=False)
    status = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    assigned_users = db.relationship('User', secondary=project_users, back_populates='projects')

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'status': self.status,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
        if include_relations:
            data['assigned_users'] = [u.to_summary() for u in self.assigned_users]
        return data

class FarmerType(db.Model):
    __tablename__ = 'farmer_types'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name
        }

class Farmer(db.Model):
    __tablename__ = 'farmers'

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(255), nullable=False)
    mobile_number = db.Column(db.String(50))
    date_of_birth = db.Column(db.Date)
    age = db.Column(db.Integer)
    gender = db.Column(db.String(20))

    farmer_type_id = db.Column(db.Integer, db.ForeignKey('farmer_types.id'), nullable=False)
    farmer_type = db.relationship('FarmerType', backref='farmers')

    project_id = db.Column(db.Integer, db.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    project = db.relationship('Project', backref=db.backref('farmers', cascade='all, delete-orphan'))

    added_by_user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    added_by_user = db.relationship('User')

    country_name = db.Column(db.String(100))
    state_name = db.Column(db.String(100))
    district_name = db.Column(db.String(100))
    village_tract_name = db.Column(db.String(100))
    village_name = db.Column(db.String(100))
    latitude = db.Column(db.Float)
    longitude = db.Column(db.Float)

    date_added = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self, include_relations=False):
        data = {
            'id': self.id,
            'full_name': self.full_name,
            'mobile_number': self.mobile_number,
            'date_of_birth': self.date_of_birth.isoformat() if self.date_of_birth else None,
            'age': self.age,
            'gender': self.gender,
            'farmer_type_id': self.farmer_type_id,
            'project_id': self.project_id,
            'added_by_user_id': self.added_by_user_id,
            'country_name': self.country_name,
            'state_name': self.state_name,
            'district_name': self.district_name,
            'village_tract_name': self.village_tract_name,
            'village_name': self.village_name,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'date_added': self.date_added.isoformat() if self.date_added else None
        }

        if include_relations:
            data['farmer_type'] = self.farmer_type.to_dict() if self.farmer_type else None
            data['project'] = {'id': self.project.id, 'name': self.project.name} if self.project else None
            data['added_by_user'] = self.added_by_user.to_summary() if self.added_by_user else None

        return data

class Quarter(db.Model):
    __tablename__ = 'quarters'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'start_date': self.start_date.isoformat(),
            'end_date': self.end_date.isoformat()
        }

class Chat(db.Model):
    __tablename__ = 'chats'

    id = db.Column(db.Integer, primary_key=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    receiver_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    message = db.Column(db.Text, nullable=False)
    timestamp = db.Column(db.DateTime, default=utcnow, index=True)

    sender = db.relationship('User', foreign_keys=[sender_id])
    receiver = db.relationship('User', foreign_keys=[receiver_id])

    def to_dict(self):
        return {
            'id': self.id,
            'message': self.message,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'sender': {'id': self.sender.id, 'full_name': self.sender.full_name} if self.sender else None,
            'receiver': {'id': self.receiver.id, 'full_name': self.receiver.full_name} if self.receiver else None
        }
