from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required, current_user
from werkzeug.exceptions import HTTPException
from datetime import datetime
import re
from sqlalchemy import or_, and_
from sqlalchemy.exc import SQLAlchemyError

from config import config
from models import (
    db, User, Role, Permission, Project, FarmerType, Farmer, Quarter, Chat, OtpTicket
)
from errors import (
    ApiError, ValidationError, ConflictError, AuthorizationError, NotFoundError, DependencyError
)
from auth import register_jwt_callbacks, issue_session_token, permission_required, permission_codes
from scope import scope_to_projects, require_project_access
from otp import mail, issue_otp, verify_otp, deliver_otp

PERMISSION_CODE_RE = re.compile(r'^[A-Z][A-Z0-9]*(_[A-Z0-9]+)*$')

FARMER_TEXT_FIELDS = (
    'mobile_number', 'gender', 'country_name', 'state_name',
    'district_name', 'village_tract_name', 'village_name'
)

def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    # Initialize extensions (SQLAlchemy, Mail)
    db.init_app(app)
    mail.init_app(app)

    CORS(app,
     resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
     supports_credentials=True,
     allow_headers=["Content-Type", "Authorization"],
     methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    jwt = JWTManager(app)
    register_jwt_callbacks(jwt)

    # --- ERROR HANDLERS ---

    @app.errorhandler(ApiError)
    def handle_api_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        app.logger.exception('Database error during %s %s', request.method, request.path)
        return handle_api_error(DependencyError())

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'error': e.description}), e.code

    # --- HELPER FUNCTIONS ---

    def get_json():
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object.')
        return data

    def get_or_404(model, id, label):
        obj = db.session.get(model, id)
        if obj is None:
            raise NotFoundError(f'{label} not found.')
        return obj

    def to_int(value, field):
        if isinstance(value, bool):
            raise ValidationError(f'{field} must be an integer.')
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f'{field} must be an integer.')

    def to_float(value, field):
        if value in ('', None):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(f'{field} must be a number.')

    def to_bool(value, field):
        if not isinstance(value, bool):
            raise ValidationError(f'{field} must be true or false.')
        return value

    def to_str(value, field):
        if not isinstance(value, str):
            raise ValidationError(f'{field} must be a string.')
        return value

    def parse_date(value, field):
        if value in ('', None):
            return None
        try:
            return datetime.strptime(str(value)[:10], '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError(f'{field} must be a date in YYYY-MM-DD format.')

    def normalize_email(value):
        return to_str(value, 'email').strip().lower()

    def load_role(role_id):
        role = db.session.get(Role, to_int(role_id, 'role_id'))
        if role is None:
            raise ValidationError('Invalid role provided.')
        return role

    def load_permissions(permission_ids):
        if not isinstance(permission_ids, list):
            raise ValidationError('permission_ids must be a list.')
        ids = {to_int(pid, 'permission_ids') for pid in permission_ids}
        permissions = Permission.query.filter(Permission.id.in_(sorted(ids))).all() if ids else []
        missing = ids - {p.id for p in permissions}
        if missing:
            raise ValidationError(f'Unknown permission ids: {sorted(missing)}')
        return permissions

    def load_users(user_ids):
        if not isinstance(user_ids, list):
            raise ValidationError('assigned_user_ids must be a list.')
        ids = {to_int(uid, 'assigned_user_ids') for uid in user_ids}
        users = User.query.filter(User.id.in_(sorted(ids))).all() if ids else []
        missing = ids - {u.id for u in users}
        if missing:
            raise ValidationError(f'Unknown user ids: {sorted(missing)}')
        return users

    # ============ Welcome ============

    @app.route('/')
    def index():
        return 'Welcome to the FORS API!'

    # ============ Authentication Routes ============

    @app.route('/api/auth/register', methods=['POST'])
    def register():
        data = get_json()
        full_name = data.get('full_name')
        email = data.get('email')
        password = data.get('password')
        role_name = data.get('role_name')

        if not full_name or not email or not password or not role_name:
            raise ValidationError('Please enter all fields.')

        email = normalize_email(email)
        if User.query.filter_by(email=email).first():
            raise ConflictError('User with this email already exists.')

        role = Role.query.filter_by(name=to_str(role_name, 'role_name')).first()
        if not role:
            raise ValidationError('Invalid role name provided.')
        # Unscoped roles are granted through POST /api/users only
        if role.unscoped:
            app.logger.warning('Self-registration refused for unscoped role %s', role.name)
            raise AuthorizationError('This role cannot be chosen at registration.')

        user = User(
            full_name=to_str(full_name, 'full_name'),
            email=email,
            role=role,
            activation_status=True,
            is_active=True
        )
        user.set_password(to_str(password, 'password'))

        db.session.add(user)
        db.session.commit()

        return jsonify({'message': 'User registered successfully.', 'user': user.to_dict()}), 201

    @app.route('/api/auth/login', methods=['POST'])
    def login():
        data = get_json()
        email = data.get('email')
        password = data.get('password')

        if not email or not password:
            raise ValidationError('Please enter all fields.')

        email = normalize_email(email)
        user = User.query.filter_by(email=email).first()
        if not user or not user.check_password(to_str(password, 'password')):
            app.logger.info('Failed login for %s', email)
            raise ValidationError('Invalid credentials.')

        if not user.can_sign_in:
            return jsonify({'error': 'Your account is inactive. Please contact an administrator.'}), 403

        code = issue_otp(user)
        # Best effort: a failed send does not fail the login
        deliver_otp(user, code)

        return jsonify({
            'message': 'OTP sent to your email. Please verify to complete login.',
            'otp_required': True
        }), 200

    @app.route('/api/auth/verify-otp', methods=['POST'])
    def verify_login_otp():
        data = get_json()
        email = data.get('email')
        otp_input = data.get('otp')

        if not email or not otp_input:
            raise ValidationError('Email and OTP are required.')

        user = User.query.filter_by(email=normalize_email(email)).first()
        if not user:
            raise ValidationError('Invalid email or OTP.')

        if not user.can_sign_in:
            return jsonify({'error': 'Your account is inactive. Please contact an administrator.'}), 403

        if not verify_otp(user, otp_input):
            raise ValidationError('Invalid OTP.')

        token = issue_session_token(user)

        return jsonify({
            'message': 'OTP verified successfully.',
            'token': token,
            'user': user.to_dict()
        }), 200

    @app.route('/api/auth/me', methods=['GET'])
    @jwt_required()
    def get_current_user():
        data = current_user.to_dict()
        data['permissions'] = permission_codes(current_user)
        return jsonify(data), 200

    # ============ User Routes ============

    @app.route('/api/users', methods=['GET'])
    @permission_required('VIEW_USERS')
    def get_users():
        users = User.query.order_by(User.id).all()
        return jsonify([u.to_dict() for u in users]), 200

    @app.route('/api/users/<int:id>', methods=['GET'])
    @permission_required('VIEW_USERS')
    def get_user(id):
        user = get_or_404(User, id, 'User')
        return jsonify(user.to_dict()), 200

    @app.route('/api/users', methods=['POST'])
    @permission_required('ADD_USERS')
    def create_user():
        data = get_json()
        if not data.get('full_name') or not data.get('email') or not data.get('password') or not data.get('role_id'):
            raise ValidationError('Please provide full name, email, password, and role ID.')

        email = normalize_email(data['email'])
        if User.query.filter_by(email=email).first():
            raise ConflictError('User with this email already exists.')

        user = User(
            full_name=to_str(data['full_name'], 'full_name'),
            email=email,
            role=load_role(data['role_id']),
            activation_status=to_bool(data.get('activation_status', True), 'activation_status'),
            is_active=to_bool(data.get('is_active', True), 'is_active')
        )
        user.set_password(to_str(data['password'], 'password'))

        db.session.add(user)
        db.session.commit()
        return jsonify({'message': 'User created successfully.', 'user': user.to_dict()}), 201

    @app.route('/api/users/<int:id>', methods=['PUT'])
    @permission_required('EDIT_USERS')
    def update_user(id):
        user = get_or_404(User, id, 'User')
        data = get_json()
        updated = False

        if data.get('full_name'):
            user.full_name = to_str(data['full_name'], 'full_name')
            updated = True
        if data.get('email'):
            email = normalize_email(data['email'])
            if User.query.filter(User.email == email, User.id != id).first():
                raise ConflictError('Another user with this email already exists.')
            user.email = email
            updated = True
        if data.get('password'):
            user.set_password(to_str(data['password'], 'password'))
            updated = True
        if data.get('role_id'):
            user.role = load_role(data['role_id'])
            updated = True
        if 'activation_status' in data:
            user.activation_status = to_bool(data['activation_status'], 'activation_status')
            updated = True
        if 'is_active' in data:
            user.is_active = to_bool(data['is_active'], 'is_active')
            updated = True

        if not updated:
            raise ValidationError('No fields to update provided.')

        db.session.commit()
        return jsonify({'message': 'User updated successfully.', 'user': user.to_dict()}), 200

    @app.route('/api/users/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_USERS')
    def delete_user(id):
        user = get_or_404(User, id, 'User')
        if user.id == current_user.id:
            raise ValidationError('You cannot delete your own account.')

        Chat.query.filter(or_(Chat.sender_id == id, Chat.receiver_id == id)).delete(synchronize_session=False)
        OtpTicket.query.filter_by(user_id=id).delete(synchronize_session=False)
        Farmer.query.filter_by(added_by_user_id=id).update({Farmer.added_by_user_id: None}, synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
        return jsonify({'message': 'User deleted successfully.'}), 200

    # ============ Role Routes ============

    @app.route('/api/roles', methods=['GET'])
    @permission_required('VIEW_ROLES')
    def get_roles():
        roles = Role.query.order_by(Role.id).all()
        return jsonify([r.to_dict(include_permissions=True) for r in roles]), 200

    @app.route('/api/roles/<int:id>', methods=['GET'])
    @permission_required('VIEW_ROLES')
    def get_role(id):
        role = get_or_404(Role, id, 'Role')
        return jsonify(role.to_dict(include_permissions=True)), 200

    @app.route('/api/roles', methods=['POST'])
    @permission_required('ADD_ROLES')
    def create_role():
        data = get_json()
        name = data.get('name')
        if not name:
            raise ValidationError('Role name is required.')
        name = to_str(name, 'name')

        if Role.query.filter_by(name=name).first():
            raise ConflictError('Role with this name already exists.')

        role = Role(
            name=name,
            unscoped=to_bool(data.get('unscoped', False), 'unscoped'),
            permissions=load_permissions(data.get('permission_ids', []))
        )
        db.session.add(role)
        db.session.commit()
        return jsonify({'message': 'Role created successfully.', 'role': role.to_dict(include_permissions=True)}), 201

    @app.route('/api/roles/<int:id>', methods=['PUT'])
    @permission_required('EDIT_ROLES')
    def update_role(id):
        role = get_or_404(Role, id, 'Role')
        data = get_json()
        updated = False

        if data.get('name'):
            if Role.query.filter(Role.name == to_str(data['name'], 'name'), Role.id != id).first():
                raise ConflictError('Another role with this name already exists.')
            role.name = to_str(data['name'], 'name')
            updated = True
        if 'unscoped' in data:
            role.unscoped = to_bool(data['unscoped'], 'unscoped')
            updated = True
        if 'permission_ids' in data:
            # Replaces the whole permission set
            role.permissions = load_permissions(data['permission_ids'])
            updated = True

        if not updated:
            raise ValidationError('No fields to update provided.')

        db.session.commit()
        return jsonify({'message': 'Role updated successfully.', 'role': role.to_dict(include_permissions=True)}), 200

    @app.route('/api/roles/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_ROLES')
    def delete_role(id):
        role = get_or_404(Role, id, 'Role')
        if User.query.filter_by(role_id=id).first():
            raise ValidationError('Cannot delete role: Users are currently assigned to this role.')

        db.session.delete(role)
        db.session.commit()
        return jsonify({'message': 'Role deleted successfully.'}), 200

    # ============ Permission Routes ============

    @app.route('/api/permissions', methods=['GET'])
    @permission_required('VIEW_PERMISSIONS')
    def get_permissions():
        permissions = Permission.query.order_by(Permission.code).all()
        return jsonify([p.to_dict() for p in permissions]), 200

    @app.route('/api/permissions/<int:id>', methods=['GET'])
    @permission_required('VIEW_PERMISSIONS')
    def get_permission(id):
        permission = get_or_404(Permission, id, 'Permission')
        return jsonify(permission.to_dict()), 200

    @app.route('/api/permissions', methods=['POST'])
    @permission_required('ADD_PERMISSIONS')
    def create_permission():
        data = get_json()
        name = data.get('name')
        code = data.get('code')
        if not name or not code:
            raise ValidationError('Permission name and code are required.')
        name = to_str(name, 'name')
        if not PERMISSION_CODE_RE.match(to_str(code, 'code')):
            raise ValidationError('Permission code must be uppercase snake case, e.g. VIEW_FARMER_RECORDS.')

        if Permission.query.filter_by(code=code).first():
            raise ConflictError('Permission with this code already exists.')

        permission = Permission(name=name, code=code)
        # Unscoped (administrator) roles hold every permission explicitly
        permission.roles = Role.query.filter_by(unscoped=True).all()
        db.session.add(permission)
        db.session.commit()
        return jsonify({'message': 'Permission created successfully.', 'permission': permission.to_dict()}), 201

    @app.route('/api/permissions/<int:id>', methods=['PUT'])
    @permission_required('EDIT_PERMISSIONS')
    def update_permission(id):
        permission = get_or_404(Permission, id, 'Permission')
        data = get_json()
        name = data.get('name')
        if not name:
            raise ValidationError('Permission name is required.')
        name = to_str(name, 'name')
        if data.get('code') and data['code'] != permission.code:
            raise ValidationError('Permission code cannot be changed.')

        permission.name = name
        db.session.commit()
        return jsonify({'message': 'Permission updated successfully.', 'permission': permission.to_dict()}), 200

    @app.route('/api/permissions/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_PERMISSIONS')
    def delete_permission(id):
        permission = get_or_404(Permission, id, 'Permission')
        if permission.roles:
            raise ValidationError('Cannot delete permission: It is currently assigned to one or more roles.')

        db.session.delete(permission)
        db.session.commit()
        return jsonify({'message': 'Permission deleted successfully.'}), 200

    # ============ Project Routes ============

    @app.route('/api/projects', methods=['GET'])
    @permission_required('VIEW_PROJECTS')
    def get_projects():
        query = scope_to_projects(Project.query, Project.id, current_user)
        projects = query.order_by(Project.id).all()
        return jsonify([p.to_dict(include_relations=True) for p in projects]), 200

    @app.route('/api/projects/<int:id>', methods=['GET'])
    @permission_required('VIEW_PROJECTS')
    def get_project(id):
        require_project_access(current_user, id)
        project = get_or_404(Project, id, 'Project')
        return jsonify(project.to_dict(include_relations=True)), 200

    @app.route('/api/projects', methods=['POST'])
    @permission_required('CREATE_PROJECTS')
    def create_project():
        data = get_json()
        name = data.get('name')
        description = data.get('description')
        if not name or not description:
            raise ValidationError('Project name and description are required.')
        name = to_str(name, 'name')
        description = to_str(description, 'description')

        if Project.query.filter_by(name=name).first():
            raise ConflictError('Project with this name already exists.')

        project = Project(
            name=name,
            description=description,
            status=to_bool(data.get('status', True), 'status'),
            assigned_users=load_users(data.get('assigned_user_ids', []))
        )
        db.session.add(project)
        db.session.commit()
        return jsonify({'message': 'Project created successfully.', 'project': project.to_dict(include_relations=True)}), 201

    @app.route('/api/projects/<int:id>', methods=['PUT'])
    @permission_required('EDIT_PROJECTS')
    def update_project(id):
        require_project_access(current_user, id, 'You can only edit projects you are assigned to.')
        project = get_or_404(Project, id, 'Project')
        data = get_json()
        updated = False

        if data.get('name'):
            if Project.query.filter(Project.name == to_str(data['name'], 'name'), Project.id != id).first():
                raise ConflictError('Another project with this name already exists.')
            project.name = to_str(data['name'], 'name')
            updated = True
        if data.get('description'):
            project.description = to_str(data['description'], 'description')
            updated = True
        if 'status' in data:
            project.status = to_bool(data['status'], 'status')
            updated = True
        if 'assigned_user_ids' in data:
            project.assigned_users = load_users(data['assigned_user_ids'])
            updated = True

        if not updated:
            raise ValidationError('No fields to update or users to assign provided.')

        db.session.commit()
        return jsonify({'message': 'Project updated successfully.', 'project': project.to_dict(include_relations=True)}), 200

    @app.route('/api/projects/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_PROJECTS')
    def delete_project(id):
        require_project_access(current_user, id, 'You can only delete projects you are assigned to.')
        project = get_or_404(Project, id, 'Project')

        # Assignments and the project's farmers go with it
        db.session.delete(project)
        db.session.commit()
        return jsonify({'message': 'Project deleted successfully.'}), 200

    # ============ Farmer Routes ============

    def apply_farmer_fields(farmer, data):
        changed = 0
        if 'full_name' in data:
            if not data['full_name']:
                raise ValidationError('Full name cannot be empty.')
            farmer.full_name = to_str(data['full_name'], 'full_name')
            changed += 1
        if 'farmer_type_id' in data:
            farmer_type_id = to_int(data['farmer_type_id'], 'farmer_type_id')
            if db.session.get(FarmerType, farmer_type_id) is None:
                raise ValidationError('Invalid farmer type provided.')
            farmer.farmer_type_id = farmer_type_id
            changed += 1
        for field in FARMER_TEXT_FIELDS:
            if field in data:
                setattr(farmer, field, to_str(data[field], field) if data[field] else None)
                changed += 1
        if 'date_of_birth' in data:
            farmer.date_of_birth = parse_date(data['date_of_birth'], 'date_of_birth')
            changed += 1
        if 'age' in data:
            farmer.age = to_int(data['age'], 'age') if data['age'] not in ('', None) else None
            changed += 1
        for field in ('latitude', 'longitude'):
            if field in data:
                setattr(farmer, field, to_float(data[field], field))
                changed += 1
        return changed

    def load_project_for_write(project_id):
        if db.session.get(Project, project_id) is None:
            raise ValidationError('Invalid project provided.')

    @app.route('/api/farmers', methods=['GET'])
    @permission_required('VIEW_FARMER_RECORDS')
    def get_farmers():
        search = request.args.get('search', '')
        project_id = request.args.get('project_id')
        if project_id:
            project_id = to_int(project_id, 'project_id')

        query = scope_to_projects(Farmer.query, Farmer.project_id, current_user)

        if search:
            query = query.filter(Farmer.full_name.ilike(f"%{search}%"))
        if project_id:
            query = query.filter(Farmer.project_id == project_id)

        farmers = query.order_by(Farmer.date_added.desc(), Farmer.id.desc()).all()
        return jsonify([f.to_dict(include_relations=True) for f in farmers]), 200

    @app.route('/api/farmers/<int:id>', methods=['GET'])
    @permission_required('VIEW_FARMER_RECORDS')
    def get_farmer(id):
        farmer = get_or_404(Farmer, id, 'Farmer')
        require_project_access(current_user, farmer.project_id, 'Access denied to this farmer record.')
        return jsonify(farmer.to_dict(include_relations=True)), 200

    @app.route('/api/farmers', methods=['POST'])
    @permission_required('ADD_FARMER_RECORDS')
    def create_farmer():
        data = get_json()
        if not data.get('full_name') or not data.get('farmer_type_id') or not data.get('project_id'):
            raise ValidationError('Full name, farmer type, and project are required.')

        project_id = to_int(data['project_id'], 'project_id')
        require_project_access(current_user, project_id, 'You can only add farmers to projects you are assigned to.')
        load_project_for_write(project_id)

        farmer = Farmer(project_id=project_id, added_by_user_id=current_user.id)
        apply_farmer_fields(farmer, data)

        db.session.add(farmer)
        db.session.commit()
        return jsonify({'message': 'Farmer record created successfully.', 'farmer': farmer.to_dict()}), 201

    @app.route('/api/farmers/<int:id>', methods=['PUT'])
    @permission_required('EDIT_FARMER_RECORDS')
    def update_farmer(id):
        farmer = get_or_404(Farmer, id, 'Farmer')
        data = get_json()
        message = 'You can only edit farmers in projects you are assigned to.'

        require_project_access(current_user, farmer.project_id, message)
        # Reassignment is checked against the destination project
        target_project_id = farmer.project_id
        if data.get('project_id'):
            target_project_id = to_int(data['project_id'], 'project_id')
            require_project_access(current_user, target_project_id, message)

        changed = apply_farmer_fields(farmer, data)
        if target_project_id != farmer.project_id:
            load_project_for_write(target_project_id)
            farmer.project_id = target_project_id
            changed += 1

        if not changed:
            raise ValidationError('No fields to update provided.')

        db.session.commit()
        return jsonify({'message': 'Farmer record updated successfully.', 'farmer': farmer.to_dict()}), 200

    @app.route('/api/farmers/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_FARMER_RECORDS')
    def delete_farmer(id):
        farmer = get_or_404(Farmer, id, 'Farmer')
        require_project_access(current_user, farmer.project_id, 'You can only delete farmers from projects you are assigned to.')

        db.session.delete(farmer)
        db.session.commit()
        return jsonify({'message': 'Farmer record deleted successfully.'}), 200

    # ============ Farmer Type Routes ============

    @app.route('/api/farmer-types', methods=['GET'])
    @permission_required('VIEW_FARMER_TYPES')
    def get_farmer_types():
        farmer_types = FarmerType.query.order_by(FarmerType.name).all()
        return jsonify([t.to_dict() for t in farmer_types]), 200

    @app.route('/api/farmer-types/<int:id>', methods=['GET'])
    @permission_required('VIEW_FARMER_TYPES')
    def get_farmer_type(id):
        farmer_type = get_or_404(FarmerType, id, 'Farmer type')
        return jsonify(farmer_type.to_dict()), 200

    @app.route('/api/farmer-types', methods=['POST'])
    @permission_required('ADD_FARMER_TYPES')
    def create_farmer_type():
        name = get_json().get('name')
        if not name:
            raise ValidationError('Farmer type name is required.')
        name = to_str(name, 'name')

        if FarmerType.query.filter_by(name=name).first():
            raise ConflictError('Farmer type with this name already exists.')

        farmer_type = FarmerType(name=name)
        db.session.add(farmer_type)
        db.session.commit()
        return jsonify({'message': 'Farmer type created successfully.', 'farmer_type': farmer_type.to_dict()}), 201

    @app.route('/api/farmer-types/<int:id>', methods=['PUT'])
    @permission_required('EDIT_FARMER_TYPES')
    def update_farmer_type(id):
        farmer_type = get_or_404(FarmerType, id, 'Farmer type')
        name = get_json().get('name')
        if not name:
            raise ValidationError('Farmer type name is required.')
        name = to_str(name, 'name')

        if FarmerType.query.filter(FarmerType.name == name, FarmerType.id != id).first():
            raise ConflictError('Another farmer type with this name already exists.')

        farmer_type.name = name
        db.session.commit()
        return jsonify({'message': 'Farmer type updated successfully.', 'farmer_type': farmer_type.to_dict()}), 200

    @app.route('/api/farmer-types/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_FARMER_TYPES')
    def delete_farmer_type(id):
        farmer_type = get_or_404(FarmerType, id, 'Farmer type')
        if Farmer.query.filter_by(farmer_type_id=id).first():
            raise ValidationError('Cannot delete farmer type: It is currently linked to existing farmer records.')

        db.session.delete(farmer_type)
        db.session.commit()
        return jsonify({'message': 'Farmer type deleted successfully.'}), 200

    # ============ Quarter Routes ============

    def read_quarter(data):
        name = data.get('name')
        if not name or not data.get('start_date') or not data.get('end_date'):
            raise ValidationError('Quarter name, start date, and end date are required.')
        name = to_str(name, 'name')

        start_date = parse_date(data['start_date'], 'start_date')
        end_date = parse_date(data['end_date'], 'end_date')
        if start_date >= end_date:
            raise ValidationError('Start date must be before end date.')
        return name, start_date, end_date

    def find_overlapping_quarter(start_date, end_date, exclude_id=None):
        query = Quarter.query.filter(and_(Quarter.start_date <= end_date, Quarter.end_date >= start_date))
        if exclude_id is not None:
            query = query.filter(Quarter.id != exclude_id)
        return query.first()

    @app.route('/api/quarters', methods=['GET'])
    @permission_required('VIEW_QUARTERS')
    def get_quarters():
        quarters = Quarter.query.order_by(Quarter.start_date.desc()).all()
        return jsonify([q.to_dict() for q in quarters]), 200

    @app.route('/api/quarters/<int:id>', methods=['GET'])
    @permission_required('VIEW_QUARTERS')
    def get_quarter(id):
        quarter = get_or_404(Quarter, id, 'Quarter')
        return jsonify(quarter.to_dict()), 200

    @app.route('/api/quarters', methods=['POST'])
    @permission_required('ADD_QUARTERS')
    def create_quarter():
        name, start_date, end_date = read_quarter(get_json())

        if find_overlapping_quarter(start_date, end_date):
            raise ValidationError('New quarter overlaps with an existing quarter.')

        quarter = Quarter(name=name, start_date=start_date, end_date=end_date)
        db.session.add(quarter)
        db.session.commit()
        return jsonify({'message': 'Quarter created successfully.', 'quarter': quarter.to_dict()}), 201

    @app.route('/api/quarters/<int:id>', methods=['PUT'])
    @permission_required('EDIT_QUARTERS')
    def update_quarter(id):
        quarter = get_or_404(Quarter, id, 'Quarter')
        name, start_date, end_date = read_quarter(get_json())

        if find_overlapping_quarter(start_date, end_date, exclude_id=id):
            raise ValidationError('Updated quarter overlaps with an existing quarter.')

        quarter.name = name
        quarter.start_date = start_date
        quarter.end_date = end_date
        db.session.commit()
        return jsonify({'message': 'Quarter updated successfully.', 'quarter': quarter.to_dict()}), 200

    @app.route('/api/quarters/<int:id>', methods=['DELETE'])
    @permission_required('DELETE_QUARTERS')
    def delete_quarter(id):
        quarter = get_or_404(Quarter, id, 'Quarter')
        db.session.delete(quarter)
        db.session.commit()
        return jsonify({'message': 'Quarter deleted successfully.'}), 200

    # ============ Chat Routes ============

    @app.route('/api/chats/<int:receiver_id>', methods=['GET'])
    @jwt_required()
    def get_chat(receiver_id):
        sender_id = current_user.id
        chats = Chat.query.filter(
            or_(
                and_(Chat.sender_id == sender_id, Chat.receiver_id == receiver_id),
                and_(Chat.sender_id == receiver_id, Chat.receiver_id == sender_id)
            )
        ).order_by(Chat.timestamp.asc(), Chat.id.asc()).all()
        return jsonify([c.to_dict() for c in chats]), 200

    @app.route('/api/chats', methods=['POST'])
    @jwt_required()
    def send_chat():
        data = get_json()
        if not data.get('receiver_id') or not data.get('message'):
            raise ValidationError('Receiver ID and message are required.')

        receiver_id = to_int(data['receiver_id'], 'receiver_id')
        if receiver_id == current_user.id:
            raise ValidationError('Cannot send message to yourself.')

        get_or_404(User, receiver_id, 'Receiver user')

        chat = Chat(sender_id=current_user.id, receiver_id=receiver_id, message=to_str(data['message'], 'message'))
        db.session.add(chat)
        db.session.commit()
        return jsonify({'message': 'Message sent successfully.', 'chat': chat.to_dict()}), 201

    return app

if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(debug=True)
