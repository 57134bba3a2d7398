from flask import Blueprint, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from loguru import logger

from .. import db
from ..errors import ValidationError
from ..models import User
from ..parsing import require
from ..serializers import user_to_dict
from . import payload

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


@auth_bp.route('/login', methods=['POST'])
def login():
    data = payload()
    require(data, 'email', 'password')
    user = User.query.filter_by(email=data['email'].strip().lower()).first()
    if user is None or not user.check_password(data['password']):
        return jsonify({'error': 'These credentials do not match our records.'}), 401
    if not user.is_active:
        status = 'deleted' if user.deleted_at else user.status
        return jsonify({'error': f"Your account is {status}. Please contact support."}), 403
    login_user(user, remember=bool(data.get('remember')))
    logger.info('User {} logged in', user.id)
    return jsonify({'message': 'Logged in', 'user': user_to_dict(user)})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logger.info('User {} logged out', current_user.id)
    logout_user()
    return jsonify({'message': 'Logged out'})


@auth_bp.route('/register', methods=['POST'])
def register():
    data = payload()
    require(data, 'name', 'email', 'password')
    email = data['email'].strip().lower()
    errors = {}
    if User.query.filter_by(email=email).first():
        errors['email'] = 'The email has already been taken.'
    if len(data['password']) < 8:
        errors['password'] = 'The password must be at least 8 characters.'
    elif data['password'] != data.get('password_confirmation'):
        errors['password'] = 'The password confirmation does not match.'
    if errors:
        raise ValidationError(errors)

    user = User(name=data['name'].strip(), email=email, phone=data.get('phone'))
    user.set_password(data['password'])
    db.session.add(user)
    db.session.commit()
    login_user(user)
    logger.info('User {} registered', user.id)
    return jsonify({'message': 'Registered', 'user': user_to_dict(user)}), 201


@auth_bp.route('/me')
@login_required
def me():
    return jsonify(user_to_dict(current_user, detail=True))
