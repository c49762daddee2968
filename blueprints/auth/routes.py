"""
blueprints/auth/routes.py - Authentication Blueprint
Handles user login and logout. Every other blueprint acts as the
logged-in user.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from extensions import bcrypt
from models import User

# Create blueprint
auth_bp = Blueprint('auth', __name__)


@auth_bp.route('/login', methods=['POST'])
def login():
    """
    Log in with email and password
    """
    data = request.get_json(silent=True) or request.form
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    # Validate input
    if not email or not password:
        return jsonify({'success': False, 'error': 'Please enter both email and password.'}), 400

    user = User.query.filter_by(email=email).first()

    if user is None or not bcrypt.check_password_hash(user.password, password):
        return jsonify({'success': False, 'error': 'Invalid email or password.'}), 401

    login_user(user, remember=True)
    return jsonify({'success': True, 'user': user.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Log out the current user"""
    logout_user()
    return jsonify({'success': True})


@auth_bp.route('/me')
@login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})
