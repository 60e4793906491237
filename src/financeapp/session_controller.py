"""
FinanceApp - Session Controller
Centralized session management using Flask-Login

This module provides:
- The Flask-Login user model
- Secure session cookie configuration
- User loader backed by FinanceEngine
- JSON 401 responses for unauthenticated API calls

Usage:
    session_ctrl = SessionController(app, engine)

    @bp.route('/protected')
    @login_required
    def protected_route():
        return jsonify({"user": current_user.username})
"""

import logging

from flask import jsonify, session
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user

logger = logging.getLogger(__name__)


class User(UserMixin):
    """User model for Flask-Login."""

    def __init__(self, id, username, email=None):
        self.id = id
        self.username = username
        self.email = email

    @property
    def user_id(self):
        return int(self.id)


class SessionController:
    """
    Manages user sessions and authentication for the Flask app.

    The controller registers itself as `app.extensions['session_controller']`.
    """

    def __init__(self, app, engine):
        self.app = app
        self.engine = engine
        self.login_manager = LoginManager()

        self._configure_session()
        self._init_login_manager()
        app.extensions['session_controller'] = self

    def _configure_session(self):
        """Session cookie security settings come from the app config."""
        self.app.config.setdefault('SESSION_COOKIE_HTTPONLY', True)
        self.app.config.setdefault('SESSION_COOKIE_SAMESITE', 'Lax')
        self.app.config.setdefault('SESSION_COOKIE_SECURE', False)

    def _init_login_manager(self):
        self.login_manager.init_app(self.app)

        @self.login_manager.user_loader
        def load_user(user_id):
            user = self.engine.get_user(int(user_id))
            if user:
                return self.create_user_object(user['id'], user['username'], user['email'])
            return None

        @self.login_manager.unauthorized_handler
        def unauthorized():
            return jsonify(success=False, message="Authorization required. Please log in."), 401

    def login(self, user_data, remember=False):
        """Log in a user from an engine user dict."""
        user = self.create_user_object(user_data['id'], user_data['username'], user_data.get('email'))
        login_user(user, remember=remember)
        logger.info("[AUTH] User %s logged in", user.username)
        return user

    def logout(self):
        """Log out the current user and clear the session."""
        if current_user.is_authenticated:
            logger.info("[AUTH] User %s logged out", current_user.username)
        logout_user()
        session.clear()
        return True

    def get_current_user(self):
        return current_user if current_user.is_authenticated else None

    @staticmethod
    def create_user_object(user_id, username, email=None):
        return User(id=str(user_id), username=username, email=email)


__all__ = ['SessionController', 'User', 'login_required', 'current_user']
