# passkit/decorators.py

"""
Decorators Module

Request authentication decorators for the owner API, scanner endpoints and
signed device-service calls, plus the wrapper that turns plain functions
into Celery tasks with a managed database session.
"""

import logging
from datetime import datetime
from functools import wraps

from flask import request, jsonify, current_app, g
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity

from passkit.core import celery, db
from passkit.core.session_manager import managed_session
from passkit.repositories import UserRepository, ScannerLinkRepository
from passkit.utils.signatures import resolve_secret, verify_signature

logger = logging.getLogger(__name__)


def jwt_owner_required(f):
    """
    Require a valid JWT whose identity is an existing tenant.

    The tenant is available as g.current_user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        verify_jwt_in_request()
        user = UserRepository(db.session).get_by_id(get_jwt_identity())
        if not user:
            return jsonify({'message': 'Unauthenticated.', 'error_code': 'UNKNOWN_USER'}), 401
        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def owner_or_signature(f):
    """
    Accept either an owner JWT or an X-Signature HMAC over the raw body.

    Sets g.current_user (or None) and g.signature_verified. Neither present
    is a 401 before any resource lookup.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.current_user = None
        g.signature_verified = False

        signature = request.headers.get('X-Signature')
        if signature:
            config = current_app.config
            secret = resolve_secret(config.get('PASSKIT_HMAC_SECRET') or config.get('SECRET_KEY'))
            if verify_signature(request.get_data(cache=True), signature, secret):
                g.signature_verified = True
                return f(*args, **kwargs)
            logger.warning(f"Invalid X-Signature from {request.remote_addr} on {request.path}")
            return jsonify({'message': 'Invalid signature.', 'error_code': 'INVALID_SIGNATURE'}), 401

        verify_jwt_in_request(optional=True)
        identity = get_jwt_identity()
        if identity is None:
            return jsonify({'message': 'Unauthenticated.', 'error_code': 'MISSING_TOKEN'}), 401

        user = UserRepository(db.session).get_by_id(identity)
        if not user:
            return jsonify({'message': 'Unauthenticated.', 'error_code': 'UNKNOWN_USER'}), 401
        g.current_user = user
        return f(*args, **kwargs)
    return decorated_function


def _scanner_token_from_request():
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[len('Bearer '):].strip()
    return request.headers.get('X-Scanner-Token')


def scanner_token_required(f):
    """Resolve an active ScannerLink from the request and expose it as g.scanner_link."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _scanner_token_from_request()
        if not token:
            return jsonify({'success': False, 'error': 'Scanner token required.'}), 401

        scanner_link = ScannerLinkRepository(db.session).find_active_by_token(token)
        if not scanner_link:
            logger.warning(f"Invalid or inactive scanner token from {request.remote_addr}")
            return jsonify({'success': False, 'error': 'Invalid or inactive scanner link.'}), 401

        scanner_link.touch()
        db.session.commit()
        g.scanner_link = scanner_link
        return f(*args, **kwargs)
    return decorated_function


def celery_task(func=None, **task_kwargs):
    """
    Decorator for wrapping functions as Celery tasks with session management.

    The wrapped function receives (self, session, *args, **kwargs); the
    session commits on success and rolls back on any exception.

    Args:
        func: The function to decorate (when used without parentheses)
        **task_kwargs: Keyword arguments for Celery task configuration.

    Returns:
        function: The decorated Celery task.
    """
    def celery_task_decorator(f):
        task_name = task_kwargs.pop('name', f'{f.__module__}.{f.__name__}')
        task_kwargs.pop('bind', None)

        @celery.task(name=task_name, bind=True, **task_kwargs)
        @wraps(f)
        def wrapped(self, *args, **kwargs):
            app = celery.flask_app
            with app.app_context():
                started = datetime.utcnow()
                try:
                    with managed_session() as session:
                        return f(self, session, *args, **kwargs)
                finally:
                    duration = (datetime.utcnow() - started).total_seconds()
                    logger.debug(f"Task {task_name} finished in {duration:.3f}s")

        # Store original function reference so tests can call it with a session directly
        wrapped._original_func = f
        return wrapped

    if func is None:
        return celery_task_decorator
    return celery_task_decorator(func)
