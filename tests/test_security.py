"""
Tests for security middleware, error handlers and log attribution
"""
import logging

import pytest
from sqlalchemy.exc import IntegrityError

from logging_config import ActorFilter
from security import (
    MIN_SECRET_KEY_LENGTH,
    SecurityConfig,
    check_production_settings,
    sanitize_error_response,
)
from services.errors import ExternalServiceError, NotFoundError


@pytest.mark.unit
class TestSecurityConfig:
    """Tests for secret key handling"""

    def test_generated_key_is_valid(self):
        key = SecurityConfig.generate_secret_key()
        assert len(key) == MIN_SECRET_KEY_LENGTH * 2
        assert SecurityConfig.validate_secret_key(key) is True

    def test_short_key_is_rejected(self):
        assert SecurityConfig.validate_secret_key('abc') is False
        assert SecurityConfig.validate_secret_key(None) is False

    def test_default_looking_key_is_rejected(self):
        key = 'zoguone-changeme-' + 'x' * 32
        assert SecurityConfig.validate_secret_key(key) is False
        assert SecurityConfig.validate_secret_key(key, allow_test_keys=True) is True

    def test_ensure_secret_key_keeps_configured_key(self):
        key = 'f' * 64
        assert SecurityConfig.ensure_secret_key({'SECRET_KEY': key}) == key

    def test_ensure_secret_key_replaces_weak_key(self):
        generated = SecurityConfig.ensure_secret_key({'SECRET_KEY': 'secret', 'DEBUG': True})
        assert generated != 'secret'
        assert len(generated) == MIN_SECRET_KEY_LENGTH * 2


@pytest.mark.unit
class TestProductionSettings:
    """Tests for the production environment check"""

    def test_missing_variables_are_reported(self, monkeypatch):
        monkeypatch.delenv('SECRET_KEY', raising=False)
        monkeypatch.delenv('DATABASE_URL', raising=False)
        assert check_production_settings({}) == ['SECRET_KEY', 'DATABASE_URL']

    def test_complete_environment(self, monkeypatch):
        monkeypatch.setenv('SECRET_KEY', 'k' * 64)
        monkeypatch.setenv('DATABASE_URL', 'postgresql://db/zoguone')
        config = {'SMTP_HOST': 'mail.example', 'STRIPE_SECRET_KEY': 'sk_live_x'}
        assert check_production_settings(config) == []

    def test_optional_integrations_only_warn(self, monkeypatch, caplog):
        monkeypatch.setenv('SECRET_KEY', 'k' * 64)
        monkeypatch.setenv('DATABASE_URL', 'postgresql://db/zoguone')
        with caplog.at_level(logging.WARNING, logger='security'):
            assert check_production_settings({}) == []
        assert 'SMTP_HOST is not set' in caplog.text
        assert 'payment links are disabled' in caplog.text


@pytest.mark.unit
class TestSanitizeErrorResponse:

    def test_details_hidden_by_default(self):
        body = sanitize_error_response(RuntimeError('db password in here'))
        assert body['success'] is False
        assert 'details' not in body

    def test_details_in_debug(self):
        body = sanitize_error_response(RuntimeError('boom'), include_details=True)
        assert body['details'] == 'boom'
        assert body['type'] == 'RuntimeError'


@pytest.mark.unit
class TestActorFilter:
    """Tests for the actor field on log records"""

    def _record(self):
        return logging.LogRecord('test', logging.INFO, __file__, 1, 'hello', None, None)

    def test_outside_request_is_system(self):
        record = self._record()
        assert ActorFilter().filter(record) is True
        assert record.actor == 'system'

    def test_anonymous_request(self, app):
        record = self._record()
        with app.test_request_context('/api/customers'):
            ActorFilter().filter(record)
        assert record.actor == 'anonymous'

    def test_signed_in_user(self, app):
        from flask import session

        record = self._record()
        with app.test_request_context('/api/customers'):
            session['user_email'] = 'admin@muster.example'
            ActorFilter().filter(record)
        assert record.actor == 'admin@muster.example'


@pytest.mark.integration
class TestSecurityMiddleware:
    """Tests for headers and JSON error handlers on a live app"""

    def test_security_headers(self, client):
        response = client.get('/api/health')
        assert response.headers['X-Frame-Options'] == 'SAMEORIGIN'
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert "default-src 'none'" in response.headers['Content-Security-Policy']
        assert response.headers.get('Cache-Control') != 'no-store'

    def test_gdpr_responses_are_not_cached(self, client):
        response = client.get('/api/gdpr/customers/1/export')
        assert response.headers['Cache-Control'] == 'no-store'

    def test_cors_exposes_download_filename(self, client):
        response = client.get('/api/health', headers={'Origin': 'http://localhost:3000'})
        assert 'Content-Disposition' in response.headers.get('Access-Control-Expose-Headers', '')

    def test_method_not_allowed_is_json(self, client):
        response = client.delete('/api/health')
        assert response.status_code == 405
        assert response.get_json()['error'] == 'Method Not Allowed'

    def test_service_errors_use_their_status(self, app):
        @app.route('/api/raise-not-found')
        def raise_not_found():
            raise NotFoundError('Invoice', 7)

        @app.route('/api/raise-gateway')
        def raise_gateway():
            raise ExternalServiceError('Stripe is unreachable')

        client = app.test_client()
        response = client.get('/api/raise-not-found')
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'Invoice 7 not found'}

        response = client.get('/api/raise-gateway')
        assert response.status_code == 502
        assert response.get_json()['error'] == 'Stripe is unreachable'

    def test_integrity_error_is_conflict(self, app):
        @app.route('/api/raise-conflict')
        def raise_conflict():
            raise IntegrityError('INSERT INTO customers', {}, Exception('UNIQUE constraint failed'))

        response = app.test_client().get('/api/raise-conflict')
        assert response.status_code == 409
        assert response.get_json()['error'] == 'Conflict'
