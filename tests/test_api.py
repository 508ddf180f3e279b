"""
Tests for the HTTP surface: routes, status codes, headers and JSON bodies.
"""

import logging

import pytest

from app import create_app
from config.settings import Settings


def post_contact(client, payload, remote_addr='1.2.3.4', **kwargs):
    return client.post('/api/contact', json=payload, environ_base={'REMOTE_ADDR': remote_addr}, **kwargs)


def post_newsletter(client, payload, remote_addr='1.2.3.4'):
    return client.post('/api/newsletter', json=payload, environ_base={'REMOTE_ADDR': remote_addr})


class TestContactEndpoint:
    """Test POST /api/contact"""

    def test_valid_submission(self, client, transport, contact_payload):
        response = post_contact(client, contact_payload)

        assert response.status_code == 200
        assert response.get_json() == {
            'success': True,
            'message': "Message sent successfully! We'll get back to you within 24 hours.",
        }
        assert sorted(email.to for email in transport.sent) == ['admin@quantumdatasynergy.com', 'al@x.com']
        assert response.headers['X-RateLimit-Limit'] == '5'
        assert response.headers['X-RateLimit-Remaining'] == '4'

    def test_invalid_submission_lists_every_error(self, client, transport):
        response = post_contact(client, {'name': 'A', 'email': 'bad', 'subject': 'Hi', 'message': 'short'})

        assert response.status_code == 400
        assert response.get_json() == {
            'error': 'Validation failed',
            'details': [
                'Name must be at least 2 characters long',
                'Please provide a valid email address',
                'Subject must be at least 5 characters long',
                'Message must be at least 10 characters long',
            ],
        }
        assert transport.attempted == []

    def test_malformed_json_is_a_validation_error(self, client):
        response = client.post('/api/contact', data='{not json', content_type='application/json')

        assert response.status_code == 400
        assert len(response.get_json()['details']) == 4

    def test_sixth_submission_is_rate_limited(self, client, contact_payload):
        for _ in range(5):
            assert post_contact(client, contact_payload).status_code == 200

        response = post_contact(client, contact_payload)

        assert response.status_code == 429
        assert response.get_json() == {'error': 'Too many contact form submissions, please try again later.'}
        assert response.headers['Retry-After'] == '900'
        assert response.headers['X-RateLimit-Remaining'] == '0'

    def test_rate_limited_request_is_logged_once(self, client, contact_payload, caplog):
        for _ in range(5):
            post_contact(client, contact_payload)

        with caplog.at_level(logging.WARNING):
            post_contact(client, contact_payload)

        warnings = [r for r in caplog.records if 'Rate limit exceeded' in r.getMessage()]
        assert len(warnings) == 1

    def test_rate_limit_is_per_client(self, client, contact_payload):
        for _ in range(5):
            post_contact(client, contact_payload, remote_addr='1.2.3.4')

        assert post_contact(client, contact_payload, remote_addr='1.2.3.4').status_code == 429
        assert post_contact(client, contact_payload, remote_addr='5.6.7.8').status_code == 200

    def test_transport_failure_hides_details_in_production(self, client, transport, contact_payload):
        transport.fail_for = {'admin@quantumdatasynergy.com'}

        response = post_contact(client, contact_payload)

        assert response.status_code == 500
        assert response.get_json() == {'error': 'Failed to send message. Please try again later.'}

    def test_transport_failure_shows_details_in_development(self, settings, transport, rate_limiter,
                                                            contact_payload, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        settings.development_mode = True
        client = create_app(settings, transport=transport, rate_limiter=rate_limiter).test_client()
        transport.fail_for = {'al@x.com'}

        response = post_contact(client, contact_payload)

        body = response.get_json()
        assert response.status_code == 500
        assert body['error'] == 'Failed to send message. Please try again later.'
        assert body['details'] == '550 rejected al@x.com'

    def test_unexpected_error_is_json(self, app, client, contact_payload, monkeypatch):
        def explode(client_id, payload):
            raise RuntimeError('boom')

        monkeypatch.setattr(app.extensions['notification_dispatcher'], 'submit_contact', explode)

        response = post_contact(client, contact_payload)

        assert response.status_code == 500
        assert response.get_json() == {'error': 'Internal server error'}


class TestNewsletterEndpoint:
    """Test POST /api/newsletter"""

    def test_valid_subscription(self, client, transport):
        response = post_newsletter(client, {'email': 'new@example.com'})

        assert response.status_code == 200
        assert response.get_json() == {
            'success': True,
            'message': 'Successfully subscribed to newsletter! Check your email for confirmation.',
        }
        assert len(transport.sent) == 2

    def test_invalid_email(self, client):
        response = post_newsletter(client, {'email': 'nope'})

        assert response.status_code == 400
        assert response.get_json() == {'error': 'Please provide a valid email address'}

    def test_fourth_subscription_in_hour_is_rate_limited(self, client):
        for _ in range(3):
            assert post_newsletter(client, {'email': 'new@example.com'}).status_code == 200

        response = post_newsletter(client, {'email': 'new@example.com'})

        assert response.status_code == 429
        assert response.get_json() == {
            'error': 'Too many newsletter subscription attempts, please try again later.'
        }
        assert response.headers['Retry-After'] == '3600'

    def test_limits_are_independent_of_contact(self, client, contact_payload):
        for _ in range(3):
            post_newsletter(client, {'email': 'new@example.com'})

        assert post_contact(client, contact_payload).status_code == 200


class TestServiceEndpoints:
    """Test health, index and unknown routes"""

    def test_health(self, client):
        response = client.get('/api/health')

        body = response.get_json()
        assert response.status_code == 200
        assert body['status'] == 'OK'
        assert body['domain'] == 'quantumdatasynergy.com'
        assert body['endpoints'] == {'contact': '/api/contact', 'newsletter': '/api/newsletter'}
        assert body['timestamp']

    def test_health_reports_startup_smtp_check(self, settings, transport, rate_limiter):
        settings.verify_on_startup = True
        transport.ready = False
        client = create_app(settings, transport=transport, rate_limiter=rate_limiter).test_client()

        assert client.get('/api/health').get_json()['smtp_ready'] is False

    def test_index(self, client):
        body = client.get('/').get_json()

        assert body['message'] == 'Quantum Data Synergy Contact API'
        assert body['endpoints']['health'] == '/api/health'

    def test_unknown_route(self, client):
        response = client.get('/api/unknown')

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Endpoint not found'}

    @pytest.mark.parametrize('method, path', [
        ('get', '/api/contact'),
        ('post', '/api/health'),
    ])
    def test_wrong_method_is_not_found(self, client, method, path):
        response = getattr(client, method)(path)

        assert response.status_code == 404
        assert response.get_json() == {'error': 'Endpoint not found'}

    def test_slow_requests_are_logged(self, app, client, caplog):
        app.config['SLOW_REQUEST_THRESHOLD'] = -1

        with caplog.at_level(logging.WARNING):
            client.get('/api/health')

        assert any('Slow request' in r.getMessage() for r in caplog.records)

    def test_security_headers(self, client):
        response = client.get('/api/health')

        assert response.headers['X-Content-Type-Options'] == 'nosniff'
        assert response.headers['X-Frame-Options'] == 'DENY'


class TestCors:
    """Test cross-origin access"""

    def test_allowed_origin(self, client):
        response = client.get('/api/health', headers={'Origin': 'http://localhost:5173'})

        assert response.headers['Access-Control-Allow-Origin'] == 'http://localhost:5173'

    def test_disallowed_origin(self, client):
        response = client.get('/api/health', headers={'Origin': 'https://evil.example'})

        assert 'Access-Control-Allow-Origin' not in response.headers

    def test_frontend_url_is_allowed(self, settings, transport, rate_limiter):
        settings.allowed_origin = 'https://staging.quantumdatasynergy.com'
        client = create_app(settings, transport=transport, rate_limiter=rate_limiter).test_client()

        response = client.get('/api/health', headers={'Origin': 'https://staging.quantumdatasynergy.com'})

        assert response.headers['Access-Control-Allow-Origin'] == 'https://staging.quantumdatasynergy.com'

    def test_preflight(self, client):
        response = client.options('/api/contact', headers={
            'Origin': 'https://quantumdatasynergy.com',
            'Access-Control-Request-Method': 'POST',
            'Access-Control-Request-Headers': 'Content-Type',
        })

        assert response.status_code == 200
        assert response.headers['Access-Control-Allow-Origin'] == 'https://quantumdatasynergy.com'


class TestProxy:
    """Test client identity behind a reverse proxy"""

    def test_forwarded_for_is_trusted_when_enabled(self, transport, rate_limiter, contact_payload):
        settings = Settings(
            mail_user='notifications@quantumdatasynergy.com',
            inline_css=False,
            verify_on_startup=False,
            trust_proxy=True,
        )
        client = create_app(settings, transport=transport, rate_limiter=rate_limiter).test_client()

        for _ in range(5):
            post_contact(client, contact_payload, headers={'X-Forwarded-For': '9.9.9.9'})

        limited = post_contact(client, contact_payload, headers={'X-Forwarded-For': '9.9.9.9'})
        other = post_contact(client, contact_payload, headers={'X-Forwarded-For': '8.8.8.8'})

        assert limited.status_code == 429
        assert other.status_code == 200
