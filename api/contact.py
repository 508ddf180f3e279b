# api/contact.py
"""
Contact and newsletter API endpoints
"""

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, request

from core.exceptions import RateLimitError
from middleware.security import client_identity, rate_limit_headers

contact_bp = Blueprint('contact', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _dispatcher():
    return current_app.extensions['notification_dispatcher']


@contact_bp.route('/api/contact', methods=['POST'])
def submit_contact():
    """Contact form submission: notify the admin and acknowledge the sender"""
    result = _dispatcher().submit_contact(client_identity(), _json_body())

    response = jsonify(result.to_dict())
    return rate_limit_headers(response, result.rate), 200


@contact_bp.route('/api/newsletter', methods=['POST'])
def subscribe_newsletter():
    """Newsletter subscription: notify the admin and welcome the subscriber"""
    result = _dispatcher().subscribe_newsletter(client_identity(), _json_body())

    response = jsonify(result.to_dict())
    return rate_limit_headers(response, result.rate), 200


@contact_bp.route('/api/health', methods=['GET'])
def health_check():
    """Basic health check endpoint"""
    settings = current_app.config['SETTINGS']
    return jsonify({
        'status': 'OK',
        'service': f"SMTP notifications for {settings.brand.domain}",
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'domain': settings.brand.domain,
        'smtp_ready': current_app.config.get('SMTP_READY'),
        'endpoints': {
            'contact': '/api/contact',
            'newsletter': '/api/newsletter'
        }
    })


@contact_bp.route('/', methods=['GET'])
def index():
    """Service description"""
    settings = current_app.config['SETTINGS']
    return jsonify({
        'message': f"{settings.brand.name} Contact API",
        'domain': settings.brand.domain,
        'endpoints': {
            'health': '/api/health',
            'contact': '/api/contact',
            'newsletter': '/api/newsletter'
        }
    })


@contact_bp.errorhandler(RateLimitError)
def rate_limit_exceeded(error):
    response = jsonify(error.to_dict())
    response.headers['Retry-After'] = str(error.retry_after)
    response.headers['X-RateLimit-Limit'] = str(error.limit)
    response.headers['X-RateLimit-Remaining'] = '0'
    return response, error.status_code
