# config/settings.py
"""
Runtime configuration for the Contact & Newsletter API

Settings are assembled once at process start (Settings.from_env) and passed
down explicitly to the app factory, the dispatcher and the mail transport.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from dotenv import load_dotenv


DEFAULT_ALLOWED_ORIGINS = [
    'https://quantumdatasynergy.com',
    'https://www.quantumdatasynergy.com',
    'http://localhost:3000',
    'http://localhost:5173',
]


@dataclass(frozen=True)
class BrandConfig:
    """Static brand details printed in every email"""
    name: str = 'Quantum Data Synergy'
    tagline: str = 'Technology & Data Consulting'
    domain: str = 'quantumdatasynergy.com'
    website: str = 'https://quantumdatasynergy.com'
    contact_email: str = 'contact@quantumdatasynergy.com'
    phone: str = '+5076897-6654'
    location: str = 'Panama City, Panama'
    timezone: str = 'America/Panama'
    reference_prefix: str = 'QDS'


def _env_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == '':
        return None
    return float(value)


@dataclass
class Settings:
    """Process-wide configuration, read-only after startup"""

    mail_user: str = ''
    mail_password: str = ''
    admin_email: str = ''
    port: int = 3001
    allowed_origin: Optional[str] = None
    development_mode: bool = False

    # SMTP submission
    smtp_host: str = 'smtp.gmail.com'
    smtp_port: int = 587
    smtp_timeout: float = 30.0
    smtp_validate_certs: bool = True
    send_timeout: Optional[float] = None
    verify_on_startup: bool = True

    # Rate limiting
    ratelimit_storage_url: str = 'memory://'

    # Runtime
    log_level: str = 'INFO'
    trust_proxy: bool = False
    inline_css: bool = True
    max_content_length: int = 10 * 1024 * 1024  # 10MB, same as the JSON body limit

    brand: BrandConfig = field(default_factory=BrandConfig)

    def __post_init__(self):
        if not self.admin_email:
            self.admin_email = self.mail_user

    @property
    def allowed_origins(self) -> List[str]:
        origins = list(DEFAULT_ALLOWED_ORIGINS)
        if self.allowed_origin and self.allowed_origin not in origins:
            origins.append(self.allowed_origin)
        return origins

    @property
    def environment(self) -> str:
        return 'development' if self.development_mode else 'production'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 dotenv_path: Optional[str] = None) -> 'Settings':
        """
        Build settings from environment variables

        Args:
            environ: Mapping to read from (defaults to os.environ, after a .env file is loaded)
            dotenv_path: Optional explicit .env location

        Returns:
            Settings instance
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        mail_user = environ.get('MAIL_USER') or environ.get('GMAIL_USER', '')

        return cls(
            mail_user=mail_user,
            mail_password=environ.get('MAIL_PASSWORD') or environ.get('GMAIL_APP_PASSWORD', ''),
            admin_email=environ.get('ADMIN_EMAIL') or mail_user,
            port=int(environ.get('PORT', 3001)),
            allowed_origin=environ.get('FRONTEND_URL') or None,
            development_mode=environ.get('FLASK_ENV', 'production') == 'development',
            smtp_host=environ.get('SMTP_HOST', 'smtp.gmail.com'),
            smtp_port=int(environ.get('SMTP_PORT', 587)),
            smtp_timeout=float(environ.get('SMTP_TIMEOUT', 30)),
            smtp_validate_certs=_env_bool(environ.get('SMTP_VALIDATE_CERTS'), default=True),
            send_timeout=_env_float(environ.get('MAIL_SEND_TIMEOUT')),
            verify_on_startup=_env_bool(environ.get('SMTP_VERIFY_ON_STARTUP'), default=True),
            ratelimit_storage_url=environ.get('RATELIMIT_STORAGE_URL', 'memory://'),
            log_level=environ.get('LOG_LEVEL', 'INFO'),
            trust_proxy=_env_bool(environ.get('TRUST_PROXY')),
            inline_css=_env_bool(environ.get('INLINE_CSS'), default=True),
        )
