# core/template_engine.py
"""
Notification Template Engine
Renders the four notification variants (admin contact, contact acknowledgment,
admin newsletter, newsletter welcome) from Jinja2 files with autoescaping, so
user-supplied fields can never inject markup into an email.
"""

import re
import html
import logging
import urllib.parse
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError
from markupsafe import Markup
import premailer
from bs4 import BeautifulSoup

from config.settings import Settings
from core.models import ContactSubmission, NewsletterSubscription, OutboundEmail

# Configure logging
logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / 'templates'


def format_timestamp(moment: datetime, tz_name: str) -> str:
    """
    Long US date-time in the given zone, e.g. "Monday, October 19, 2026 at 09:05 AM"
    """
    local = moment.astimezone(ZoneInfo(tz_name))
    return f"{local:%A}, {local:%B} {local.day}, {local.year} at {local:%I:%M %p}"


def header_text(value: str) -> str:
    """Collapse line breaks so user text is safe inside a single header line"""
    return re.sub(r"[\r\n]+", " ", value)


def make_reference_id(moment: datetime, prefix: str) -> str:
    """Cosmetic reference: prefix plus the last six digits of epoch milliseconds"""
    millis = str(int(moment.timestamp() * 1000))
    return f"{prefix}{millis[-6:]}"


def html_to_text(html_content: str) -> str:
    """
    Convert HTML to plain text with proper formatting for email
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, 'html.parser')

    for tag in soup(['style', 'head', 'title']):
        tag.decompose()

    for br in soup.find_all('br'):
        br.replace_with('\n')

    for p in soup.find_all(['p', 'div']):
        p.insert_after('\n')

    for header in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
        header.insert_before('\n')
        header.insert_after('\n')

    for li in soup.find_all('li'):
        li.insert_before('- ')
        li.insert_after('\n')

    # Keep link targets visible
    for link in soup.find_all('a', href=True):
        link_text = link.get_text().strip()
        href = link['href']
        if href != link_text:
            link.replace_with(f"{link_text} ({href})")

    text = soup.get_text()

    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


class NotificationTemplateEngine:
    """
    Jinja2-backed renderer for submission notifications
    """

    def __init__(self, settings: Settings, template_dir: Optional[Path] = None):
        """
        Args:
            settings: Application settings (sender, admin address, brand, CSS inlining)
            template_dir: Override for the template directory
        """
        self.settings = settings
        self.brand = settings.brand
        self.enable_css_inlining = settings.inline_css

        self.env = Environment(
            loader=FileSystemLoader(str(template_dir or TEMPLATE_DIR)),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,  # Fail on undefined variables
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.env.filters['url_encode'] = urllib.parse.quote
        self.env.filters['email_safe'] = self._email_safe_filter

        logger.info(f"NotificationTemplateEngine initialized (css inlining: {self.enable_css_inlining})")

    def render_html(self, template_name: str, variables: Dict[str, Any]) -> str:
        """
        Render a template file to an HTML string

        Raises:
            TemplateError: when the template is missing or references an undefined variable
        """
        start_time = datetime.now()

        context = {'brand': self.brand, **variables}
        try:
            rendered = self.env.get_template(template_name).render(**context)
        except TemplateError as e:
            logger.error(f"Template rendering failed for {template_name}: {str(e)}")
            raise

        if self.enable_css_inlining:
            rendered = self._inline_css(rendered)

        render_ms = (datetime.now() - start_time).total_seconds() * 1000
        logger.debug(f"Rendered {template_name} in {render_ms:.2f}ms, "
                     f"size: {len(rendered.encode('utf-8')):,} bytes")
        return rendered

    def _common_context(self, now: datetime) -> Dict[str, Any]:
        return {
            'timestamp': format_timestamp(now, self.brand.timezone),
            'year': now.astimezone(ZoneInfo(self.brand.timezone)).year,
        }

    def render_contact_admin(self, submission: ContactSubmission, now: datetime) -> OutboundEmail:
        """Admin notification for a new contact form submission"""
        body = self.render_html('contact_admin.html', {
            'submission': submission,
            **self._common_context(now),
        })
        return OutboundEmail(
            sender=self.settings.mail_user,
            to=self.settings.admin_email,
            subject=f"New Contact Form: {header_text(submission.subject)}",
            html=body,
            reply_to=submission.email,
        )

    def render_contact_acknowledgment(self, submission: ContactSubmission, now: datetime) -> OutboundEmail:
        """Auto-reply to the person who submitted the contact form"""
        body = self.render_html('contact_acknowledgment.html', {
            'submission': submission,
            'reference_id': make_reference_id(now, self.brand.reference_prefix),
            **self._common_context(now),
        })
        return OutboundEmail(
            sender=self.settings.mail_user,
            to=submission.email,
            subject=f"Thank you for contacting {self.brand.name}!",
            html=body,
        )

    def render_newsletter_admin(self, subscription: NewsletterSubscription, now: datetime) -> OutboundEmail:
        """Admin notification for a new newsletter subscriber"""
        body = self.render_html('newsletter_admin.html', {
            'subscription': subscription,
            'reference_id': make_reference_id(now, self.brand.reference_prefix),
            **self._common_context(now),
        })
        return OutboundEmail(
            sender=self.settings.mail_user,
            to=self.settings.admin_email,
            subject=f"New Newsletter Subscription - {self.brand.name}",
            html=body,
        )

    def render_newsletter_welcome(self, subscription: NewsletterSubscription, now: datetime) -> OutboundEmail:
        """Welcome email for the new subscriber"""
        body = self.render_html('newsletter_welcome.html', {
            'subscription': subscription,
            **self._common_context(now),
        })
        return OutboundEmail(
            sender=self.settings.mail_user,
            to=subscription.email,
            subject=f"Welcome to {self.brand.name} Newsletter!",
            html=body,
        )

    def _inline_css(self, html_content: str) -> str:
        """
        Inline CSS styles for better email client compatibility
        """
        try:
            p = premailer.Premailer(
                html_content,
                remove_classes=False,
                keep_style_tags=False,
                strip_important=False,
                external_styles=None,  # Don't fetch external stylesheets
                allow_network=False,
                cssutils_logging_level=logging.CRITICAL,
            )
            return p.transform()
        except Exception as e:
            logger.warning(f"CSS inlining failed: {str(e)}")
            return html_content

    @staticmethod
    def _email_safe_filter(value: Any) -> Markup:
        """
        Escape user text and keep its line breaks
        """
        if not isinstance(value, str):
            value = str(value)

        value = html.escape(value.replace('\r\n', '\n'))
        value = value.replace('\n', '<br>')

        return Markup(value)
