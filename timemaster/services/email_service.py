"""
Email Service - transactional emails rendered with Jinja2 and sent through
the Resend HTTP API.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from timemaster.domain.errors import EmailDeliveryError
from timemaster.infra.config import Settings, get_settings
from timemaster.utils import get_resource_path

logger = logging.getLogger(__name__)

API_TIMEOUT = 10.0
INVITE_EXPIRY_DAYS = 7


class EmailService:
    """
    Sends share notifications.

    Every send either succeeds or raises EmailDeliveryError; callers decide
    whether a failed notification matters.
    """

    def __init__(self, settings: Optional[Settings] = None, template_dir: Optional[Path] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Args:
            settings: Application settings, defaults to the global settings
            template_dir: Directory containing the email templates
            transport: Optional httpx transport (tests pass httpx.MockTransport)
        """
        self.settings = settings or get_settings()
        self.transport = transport

        if template_dir is None:
            template_dir = get_resource_path("resources/templates")
        self.env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html"]),
            trim_blocks=True,
            lstrip_blocks=True
        )

    def render(self, template_name: str, **context) -> str:
        template = self.env.get_template(template_name)
        return template.render(app_name=self.settings.app_name, **context)

    async def send(self, to_email: str, subject: str, html: str, text: str) -> str:
        """Post one email to the provider and return its message id"""
        if not self.settings.resend_api_key:
            raise EmailDeliveryError("Email delivery is not configured", context={"to": to_email})

        payload = {
            "from": self.settings.email_from,
            "to": to_email,
            "subject": subject,
            "html": html,
            "text": text,
        }
        headers = {"Authorization": f"Bearer {self.settings.resend_api_key}"}

        logger.info(f"Sending '{subject}' to {to_email}")
        try:
            async with httpx.AsyncClient(timeout=API_TIMEOUT, transport=self.transport) as client:
                response = await client.post(self.settings.resend_api_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise EmailDeliveryError(
                f"Email provider rejected the message: {e.response.status_code}",
                context={"to": to_email, "status": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Email provider unreachable: {e}", context={"to": to_email}) from e

        return response.json().get("id", "")

    async def send_share_invitation(self, to_email: str, inviter_name: str, inviter_email: str,
                                    invite_token: str, is_existing_user: bool) -> str:
        context = {
            "inviter_name": inviter_name or inviter_email,
            "inviter_email": inviter_email,
            "link": f"{self.settings.app_url}/share/accept?token={invite_token}",
            "is_existing_user": is_existing_user,
            "expires_in_days": INVITE_EXPIRY_DAYS,
        }
        return await self.send(
            to_email,
            f"{context['inviter_name']} shared their focus reports with you",
            self.render("share_invitation.html", **context),
            self.render("share_invitation.txt", **context),
        )

    async def send_share_accepted(self, to_email: str, accepter_name: str, accepter_email: str) -> str:
        context = {
            "accepter_name": accepter_name or accepter_email,
            "accepter_email": accepter_email,
            "link": f"{self.settings.app_url}/settings/sharing",
        }
        return await self.send(
            to_email,
            f"{context['accepter_name']} accepted your invitation",
            self.render("share_accepted.html", **context),
            self.render("share_accepted.txt", **context),
        )
