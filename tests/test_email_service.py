"""
Tests for the email service, using httpx.MockTransport instead of the network.
"""

import json

import httpx
import pytest

from timemaster.domain.errors import EmailDeliveryError
from timemaster.services.email_service import EmailService


def recording_transport(status_code=200, body=None):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"id": "msg_123"})

    return httpx.MockTransport(handler), requests


def test_render_invitation_mentions_inviter_and_link(test_settings):
    service = EmailService(settings=test_settings)

    text = service.render("share_invitation.txt", inviter_name="Olivia", inviter_email="owner@example.com",
                          link="https://app.example.com/share/accept?token=abc",
                          is_existing_user=False, expires_in_days=7)

    assert "Olivia (owner@example.com)" in text
    assert "https://app.example.com/share/accept?token=abc" in text
    assert "expires in 7 days" in text
    assert "Sign up" in text


def test_html_template_escapes_names(test_settings):
    service = EmailService(settings=test_settings)
    html = service.render("share_accepted.html", accepter_name="<b>Eve</b>", accepter_email="eve@example.com",
                          link="https://app.example.com/settings/sharing")
    assert "<b>Eve</b>" not in html
    assert "&lt;b&gt;Eve&lt;/b&gt;" in html


@pytest.mark.asyncio
async def test_send_share_invitation_posts_to_provider(test_settings):
    transport, requests = recording_transport()
    service = EmailService(settings=test_settings, transport=transport)

    message_id = await service.send_share_invitation(
        to_email="viewer@example.com", inviter_name="Olivia", inviter_email="owner@example.com",
        invite_token="tok-1", is_existing_user=True,
    )

    assert message_id == "msg_123"
    assert len(requests) == 1
    request = requests[0]
    assert str(request.url) == test_settings.resend_api_url
    assert request.headers["Authorization"] == "Bearer re_test_key"
    payload = json.loads(request.content)
    assert payload["to"] == "viewer@example.com"
    assert payload["subject"] == "Olivia shared their focus reports with you"
    assert "https://app.example.com/share/accept?token=tok-1" in payload["text"]
    assert "Sign up" not in payload["text"]


@pytest.mark.asyncio
async def test_provider_error_raises_delivery_error(test_settings):
    transport, _ = recording_transport(status_code=422, body={"message": "invalid to"})
    service = EmailService(settings=test_settings, transport=transport)

    with pytest.raises(EmailDeliveryError) as exc_info:
        await service.send_share_accepted("owner@example.com", "Victor", "viewer@example.com")
    assert exc_info.value.context["status"] == 422


@pytest.mark.asyncio
async def test_network_error_raises_delivery_error(test_settings):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    service = EmailService(settings=test_settings, transport=httpx.MockTransport(handler))

    with pytest.raises(EmailDeliveryError):
        await service.send("someone@example.com", "Hi", "<p>Hi</p>", "Hi")


@pytest.mark.asyncio
async def test_missing_api_key(test_settings):
    transport, requests = recording_transport()
    settings = test_settings.model_copy(update={"resend_api_key": None})
    service = EmailService(settings=settings, transport=transport)

    with pytest.raises(EmailDeliveryError):
        await service.send("someone@example.com", "Hi", "<p>Hi</p>", "Hi")
    assert requests == []
