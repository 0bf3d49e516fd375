"""
Outbound email through a Resend-compatible HTTP API.

One attempt per call, no retries. Any failure surfaces as DeliveryError with
the provider's own message so callers can report it verbatim.
"""
import html
import uuid
from dataclasses import dataclass

import httpx

from vandesk.core.logging import get_logger
from vandesk.settings import Settings

logger = get_logger(__name__)


class DeliveryError(Exception):
    pass


@dataclass(frozen=True)
class OutboundEmail:
    incident_id: uuid.UUID
    recipient_email: str
    recipient_name: str | None
    subject: str
    body: str


_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <style>
    body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
    .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
    .header {{ background: #1a365d; color: white; padding: 20px; text-align: center; }}
    .content {{ padding: 20px; background: #f9fafb; }}
    .footer {{ text-align: center; padding: 20px; color: #6b7280; font-size: 12px; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{heading}</h1></div>
    <div class="content">
      <p>Dear {name},</p>
      {content}
      <p style="margin-top: 24px;"><strong>Best regards,<br>OPS Team</strong></p>
    </div>
    <div class="footer"><p>{footer}</p></div>
  </div>
</body>
</html>"""


def render_html(*, heading: str, recipient_name: str | None, content: str, footer: str) -> str:
    return _LAYOUT.format(
        heading=html.escape(heading),
        name=html.escape(recipient_name or "Team Member"),
        content=content,
        footer=html.escape(footer),
    )


def plain_text_block(body: str) -> str:
    return f'<div style="white-space: pre-wrap;">{html.escape(body)}</div>'


class EmailProvider:
    def __init__(
        self,
        api_url: str,
        api_key: str,
        from_address: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailProvider":
        return cls(
            api_url=settings.EMAIL_API_URL,
            api_key=settings.EMAIL_API_KEY,
            from_address=settings.EMAIL_FROM,
            timeout=settings.EMAIL_TIMEOUT_SECONDS,
        )

    async def _post(self, to: str, subject: str, html_body: str) -> str | None:
        payload = {"from": self.from_address, "to": [to], "subject": subject, "html": html_body}
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(f"Email provider unreachable: {exc}") from exc

        if not resp.is_success:
            raise DeliveryError(_error_message(resp))
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data.get("id") if isinstance(data, dict) else None

    async def send_final(self, email: OutboundEmail) -> str | None:
        """Send the final determination email. Returns the provider message id."""
        logger.info(
            "Sending final email",
            extra={"extra_data": {"incident_id": str(email.incident_id), "recipient": email.recipient_email}},
        )
        html_body = render_html(
            heading="Van Incident Update",
            recipient_name=email.recipient_name,
            content=plain_text_block(email.body),
            footer="Fleet Operations Team",
        )
        return await self._post(email.recipient_email, email.subject, html_body)

    async def send_confirmation(
        self,
        *,
        incident_id: uuid.UUID,
        recipient_email: str,
        recipient_name: str | None,
        van_id: str,
        incident_date: str,
        ops_area: str,
    ) -> str | None:
        content = (
            "<p>Thank you for submitting the incident report. We are sorry you have had an "
            "incident with a van. We will now take a couple of days to process the information "
            "and get back to you in case we have further questions.</p>"
        )
        html_body = render_html(
            heading="Incident Report Received",
            recipient_name=recipient_name,
            content=content,
            footer=f"Reference: {van_id} | {incident_date} | {ops_area}",
        )
        logger.info(
            "Sending submission receipt",
            extra={"extra_data": {"incident_id": str(incident_id), "recipient": recipient_email}},
        )
        return await self._post(recipient_email, f"Van Incident Report Received - {van_id}", html_body)


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text or f"Email provider returned HTTP {resp.status_code}"
