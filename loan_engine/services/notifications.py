import logging
from collections.abc import Sequence

import httpx

from loan_engine.core.settings import Settings

logger = logging.getLogger(__name__)

AGREEMENT_SUBJECT = "Loan Investment Agreement"

_AGREEMENT_HTML = """
<h2>Loan Investment Agreement</h2>
<p>Dear Investor,</p>
<p>Your loan investment has been fully funded. Please find your agreement letter at:</p>
<p><a href="{url}">View Agreement</a></p>
<p>Best regards,<br>Loan Service Team</p>
"""


class NotificationError(RuntimeError):
    """Raised when the mail provider rejects or cannot receive a message."""


class SendGridMailer:
    def __init__(
        self,
        api_key: str,
        *,
        sender_name: str,
        sender_address: str,
        api_url: str = "https://api.sendgrid.com/v3/mail/send",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.sender_name = sender_name
        self.sender_address = sender_address
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "SendGridMailer":
        return cls(
            settings.sendgrid_api_key,
            sender_name=settings.email_sender_name,
            sender_address=settings.email_sender_address,
            api_url=settings.sendgrid_api_url,
        )

    def build_agreement_message(
        self, agreement_url: str, recipients: Sequence[tuple[str, str]]
    ) -> dict:
        return {
            "from": {"email": self.sender_address, "name": self.sender_name},
            "subject": AGREEMENT_SUBJECT,
            "personalizations": [
                {"to": [{"email": email, "name": name}]} for name, email in recipients
            ],
            "content": [{"type": "text/html", "value": _AGREEMENT_HTML.format(url=agreement_url)}],
        }

    async def send_investment_agreement(
        self, loan_id: str, agreement_url: str, recipients: Sequence[tuple[str, str]]
    ) -> None:
        """Send one personalization per (name, email) recipient."""
        if not recipients:
            logger.info("No investors to notify for loan %s", loan_id)
            return

        message = self.build_agreement_message(agreement_url, recipients)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.api_url, json=message, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"failed to send email for loan ID [{loan_id}]: {exc}") from exc

        logger.info(
            "Email agreement for loan %s sent to %d investors with status code %s",
            loan_id,
            len(recipients),
            response.status_code,
        )
