# =============================================================================
# Email Delivery Integration
# =============================================================================
#
# Providers (EMAIL_PROVIDER):
#   - log:   development only, writes the message to the log
#   - brevo: Brevo transactional email API
#            BREVO_API_KEY, BREVO_SENDER_EMAIL, BREVO_SENDER_NAME
#   - ses:   AWS SES
#            AWS_SES_FROM_EMAIL, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION
#
# Note: In SES sandbox mode, you can only send to verified emails.
#
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import boto3
import httpx
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from warden.config import Settings
from warden.core.errors import DeliveryError

logger = logging.getLogger(__name__)


# =============================================================================
# Email Templates
# =============================================================================

VERIFICATION_SUBJECT = "Email Verification Code"

VERIFICATION_TEXT = """Your verification code is: {code}

This code expires in {minutes} minutes."""


def render_verification(code: str, ttl_seconds: int = 300) -> str:
    return VERIFICATION_TEXT.format(code=code, minutes=max(1, ttl_seconds // 60))


# =============================================================================
# Senders
# =============================================================================


class EmailSender(ABC):
    """Delivers transactional email."""

    @abstractmethod
    async def send_verification_code(self, to: str, code: str) -> None:
        """
        Send a verification code.

        Raises:
            DeliveryError: The provider did not accept the message
        """


class LoggingEmailSender(EmailSender):
    """Writes messages to the log instead of sending them (development)."""

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds

    async def send_verification_code(self, to: str, code: str) -> None:
        logger.warning(f"Email not configured - would send '{VERIFICATION_SUBJECT}' to {to}")
        logger.info(f"Email content: {render_verification(code, self.ttl_seconds)}")


class _ServerError(Exception):
    """Provider answered 5xx; worth retrying."""


class BrevoEmailSender(EmailSender):
    """Send email through the Brevo SMTP API."""

    API_URL = "https://api.brevo.com/v3/smtp/email"

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        sender_email: str,
        sender_name: str,
        timeout: float = 10.0,
        ttl_seconds: int = 300,
    ):
        self._client = client
        self._api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout
        self.ttl_seconds = ttl_seconds

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type((httpx.TransportError, _ServerError)),
        reraise=True,
    )
    async def _post(self, payload: dict) -> httpx.Response:
        response = await self._client.post(
            self.API_URL,
            json=payload,
            headers={
                "accept": "application/json",
                "content-type": "application/json",
                "api-key": self._api_key,
            },
            timeout=self.timeout,
        )
        if response.status_code >= 500:
            raise _ServerError(f"Brevo answered {response.status_code}")
        return response

    async def send_verification_code(self, to: str, code: str) -> None:
        payload = {
            "sender": {"name": self.sender_name, "email": self.sender_email},
            "to": [{"email": to}],
            "subject": VERIFICATION_SUBJECT,
            "textContent": render_verification(code, self.ttl_seconds),
        }

        try:
            response = await self._post(payload)
        except (httpx.TransportError, _ServerError) as e:
            logger.error(f"Failed to send email to {to}: {e!r}")
            raise DeliveryError() from e

        if response.status_code >= 300:
            logger.error(f"Brevo rejected email to {to}: {response.status_code} {response.text}")
            raise DeliveryError(f"Email provider returned {response.status_code}")

        logger.info(f"Verification email sent to {to}")


class SesEmailSender(EmailSender):
    """Send email via AWS SES."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    @property
    def client(self):
        """Lazy-load SES client."""
        if self._client is None:
            self._client = boto3.client(
                "ses",
                region_name=self.settings.aws_region,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
            )
        return self._client

    def _send_sync(self, to: str, code: str) -> str:
        response = self.client.send_email(
            Source=self.settings.aws_ses_from_email,
            Destination={"ToAddresses": [to]},
            Message={
                "Subject": {"Data": VERIFICATION_SUBJECT, "Charset": "UTF-8"},
                "Body": {
                    "Text": {
                        "Data": render_verification(
                            code, self.settings.verification_code_ttl_seconds
                        ),
                        "Charset": "UTF-8",
                    },
                },
            },
        )
        return response["MessageId"]

    async def send_verification_code(self, to: str, code: str) -> None:
        try:
            message_id = await asyncio.wait_for(
                asyncio.to_thread(self._send_sync, to, code),
                timeout=self.settings.request_timeout_seconds,
            )
        except (ClientError, BotoCoreError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to send email to {to}: {e!r}")
            raise DeliveryError() from e

        logger.info(f"Email sent to {to} (MessageId: {message_id})")


# =============================================================================
# Factory
# =============================================================================


def create_email_sender(settings: Settings, http_client: httpx.AsyncClient) -> EmailSender:
    """Pick the sender named by settings.email_provider."""
    provider = settings.email_provider.lower()
    ttl = settings.verification_code_ttl_seconds

    if provider == "brevo":
        if not settings.brevo_api_key:
            raise ValueError("EMAIL_PROVIDER=brevo requires BREVO_API_KEY")
        return BrevoEmailSender(
            client=http_client,
            api_key=settings.brevo_api_key,
            sender_email=settings.brevo_sender_email,
            sender_name=settings.brevo_sender_name,
            timeout=settings.request_timeout_seconds,
            ttl_seconds=ttl,
        )

    if provider == "ses":
        if not (settings.use_aws and settings.aws_ses_from_email):
            raise ValueError("EMAIL_PROVIDER=ses requires AWS credentials and AWS_SES_FROM_EMAIL")
        return SesEmailSender(settings)

    if provider != "log":
        raise ValueError(f"Unknown email provider: {settings.email_provider}")

    if settings.is_production:
        logger.warning("Email provider is 'log' in production; codes will not be delivered")
    return LoggingEmailSender(ttl_seconds=ttl)
