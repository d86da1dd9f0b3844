"""Outbound notifications. Delivery is best effort; callers decide what a failure means."""

import logging
from abc import ABC, abstractmethod

from botocore.exceptions import BotoCoreError, ClientError

from file_gateway.errors import NotificationError

logger = logging.getLogger(__name__)

UPLOAD_SUBJECT = "File Upload Notification"


def upload_message(original_name: str, location: str) -> str:
    return (
        f'Hello, your file "{original_name}" has been successfully uploaded. '
        f"View it here: {location}"
    )


class Notifier(ABC):
    """Delivers a message to a recipient address."""

    @abstractmethod
    def notify(self, recipient: str, subject: str, body: str) -> None:
        """Send the message.

        Raises:
            NotificationError: the message was not accepted for delivery
        """

    def close(self) -> None:
        pass


class LogNotifier(Notifier):
    """Writes notifications to the log. Used in local development."""

    def notify(self, recipient: str, subject: str, body: str) -> None:
        if not recipient or not subject or not body:
            raise NotificationError("Missing required fields: recipient, subject, or body")
        logger.info(f"Notification to {recipient}: {subject} - {body}")


class SESNotifier(Notifier):
    """Sends plain-text email through Amazon SES."""

    def __init__(self, ses_client, sender: str, owns_client: bool = True):
        self.ses_client = ses_client
        self.sender = sender
        self._owns_client = owns_client

    def notify(self, recipient: str, subject: str, body: str) -> None:
        if not recipient or not subject or not body:
            raise NotificationError("Missing required fields: recipient, subject, or body")
        try:
            response = self.ses_client.send_email(
                Source=self.sender,
                Destination={"ToAddresses": [recipient]},
                Message={
                    "Subject": {"Data": subject, "Charset": "UTF-8"},
                    "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                },
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error sending email to {recipient}: {e}")
            raise NotificationError(str(e)) from e
        logger.info(f"E-mail sent to {recipient} with message id {response.get('MessageId')}")

    def close(self) -> None:
        if self._owns_client:
            self.ses_client.close()
