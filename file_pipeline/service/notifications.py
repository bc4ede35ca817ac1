"""
HTTP topic publishing for user notifications and system alerts.
Both are best-effort: failures are logged and never propagated.
"""

import httpx
import json
import logging
import traceback
from typing import Dict, Any, Optional

from file_pipeline.core.errors import NotificationError
from file_pipeline.core.ids import utc_now
from file_pipeline.core.models import NotificationMessage, NotificationType, ProcessingResult, SystemAlert

logger = logging.getLogger(__name__)


class TopicPublisher:
    """Publishes JSON envelopes to a topic endpoint."""

    def __init__(self, topic_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the topic publisher.

        Args:
            topic_url: Topic endpoint URL
            timeout: Request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.topic_url = topic_url
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10)
        )

    async def publish(
        self,
        message: Dict[str, Any],
        attributes: Optional[Dict[str, str]] = None,
        subject: Optional[str] = None
    ) -> None:
        """
        Publish one message.

        Raises:
            NotificationError: transport failure or non-2xx response
        """
        envelope = {
            "message": json.dumps(message, ensure_ascii=False),
            "attributes": attributes or {},
        }
        if subject:
            envelope["subject"] = subject

        try:
            response = await self.client.post(self.topic_url, json=envelope)
        except httpx.HTTPError as e:
            raise NotificationError(f"Publish to {self.topic_url} failed: {e}") from e

        if response.status_code >= 300:
            raise NotificationError(
                f"Publish to {self.topic_url} failed: {response.status_code} - {response.text[:200]}"
            )

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()


class NotificationDispatcher:
    """Sends file processed / file failed notifications to the push topic."""

    def __init__(self, publisher: Optional[TopicPublisher]):
        self.publisher = publisher

    async def _send(self, message: NotificationMessage) -> bool:
        if self.publisher is None:
            logger.warning("Notification topic not configured, skipping notification")
            return False

        try:
            await self.publisher.publish(
                message.model_dump(mode="json", by_alias=True),
                attributes={"userId": message.user_id, "type": message.type.value},
            )
            return True
        except Exception as e:
            logger.error(f"Failed to send {message.type.value} notification to user {message.user_id}: {e}")
            return False

    async def notify_success(self, user_id: str, order_id: str, result: ProcessingResult) -> bool:
        message = NotificationMessage(
            user_id=user_id,
            type=NotificationType.FILE_PROCESSED,
            title="Файл обработан",
            body=f'Файл "{result.original_name}" успешно загружен и обработан',
            data={
                "orderId": order_id,
                "fileId": result.file_id,
                "fileUrl": result.processed_url,
                "thumbnailUrl": result.thumbnail_url,
                "fileSize": result.metadata.size,
                "fileType": result.metadata.type,
            },
            timestamp=utc_now(),
        )
        sent = await self._send(message)
        if sent:
            logger.info(f"Processing notification sent to user {user_id} for file {result.file_id}")
        return sent

    async def notify_error(self, user_id: str, order_id: str, filename: str, error_message: str) -> bool:
        message = NotificationMessage(
            user_id=user_id,
            type=NotificationType.FILE_PROCESSING_ERROR,
            title="Ошибка обработки файла",
            body=f'Не удалось обработать файл "{filename}": {error_message}',
            data={"orderId": order_id, "filename": filename, "error": error_message},
            timestamp=utc_now(),
        )
        sent = await self._send(message)
        if sent:
            logger.info(f"Error notification sent to user {user_id} for {filename}")
        return sent

    async def close(self):
        if self.publisher is not None:
            await self.publisher.close()


class AlertPublisher:
    """Reports unexpected pipeline errors to the alerting topic."""

    subject = "File Processing System Error"

    def __init__(self, publisher: Optional[TopicPublisher]):
        self.publisher = publisher

    async def send_alert(self, key: str, error: BaseException) -> bool:
        if self.publisher is None:
            return False

        alert = SystemAlert(
            error=str(error),
            stack="".join(traceback.format_exception(type(error), error, error.__traceback__)),
            s3_key=key,
            timestamp=utc_now(),
        )
        try:
            await self.publisher.publish(alert.model_dump(mode="json", by_alias=True), subject=self.subject)
            logger.error(f"System error alert sent for {key}: {error}")
            return True
        except Exception as e:
            logger.error(f"Failed to send error alert for {key} (original error: {error}): {e}")
            return False

    async def close(self):
        if self.publisher is not None:
            await self.publisher.close()
