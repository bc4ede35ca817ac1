import httpx
import pytest

from file_pipeline.core.models import Dimensions, ProcessingResult, ProcessingStatus, ResultMetadata
from file_pipeline.service.notifications import AlertPublisher, NotificationDispatcher, TopicPublisher

from conftest import ORDER_ID, USER_ID, RecordingTopic


def make_result():
    return ProcessingResult(
        file_id="file_1_abc",
        original_name="photo.jpg",
        processed_url="https://storage.test/p/photo.jpg",
        thumbnail_url="https://storage.test/p/photo_thumb.jpg",
        metadata=ResultMetadata(size=10, type="image/jpeg", dimensions=Dimensions(width=2, height=3)),
        status=ProcessingStatus.PROCESSED,
    )


@pytest.mark.asyncio
async def test_success_notification_envelope(push_topic):
    sent = await NotificationDispatcher(push_topic.publisher()).notify_success(USER_ID, ORDER_ID, make_result())

    assert sent
    envelope = push_topic.envelopes[0]
    assert envelope["attributes"] == {"userId": USER_ID, "type": "FILE_PROCESSED"}

    message = push_topic.messages[0]
    assert message["userId"] == USER_ID
    assert message["type"] == "FILE_PROCESSED"
    assert message["title"] == "Файл обработан"
    assert message["body"] == 'Файл "photo.jpg" успешно загружен и обработан'
    assert message["data"] == {
        "orderId": ORDER_ID,
        "fileId": "file_1_abc",
        "fileUrl": "https://storage.test/p/photo.jpg",
        "thumbnailUrl": "https://storage.test/p/photo_thumb.jpg",
        "fileSize": 10,
        "fileType": "image/jpeg",
    }
    assert message["timestamp"]


@pytest.mark.asyncio
async def test_error_notification_envelope(push_topic):
    await NotificationDispatcher(push_topic.publisher()).notify_error(USER_ID, ORDER_ID, "a.zip", "Unsupported file type: application/zip")

    message = push_topic.messages[0]
    assert message["type"] == "FILE_PROCESSING_ERROR"
    assert message["title"] == "Ошибка обработки файла"
    assert message["body"] == 'Не удалось обработать файл "a.zip": Unsupported file type: application/zip'
    assert message["data"] == {"orderId": ORDER_ID, "filename": "a.zip", "error": "Unsupported file type: application/zip"}
    assert push_topic.envelopes[0]["attributes"]["type"] == "FILE_PROCESSING_ERROR"


@pytest.mark.asyncio
async def test_unconfigured_topic_is_a_no_op():
    dispatcher = NotificationDispatcher(None)

    assert await dispatcher.notify_success(USER_ID, ORDER_ID, make_result()) is False
    assert await dispatcher.notify_error(USER_ID, ORDER_ID, "a", "b") is False


@pytest.mark.asyncio
async def test_rejected_publish_is_swallowed():
    topic = RecordingTopic(status_code=503)

    assert await NotificationDispatcher(topic.publisher()).notify_success(USER_ID, ORDER_ID, make_result()) is False
    assert len(topic.envelopes) == 1


@pytest.mark.asyncio
async def test_transport_failure_is_swallowed():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    publisher = TopicPublisher("https://topics.test/push", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await NotificationDispatcher(publisher).notify_error(USER_ID, ORDER_ID, "a", "b") is False


@pytest.mark.asyncio
async def test_alert_payload(alert_topic):
    try:
        raise RuntimeError("disk on fire")
    except RuntimeError as e:
        error = e

    sent = await AlertPublisher(alert_topic.publisher()).send_alert("uploads/x/y/z.jpg", error)

    assert sent
    envelope = alert_topic.envelopes[0]
    assert envelope["subject"] == "File Processing System Error"
    alert = alert_topic.messages[0]
    assert alert["service"] == "file-processing"
    assert alert["error"] == "disk on fire"
    assert "RuntimeError" in alert["stack"]
    assert alert["s3Key"] == "uploads/x/y/z.jpg"
    assert alert["severity"] == "ERROR"


@pytest.mark.asyncio
async def test_alert_without_topic_is_silent():
    assert await AlertPublisher(None).send_alert("k", RuntimeError("x")) is False


@pytest.mark.asyncio
async def test_alert_failure_is_swallowed():
    topic = RecordingTopic(status_code=500)
    assert await AlertPublisher(topic.publisher()).send_alert("k", RuntimeError("x")) is False


@pytest.mark.asyncio
async def test_close_releases_http_clients(push_topic, alert_topic):
    notifier = NotificationDispatcher(push_topic.publisher())
    alerts = AlertPublisher(alert_topic.publisher())

    await notifier.close()
    await alerts.close()
    await NotificationDispatcher(None).close()

    assert notifier.publisher.client.is_closed
    assert alerts.publisher.client.is_closed
