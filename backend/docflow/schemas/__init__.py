from docflow.schemas.document_store import DocumentAttribute, DocumentAttributeList, OcrContent
from docflow.schemas.events import CREATE_EVENT, DocumentEvent, NotificationEnvelope, QueueMessage
from docflow.schemas.slack import Section, SlackMessage, TextObject

__all__ = [
    "CREATE_EVENT", "DocumentEvent", "NotificationEnvelope", "QueueMessage",
    "DocumentAttribute", "DocumentAttributeList", "OcrContent",
    "Section", "SlackMessage", "TextObject",
]
