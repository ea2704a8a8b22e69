"""
Pipeline stage interfaces and their AWS / HTTP adapters.

Usage::

    from docflow.stages import RekognitionLabelDetector

    detector = RekognitionLabelDetector(rekognition_client, max_labels=10)
"""

from docflow.stages.attributes import FormKiqAttributeWriter
from docflow.stages.base import (
    AttributeWriter,
    LabelDetector,
    Notifier,
    PipelineStage,
    TextExtractor,
    ThumbnailGenerator,
)
from docflow.stages.labels import RekognitionLabelDetector
from docflow.stages.notify import SlackNotifier
from docflow.stages.text import TextractTextExtractor
from docflow.stages.thumbnail import S3ThumbnailGenerator

__all__ = [
    "PipelineStage",
    "ThumbnailGenerator",
    "LabelDetector",
    "TextExtractor",
    "AttributeWriter",
    "Notifier",
    "S3ThumbnailGenerator",
    "RekognitionLabelDetector",
    "TextractTextExtractor",
    "FormKiqAttributeWriter",
    "SlackNotifier",
]
