"""
Observability Package — stage timing

Usage::

    from docflow.observability import traced

    @traced("labels.rekognition")
    async def detect(...): ...
"""

from docflow.observability.tracing import traced

__all__ = ["traced"]
