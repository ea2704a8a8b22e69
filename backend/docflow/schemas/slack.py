"""Slack incoming-webhook message (text fallback + Block Kit sections)."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TextObject(BaseModel):
    type: str = "mrkdwn"
    text: str = ""


class Section(BaseModel):
    type: str = "section"
    text: TextObject = Field(default_factory=TextObject)

    @classmethod
    def markdown(cls, text: str) -> "Section":
        return cls(text=TextObject(text=text))


class SlackMessage(BaseModel):
    text:   str = ""
    blocks: list[Section] = Field(default_factory=list)
