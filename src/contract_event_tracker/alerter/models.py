"""Data models for the alerter module."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class FormattedAlert:
    """An alert rendered for delivery.

    Attributes:
        title: One-line headline.
        body: Short human-readable description.
        plain_text: Full plain-text rendering for logs and generic channels.
        structured: Machine-oriented rendering (severity color, fields).
    """

    title: str
    body: str
    plain_text: str
    structured: dict[str, object] = field(default_factory=dict)
