from __future__ import annotations

from typing import Literal

QueryType = Literal["service", "task"]
QueryStatus = Literal["pending", "in-progress", "resolved", "rejected"]
QueryPriority = Literal["low", "medium", "high", "critical"]
ProofFileKind = Literal["image", "video", "document", "other"]

DEFAULT_CATEGORY = "service-quality"
OPEN_STATUSES: frozenset[str] = frozenset({"pending", "in-progress"})

STATUSES: list[dict[str, str]] = [
    {"value": "pending", "label": "Pending"},
    {"value": "in-progress", "label": "In Progress"},
    {"value": "resolved", "label": "Resolved"},
    {"value": "rejected", "label": "Rejected"},
]

PRIORITIES: list[dict[str, str]] = [
    {"value": "low", "label": "Low"},
    {"value": "medium", "label": "Medium"},
    {"value": "high", "label": "High"},
    {"value": "critical", "label": "Critical"},
]

CATEGORIES: list[dict[str, str]] = [
    {"value": "service-quality", "label": "Service Quality"},
    {"value": "staff-behavior", "label": "Staff Behavior"},
    {"value": "timeliness", "label": "Timeliness"},
    {"value": "cleanliness", "label": "Cleanliness"},
    {"value": "equipment-issue", "label": "Equipment Issue"},
    {"value": "safety-concern", "label": "Safety Concern"},
    {"value": "billing", "label": "Billing"},
    {"value": "other", "label": "Other"},
]

SERVICE_TYPES: list[dict[str, str]] = [
    {"value": "cleaning", "label": "Cleaning"},
    {"value": "waste-management", "label": "Waste Management"},
    {"value": "parking-management", "label": "Parking Management"},
    {"value": "security", "label": "Security"},
    {"value": "maintenance", "label": "Maintenance"},
]


def values(vocabulary: list[dict[str, str]]) -> list[str]:
    return [item["value"] for item in vocabulary]
