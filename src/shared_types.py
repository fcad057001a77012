"""Shared enums and types for taskbuffer."""

from enum import StrEnum


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Environment(StrEnum):
    PRODUCTION = "production"
    UAT = "uat"
    STAGING = "staging"
    DEVELOPMENT = "development"


class MessageSource(StrEnum):
    SLACK = "slack"
    WEBHOOK = "webhook"
