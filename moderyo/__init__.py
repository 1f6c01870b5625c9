"""Moderyo content-moderation client."""

from moderyo.client import ModeryoClient
from moderyo.config import ModeryoConfig, load_config
from moderyo.dispatch import Dispatcher, ModerationOperation
from moderyo.exceptions import (
    ApiError,
    AuthenticationError,
    ModeryoError,
    NetworkError,
    QuotaExceededError,
    RateLimitError,
    RetryExhaustedError,
    ValidationError,
)
from moderyo.models import (
    ALL_CATEGORIES,
    BatchModerationResult,
    Categories,
    CategoryKey,
    CategoryScores,
    Decision,
    EnforcementMode,
    ModerationOptions,
    ModerationRequest,
    ModerationResult,
    OfflineMode,
    ProcessingMode,
    RiskProfile,
)
from moderyo.version import __version__

__all__ = [
    "ALL_CATEGORIES",
    "ApiError",
    "AuthenticationError",
    "BatchModerationResult",
    "Categories",
    "CategoryKey",
    "CategoryScores",
    "Decision",
    "Dispatcher",
    "EnforcementMode",
    "ModerationOperation",
    "ModerationOptions",
    "ModerationRequest",
    "ModerationResult",
    "ModeryoClient",
    "ModeryoConfig",
    "ModeryoError",
    "NetworkError",
    "OfflineMode",
    "ProcessingMode",
    "QuotaExceededError",
    "RateLimitError",
    "RetryExhaustedError",
    "RiskProfile",
    "ValidationError",
    "__version__",
    "load_config",
]
