"""Quota data sources for supported AI subscriptions."""

from .models import QuotaWindow, ProviderSnapshot, QuotaSnapshot
from .source import QuotaSource, CombinedQuotaSource
from .claude_client import ClaudeQuotaClient
from .openai_client import OpenAIQuotaClient

__all__ = [
    "QuotaWindow",
    "ProviderSnapshot",
    "QuotaSnapshot",
    "QuotaSource",
    "CombinedQuotaSource",
    "ClaudeQuotaClient",
    "OpenAIQuotaClient",
]
