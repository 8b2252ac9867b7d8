"""Provider registry: turns config into quota sources."""

from typing import Callable, Optional

from config import MonitorConfig, OpenAICredentials, save_config
from errors import ConfigurationError
from logger import logger
from providers import ClaudeQuotaClient, CombinedQuotaSource, OpenAIQuotaClient, QuotaSource

SourceFactory = Callable[[MonitorConfig], Optional[QuotaSource]]


class ProviderRegistry:
    """Central registry of quota providers."""

    def __init__(self):
        self._factories: dict[str, SourceFactory] = {}  # name → factory

    def register(self, name: str, factory: SourceFactory) -> None:
        """Register a provider factory."""
        self._factories[name] = factory

    def names(self) -> list[str]:
        """Get all registered provider names."""
        return list(self._factories)

    def build(self, config: MonitorConfig, only: Optional[list[str]] = None) -> QuotaSource:
        """Build a source for every enabled provider that has credentials.

        Raises:
            ConfigurationError: if no provider can be built
        """
        sources = []
        for name, factory in self._factories.items():
            if only and name not in only:
                continue
            source = factory(config)
            if source is None:
                continue
            sources.append(source)
            logger.debug(f"Quota provider enabled: {name}")

        if not sources:
            raise ConfigurationError(
                "No quota provider configured. Run: ai-quota config --session-key <key> --org-id <id>"
            )
        if len(sources) == 1:
            return sources[0]
        return CombinedQuotaSource(sources)


def _claude_source(config: MonitorConfig) -> Optional[QuotaSource]:
    if not config.claude_enabled or not config.has_claude_credentials:
        return None
    return ClaudeQuotaClient(
        config.session_key,
        config.organization_id,
        timezone_id=config.report_timezone,
    )


def _openai_source(config: MonitorConfig) -> Optional[QuotaSource]:
    if not config.openai_enabled or not config.has_openai_credentials:
        return None

    def persist_tokens(access_token: str, refresh_token: str, account_id: Optional[str]):
        config.openai = OpenAICredentials(access_token, refresh_token, account_id)
        save_config(config)
        logger.info("Saved refreshed OpenAI tokens")

    return OpenAIQuotaClient(
        config.openai.access_token,
        config.openai.refresh_token,
        config.openai.account_id,
        on_tokens_refreshed=persist_tokens,
    )


# Global registry instance
registry = ProviderRegistry()
registry.register("claude", _claude_source)
registry.register("openai", _openai_source)
