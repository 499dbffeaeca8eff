from __future__ import annotations

import logging

from app.core.enums import ProviderType
from app.providers.connectors.base import IntegrationConnector
from app.services.sync_errors import ConnectorNotFoundError

logger = logging.getLogger(__name__)


def _normalize_code(code: str) -> str:
    return code.strip().upper()


class ConnectorRegistry:
    """Maps (provider code, provider type) to a connector instance.

    New providers are registered at process start; the processor only ever
    looks connectors up.
    """

    def __init__(self):
        self._connectors: dict[tuple[str, ProviderType], IntegrationConnector] = {}

    def register(
        self,
        code: str,
        connector: IntegrationConnector,
        provider_type: ProviderType | str | None = None,
    ) -> None:
        kind = ProviderType(provider_type) if provider_type else connector.provider_type
        key = (_normalize_code(code), kind)
        if key in self._connectors:
            logger.warning(f"Replacing connector registered for {key[0]} ({kind.value})")
        self._connectors[key] = connector

    def unregister(self, code: str, provider_type: ProviderType | str) -> bool:
        key = (_normalize_code(code), ProviderType(provider_type))
        return self._connectors.pop(key, None) is not None

    def resolve(
        self, code: str, provider_type: ProviderType | str
    ) -> IntegrationConnector | None:
        try:
            kind = ProviderType(provider_type)
        except ValueError:
            return None
        return self._connectors.get((_normalize_code(code), kind))

    def get(self, code: str, provider_type: ProviderType | str) -> IntegrationConnector:
        connector = self.resolve(code, provider_type)
        if connector is None:
            kind = getattr(provider_type, "value", provider_type)
            raise ConnectorNotFoundError(code, str(kind))
        return connector

    def registered(self) -> list[tuple[str, str]]:
        return sorted((code, kind.value) for code, kind in self._connectors)

    def __contains__(self, key: tuple[str, ProviderType | str]) -> bool:
        code, kind = key
        return self.resolve(code, kind) is not None
