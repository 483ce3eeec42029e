"""Connector registry and built-in connectors."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ..errors import ConnectorNotFound
from .base import BaseConnector, ConnectorErrorInfo, ConnectorResult
from .http import HttpConnector


class ConnectorRegistry:
    """Maps connector type names to connector instances."""

    def __init__(self, connectors: Iterable[BaseConnector] = ()) -> None:
        self._connectors: Dict[str, BaseConnector] = {}
        for connector in connectors:
            self.register(connector)

    def register(self, connector: BaseConnector) -> None:
        """Add ``connector``; a later registration replaces an earlier one of the same type."""
        self._connectors[connector.type] = connector

    def lookup(self, type_name: str) -> Optional[BaseConnector]:
        return self._connectors.get(type_name)

    def get(self, type_name: str) -> BaseConnector:
        connector = self.lookup(type_name)
        if connector is None:
            raise ConnectorNotFound(type_name)
        return connector

    def types(self) -> List[str]:
        return sorted(self._connectors)

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)


def default_registry() -> ConnectorRegistry:
    """Registry holding the built-in connectors."""
    return ConnectorRegistry([HttpConnector()])


__all__ = [
    "BaseConnector",
    "ConnectorErrorInfo",
    "ConnectorRegistry",
    "ConnectorResult",
    "HttpConnector",
    "default_registry",
]
