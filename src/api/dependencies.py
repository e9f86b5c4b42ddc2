"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from collections.abc import Callable

from config.settings import get_settings, require_openai_api_key
from relay.gateway_leg import GatewayLeg
from relay.schemas import GatewayConfig

GatewayFactory = Callable[[], GatewayLeg]


def get_gateway_factory() -> GatewayFactory:
    settings = get_settings()
    api_key = require_openai_api_key(settings)

    def factory() -> GatewayLeg:
        return GatewayLeg.from_settings(settings, api_key)

    return factory


def get_gateway_config() -> GatewayConfig:
    return GatewayConfig.from_settings(get_settings())
