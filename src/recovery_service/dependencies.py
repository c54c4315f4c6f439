"""Assembles the recovery coordinator from settings."""

from __future__ import annotations

import logging

from fastapi import Request

from recovery_service.config import Settings, settings
from recovery_service.recovery.coalescer import InFlightCoalescer, RedisInFlightCoalescer
from recovery_service.recovery.code_store import InMemoryCodeStore, RedisCodeStore
from recovery_service.recovery.coordinator import RecoveryCoordinator
from recovery_service.recovery.policy import RecoveryPolicy
from recovery_service.recovery.rate_limiter import InMemoryRateLimiter, RedisRateLimiter
from recovery_service.recovery.types import Channel
from recovery_service.services.dispatcher import DeliveryDispatcher, DeliveryGateway
from recovery_service.services.email_service import SmtpEmailGateway
from recovery_service.services.identity_client import LegacyIdentityClient
from recovery_service.services.legacy_gateway import LegacyCodeRegistry, LegacyDeliveryGateway
from recovery_service.services.whatsapp_service import WhatsAppCloudGateway

logger = logging.getLogger(__name__)


def build_gateways(config: Settings) -> dict[Channel, DeliveryGateway]:
    """Pick one gateway per channel according to the configured transports."""
    gateways: dict[Channel, DeliveryGateway] = {
        channel: LegacyDeliveryGateway(channel) for channel in Channel
    }
    if config.email_transport == "smtp":
        gateways[Channel.EMAIL] = SmtpEmailGateway()
    if config.whatsapp_transport == "cloud":
        gateways[Channel.WHATSAPP] = WhatsAppCloudGateway()
    return gateways


def build_coordinator(config: Settings = settings, redis=None) -> RecoveryCoordinator:
    """Create a coordinator backed by Redis when *redis* is given, else by local memory."""
    policy = RecoveryPolicy(
        code_ttl=config.code_ttl_seconds,
        resend_cooldown=config.resend_cooldown_seconds,
        in_flight_window=config.in_flight_window_seconds,
    )

    if redis is not None:
        logger.info("Recovery state backed by Redis")
        code_store = RedisCodeStore(redis, ttl=policy.code_ttl)
        rate_limiter = RedisRateLimiter(redis, cooldown=policy.resend_cooldown)
        coalescer = RedisInFlightCoalescer(redis, lease_seconds=config.wait_timeout_seconds)
    else:
        logger.info("Recovery state kept in process memory (single instance)")
        code_store = InMemoryCodeStore(ttl=policy.code_ttl)
        rate_limiter = InMemoryRateLimiter(cooldown=policy.resend_cooldown)
        coalescer = InFlightCoalescer()

    dispatcher = DeliveryDispatcher(
        build_gateways(config),
        default_country_code=config.default_country_code,
        registry=LegacyCodeRegistry() if config.register_codes else None,
    )

    return RecoveryCoordinator(
        identity=LegacyIdentityClient(),
        dispatcher=dispatcher,
        code_store=code_store,
        rate_limiter=rate_limiter,
        coalescer=coalescer,
        policy=policy,
        identity_timeout=config.identity_timeout_seconds,
        delivery_timeout=config.delivery_timeout_seconds,
        wait_timeout=config.wait_timeout_seconds,
        allow_reveal=config.allow_code_reveal,
    )


def get_coordinator(request: Request) -> RecoveryCoordinator:
    """FastAPI dependency: the process-wide coordinator created at startup."""
    return request.app.state.coordinator
