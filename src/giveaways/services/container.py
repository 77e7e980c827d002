"""Service wiring — builds the engine's services over one connection pool.

Routes and workers both construct services through :func:`build_services`
so every entry point shares the same repositories, gateway and settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from giveaways.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

_gateway: Any | None = None
_rate_limiter: Any | None = None


@dataclass
class Services:
    giveaways: Any
    entries: Any
    referrals: Any
    bonus: Any
    aggregator: Any
    selector: Any
    claims: Any
    admin: Any
    audit: Any


def get_gateway(settings: Settings | None = None) -> Any:
    """Process-wide notification gateway (logging gateway until a vendor is wired)."""
    global _gateway
    if _gateway is None:
        from giveaways.services.notifications import LoggingGateway

        settings = settings or get_settings()
        if not settings.notifications_dev_mode:
            logger.warning("No notification vendor configured; messages are only logged")
        _gateway = LoggingGateway()
    return _gateway


def get_rate_limiter(settings: Settings) -> Any:
    """Process-wide entry rate limiter; Redis when reachable, else in-memory."""
    global _rate_limiter
    if _rate_limiter is None:
        from giveaways.services.rate_limit import EntryRateLimiter

        client = None
        if settings.redis_url and not settings.is_testing:
            try:
                import redis

                client = redis.Redis.from_url(settings.redis_url, socket_timeout=2)
                client.ping()
            except Exception:
                logger.warning("Redis unavailable; entry rate limiting is per-process")
                client = None
        _rate_limiter = EntryRateLimiter(
            redis_client=client,
            max_entries=settings.entry_rate_limit,
            window_minutes=settings.entry_rate_window_minutes,
        )
    return _rate_limiter


def build_services(pool: Any, settings: Settings | None = None) -> Services:
    """Services over the Oracle repositories sharing *pool*."""
    from giveaways.repositories.audit_log_repository import AuditLogRepository
    from giveaways.repositories.entry_repository import EntryRepository
    from giveaways.repositories.giveaway_repository import GiveawayRepository
    from giveaways.repositories.prize_claim_repository import PrizeClaimRepository
    from giveaways.repositories.referral_repository import ReferralRepository
    from giveaways.repositories.unsubscribe_repository import UnsubscribeRepository
    from giveaways.repositories.winner_repository import WinnerRepository

    settings = settings or get_settings()
    return assemble_services(
        giveaway_repo=GiveawayRepository(pool),
        entry_repo=EntryRepository(pool),
        referral_repo=ReferralRepository(pool),
        winner_repo=WinnerRepository(pool),
        prize_claim_repo=PrizeClaimRepository(pool),
        audit_repo=AuditLogRepository(pool),
        unsubscribe_repo=UnsubscribeRepository(pool),
        gateway=get_gateway(settings),
        rate_limiter=get_rate_limiter(settings),
        site_url=settings.site_url,
        claim_deadline_days=settings.claim_deadline_days,
    )


def assemble_services(
    *,
    giveaway_repo: Any,
    entry_repo: Any,
    referral_repo: Any,
    winner_repo: Any,
    prize_claim_repo: Any,
    audit_repo: Any,
    unsubscribe_repo: Any | None = None,
    gateway: Any | None = None,
    rate_limiter: Any | None = None,
    site_url: str = "http://localhost:3000",
    claim_deadline_days: int = 7,
    code_factory: Any | None = None,
) -> Services:
    """Wire the services over any set of repositories."""
    from giveaways.services.admin import AdminActions
    from giveaways.services.aggregator import EntryAggregator
    from giveaways.services.audit import AuditTrail
    from giveaways.services.bonus import BonusAccrual
    from giveaways.services.claims import ClaimWorkflow
    from giveaways.services.entries import EntryStore
    from giveaways.services.giveaways import GiveawayService
    from giveaways.services.notifications import WinnerNotifier
    from giveaways.services.referrals import ReferralLedger, generate_referral_code
    from giveaways.services.selection import WinnerSelector

    audit = AuditTrail(audit_repo)
    notifier = WinnerNotifier(gateway) if gateway is not None else None
    aggregator = EntryAggregator(entry_repo, referral_repo)
    referrals = ReferralLedger(
        giveaway_repo, entry_repo, referral_repo, code_factory=code_factory or generate_referral_code
    )
    entries = EntryStore(
        giveaway_repo,
        entry_repo,
        aggregator,
        referrals=referrals,
        rate_limiter=rate_limiter,
        notifier=notifier,
        audit=audit,
        winner_repo=winner_repo,
        unsubscribe_repo=unsubscribe_repo,
    )
    selector = WinnerSelector(
        giveaway_repo,
        entry_repo,
        winner_repo,
        notifier=notifier,
        audit=audit,
        site_url=site_url,
        claim_deadline_days=claim_deadline_days,
    )
    claims = ClaimWorkflow(
        giveaway_repo,
        entry_repo,
        winner_repo,
        prize_claim_repo,
        notifier=notifier,
        audit=audit,
        site_url=site_url,
        claim_deadline_days=claim_deadline_days,
    )
    return Services(
        giveaways=GiveawayService(giveaway_repo, audit=audit),
        entries=entries,
        referrals=referrals,
        bonus=BonusAccrual(giveaway_repo, entry_repo),
        aggregator=aggregator,
        selector=selector,
        claims=claims,
        admin=AdminActions(
            giveaway_repo,
            entry_repo,
            winner_repo,
            prize_claim_repo,
            selector=selector,
            claims=claims,
            entries=entries,
        ),
        audit=audit,
    )
