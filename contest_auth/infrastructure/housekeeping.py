"""
Periodic purge of expired authentication state.

Expired sessions and single-use tokens stay in the credential store until
they are deleted, and the in-memory counter backend only forgets a key when
that key is touched again. The application lifespan runs
``housekeeping_loop`` in the background to clear all three.
"""

import asyncio
import logging
from dataclasses import dataclass

from contest_auth.infrastructure.auth.endpoints import AuthContainer
from contest_auth.infrastructure.auth.services.token_service import TokenService
from contest_auth.infrastructure.auth.services.verification import VerificationFlowManager

logger = logging.getLogger(__name__)


@dataclass
class HousekeepingReport:
    """Rows and keys removed by one pass."""

    sessions: int = 0
    verification_tokens: int = 0
    rate_limit_keys: int = 0


def run_housekeeping(container: AuthContainer) -> HousekeepingReport:
    """Run one blocking purge pass over the store and the abuse guard counters."""
    report = HousekeepingReport()

    db = container.session_factory()
    try:
        report.sessions = TokenService(db, container.jwt_service).purge_expired()
        report.verification_tokens = VerificationFlowManager(
            db, container.config.verification
        ).purge_expired()
    finally:
        db.close()

    report.rate_limit_keys = container.guard.cleanup_expired()

    logger.info(
        "Housekeeping pass complete",
        extra={
            "sessions": report.sessions,
            "verification_tokens": report.verification_tokens,
            "rate_limit_keys": report.rate_limit_keys,
        },
    )
    return report


async def housekeeping_loop(container: AuthContainer, interval: float) -> None:
    """Run ``run_housekeeping`` every ``interval`` seconds until cancelled."""
    while True:
        try:
            await asyncio.sleep(interval)
            await asyncio.to_thread(run_housekeeping, container)
        except asyncio.CancelledError:
            break
        except Exception as e:
            # A failed pass is retried on the next tick
            logger.error(f"Housekeeping pass failed: {e}", exc_info=True)
