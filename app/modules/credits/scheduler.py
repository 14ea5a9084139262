import asyncio
import logging
from app.config.settings import settings
from app.core.exceptions import GatewayError
from app.database.supabase_client import SupabaseClient
from app.modules.credits.service import CreditLedger

logger = logging.getLogger(__name__)


async def run_monthly_reset():
    """Allocate the current period for everyone who had credits last month."""
    ledger = CreditLedger(SupabaseClient.get_service_client())
    # Service calls are blocking; keep them off the event loop
    result = await asyncio.to_thread(ledger.reset_monthly_credits)
    if result.created:
        logger.info(f"Scheduled credit reset {result.month}/{result.year}: {result.created} user(s) allocated")
    else:
        logger.debug(f"Scheduled credit reset {result.month}/{result.year}: nothing to allocate")
    return result


async def credit_reset_loop():
    """Background task that periodically runs the monthly credit reset"""
    while True:
        try:
            await run_monthly_reset()
        except GatewayError as e:
            logger.error(f"Error in credit reset scheduler: {e.error}: {e.detail}")
        except Exception as e:
            logger.exception(f"Error in credit reset scheduler loop: {str(e)}")

        await asyncio.sleep(settings.credit_reset_interval_seconds)
