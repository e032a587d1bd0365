"""
Shared job runner for scheduled background jobs.
Used by server (scheduler) and admin (manual run).
Each run_* returns a dict with "message" (and optionally "count") for the caller.
"""
import logging

logger = logging.getLogger(__name__)


async def run_scheduled_message_dispatch():
    try:
        from services.message_dispatcher import message_dispatcher
        result = await message_dispatcher.run_tick()
        if result["count"]:
            logger.info(f"Message dispatch job completed: {result['sent']} sent, {result['failed']} failed")
        return result
    except Exception as e:
        logger.error(f"Message dispatch job failed: {e}")
        raise


JOB_RUNNERS = {
    "message_dispatch": run_scheduled_message_dispatch,
}
