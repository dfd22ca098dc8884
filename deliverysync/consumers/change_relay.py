import asyncio
import logging
from deliverysync.models.change_log import ChangeLogEntry
from deliverysync.events.outbox_utility import to_change_event
from deliverysync.realtime.feed import ChangeFeed
from deliverysync.core.config import POLLING_INTERVAL, MAX_ATTEMPTS, BATCH_SIZE

log = logging.getLogger("deliverysync.change_relay")


async def relay_pending_changes(feed: ChangeFeed) -> int:
    """
    Publishes unpublished change log rows to the feed in commit (seq) order.
    Returns how many rows were published.
    """
    # Select changes that haven't been published and haven't exceeded max attempts
    entries = await ChangeLogEntry.filter(published=False, attempts__lt=MAX_ATTEMPTS).order_by('seq').limit(BATCH_SIZE)

    published = 0
    for entry in entries:
        try:
            # 1. Hand the change to every attached channel
            await feed.publish(to_change_event(entry))

            # 2. Mark the change as published on success
            entry.published = True
            await entry.save(update_fields=['published'])
            published += 1

        except Exception:
            # 3. Increment attempts on failure and stop, so later changes never overtake this one
            entry.attempts += 1
            await entry.save(update_fields=['attempts'])
            log.exception(f"Relay failed to publish change {entry.seq} ({entry.table_name} {entry.event_type}).")
            break

    return published


async def run_change_relay(feed: ChangeFeed, interval: float = POLLING_INTERVAL):
    """Main loop for the relay; runs until cancelled."""
    log.info("--- Change Relay Started ---")

    while True:
        try:
            await relay_pending_changes(feed)
        except Exception as e:
            log.error(f"Relay encountered a critical DB error: {e}.")

        await asyncio.sleep(interval)
