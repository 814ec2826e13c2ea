import logging
from dataclasses import dataclass
from typing import Optional

from posledger.client.persistence import PersistenceAdapter
from posledger.core.exceptions import RemoteStoreError

log = logging.getLogger("bootstrap")

MIGRATION_WARNING = (
    "Could not copy this device's data to the server. Working from the local copy; "
    "the transfer will be retried next session."
)


@dataclass
class BootstrapResult:
    source: str # "remote", "local" (cache fallback) or "snapshot" (failed migration)
    migrated: bool # True when this call performed the migration
    warning: Optional[str] = None


async def bootstrap_account(adapter: PersistenceAdapter) -> BootstrapResult:
    """
    Runs ahead of normal reads on first access to an account.

    Without the per-account "migrated" flag, the whole local snapshot is sent to
    /api/migrate (one server transaction). On success the flag is set and the
    session loads from the remote store. On failure the snapshot is loaded
    straight into memory, the caller gets a warning to show, and the flag stays
    unset so the next session retries.
    """
    if adapter.migrated:
        # Pending writes go first so the remote read already includes them
        await adapter.replay_outbox()
        source = await adapter.load()
        return BootstrapResult(source=source, migrated=False)

    snapshot = adapter.snapshot_from_cache()
    try:
        await adapter.remote.migrate(snapshot)
    except RemoteStoreError as e:
        log.error(f"Migration failed for account {adapter.account_id}: {e}")
        adapter.load_snapshot(snapshot)
        return BootstrapResult(source="snapshot", migrated=False, warning=MIGRATION_WARNING)

    # The snapshot already carries every write the outbox holds; replaying
    # stock deltas on top of it would apply them twice
    adapter.clear_outbox()
    adapter.mark_migrated()
    total = sum(len(rows) for rows in snapshot.values())
    log.info(f"Account {adapter.account_id} migrated ({total} rows).")

    source = await adapter.load()
    return BootstrapResult(source=source, migrated=True)
