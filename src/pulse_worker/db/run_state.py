"""
RunStateStore backed by a single JSONB row.

save() is one statement: an upsert guarded by the expected version, so a
concurrent or stale writer updates nothing and gets RunStateConflict.
"""

import asyncpg
import structlog

from pulse_worker.errors import RunStateConflict
from pulse_worker.run_state import RunState

logger = structlog.get_logger()

LOAD_RUN_STATE_SQL = "SELECT value, version FROM run_state WHERE key = $1"

# First write inserts (expected_version = 0); later writes only land when
# the stored version still matches
SAVE_RUN_STATE_SQL = """
INSERT INTO run_state (key, value, version, updated_at)
VALUES ($1, $2::jsonb, $3, NOW())
ON CONFLICT (key) DO UPDATE SET
    value = EXCLUDED.value,
    version = EXCLUDED.version,
    updated_at = NOW()
WHERE run_state.version = $4
RETURNING version;
"""


class PostgresRunStateStore:
    def __init__(self, pool: asyncpg.Pool, key: str = "pulse_worker"):
        self.pool = pool
        self.key = key

    async def load(self) -> RunState:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(LOAD_RUN_STATE_SQL, self.key)

        if row is None:
            return RunState()

        state = RunState.model_validate_json(row["value"])
        # The column is authoritative for compare-and-set
        return state.model_copy(update={"version": row["version"]})

    async def save(self, state: RunState, expected_version: int) -> None:
        async with self.pool.acquire() as conn:
            written = await conn.fetchval(
                SAVE_RUN_STATE_SQL,
                self.key,
                state.model_dump_json(),
                state.version,
                expected_version,
            )

        if written is None:
            raise RunStateConflict(
                f"run state '{self.key}' changed since version {expected_version} was read"
            )

        logger.info("Run state saved", key=self.key, version=state.version, horizon_size=len(state.horizon))
