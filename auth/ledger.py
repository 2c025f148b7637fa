"""
auth/ledger.py -- Refresh-token ledger.

One row per issued refresh token, keyed by HMAC hash. The ledger is the
authority on revocation: a refresh token with a valid signature is still
rejected if its row is missing, revoked, or past expires_at.

Rows are written only by AuthService when it mints a token pair, flipped to
revoked by logout, and removed by the reaper or by user deletion.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.engine import Engine

from auth.models import RefreshTokenRecord
from auth.store import from_iso, refresh_tokens, to_iso, utcnow


class RefreshTokenLedger:
    """Repository for RefreshTokenRecord rows.

    Usage:
        ledger = RefreshTokenLedger(engine)
        ledger.record(token_hash, user_id, expires_at)
        ledger.find_by_hash(token_hash)
        ledger.purge_expired_before(cutoff)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, token_hash: str, user_id: str, expires_at: datetime) -> RefreshTokenRecord:
        """Insert a fresh, non-revoked record.

        Raises sqlalchemy.exc.IntegrityError if token_hash already exists or
        user_id does not reference a user (when foreign keys are enforced).
        """
        now = utcnow()
        with self.engine.begin() as conn:
            result = conn.execute(
                refresh_tokens.insert().values(
                    token_hash=token_hash,
                    user_id=user_id,
                    expires_at=to_iso(expires_at),
                    is_revoked=0,
                    created_at=to_iso(now),
                )
            )
        return RefreshTokenRecord(
            id=result.inserted_primary_key[0],
            token_hash=token_hash,
            user_id=user_id,
            expires_at=expires_at,
            is_revoked=False,
            created_at=now,
        )

    def find_by_hash(self, token_hash: str) -> RefreshTokenRecord | None:
        """O(1) lookup via the UNIQUE(token_hash) index."""
        with self.engine.connect() as conn:
            row = conn.execute(refresh_tokens.select().where(refresh_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_record(row) if row is not None else None

    def revoke(self, token_hash: str) -> bool:
        """Mark one record revoked. Returns True only if a live record changed state."""
        with self.engine.begin() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where((refresh_tokens.c.token_hash == token_hash) & (refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1)
            )
        return result.rowcount > 0

    def revoke_all_for_user(self, user_id: str) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where((refresh_tokens.c.user_id == user_id) & (refresh_tokens.c.is_revoked == 0))
                .values(is_revoked=1)
            )
        return result.rowcount

    def purge_expired_before(self, cutoff: datetime) -> int:
        """Delete every record whose expires_at is strictly before cutoff.

        One bulk DELETE in its own transaction. Returns the number of rows removed.
        """
        with self.engine.begin() as conn:
            result = conn.execute(refresh_tokens.delete().where(refresh_tokens.c.expires_at < to_iso(cutoff)))
        return result.rowcount


def _row_to_record(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        token_hash=row.token_hash,
        user_id=row.user_id,
        expires_at=from_iso(row.expires_at),
        is_revoked=bool(row.is_revoked),
        created_at=from_iso(row.created_at),
    )
