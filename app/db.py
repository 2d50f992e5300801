"""
SQLite database layer using aiosqlite.

Stores user accounts and issued refresh tokens.
Tables are created automatically on first connect.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

import aiosqlite

from app.config import DB_PATH
from app.models import AccountProvider, RefreshToken, User, UserRole

logger = logging.getLogger(__name__)

# ── Module-level connection ───────────────────────────────────────────────

_db: aiosqlite.Connection | None = None


async def init_db() -> None:
    """Open the database and create tables if they don't exist."""
    global _db
    db_path = Path(DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    _db = await aiosqlite.connect(str(db_path))
    _db.row_factory = aiosqlite.Row  # dict-like rows
    await _db.execute("PRAGMA journal_mode=WAL")
    await _db.execute("PRAGMA foreign_keys=ON")

    await _db.executescript(_SCHEMA)
    await _db.commit()
    logger.info("Database initialized at %s", db_path)


async def close_db() -> None:
    """Close the database connection."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
        logger.info("Database connection closed")


def get_db() -> aiosqlite.Connection:
    """Return the active database connection (must call init_db first)."""
    assert _db is not None, "Database not initialized — call init_db() first"
    return _db


# ── Schema ────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id                  TEXT PRIMARY KEY,
    name                TEXT NOT NULL,
    email               TEXT NOT NULL UNIQUE,
    password            TEXT,           -- bcrypt hash; NULL for OAuth accounts
    role                TEXT NOT NULL,
    is_role_verified    INTEGER NOT NULL DEFAULT 0,
    provider            TEXT NOT NULL,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS refresh_tokens (
    token           TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    expires_at      TEXT NOT NULL,
    created_at      TEXT NOT NULL,
    FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_refresh_user ON refresh_tokens(user_id);
"""


# ── Helpers ───────────────────────────────────────────────────────────────


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_user(row: aiosqlite.Row) -> User:
    """Convert a database row to a User model."""
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        password=row["password"],
        role=UserRole(row["role"]),
        is_role_verified=bool(row["is_role_verified"]),
        provider=AccountProvider(row["provider"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_refresh_token(row: aiosqlite.Row) -> RefreshToken:
    return RefreshToken(
        token=row["token"],
        user_id=row["user_id"],
        expires_at=row["expires_at"],
        created_at=row["created_at"],
    )


# ══════════════════════════════════════════════════════════════════════════
#                    USER REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


async def create_user(
    name: str,
    email: str,
    hashed_password: str | None,
    role: UserRole,
    *,
    provider: AccountProvider = AccountProvider.EMAIL,
) -> User:
    """Insert a new user and return it.

    Raises ``aiosqlite.IntegrityError`` if the email is already taken.
    """
    db = get_db()
    user_id = str(uuid4())
    now = _now_iso()

    await db.execute(
        """
        INSERT INTO users (
            id, name, email, password, role,
            is_role_verified, provider, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
        """,
        (
            user_id, name, email, hashed_password, role.value,
            provider.value, now, now,
        ),
    )
    await db.commit()
    logger.info("User %s created (%s)", user_id, role.value)
    return await get_user_by_id(user_id)  # type: ignore[return-value]


async def get_user_by_id(user_id: str) -> User | None:
    db = get_db()
    async with db.execute("SELECT * FROM users WHERE id = ?", (user_id,)) as cur:
        row = await cur.fetchone()
    return _row_to_user(row) if row else None


async def get_user_by_email(email: str) -> User | None:
    db = get_db()
    async with db.execute("SELECT * FROM users WHERE email = ?", (email,)) as cur:
        row = await cur.fetchone()
    return _row_to_user(row) if row else None


async def update_password(user_id: str, hashed_password: str) -> User | None:
    """Replace a user's password hash. Returns the updated user, or None."""
    db = get_db()
    cur = await db.execute(
        "UPDATE users SET password = ?, updated_at = ? WHERE id = ?",
        (hashed_password, _now_iso(), user_id),
    )
    await db.commit()
    if cur.rowcount == 0:
        return None
    return await get_user_by_id(user_id)


# ══════════════════════════════════════════════════════════════════════════
#                    REFRESH TOKEN REPOSITORY
# ══════════════════════════════════════════════════════════════════════════


async def create_refresh_token(user_id: str, token: str, expires_at: datetime) -> RefreshToken:
    db = get_db()
    now = _now_iso()
    await db.execute(
        "INSERT INTO refresh_tokens (token, user_id, expires_at, created_at) VALUES (?, ?, ?, ?)",
        (token, user_id, expires_at.isoformat(), now),
    )
    await db.commit()
    return RefreshToken(token=token, user_id=user_id, expires_at=expires_at, created_at=now)


async def get_refresh_token(token: str) -> RefreshToken | None:
    db = get_db()
    async with db.execute(
        "SELECT * FROM refresh_tokens WHERE token = ?", (token,)
    ) as cur:
        row = await cur.fetchone()
    return _row_to_refresh_token(row) if row else None


async def delete_refresh_token(token: str) -> bool:
    """Delete a refresh token. Returns True if a row was actually deleted."""
    db = get_db()
    cur = await db.execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))
    await db.commit()
    return cur.rowcount > 0
