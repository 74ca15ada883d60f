import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiosqlite
from loguru import logger
from pydantic import ValidationError

from stallbid.schemas.user import User


class SessionStore:
    """
    SQLite storage for the signed-in session.
    One row per session key, so several profiles can live in the same file.
    """
    def __init__(self, db_path: str = "sessions.db"):
        self.db_path = db_path

    async def init(self):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
            CREATE TABLE IF NOT EXISTS client_sessions (
                session_key TEXT PRIMARY KEY,
                token TEXT,
                user_json TEXT,
                oauth_redirect TEXT,
                updated_at TEXT NOT NULL
            )
            """)
            await db.commit()

    async def get(self, session_key: str) -> Optional[Dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute(
                "SELECT token, user_json, oauth_redirect FROM client_sessions WHERE session_key = ?",
                (session_key,),
            ) as cur:
                row = await cur.fetchone()
                if not row:
                    return None
                return {"token": row[0], "user_json": row[1], "oauth_redirect": row[2]}

    async def put(self, session_key: str, token: Optional[str], user_json: Optional[str],
                  oauth_redirect: Optional[str]):
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("""
            INSERT INTO client_sessions(session_key, token, user_json, oauth_redirect, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(session_key) DO UPDATE SET
              token=excluded.token,
              user_json=excluded.user_json,
              oauth_redirect=excluded.oauth_redirect,
              updated_at=excluded.updated_at
            """, (session_key, token, user_json, oauth_redirect, now))
            await db.commit()

    async def delete(self, session_key: str):
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DELETE FROM client_sessions WHERE session_key = ?", (session_key,))
            await db.commit()


class SessionContext:
    """
    Identity of the signed-in user.

    Passed explicitly to whatever needs a token or the current user. State only
    changes through load(), save(), set_oauth_redirect() and clear().
    """
    def __init__(self, store: SessionStore, session_key: str = "default"):
        self.store = store
        self.session_key = session_key
        self.token: Optional[str] = None
        self.user: Optional[User] = None
        self.oauth_redirect: Optional[str] = None
        self._initialized = False

    async def _ensure_store(self):
        if not self._initialized:
            await self.store.init()
            self._initialized = True

    @property
    def is_logged_in(self) -> bool:
        return self.user is not None and bool(self.token)

    @property
    def is_bidder(self) -> bool:
        return self.user is not None and self.user.is_bidder

    @property
    def is_admin(self) -> bool:
        return self.user is not None and self.user.is_admin

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def load(self) -> bool:
        """Restore the persisted session. A corrupt record is wiped."""
        await self._ensure_store()
        row = await self.store.get(self.session_key)
        if not row:
            return False

        self.oauth_redirect = row["oauth_redirect"]
        if not row["token"] or not row["user_json"]:
            self.token, self.user = None, None
            return False

        try:
            self.user = User.model_validate(json.loads(row["user_json"]))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Stored session for '{self.session_key}' is unreadable, clearing it: {e}")
            await self.clear()
            return False

        self.token = row["token"]
        logger.info(f"Session loaded for {self.user.student_email} (role={self.user.role.value})")
        return True

    async def save(self, token: str, user: User):
        await self._ensure_store()
        self.token = token
        self.user = user
        await self._persist()
        logger.info(f"Session set for {user.student_email} (role={user.role.value})")

    async def update_user(self, user: User):
        self.user = user
        await self._persist()

    async def set_oauth_redirect(self, path: Optional[str]):
        self.oauth_redirect = path
        await self._persist()

    async def pop_oauth_redirect(self, default: str) -> str:
        redirect = self.oauth_redirect or default
        await self.set_oauth_redirect(None)
        return redirect

    async def clear(self):
        await self._ensure_store()
        self.token = None
        self.user = None
        self.oauth_redirect = None
        await self.store.delete(self.session_key)

    async def _persist(self):
        await self._ensure_store()
        user_json = self.user.model_dump_json(by_alias=True) if self.user else None
        await self.store.put(self.session_key, self.token, user_json, self.oauth_redirect)
