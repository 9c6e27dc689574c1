"""
User operations.

Listing issues one extra count query per returned user and creation hashes the
password with a high bcrypt cost; both are intentional costs under study.
"""

import asyncio
import re
import time
from typing import Any, Dict, List, Optional

import bcrypt

from shared.errors import ValidationError

from ..caching import CacheResult, resource_prefix
from ..caching.keys import users_list_key
from .base import ResourceHandler
from .models import UserCreate


RECENT_LOGIN_WINDOW_SECONDS = 86400
RETAINED_COPIES = 1000
RETAINED_BYTES_PER_COPY = 100


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password"}


class UserHandler(ResourceHandler):
    """Read/write operations on users."""

    resource = "users"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Grows with every created user and is never trimmed
        self._retained: List[List[Dict[str, Any]]] = []

    @property
    def retained_bytes(self) -> int:
        return len(self._retained) * RETAINED_COPIES * RETAINED_BYTES_PER_COPY

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        scenario: Optional[str] = None,
        scenario_param: Optional[float] = None,
    ) -> CacheResult:
        skip = (page - 1) * limit

        async def compute():
            with self._query("find"):
                users = await self.db.find("users", skip=skip, limit=limit)

            since = time.time() - RECENT_LOGIN_WINDOW_SECONDS

            def logged_in_recently(doc):
                return any(entry.get("timestamp", 0) >= since for entry in doc.get("login_history", []))

            if self.config.n_plus_one_queries:
                for user in users:
                    with self._query("count"):
                        user["recent_logins"] = await self.db.count("users", logged_in_recently)
            else:
                with self._query("count"):
                    recent = await self.db.count("users", logged_in_recently)
                for user in users:
                    user["recent_logins"] = recent

            return [public_user(user) for user in users]

        return await self._cached_read(
            "list",
            users_list_key(page, limit),
            self.config.users_list_ttl,
            compute,
            scenario,
            scenario_param,
        )

    async def create_user(self, payload: UserCreate) -> Dict[str, Any]:
        async def mutate():
            salt = bcrypt.gensalt(rounds=self.config.password_hash_rounds)
            hashed = await asyncio.to_thread(bcrypt.hashpw, payload.password.encode("utf-8"), salt)

            if self.config.simulate_request_leak:
                self._retain(payload)

            document = {
                "username": payload.username,
                "email": payload.email,
                "password": hashed.decode("utf-8"),
                "profile": payload.profile.model_dump(),
                "login_history": [],
            }
            with self._query("insert"):
                user = await self.db.insert("users", document)
            return public_user(user)

        return await self._write(
            "create",
            mutate,
            prefixes=[resource_prefix("users")],
            scenario=payload.scenario,
            scenario_param=payload.scenario_param,
        )

    async def search_users(self, query: str) -> List[Dict[str, Any]]:
        """Case-insensitive regex match over username, email and location."""

        async def compute():
            try:
                pattern = re.compile(query, re.IGNORECASE)
            except re.error as exc:
                raise ValidationError("Invalid search pattern", {"q": query, "error": str(exc)})

            def matches(doc):
                fields = (doc.get("username"), doc.get("email"), (doc.get("profile") or {}).get("location"))
                return any(pattern.search(str(value)) for value in fields if value)

            with self._query("search"):
                users = await self.db.find("users", matches, limit=self.config.search_result_limit)
            return [public_user(user) for user in users]

        return await self._uncached_read("search", compute)

    def _retain(self, payload: UserCreate) -> None:
        self._retained.append([payload.model_dump(exclude={"password"})] * RETAINED_COPIES)
        self.metrics.set_gauge("potential_memory_leak_bytes", self.retained_bytes)
