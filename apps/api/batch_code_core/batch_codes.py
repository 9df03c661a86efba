"""Production batch code allocation.

Codes are the MMDDYY production day, plus a letter once the day already has
a batch::

    first batch of the day   021726
    second batch             021726A
    third batch              021726B

The suffix is picked from the *number* of codes already issued for the day.
If that letter is already taken (a gap left by earlier data), allocation
continues after the highest suffix issued: a day holding ``021726`` and
``021726B`` gets ``021726C`` next. Every read-decide-write runs inside the store's atomic
scope for the day, so concurrent callers can never be handed the same code.
"""
from __future__ import annotations

import asyncio
import string
from datetime import date, datetime, tzinfo
from typing import Sequence

import structlog

from batch_code_core.code_store import CodeStore
from batch_code_core.errors import ExhaustionError, StoreError, StoreTimeoutError
from batch_code_core.group_keys import group_key_for, resolve_timezone
from batch_code_core.settings import Settings

logger = structlog.get_logger(__name__)

DEFAULT_ALPHABET = string.ascii_uppercase
BACKOFF_SECONDS = (0.05, 0.1, 0.2, 0.4)


def next_batch_code(group_key: str, existing: Sequence[str], alphabet: str = DEFAULT_ALPHABET) -> str:
    count = len(existing)
    if count == 0:
        return group_key

    index = count - 1
    if index >= len(alphabet):
        raise ExhaustionError(group_key, count, len(alphabet))

    if f"{group_key}{alphabet[index]}" in existing:
        # Gapped history: continue after the highest suffix already issued.
        suffixes = {c[len(group_key):] for c in existing}
        highest = max((i for i, letter in enumerate(alphabet) if letter in suffixes), default=-1)
        index = max(index, highest + 1)
        if index >= len(alphabet):
            raise ExhaustionError(group_key, count, len(alphabet))
    return f"{group_key}{alphabet[index]}"


def _check_snapshot(group_key: str, existing: Sequence[str]) -> None:
    for code in existing:
        if not isinstance(code, str) or not code.startswith(group_key):
            raise StoreError(f"Code store returned {code!r} for group {group_key}")
    if len(set(existing)) != len(existing):
        raise StoreError(f"Code store returned duplicate codes for group {group_key}")


class BatchCodeAllocator:
    """Issues batch codes from an injected :class:`CodeStore`.

    Holds no state between calls. ``allocate`` retries the whole
    read-decide-write on conflicts and transient store failures, at most
    ``max_attempts`` times, and gives up with :class:`StoreTimeoutError` once
    ``deadline_seconds`` have passed.
    """

    def __init__(
        self,
        store: CodeStore,
        *,
        tz: str | tzinfo = "UTC",
        alphabet: str = DEFAULT_ALPHABET,
        max_attempts: int = 3,
        deadline_seconds: float = 5.0,
    ):
        if not alphabet or len(set(alphabet)) != len(alphabet):
            raise ValueError("alphabet must be non-empty with no repeated characters")
        if "".join(sorted(alphabet)) != alphabet:
            raise ValueError("alphabet must be in ascending order so codes sort by allocation order")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be > 0")

        self.store = store
        self.tz = resolve_timezone(tz)
        self.alphabet = alphabet
        self.max_attempts = max_attempts
        self.deadline_seconds = deadline_seconds

    @classmethod
    def from_settings(cls, store: CodeStore, settings: Settings) -> "BatchCodeAllocator":
        return cls(
            store,
            tz=settings.BATCH_CODE_TIMEZONE,
            max_attempts=settings.BATCH_CODE_MAX_ATTEMPTS,
            deadline_seconds=settings.BATCH_CODE_DEADLINE_SECONDS,
        )

    def group_key(self, group_input: date | datetime | str) -> str:
        return group_key_for(group_input, self.tz)

    async def allocate(self, group_input: date | datetime | str) -> str:
        group_key = self.group_key(group_input)
        try:
            return await asyncio.wait_for(self._allocate_with_retry(group_key), timeout=self.deadline_seconds)
        except asyncio.TimeoutError:
            logger.warning("batch_code.timeout", group_key=group_key, deadline_seconds=self.deadline_seconds)
            raise StoreTimeoutError(
                f"Batch code allocation for {group_key} exceeded {self.deadline_seconds}s"
            ) from None

    async def _allocate_with_retry(self, group_key: str) -> str:
        last_error: StoreError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._allocate_once(group_key)
            except StoreError as e:
                if not e.transient:
                    raise
                last_error = e
                logger.warning("batch_code.retry", group_key=group_key, attempt=attempt, error=str(e))
                if attempt < self.max_attempts:
                    await asyncio.sleep(BACKOFF_SECONDS[min(attempt - 1, len(BACKOFF_SECONDS) - 1)])

        raise StoreError(
            f"Batch code allocation for {group_key} failed after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    async def _allocate_once(self, group_key: str) -> str:
        async with self.store.atomic(group_key) as scope:
            existing = await scope.find(group_key)
            _check_snapshot(group_key, existing)
            existing = sorted(existing)
            try:
                code = next_batch_code(group_key, existing, self.alphabet)
            except ExhaustionError:
                logger.error("batch_code.exhausted", group_key=group_key, issued=len(existing))
                raise
            await scope.append(code)

        logger.info("batch_code.allocated", group_key=group_key, batch_code=code, issued_before=len(existing))
        return code
