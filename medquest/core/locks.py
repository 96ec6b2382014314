import asyncio
import weakref


class UserLocks:
    """Registry of per-user asyncio locks.

    Achievement state is partitioned by user, so a read-modify-write on one
    account only ever needs that account's lock. Locks are held weakly and
    disappear once no coroutine is using them.
    """

    def __init__(self):
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_user(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
