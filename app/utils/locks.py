import threading
from typing import Dict, Iterable, List
from contextlib import contextmanager
import logging

logger = logging.getLogger(__name__)


class KeyLockManager:
    """
    Manages thread-safe locks keyed by facility duplicate key.

    Two imports committing the same facility at the same time serialize on
    that facility's key, so the existence check and the insert cannot
    interleave. Locks are dropped once nobody holds or waits for them.
    """
    _locks: Dict[str, threading.Lock] = {}
    _holders: Dict[str, int] = {}
    _global_lock = threading.Lock()

    @classmethod
    def _checkout(cls, key: str) -> threading.Lock:
        with cls._global_lock:
            if key not in cls._locks:
                cls._locks[key] = threading.Lock()
                cls._holders[key] = 0
            cls._holders[key] += 1
            return cls._locks[key]

    @classmethod
    def _checkin(cls, key: str) -> None:
        with cls._global_lock:
            cls._holders[key] -= 1
            if cls._holders[key] == 0:
                del cls._holders[key]
                del cls._locks[key]

    @classmethod
    def active_keys(cls) -> List[str]:
        with cls._global_lock:
            return list(cls._locks)

    @classmethod
    @contextmanager
    def acquire(cls, key: str):
        """Context manager to acquire and release the lock for one key."""
        lock = cls._checkout(key)
        try:
            lock.acquire()
        except Exception:
            cls._checkin(key)
            raise
        logger.debug(f"Acquired commit lock for key '{key}'")
        try:
            yield
        finally:
            lock.release()
            cls._checkin(key)
            logger.debug(f"Released commit lock for key '{key}'")

    @classmethod
    @contextmanager
    def acquire_many(cls, keys: Iterable[str]):
        """
        Acquire several key locks at once.

        Keys are taken in sorted order so two batches sharing keys cannot
        deadlock.
        """
        ordered = sorted(set(keys))
        logger.info(f"Acquiring commit locks for {len(ordered)} key(s)")
        checked_out: List[str] = []
        acquired: List[str] = []
        try:
            for key in ordered:
                lock = cls._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(key)
            yield
        finally:
            for key in reversed(checked_out):
                # The last key may be checked out without its lock held
                if key in acquired:
                    cls._locks[key].release()
                cls._checkin(key)
            logger.info(f"Released commit locks for {len(acquired)} key(s)")
