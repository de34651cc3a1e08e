"""Tests for the PID lock."""

from __future__ import annotations

import os

import pytest

from clawview.core.errors import LockError
from clawview.core.storage import MemoryStateStorage
from clawview.execution.locks import LOCK_FILE, PidLock, parse_lock, pid_alive


def alive(pid: int) -> bool:
    return True


def dead(pid: int) -> bool:
    return False


class TestPidLock:
    def test_acquire_writes_pid_and_release_removes(self, storage):
        lock = PidLock(storage, pid=111, is_alive=alive)

        assert lock.acquire() is True
        assert parse_lock(storage.read_text(LOCK_FILE)) == (111, lock.token)
        assert lock.held

        lock.release()
        assert storage.read_text(LOCK_FILE) is None
        assert not lock.held

    def test_busy_when_holder_alive(self, storage):
        PidLock(storage, pid=111, is_alive=alive).acquire()

        other = PidLock(storage, pid=222, is_alive=alive)

        assert other.acquire() is False
        assert other.holder() == 111

    def test_stale_lock_taken_over(self, storage):
        PidLock(storage, pid=111, is_alive=alive).acquire()

        other = PidLock(storage, pid=222, is_alive=dead)

        assert other.acquire() is True
        assert other.holder() == 222

    def test_second_lock_in_same_process_is_busy(self, storage):
        first = PidLock(storage)
        assert first.acquire() is True
        try:
            assert PidLock(storage).acquire() is False
        finally:
            first.release()

        assert PidLock(storage).acquire() is True

    def test_own_pid_with_unknown_token_is_stale(self, storage):
        # Left behind by an earlier process whose PID we now have.
        storage.write_atomic(LOCK_FILE, f"{os.getpid()} 0ld70ken")

        lock = PidLock(storage)

        assert lock.acquire() is True
        lock.release()

    def test_empty_lock_file_is_busy(self):
        storage = MemoryStateStorage({LOCK_FILE: ""})

        assert PidLock(storage, pid=222, is_alive=dead).acquire() is False
        assert storage.read_text(LOCK_FILE) == ""

    def test_unreadable_lock_is_busy(self, storage):
        storage.write_atomic(LOCK_FILE, "not-a-pid")

        assert PidLock(storage, pid=222, is_alive=dead).acquire() is False
        assert storage.read_text(LOCK_FILE) == "not-a-pid"

    def test_reacquire_is_noop(self, storage):
        lock = PidLock(storage, pid=111, is_alive=alive)
        assert lock.acquire() and lock.acquire()

    def test_release_of_foreign_lock_raises(self, storage):
        lock = PidLock(storage, pid=111, is_alive=alive)
        lock.acquire()
        storage.write_atomic(LOCK_FILE, "333")

        with pytest.raises(LockError):
            lock.release()

    def test_release_of_same_pid_other_token_raises(self, storage):
        lock = PidLock(storage, pid=111, is_alive=alive)
        lock.acquire()
        storage.write_atomic(LOCK_FILE, "111 someone-else")

        with pytest.raises(LockError):
            lock.release()

    def test_release_without_acquire_is_noop(self, storage):
        PidLock(storage, pid=111).release()

    def test_context_manager(self, storage):
        with PidLock(storage, pid=111, is_alive=alive):
            assert storage.read_text(LOCK_FILE).startswith("111 ")
            with pytest.raises(LockError, match="busy"):
                with PidLock(storage, pid=222, is_alive=alive):
                    pass
        assert storage.read_text(LOCK_FILE) is None

    def test_file_storage(self, file_storage):
        lock = PidLock(file_storage, pid=111, is_alive=alive)
        assert lock.acquire()
        assert not PidLock(file_storage, pid=222, is_alive=alive).acquire()
        assert file_storage.list_names() == [LOCK_FILE]
        lock.release()
        assert file_storage.list_names() == []


class TestParseLock:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("4242 abc", (4242, "abc")),
            ("4242", (4242, None)),
            ("4242\n", (4242, None)),
            ("", None),
            ("   ", None),
            ("pid abc", None),
            (None, None),
        ],
    )
    def test_parse(self, text, expected):
        assert parse_lock(text) == expected


class TestPidAlive:
    def test_own_process_alive(self):
        assert pid_alive(os.getpid()) is True

    def test_non_positive_pid(self):
        assert pid_alive(0) is False
        assert pid_alive(-5) is False
