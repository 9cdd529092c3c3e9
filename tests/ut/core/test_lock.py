"""安装锁测试"""

from __future__ import annotations

import fcntl
from pathlib import Path

from spkg.core.config import Config
from spkg.core.install.lock import InstallLock, lock_required


class TestLockRequired:
    def test_platform_conditional(self) -> None:
        assert lock_required(Config(), platform="cygwin") is True
        assert lock_required(Config(), platform="linux") is False
        assert lock_required(Config(force_lock=True), platform="linux") is True


class TestInstallLock:
    def test_disabled_is_noop(self, tmp_path: Path) -> None:
        lock = InstallLock(tmp_path / "x.lock", enabled=False)
        with lock.shared(), lock.exclusive():
            assert not lock.held
        assert not (tmp_path / "x.lock").exists()

    def test_shared_locks_coexist(self, tmp_path: Path) -> None:
        path = tmp_path / "var" / "lock" / "spkg.lock"
        a, b = InstallLock(path), InstallLock(path)
        with a.shared(), b.shared():
            assert a.held and b.held
        assert not a.held

    def test_exclusive_blocks_other_shared(self, tmp_path: Path) -> None:
        path = tmp_path / "spkg.lock"
        lock = InstallLock(path)
        with lock.shared():
            with lock.exclusive():
                with open(path, encoding="utf-8") as other:
                    try:
                        fcntl.flock(other.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                        acquired = True
                    except BlockingIOError:
                        acquired = False
                assert acquired is False
            assert lock.held
            with open(path, encoding="utf-8") as other:
                fcntl.flock(other.fileno(), fcntl.LOCK_SH | fcntl.LOCK_NB)
                fcntl.flock(other.fileno(), fcntl.LOCK_UN)
