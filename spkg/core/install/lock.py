"""安装锁

整次安装持有共享锁；修改安装前缀（卸载旧版本、合并暂存树）时升级为独占锁。
只在 Cygwin（已加载的 DLL 不能被替换）或配置 force_lock 时生效，
其余平台为空操作。
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import IO

from spkg.core.config import Config

logger = logging.getLogger(__name__)


def lock_required(config: Config, platform: str | None = None) -> bool:
    plat = sys.platform if platform is None else platform
    return plat.startswith("cygwin") or config.force_lock


class InstallLock:
    """基于 fcntl.flock 的建议锁"""

    def __init__(self, path: Path, *, enabled: bool = True) -> None:
        self.path = path
        self.enabled = enabled
        self._fh: IO[str] | None = None

    @classmethod
    def for_config(cls, config: Config) -> InstallLock:
        return cls(config.lock_path, enabled=lock_required(config))

    @property
    def held(self) -> bool:
        return self._fh is not None

    def acquire_shared(self) -> None:
        if not self.enabled:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "a+", encoding="utf-8")  # noqa: SIM115
        logger.debug("获取共享锁: %s", self.path)
        fcntl.flock(self._fh.fileno(), fcntl.LOCK_SH)

    def release(self) -> None:
        if self._fh is None:
            return
        fcntl.flock(self._fh.fileno(), fcntl.LOCK_UN)
        self._fh.close()
        self._fh = None
        logger.debug("释放锁: %s", self.path)

    @contextlib.contextmanager
    def shared(self) -> Iterator[InstallLock]:
        self.acquire_shared()
        try:
            yield self
        finally:
            self.release()

    @contextlib.contextmanager
    def exclusive(self) -> Iterator[InstallLock]:
        """临时升级为独占锁，退出时降回共享锁"""
        if not self.enabled:
            yield self
            return
        owned = self._fh is None
        if owned:
            self.acquire_shared()
        assert self._fh is not None
        logger.info("等待独占锁: %s", self.path)
        fcntl.flock(self._fh.fileno(), fcntl.LOCK_EX)
        try:
            yield self
        finally:
            if owned:
                self.release()
            else:
                fcntl.flock(self._fh.fileno(), fcntl.LOCK_SH)
