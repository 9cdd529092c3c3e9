"""按安装记录卸载包

删除记录中列出的文件（不存在的忽略），自底向上清理因此变空的目录，
最后删除记录本身。安装新版本前调用一次，也供 `spkg uninstall` 使用。
"""

from __future__ import annotations

import logging
from pathlib import Path

from spkg.core.install.recorder import RecordStore

logger = logging.getLogger(__name__)


class Uninstaller:
    """卸载器"""

    def __init__(self, prefix: Path, store: RecordStore) -> None:
        self.prefix = prefix
        self.store = store

    def uninstall(self, base: str) -> list[str]:
        """卸载 base 的所有已记录版本，返回实际删除的相对路径"""
        records = self.store.find(base)
        if not records:
            logger.info("%s 没有安装记录，无需卸载", base)
            return []

        removed: list[str] = []
        for record in records:
            logger.info("卸载 %s (%d 个文件)", record.full_name, len(record.files))
            dirs: set[Path] = set()
            for rel in record.files:
                path = self.prefix / rel
                if path.is_symlink() or path.is_file():
                    path.unlink()
                    removed.append(rel)
                    dirs.add(path.parent)
                elif path.exists():
                    logger.warning("  跳过非文件条目: %s", path)
            self._prune(dirs)
            self.store.delete(record.full_name)
        return removed

    def _prune(self, dirs: set[Path]) -> None:
        """删除空目录，逐级向上直到前缀（不删除前缀本身）"""
        prefix = self.prefix.resolve()
        for d in sorted(dirs, key=lambda p: len(p.parts), reverse=True):
            current = d
            while current.resolve() != prefix and prefix in current.resolve().parents:
                try:
                    current.rmdir()
                except OSError:
                    break
                current = current.parent
