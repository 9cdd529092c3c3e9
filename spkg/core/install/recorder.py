"""安装提交与记录

InstallRecorder:
- 删除暂存树中的 libtool .la 文件
- 在复制前计算文件清单（只含文件和符号链接，不含目录）
- 把暂存树合并到安装前缀（保留权限、时间戳、符号链接）
- 所有阶段通过后才写安装记录

RecordStore:
- 每个包一份 JSON 记录，文件名为完整包名，位于 inst_dir
- 写入新记录时删除同名包其他版本的旧记录
"""

from __future__ import annotations

import json
import logging
import os
import platform
import shutil
from datetime import datetime, timezone
from pathlib import Path

from spkg.core.config import Config
from spkg.core.exceptions import CommitFailedError
from spkg.core.models import (
    TEST_NOT_AVAILABLE,
    BuildDirectory,
    InstallationRecord,
    split_name,
)
from spkg.utils.fileio import load_json, save_json

logger = logging.getLogger(__name__)


def compute_manifest(root: Path) -> list[str]:
    """相对 root 的文件与符号链接列表（POSIX 分隔符，已排序去重）"""
    if not root.is_dir():
        return []
    entries: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root):
        d = Path(dirpath)
        for name in filenames:
            entries.add((d / name).relative_to(root).as_posix())
        for name in dirnames:
            # os.walk 不进入目录符号链接，但链接本身属于安装内容
            if (d / name).is_symlink():
                entries.add((d / name).relative_to(root).as_posix())
    return sorted(entries)


def remove_libtool_archives(root: Path) -> list[Path]:
    """删除 *.la 文件，返回被删除的路径"""
    removed = []
    for la in sorted(root.rglob("*.la")):
        if la.is_file() or la.is_symlink():
            la.unlink()
            removed.append(la)
    if removed:
        logger.info("  已删除 %d 个 .la 文件", len(removed))
    return removed


# =========================================================================
# 记录存储
# =========================================================================


class RecordStore:
    """安装记录仓库"""

    def __init__(self, inst_dir: Path) -> None:
        self.inst_dir = inst_dir

    def path_for(self, full_name: str) -> Path:
        return self.inst_dir / full_name

    def load(self, full_name: str) -> InstallationRecord | None:
        path = self.path_for(full_name)
        if not path.is_file():
            return None
        try:
            data = load_json(path)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("安装记录损坏，忽略: %s (%s)", path, e)
            return None
        return InstallationRecord.from_dict(data)

    def find(self, base: str) -> list[InstallationRecord]:
        """某个包名的全部记录（通常至多一份）"""
        records = []
        for full_name in self._names():
            if split_name(full_name)[0] != base:
                continue
            record = self.load(full_name)
            if record is not None:
                records.append(record)
        return records

    def list_installed(self) -> list[InstallationRecord]:
        records = []
        for full_name in self._names():
            record = self.load(full_name)
            if record is not None:
                records.append(record)
        return records

    def save(self, record: InstallationRecord) -> Path:
        """写入记录，并删除同名包其他版本的记录"""
        self.inst_dir.mkdir(parents=True, exist_ok=True)
        for stale in self.find(record.package_name):
            if stale.full_name != record.full_name:
                logger.info("删除旧版本记录: %s", stale.full_name)
                self.delete(stale.full_name)
        path = self.path_for(record.full_name)
        save_json(path, record.to_dict())
        return path

    def delete(self, full_name: str) -> None:
        self.path_for(full_name).unlink(missing_ok=True)

    def _names(self) -> list[str]:
        if not self.inst_dir.is_dir():
            return []
        return sorted(
            p.name for p in self.inst_dir.iterdir()
            if p.is_file() and not p.name.startswith(".")
        )


# =========================================================================
# 提交
# =========================================================================


class InstallRecorder:
    """暂存树 → 安装前缀，成功后写记录"""

    def __init__(self, config: Config, store: RecordStore | None = None) -> None:
        self.config = config
        self.store = store or RecordStore(config.inst_path)

    def commit(
        self, build: BuildDirectory, base: str, version: str | None,
    ) -> InstallationRecord:
        """把暂存树复制到前缀，返回尚未持久化的记录（含文件清单）"""
        prefix = self.config.prefix_path
        staged = build.staged_prefix(prefix)

        if not staged.is_dir():
            logger.warning("暂存目录 %s 为空，没有文件需要安装", staged)
            files: list[str] = []
        else:
            try:
                remove_libtool_archives(staged)
                files = compute_manifest(staged)
                logger.info("复制 %d 个文件到 %s", len(files), prefix)
                prefix.mkdir(parents=True, exist_ok=True)
                shutil.copytree(staged, prefix, symlinks=True, dirs_exist_ok=True)
            except (OSError, shutil.Error) as e:
                raise CommitFailedError(f"复制暂存树到 {prefix} 失败: {e}") from e

        if build.staged_root.exists():
            shutil.rmtree(build.staged_root, ignore_errors=True)

        return InstallationRecord(
            package_name=base,
            package_version=version or "",
            install_date=datetime.now(tz=timezone.utc).isoformat(),
            system_uname=" ".join(platform.uname()),
            distribution_version=self.config.distribution_version,
            files=files,
        )

    def persist(
        self, record: InstallationRecord, test_result: str = TEST_NOT_AVAILABLE,
    ) -> Path:
        record.test_result = test_result
        path = self.store.save(record)
        logger.info("安装记录已写入: %s", path)
        return path
