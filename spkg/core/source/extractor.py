"""归档解压器

职责:
- 把归档解压到全新的构建目录（tar 使用 data 过滤器，另支持 zip）
- 区分新式 / 旧式包的目录形态
- 复制本地元数据中的生命周期脚本到构建目录
- 解压后按顺序应用补丁集

目录形态:
  新式包: 归档唯一的顶层目录 → <build>/src，脚本来自本地元数据
  旧式包: 顶层目录自带 spkg-install 与 src/，整体展开到 <build>/
"""

from __future__ import annotations

import logging
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath

from spkg.core.exceptions import ExtractionFailedError, PatchFailedError
from spkg.core.models import BuildDirectory, LifecycleStage, PackageMetadata
from spkg.core.source.metadata import DESCRIPTION_FILES
from spkg.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)

_STAGING_NAME = ".extract"


def unpack(archive: Path, dest: Path) -> None:
    """解压 tar / zip 归档到 dest"""
    dest.mkdir(parents=True, exist_ok=True)
    try:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(path=str(dest))
        else:
            with tarfile.open(archive) as tf:
                tf.extractall(path=str(dest), filter="data")  # noqa: S202
    except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
        raise ExtractionFailedError(f"解压失败 {archive}: {e}") from e


class Extractor:
    """解压 + 补丁"""

    def __init__(self, executor: CommandExecutor | None = None) -> None:
        self.executor = executor or get_executor()

    def extract(
        self,
        archive: Path | None,
        build: BuildDirectory,
        metadata: PackageMetadata | None = None,
        *,
        log_file: Path | None = None,
    ) -> BuildDirectory:
        """解压到构建目录并应用补丁，返回定位好 src/脚本目录的 BuildDirectory"""
        build.path.mkdir(parents=True, exist_ok=True)

        if archive is None:
            build.src_dir.mkdir(parents=True, exist_ok=True)
        else:
            logger.info("解压 %s -> %s", archive.name, build.path)
            self._unpack_into(archive, build, legacy=metadata is None)

        if metadata is not None:
            self._copy_scripts(metadata, build)
            self.apply_patches(metadata.patches, build.src_dir, log_file=log_file)
        return build

    def _unpack_into(self, archive: Path, build: BuildDirectory, *, legacy: bool) -> None:
        staging = build.path / _STAGING_NAME
        if staging.exists():
            shutil.rmtree(staging)
        unpack(archive, staging)

        entries = list(staging.iterdir())
        top = entries[0] if len(entries) == 1 and entries[0].is_dir() else staging

        try:
            if legacy and (top / LifecycleStage.INSTALL.script_name).exists():
                # 旧式包: 整体展开到构建目录
                for child in top.iterdir():
                    shutil.move(str(child), str(build.path / child.name))
                build.script_dir = build.path
                src = build.path / "src"
                build.src_dir = src if src.is_dir() else build.path
            else:
                shutil.move(str(top), str(build.src_dir))
            if staging.exists():
                shutil.rmtree(staging)
        except OSError as e:
            raise ExtractionFailedError(f"整理解压目录失败 {build.path}: {e}") from e

    @staticmethod
    def _copy_scripts(metadata: PackageMetadata, build: BuildDirectory) -> None:
        for name in metadata.scripts:
            shutil.copy2(metadata.path / name, build.path / name)
        build.script_dir = build.path

    def apply_patches(
        self, patches: tuple[Path, ...] | list[Path], src_dir: Path,
        *, log_file: Path | None = None,
    ) -> None:
        """在 src_dir 中按顺序执行 patch -p1"""
        for patch in patches:
            logger.info("  应用补丁: %s", patch.name)
            r = self.executor.execute(
                ["patch", "-p1", "--forward", "--input", str(patch)],
                cwd=str(src_dir), log_file=log_file,
            )
            if not r.success:
                raise PatchFailedError(
                    f"补丁应用失败 (rc={r.returncode}): {patch.name} {r.stderr[:300]}"
                )

    @staticmethod
    def read_description(archive: Path) -> str:
        """不解压读取归档内的 SPKG.txt / SPKG.rst（仅前两层目录）"""
        try:
            if zipfile.is_zipfile(archive):
                with zipfile.ZipFile(archive) as zf:
                    for name in zf.namelist():
                        if _is_description(name):
                            return zf.read(name).decode("utf-8", errors="replace")
                return ""
            with tarfile.open(archive) as tf:
                for member in tf.getmembers():
                    if member.isfile() and _is_description(member.name):
                        f = tf.extractfile(member)
                        if f is not None:
                            return f.read().decode("utf-8", errors="replace")
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            raise ExtractionFailedError(f"读取归档失败 {archive}: {e}") from e
        return ""


def _is_description(name: str) -> bool:
    p = PurePosixPath(name)
    return p.name in DESCRIPTION_FILES and len(p.parts) <= 2
