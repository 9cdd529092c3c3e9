"""本地包元数据加载器

职责:
- 从 <pkgs_dir>/<base>/ 目录加载结构化的 PackageMetadata
- 找不到元数据时返回 None / 抛 NotFoundError，而不是空字符串

目录内容:
  package-version.txt   版本号（必需，缺失视为非本地包）
  type                  standard / optional / experimental / old（默认 optional）
  checksums.ini         tarball= / sha256= / sha1= / md5= / upstream_url=
                        缺失表示纯脚本包（无上游归档）
  SPKG.rst / SPKG.txt / SPKG.md   包说明
  spkg-*                生命周期脚本
  patches/*.patch       补丁集
"""

from __future__ import annotations

import logging
from pathlib import Path

from spkg.core.exceptions import ConfigError, NotFoundError
from spkg.core.models import (
    Checksum,
    LifecycleStage,
    PackageMetadata,
    PackageType,
    upstream_version,
)

logger = logging.getLogger(__name__)

VERSION_FILE = "package-version.txt"
TYPE_FILE = "type"
CHECKSUMS_FILE = "checksums.ini"
DESCRIPTION_FILES = ("SPKG.rst", "SPKG.txt", "SPKG.md")
CHECKSUM_ALGORITHMS = ("sha256", "sha1", "md5")


def parse_ini(text: str) -> dict[str, str]:
    """解析无 section 的 key=value 文件，忽略空行和 # 注释"""
    result: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        result[key.strip()] = value.strip()
    return result


class MetadataStore:
    """本地元数据仓库：只读"""

    def __init__(self, pkgs_dir: Path) -> None:
        self.pkgs_dir = pkgs_dir

    def find(self, base: str) -> PackageMetadata | None:
        """加载包元数据，不存在返回 None"""
        pkg_dir = self.pkgs_dir / base
        version_file = pkg_dir / VERSION_FILE
        if not version_file.is_file():
            return None
        return self._load(base, pkg_dir)

    def load(self, base: str) -> PackageMetadata:
        """加载包元数据，不存在抛 NotFoundError"""
        meta = self.find(base)
        if meta is None:
            raise NotFoundError(f"本地元数据不存在: {self.pkgs_dir / base}")
        return meta

    def list_packages(self) -> list[str]:
        """列出所有带版本文件的包名"""
        if not self.pkgs_dir.is_dir():
            return []
        return sorted(
            d.name for d in self.pkgs_dir.iterdir()
            if d.is_dir() and (d / VERSION_FILE).is_file()
        )

    def _load(self, base: str, pkg_dir: Path) -> PackageMetadata:
        version = (pkg_dir / VERSION_FILE).read_text(encoding="utf-8").strip()
        if not version:
            raise ConfigError(f"{pkg_dir / VERSION_FILE} 为空")

        package_type = self._read_type(pkg_dir)
        tarball, checksum, upstream_url = self._read_checksums(pkg_dir, version)

        description = ""
        for name in DESCRIPTION_FILES:
            p = pkg_dir / name
            if p.is_file():
                description = p.read_text(encoding="utf-8", errors="replace")
                break

        patch_dir = pkg_dir / "patches"
        patches: tuple[Path, ...] = ()
        if patch_dir.is_dir():
            patches = tuple(sorted(patch_dir.glob("*.patch")))

        scripts = tuple(
            s.script_name for s in LifecycleStage
            if (pkg_dir / s.script_name).is_file()
        )

        meta = PackageMetadata(
            base=base, version=version, package_type=package_type, path=pkg_dir,
            tarball=tarball, checksum=checksum, upstream_url=upstream_url,
            description=description, patches=patches, scripts=scripts,
        )
        logger.debug("元数据已加载: %s (type=%s)", meta.full_name, package_type.value)
        return meta

    @staticmethod
    def _read_type(pkg_dir: Path) -> PackageType:
        type_file = pkg_dir / TYPE_FILE
        if not type_file.is_file():
            return PackageType.OPTIONAL
        words = type_file.read_text(encoding="utf-8").split()
        if not words:
            return PackageType.OPTIONAL
        try:
            return PackageType(words[0].lower())
        except ValueError:
            raise ConfigError(
                f"未知包类型 '{words[0]}' ({type_file})，"
                f"可选: {[t.value for t in PackageType]}"
            ) from None

    @staticmethod
    def _read_checksums(
        pkg_dir: Path, version: str,
    ) -> tuple[str, Checksum | None, str]:
        ini = pkg_dir / CHECKSUMS_FILE
        if not ini.is_file():
            return "", None, ""
        data = parse_ini(ini.read_text(encoding="utf-8"))
        upstream = upstream_version(version)
        tarball = data.get("tarball", "").replace("VERSION", upstream)
        checksum = None
        for algo in CHECKSUM_ALGORITHMS:
            if data.get(algo):
                checksum = Checksum(algorithm=algo, digest=data[algo].lower())
                break
        upstream_url = data.get("upstream_url", "").replace("VERSION", upstream)
        return tarball, checksum, upstream_url
