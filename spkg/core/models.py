"""核心数据模型

所有核心数据类集中定义，locator / fetcher / runner / recorder / 状态机
统一从此处导入包引用、元数据、构建目录、生命周期结果和安装记录。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from spkg.utils.net import has_url_scheme

if TYPE_CHECKING:
    from spkg.core.confirm import ConfirmPolicy

# 支持的归档扩展名（按匹配优先级，长扩展名在前）
ARCHIVE_EXTENSIONS = (
    ".spkg", ".tar.gz", ".tar.bz2", ".tar.xz", ".tgz", ".tbz2", ".tar", ".zip",
)

_NAME_VERSION_RE = re.compile(r"^(?P<base>.+?)-(?P<version>\d.*)$")
_PATCHLEVEL_RE = re.compile(r"\.p\d+$")


def split_name(name: str) -> tuple[str, str | None]:
    """拆分 "名称-版本"：版本从第一个 "-数字" 开始

    >>> split_name("foo-1.2.p0")
    ('foo', '1.2.p0')
    >>> split_name("foo_bar")
    ('foo_bar', None)
    """
    m = _NAME_VERSION_RE.match(name)
    if m is None:
        return name, None
    return m.group("base"), m.group("version")


def strip_archive_ext(filename: str) -> str:
    """去掉归档扩展名，无匹配时原样返回"""
    for ext in ARCHIVE_EXTENSIONS:
        if filename.endswith(ext):
            return filename[: -len(ext)]
    return filename


def upstream_version(version: str) -> str:
    """去掉发行版补丁级别后缀 (.pN)，得到上游版本号"""
    return _PATCHLEVEL_RE.sub("", version)


# =========================================================================
# 包引用
# =========================================================================


class ReferenceKind(str, Enum):
    """包引用类型"""
    PATH = "path"
    NAME = "name"
    NAME_VERSION = "name_version"
    URL = "url"


@dataclass(frozen=True)
class PackageReference:
    """用户输入的包引用，解析后不可变"""

    raw: str
    kind: ReferenceKind
    base: str
    version: str | None = None

    @classmethod
    def parse(cls, raw: str) -> PackageReference:
        """按 路径 → URL/含路径分隔符 → 名称[-版本] 的顺序识别引用"""
        if not raw:
            from spkg.core.exceptions import ValidationError
            raise ValidationError("包引用不能为空")
        if Path(raw).exists():
            base, version = split_name(strip_archive_ext(Path(raw).name))
            return cls(raw=raw, kind=ReferenceKind.PATH, base=base, version=version)
        if "/" in raw or has_url_scheme(raw):
            filename = raw.rstrip("/").rsplit("/", 1)[-1]
            base, version = split_name(strip_archive_ext(filename))
            return cls(raw=raw, kind=ReferenceKind.URL, base=base, version=version)
        base, version = split_name(raw)
        kind = ReferenceKind.NAME if version is None else ReferenceKind.NAME_VERSION
        return cls(raw=raw, kind=kind, base=base, version=version)


# =========================================================================
# 包元数据
# =========================================================================


class PackageType(str, Enum):
    """包类型"""
    STANDARD = "standard"
    OPTIONAL = "optional"
    EXPERIMENTAL = "experimental"
    OLD_STYLE = "old"


@dataclass(frozen=True)
class Checksum:
    """归档校验和"""

    algorithm: str  # "sha256" | "sha1" | "md5"
    digest: str


@dataclass(frozen=True)
class PackageMetadata:
    """本地元数据目录描述的包"""

    base: str
    version: str
    package_type: PackageType
    path: Path
    tarball: str = ""          # 上游归档文件名，空表示纯脚本包
    checksum: Checksum | None = None
    upstream_url: str = ""
    description: str = ""
    patches: tuple[Path, ...] = ()
    scripts: tuple[str, ...] = ()  # 目录中存在的 spkg-* 脚本名

    @property
    def full_name(self) -> str:
        return f"{self.base}-{self.version}"

    @property
    def upstream_version(self) -> str:
        return upstream_version(self.version)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.base,
            "version": self.version,
            "type": self.package_type.value,
            "tarball": self.tarball,
            "checksum": (
                f"{self.checksum.algorithm}:{self.checksum.digest}" if self.checksum else ""
            ),
            "upstream_url": self.upstream_url,
            "patches": [p.name for p in self.patches],
            "scripts": list(self.scripts),
            "path": str(self.path),
        }


# =========================================================================
# 解析结果
# =========================================================================


class ResolveMode(str, Enum):
    """包的定位方式"""
    LOCAL_FILE = "local_file"
    LOCAL_SCRIPTED = "local_scripted"
    CACHED_ARCHIVE = "cached_archive"
    REMOTE_CATALOG = "remote_catalog"
    URL = "url"


@dataclass
class ResolvedPackage:
    """PackageLocator 的解析结果"""

    reference: PackageReference
    mode: ResolveMode
    base: str
    version: str | None = None
    archive_path: Path | None = None
    urls: list[str] = field(default_factory=list)
    metadata: PackageMetadata | None = None
    tier: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.base}-{self.version}" if self.version else self.base


# =========================================================================
# 安装选项
# =========================================================================


@dataclass
class InstallOptions:
    """一次安装调用的选项（对应 CLI 参数）"""

    keep_build_tree: bool = False
    keep_existing: bool = False
    run_checks: bool | None = None   # None 表示沿用配置
    download_only: bool = False
    allow_upstream: bool = False
    info_only: bool = False
    confirm: ConfirmPolicy | None = None


# =========================================================================
# 构建目录
# =========================================================================


@dataclass
class BuildDirectory:
    """单个包的构建目录：<build_root>/<full name>

    src_dir 为解压后的源码目录，script_dir 为生命周期脚本所在目录，
    staged_root 为暂存安装根（脚本的 SPKG_DESTDIR）。
    """

    path: Path
    src_dir: Path | None = None
    script_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.src_dir is None:
            self.src_dir = self.path / "src"
        if self.script_dir is None:
            self.script_dir = self.path

    @property
    def staged_root(self) -> Path:
        return self.path / "inst"

    @property
    def env_file(self) -> Path:
        return self.path / "spkg-env.sh"

    def staged_prefix(self, prefix: Path) -> Path:
        """暂存根与前缀拼接后的目录（脚本的 SPKG_DESTDIR_LOCAL）"""
        return self.staged_root / prefix.relative_to(prefix.anchor)


# =========================================================================
# 生命周期
# =========================================================================


class LifecycleStage(str, Enum):
    """生命周期阶段，按定义顺序执行"""
    PREINST = "preinst"
    BUILD = "build"
    INSTALL = "install"
    POSTINST = "postinst"
    CHECK = "check"

    @property
    def script_name(self) -> str:
        return f"spkg-{self.value}"


class CheckDecision(str, Enum):
    """测试策略对单个包的判定"""
    RUN = "run"
    SKIP = "skip"
    DEFAULT = "default"


@dataclass
class StageResult:
    """单个阶段的执行结果"""

    stage: LifecycleStage
    status: str  # "passed" | "skipped" | "failed"
    elapsed: float = 0.0
    returncode: int | None = None
    script: str = ""


@dataclass
class LifecycleResult:
    """一组阶段的执行结果"""

    stages: list[StageResult] = field(default_factory=list)

    @property
    def elapsed(self) -> float:
        return sum(s.elapsed for s in self.stages)

    @property
    def success(self) -> bool:
        return all(s.status != "failed" for s in self.stages)

    def get(self, stage: LifecycleStage) -> StageResult | None:
        for s in self.stages:
            if s.stage == stage:
                return s
        return None


# =========================================================================
# 安装记录
# =========================================================================

TEST_PASSED = "passed"
TEST_NOT_AVAILABLE = "not available"


@dataclass
class InstallationRecord:
    """已安装包的持久化记录（每个包名一份，重装覆盖）"""

    package_name: str
    package_version: str
    install_date: str = ""
    system_uname: str = ""
    distribution_version: str = ""
    test_result: str = TEST_NOT_AVAILABLE
    files: list[str] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        if not self.package_version:
            return self.package_name
        return f"{self.package_name}-{self.package_version}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "package_name": self.package_name,
            "package_version": self.package_version,
            "install_date": self.install_date,
            "system_uname": self.system_uname,
            "distribution_version": self.distribution_version,
            "test_result": self.test_result,
            "files": list(self.files),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InstallationRecord:
        return cls(
            package_name=data.get("package_name", ""),
            package_version=data.get("package_version", ""),
            install_date=data.get("install_date", ""),
            system_uname=data.get("system_uname", ""),
            distribution_version=data.get("distribution_version", ""),
            test_result=data.get("test_result", TEST_NOT_AVAILABLE),
            files=list(data.get("files") or []),
        )
