"""集中配置管理

替代原先靠全局环境变量协调的工作目录、编译器参数、sudo 策略等，
提供一个显式传入各组件入口的配置对象。
支持从 YAML 文件加载 + SPKG_* 环境变量覆盖 + 编程式覆盖。

目录默认布局（均可单独覆盖）:
  root/                      发行版根目录
  root/local/                安装前缀
  root/upstream/             归档缓存 (distfiles)
  root/build/pkgs/<base>/    本地包元数据
  root/logs/pkgs/            包日志
  local/var/tmp/spkg/build/  构建目录根
  local/var/lib/spkg/installed/  安装记录
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from spkg.core.exceptions import ConfigError
from spkg.utils.fileio import load_yaml

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_TIERS = ["standard", "optional", "deprecated", "experimental", "huge"]

# 未配置 check_packages 时默认跳过测试的包
DEFAULT_CHECK_DENYLIST = "!cmake,!cysignals,!linbox,!ppl,!r,!rpy2"


@dataclass
class Config:
    """安装器全局配置"""

    # 目录
    root_dir: str = "."
    local_prefix: str = ""
    distfiles_dir: str = ""
    build_root: str = ""
    pkgs_dir: str = ""
    inst_dir: str = ""
    log_dir: str = ""
    lock_file: str = ""

    # 来源
    mirrors: list[str] = field(default_factory=list)
    catalog_tiers: list[str] = field(default_factory=lambda: list(DEFAULT_CATALOG_TIERS))
    download_timeout: int = 60

    # 测试与确认
    check_packages: str | None = None
    run_checks: bool = False
    confirm: str = "interactive"
    prompt_timeout: float = 30.0

    # 构建环境
    shell: str = "bash"
    sudo: str = ""
    python: str = "python3"
    make: str = "make"
    make_jobs: int = 1
    cc: str = "gcc"
    cxx: str = "g++"
    fc: str = "gfortran"
    cflags: str = "-O2 -g"
    cxxflags: str = "-O2 -g"
    ldflags: str = ""
    distribution_version: str = ""

    # 安装锁
    force_lock: bool = False

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    # ---- 派生路径 ----

    @property
    def root_path(self) -> Path:
        return Path(self.root_dir).resolve()

    @property
    def prefix_path(self) -> Path:
        return Path(self.local_prefix).resolve() if self.local_prefix else self.root_path / "local"

    @property
    def distfiles_path(self) -> Path:
        return Path(self.distfiles_dir).resolve() if self.distfiles_dir else self.root_path / "upstream"

    @property
    def build_root_path(self) -> Path:
        if self.build_root:
            return Path(self.build_root).resolve()
        return self.prefix_path / "var" / "tmp" / "spkg" / "build"

    @property
    def pkgs_path(self) -> Path:
        return Path(self.pkgs_dir).resolve() if self.pkgs_dir else self.root_path / "build" / "pkgs"

    @property
    def inst_path(self) -> Path:
        if self.inst_dir:
            return Path(self.inst_dir).resolve()
        return self.prefix_path / "var" / "lib" / "spkg" / "installed"

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).resolve() if self.log_dir else self.root_path / "logs" / "pkgs"

    @property
    def lock_path(self) -> Path:
        if self.lock_file:
            return Path(self.lock_file).resolve()
        return self.prefix_path / "var" / "lock" / "spkg.lock"

    # ---- 加载 ----

    @classmethod
    def from_file(cls, path: str = "spkg.yml") -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigError(f"配置文件无法解析 {path}: {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件字段无效 {path}: {e}") from e
        cfg.extra = extra
        return cfg

    def apply_env(self, environ: Mapping[str, str] | None = None) -> Config:
        """用 SPKG_* 及编译器环境变量覆盖配置，返回自身"""
        env = os.environ if environ is None else environ
        for var, attr in _ENV_STR_FIELDS.items():
            if env.get(var):
                setattr(self, attr, env[var])
        if "SPKG_CHECK_PACKAGES" in env:
            self.check_packages = env["SPKG_CHECK_PACKAGES"]
        if env.get("SPKG_CHECK"):
            self.run_checks = env["SPKG_CHECK"].strip().lower() in ("yes", "1", "true")
        if env.get("SPKG_MIRRORS"):
            self.mirrors = [m for m in re.split(r"[\s,]+", env["SPKG_MIRRORS"]) if m]
        if env.get("SPKG_NUM_THREADS"):
            try:
                self.make_jobs = max(1, int(env["SPKG_NUM_THREADS"]))
            except ValueError as e:
                raise ConfigError(
                    f"SPKG_NUM_THREADS 必须为整数: {env['SPKG_NUM_THREADS']}"
                ) from e
        return self


_ENV_STR_FIELDS = {
    "SPKG_ROOT": "root_dir",
    "SPKG_LOCAL": "local_prefix",
    "SPKG_DISTFILES": "distfiles_dir",
    "SPKG_BUILD_DIR": "build_root",
    "SPKG_SUDO": "sudo",
    "CC": "cc",
    "CXX": "cxx",
    "FC": "fc",
    "CFLAGS": "cflags",
    "CXXFLAGS": "cxxflags",
    "LDFLAGS": "ldflags",
}


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str = "spkg.yml", environ: Mapping[str, str] | None = None) -> Config:
    """从文件 + 环境变量初始化全局配置"""
    global _current  # noqa: PLW0603
    _current = Config.from_file(path).apply_env(environ)
    logger.info("配置已加载: %s (root=%s)", path, _current.root_path)
    return _current
