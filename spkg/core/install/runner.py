"""生命周期脚本执行器

阶段顺序固定: preinst → build → install → postinst → check
调用方按需传入要执行的阶段子集，本模块只负责:
- 组装每个阶段的环境变量（并写出 spkg-env.sh 便于复现）
- 缺少 spkg-install 时从 configure / setup.py / pyproject.toml 合成
- 记录每个阶段耗时，输出追加到包日志
- 非零退出码映射为 LifecycleScriptFailedError / CheckFailedError

仅当存在独立的 spkg-build 时，install 阶段才带 sudo 前缀执行。
"""

from __future__ import annotations

import logging
import os
import shlex
import time
from collections.abc import Iterable, Mapping
from pathlib import Path

from spkg.core.config import Config
from spkg.core.exceptions import (
    CheckFailedError,
    InstallScriptMissingError,
    LifecycleScriptFailedError,
)
from spkg.core.models import (
    BuildDirectory,
    LifecycleResult,
    LifecycleStage,
    StageResult,
)
from spkg.utils.shell import CommandExecutor, format_cmd, get_executor

logger = logging.getLogger(__name__)

# 构建期间禁止联网: 所有代理指向 TEST-NET-1 中的不可达地址
SINKHOLE_PROXY = "http://192.0.2.0:5187/"
PROXY_VARS = ("http_proxy", "https_proxy", "ftp_proxy", "rsync_proxy")

GENERATED_INSTALL = "spkg-install.generated"

_CONFIGURE_TEMPLATE = """\
set -e
./configure --prefix="$SPKG_LOCAL"
$MAKE
$MAKE install DESTDIR="$SPKG_DESTDIR"
"""

_PIP_TEMPLATE = """\
set -e
{python} -m pip install --no-deps --no-build-isolation --no-index \\
    --root="$SPKG_DESTDIR" --prefix="$SPKG_LOCAL" .
"""


class ScriptRunner:
    """按阶段执行生命周期脚本"""

    def __init__(self, config: Config, executor: CommandExecutor | None = None) -> None:
        self.config = config
        self.executor = executor or get_executor()

    # =====================================================================
    # 环境
    # =====================================================================

    def stage_variables(
        self, base: str, version: str | None, build: BuildDirectory,
    ) -> dict[str, str]:
        """脚本可见的安装器变量（不含继承的进程环境）"""
        cfg = self.config
        prefix = cfg.prefix_path
        jobs = str(cfg.make_jobs)
        variables = {
            "SPKG_ROOT": str(cfg.root_path),
            "SPKG_LOCAL": str(prefix),
            "SPKG_DISTFILES": str(cfg.distfiles_path),
            "SPKG_DESTDIR": str(build.staged_root),
            "SPKG_DESTDIR_LOCAL": str(build.staged_prefix(prefix)),
            "PKG_BASE": base,
            "PKG_VER": version or "",
            "PKG_NAME": f"{base}-{version}" if version else base,
            "PKG_SRC": str(build.src_dir),
            "PKG_SCRIPTS": str(build.script_dir),
            "CC": cfg.cc,
            "CXX": cfg.cxx,
            "FC": cfg.fc,
            "CFLAGS": cfg.cflags,
            "CXXFLAGS": cfg.cxxflags,
            "LDFLAGS": cfg.ldflags,
            "MAKE": cfg.make,
            "MAKEFLAGS": f"-j{jobs}",
            "SPKG_NUM_THREADS": jobs,
        }
        for var in PROXY_VARS:
            variables[var] = SINKHOLE_PROXY
            variables[var.upper()] = SINKHOLE_PROXY
        return variables

    def build_env(
        self,
        base: str,
        version: str | None,
        build: BuildDirectory,
        base_env: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """进程环境的副本 + 安装器变量，并写出 spkg-env.sh"""
        variables = self.stage_variables(base, version, build)
        env = dict(os.environ if base_env is None else base_env)
        env.update(variables)
        write_env_file(build.env_file, variables)
        return env

    # =====================================================================
    # 执行
    # =====================================================================

    def run(
        self,
        build: BuildDirectory,
        stages: Iterable[LifecycleStage],
        *,
        env: dict[str, str],
        log_file: Path | None = None,
    ) -> LifecycleResult:
        """按给定顺序执行阶段，任一阶段失败即抛出"""
        build.staged_root.mkdir(parents=True, exist_ok=True)
        result = LifecycleResult()
        for stage in stages:
            result.stages.append(self.run_stage(build, stage, env=env, log_file=log_file))
        return result

    def run_stage(
        self,
        build: BuildDirectory,
        stage: LifecycleStage,
        *,
        env: dict[str, str],
        log_file: Path | None = None,
    ) -> StageResult:
        script = self.locate_script(build, stage)
        if script is None:
            logger.debug("  [%s] 无脚本，跳过", stage.value)
            return StageResult(stage=stage, status="skipped")

        args = [self.config.shell, str(script)]
        if stage == LifecycleStage.INSTALL and self.config.sudo and self._has_build_script(build):
            args = shlex.split(self.config.sudo) + args

        logger.info("  [%s] %s", stage.value, format_cmd(args))
        start = time.monotonic()
        r = self.executor.execute(args, cwd=str(build.src_dir), env=env, log_file=log_file)
        elapsed = time.monotonic() - start

        if not r.success:
            logger.error("  [%s] 失败 (rc=%d, %.1fs)", stage.value, r.returncode, elapsed)
            msg = f"{script.name} 退出码 {r.returncode}"
            if stage == LifecycleStage.CHECK:
                raise CheckFailedError(msg, returncode=r.returncode)
            raise LifecycleScriptFailedError(stage.value, msg, returncode=r.returncode)

        logger.info("  [%s] 完成 (%.1fs)", stage.value, elapsed)
        return StageResult(
            stage=stage, status="passed", elapsed=elapsed,
            returncode=r.returncode, script=script.name,
        )

    def locate_script(self, build: BuildDirectory, stage: LifecycleStage) -> Path | None:
        """查找阶段脚本；install 缺失时尝试合成"""
        script = build.script_dir / stage.script_name
        if script.is_file():
            return script
        if stage == LifecycleStage.INSTALL:
            return self.synthesize_install(build)
        return None

    def synthesize_install(self, build: BuildDirectory) -> Path:
        """从源码树的构建描述合成安装脚本"""
        src = build.src_dir
        if (src / "configure").is_file():
            body = _CONFIGURE_TEMPLATE
            kind = "configure"
        elif (src / "setup.py").is_file() or (src / "pyproject.toml").is_file():
            body = _PIP_TEMPLATE.format(python=shlex.quote(self.config.python))
            kind = "pip"
        else:
            raise InstallScriptMissingError(
                f"{build.script_dir} 中没有 spkg-install，"
                f"源码目录 {src} 中也没有 configure / setup.py / pyproject.toml"
            )
        script = build.path / GENERATED_INSTALL
        script.write_text(body, encoding="utf-8")
        logger.info("  未找到 spkg-install，已按 %s 合成: %s", kind, script)
        return script

    @staticmethod
    def _has_build_script(build: BuildDirectory) -> bool:
        return (build.script_dir / LifecycleStage.BUILD.script_name).is_file()


def write_env_file(path: Path, variables: Mapping[str, str]) -> Path:
    """写出可 source 的环境文件，复现脚本的执行环境"""
    lines = ["# spkg 构建环境，调试: cd $PKG_SRC && . " + shlex.quote(str(path))]
    lines += [f"export {k}={shlex.quote(v)}" for k, v in variables.items()]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path
