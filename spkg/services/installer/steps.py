"""安装状态机步骤实现

每个步骤对应一个非终态，执行完毕后返回下一个状态:

  resolving → fetching → preparing → extracting → running_lifecycle
  → committing → testing(可选) → recording → cleaning_up → done

任一步骤抛出 SpkgError 时由状态机转入 failed。
"""

from __future__ import annotations

import logging
import shutil
from typing import TYPE_CHECKING

from spkg.core.install.check_policy import resolve_check, should_run_check
from spkg.core.models import (
    TEST_PASSED,
    BuildDirectory,
    LifecycleStage,
)
from spkg.core.source.extractor import Extractor
from spkg.services.installer.models import InstallState

if TYPE_CHECKING:
    from spkg.services.installer.machine import InstallerStateMachine
    from spkg.services.installer.models import InstallContext, InstallReport

logger = logging.getLogger(__name__)

_BUILD_STAGES = (LifecycleStage.PREINST, LifecycleStage.BUILD, LifecycleStage.INSTALL)


class InstallerSteps:
    """状态机步骤集合"""

    def __init__(self, machine: InstallerStateMachine) -> None:
        self.m = machine

    def resolve(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """解析包引用"""
        resolved = self.m.locator.resolve(ctx.reference, ctx.options)
        ctx.resolved = resolved
        ctx.log_file = self.m.config.log_path / f"{resolved.full_name}.log"
        report.resolved = resolved
        report.log_path = ctx.log_file
        report.steps.append({
            "step": "resolving", "status": "done",
            "package": resolved.full_name, "mode": resolved.mode.value,
        })
        logger.info("[resolving] %s -> %s (%s)", ctx.reference, resolved.full_name, resolved.mode.value)

        if ctx.options.info_only and resolved.metadata is not None:
            report.info = {**resolved.metadata.to_dict(), "description": resolved.metadata.description}
            report.halted = "info"
            return InstallState.DONE
        return InstallState.FETCHING

    def fetch(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """拉取归档到 distfiles"""
        assert ctx.resolved is not None
        ctx.archive = self.m.fetcher.fetch(ctx.resolved, ctx.options)
        report.steps.append({
            "step": "fetching", "status": "done" if ctx.archive else "skipped",
            "archive": str(ctx.archive) if ctx.archive else "",
        })

        if ctx.options.info_only:
            report.info = {
                "name": ctx.resolved.base,
                "version": ctx.resolved.version or "",
                "mode": ctx.resolved.mode.value,
                "tier": ctx.resolved.tier,
                "archive": str(ctx.archive) if ctx.archive else "",
                "description": Extractor.read_description(ctx.archive) if ctx.archive else "",
            }
            report.halted = "info"
            return InstallState.DONE
        if ctx.options.download_only:
            logger.info("[fetching] 仅下载，已完成: %s", ctx.archive)
            report.halted = "download_only"
            return InstallState.DONE
        return InstallState.PREPARING

    def prepare(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """准备全新的构建目录；同名旧目录删除或移到 old/"""
        assert ctx.resolved is not None
        build_root = self.m.config.build_root_path
        path = build_root / ctx.resolved.full_name
        if path.exists():
            if ctx.options.keep_build_tree:
                old = build_root / "old" / ctx.resolved.full_name
                if old.exists():
                    shutil.rmtree(old)
                old.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(path), str(old))
                logger.info("[preparing] 旧构建目录已移至 %s", old)
            else:
                shutil.rmtree(path)
                logger.info("[preparing] 已删除旧构建目录 %s", path)
        path.mkdir(parents=True)
        ctx.build = BuildDirectory(path=path)
        report.build_dir = path
        report.steps.append({"step": "preparing", "status": "done", "build_dir": str(path)})
        return InstallState.EXTRACTING

    def extract(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """解压并应用补丁"""
        assert ctx.resolved is not None and ctx.build is not None
        meta = ctx.resolved.metadata
        self.m.extractor.extract(ctx.archive, ctx.build, meta, log_file=ctx.log_file)
        report.src_dir = ctx.build.src_dir
        report.steps.append({
            "step": "extracting", "status": "done",
            "src_dir": str(ctx.build.src_dir),
            "patches": len(meta.patches) if meta else 0,
        })
        return InstallState.RUNNING_LIFECYCLE

    def run_lifecycle(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """preinst → build → install（安装到暂存树）"""
        assert ctx.resolved is not None and ctx.build is not None
        ctx.env = self.m.runner.build_env(ctx.resolved.base, ctx.resolved.version, ctx.build)
        result = self.m.runner.run(ctx.build, _BUILD_STAGES, env=ctx.env, log_file=ctx.log_file)
        ctx.lifecycle.stages.extend(result.stages)
        report.steps.append({
            "step": "running_lifecycle", "status": "done",
            "stages": {s.stage.value: s.status for s in result.stages},
            "elapsed": round(result.elapsed, 2),
        })
        return InstallState.COMMITTING

    def commit(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """独占锁内: 卸载旧版本 → 合并暂存树；随后 postinst"""
        assert ctx.resolved is not None and ctx.build is not None
        base, version = ctx.resolved.base, ctx.resolved.version

        removed: list[str] = []
        with self.m.lock.exclusive():
            if not ctx.options.keep_existing:
                removed = self.m.uninstaller.uninstall(base)
            ctx.record = self.m.recorder.commit(ctx.build, base, version)
        post = self.m.runner.run(
            ctx.build, (LifecycleStage.POSTINST,), env=ctx.env, log_file=ctx.log_file,
        )
        ctx.lifecycle.stages.extend(post.stages)
        report.steps.append({
            "step": "committing", "status": "done",
            "files": len(ctx.record.files), "uninstalled": len(removed),
        })

        cfg = self.m.config
        decision = resolve_check(base, cfg.check_packages)
        run_checks = cfg.run_checks if ctx.options.run_checks is None else ctx.options.run_checks
        ctx.run_check = should_run_check(decision, run_checks)
        logger.info("[committing] 测试策略: %s -> %s", decision.value, "运行" if ctx.run_check else "跳过")
        return InstallState.TESTING if ctx.run_check else InstallState.RECORDING

    def test(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        """运行 spkg-check，失败时文件已安装但不写记录"""
        assert ctx.build is not None
        result = self.m.runner.run(
            ctx.build, (LifecycleStage.CHECK,), env=ctx.env, log_file=ctx.log_file,
        )
        ctx.lifecycle.stages.extend(result.stages)
        stage = result.get(LifecycleStage.CHECK)
        if stage is not None and stage.status == "passed":
            ctx.test_result = TEST_PASSED
        report.steps.append({"step": "testing", "status": stage.status if stage else "skipped"})
        return InstallState.RECORDING

    def record(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        assert ctx.record is not None
        self.m.recorder.persist(ctx.record, ctx.test_result)
        report.record = ctx.record
        report.steps.append({
            "step": "recording", "status": "done", "test_result": ctx.test_result,
        })
        return InstallState.CLEANING_UP

    def cleanup(self, ctx: InstallContext, report: InstallReport) -> InstallState:
        assert ctx.build is not None
        if ctx.options.keep_build_tree:
            report.kept_build_dir = ctx.build.path
            logger.info("[cleaning_up] 保留构建目录: %s", ctx.build.path)
        else:
            shutil.rmtree(ctx.build.path, ignore_errors=True)
            logger.info("[cleaning_up] 已删除构建目录")
        report.steps.append({"step": "cleaning_up", "status": "done"})
        return InstallState.DONE

