"""安装状态机数据模型

数据类:
- InstallState: 状态枚举
- InstallContext: 单次安装的工作数据（在步骤之间传递）
- InstallReport: 安装报告（状态轨迹、步骤明细、失败诊断）
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from spkg.core.models import (
    TEST_NOT_AVAILABLE,
    BuildDirectory,
    InstallationRecord,
    InstallOptions,
    LifecycleResult,
    LifecycleStage,
    ResolvedPackage,
)


class InstallState(str, Enum):
    """安装状态"""
    RESOLVING = "resolving"
    FETCHING = "fetching"
    PREPARING = "preparing"
    EXTRACTING = "extracting"
    RUNNING_LIFECYCLE = "running_lifecycle"
    COMMITTING = "committing"
    TESTING = "testing"
    RECORDING = "recording"
    CLEANING_UP = "cleaning_up"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (InstallState.DONE, InstallState.FAILED)


# 失败时提示进入构建环境调试的阶段
_DEBUGGABLE_STAGES = {
    LifecycleStage.BUILD.value, LifecycleStage.INSTALL.value, LifecycleStage.CHECK.value,
}


@dataclass
class InstallContext:
    """单次安装在各步骤间共享的工作数据"""

    reference: str
    options: InstallOptions
    resolved: ResolvedPackage | None = None
    archive: Path | None = None
    build: BuildDirectory | None = None
    env: dict[str, str] = field(default_factory=dict)
    log_file: Path | None = None
    lifecycle: LifecycleResult = field(default_factory=LifecycleResult)
    record: InstallationRecord | None = None
    run_check: bool = False
    test_result: str = TEST_NOT_AVAILABLE


@dataclass
class InstallReport:
    """安装报告"""

    reference: str
    state: InstallState = InstallState.RESOLVING
    resolved: ResolvedPackage | None = None
    record: InstallationRecord | None = None
    build_dir: Path | None = None
    src_dir: Path | None = None
    log_path: Path | None = None
    kept_build_dir: Path | None = None
    halted: str = ""             # "info" | "download_only"
    info: dict[str, Any] = field(default_factory=dict)
    failed_stage: str = ""
    reason: str = ""
    error_code: str = ""
    transitions: list[str] = field(default_factory=list)
    steps: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == InstallState.DONE

    @property
    def package_name(self) -> str:
        return self.resolved.full_name if self.resolved else self.reference

    def diagnostics(self) -> str:
        """失败时的统一诊断信息块"""
        if self.success:
            return ""
        bar = "*" * 72
        lines = [
            bar,
            f"安装失败: {self.package_name} (阶段: {self.failed_stage})",
            f"原因: {self.reason}",
        ]
        if self.log_path is not None:
            lines.append(f"日志: {self.log_path}")
        if (
            self.failed_stage in _DEBUGGABLE_STAGES
            and self.build_dir is not None and self.src_dir is not None
        ):
            lines.append("进入构建环境调试:")
            lines.append(f"  cd {self.src_dir} && . {self.build_dir / 'spkg-env.sh'}")
        lines.append(bar)
        return "\n".join(lines)
