"""安装状态机 - 协调单个包的完整安装流程

职责:
- 按状态表驱动各步骤，直到 done / failed
- 整次安装持有共享锁，包日志在解析完成后开始镜像写入
- 任一步骤的 SpkgError / OSError 统一转入 failed，并生成诊断信息
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable

from spkg.core.config import Config, get_config
from spkg.core.exceptions import LifecycleScriptFailedError, SpkgError
from spkg.core.install.lock import InstallLock
from spkg.core.install.recorder import InstallRecorder, RecordStore
from spkg.core.install.runner import ScriptRunner
from spkg.core.install.uninstaller import Uninstaller
from spkg.core.models import InstallOptions
from spkg.core.source.extractor import Extractor
from spkg.core.source.fetcher import ArchiveFetcher, Downloader, UrlDownloader
from spkg.core.source.locator import PackageLocator
from spkg.services.installer.models import InstallContext, InstallReport, InstallState
from spkg.services.installer.steps import InstallerSteps
from spkg.utils.logger import package_log
from spkg.utils.shell import CommandExecutor, get_executor

logger = logging.getLogger(__name__)

StepHandler = Callable[[InstallContext, InstallReport], InstallState]


class InstallerStateMachine:
    """单包安装状态机"""

    def __init__(
        self,
        config: Config | None = None,
        *,
        executor: CommandExecutor | None = None,
        downloader: Downloader | None = None,
        locator: PackageLocator | None = None,
        lock: InstallLock | None = None,
    ) -> None:
        self.config = config or get_config()
        self.executor = executor or get_executor()
        downloader = downloader or UrlDownloader(timeout=self.config.download_timeout)

        self.locator = locator or PackageLocator(self.config, downloader=downloader)
        self.fetcher = ArchiveFetcher(self.config, downloader)
        self.extractor = Extractor(self.executor)
        self.runner = ScriptRunner(self.config, self.executor)
        self.store = RecordStore(self.config.inst_path)
        self.recorder = InstallRecorder(self.config, self.store)
        self.uninstaller = Uninstaller(self.config.prefix_path, self.store)
        self.lock = lock or InstallLock.for_config(self.config)

        self.steps = InstallerSteps(self)
        self._handlers: dict[InstallState, StepHandler] = {
            InstallState.RESOLVING: self.steps.resolve,
            InstallState.FETCHING: self.steps.fetch,
            InstallState.PREPARING: self.steps.prepare,
            InstallState.EXTRACTING: self.steps.extract,
            InstallState.RUNNING_LIFECYCLE: self.steps.run_lifecycle,
            InstallState.COMMITTING: self.steps.commit,
            InstallState.TESTING: self.steps.test,
            InstallState.RECORDING: self.steps.record,
            InstallState.CLEANING_UP: self.steps.cleanup,
        }

    def run(self, reference: str, options: InstallOptions | None = None) -> InstallReport:
        """执行安装，返回报告（不抛出安装错误）"""
        ctx = InstallContext(reference=reference, options=options or InstallOptions())
        report = InstallReport(reference=reference)
        state = InstallState.RESOLVING

        with contextlib.ExitStack() as stack:
            try:
                stack.enter_context(self.lock.shared())
            except OSError as e:
                self._fail(report, state, e)
                return report

            log_attached = False
            while not state.terminal:
                report.transitions.append(state.value)
                report.state = current = state
                try:
                    state = self._handlers[current](ctx, report)
                except (SpkgError, OSError) as e:
                    self._fail(report, current, e)
                    state = InstallState.FAILED
                if not log_attached and ctx.log_file is not None:
                    log_attached = True
                    try:
                        stack.enter_context(package_log(ctx.log_file))
                    except OSError as e:
                        # 包日志不可写时在刚完成的步骤上失败
                        if not state.terminal:
                            self._fail(report, current, e)
                            state = InstallState.FAILED

            report.state = state
            report.transitions.append(state.value)
            if state == InstallState.DONE:
                logger.info("安装完成: %s", report.package_name)
            else:
                logger.error("\n%s", report.diagnostics())
        return report

    @staticmethod
    def _fail(report: InstallReport, state: InstallState, error: Exception) -> None:
        if isinstance(error, LifecycleScriptFailedError):
            report.failed_stage = error.stage
        else:
            report.failed_stage = state.value
        report.reason = str(error)
        report.error_code = getattr(error, "code", "OS_ERROR")
        report.state = InstallState.FAILED
        report.steps.append({
            "step": report.failed_stage, "status": "failed", "error": report.reason,
        })
