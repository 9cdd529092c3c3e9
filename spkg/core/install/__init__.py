"""安装执行模块

拆分说明:
- check_policy.py: 测试策略判定
- runner.py: 生命周期脚本执行
- recorder.py: 暂存树提交与安装记录
- uninstaller.py: 按记录卸载
- lock.py: 共享 / 独占安装锁
"""

from spkg.core.install.check_policy import resolve_check, should_run_check
from spkg.core.install.lock import InstallLock
from spkg.core.install.recorder import InstallRecorder, RecordStore
from spkg.core.install.runner import ScriptRunner
from spkg.core.install.uninstaller import Uninstaller

__all__ = [
    "InstallLock",
    "InstallRecorder",
    "RecordStore",
    "ScriptRunner",
    "Uninstaller",
    "resolve_check",
    "should_run_check",
]
