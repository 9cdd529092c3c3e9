"""安装状态机模块

拆分说明:
- models.py: 状态、上下文与报告
- steps.py: 各状态的步骤实现
- machine.py: 状态驱动与失败诊断
"""

from spkg.services.installer.machine import InstallerStateMachine
from spkg.services.installer.models import InstallContext, InstallReport, InstallState
from spkg.services.installer.steps import InstallerSteps

__all__ = [
    "InstallContext",
    "InstallReport",
    "InstallState",
    "InstallerStateMachine",
    "InstallerSteps",
]
