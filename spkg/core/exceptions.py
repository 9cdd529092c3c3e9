"""统一异常体系

所有安装错误继承 SpkgError，对当前包的安装一律是致命错误：
不做进程内重试，也不存在部分成功状态。
状态机据此进入 Failed 终态，CLI 据此输出诊断信息并以非零码退出。
"""

from __future__ import annotations


class SpkgError(Exception):
    """安装器基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(SpkgError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(SpkgError, ValueError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"


class NotFoundError(SpkgError):
    """找不到匹配的包：无本地元数据、无缓存包、目录中也无匹配"""

    code = "NOT_FOUND"


class PermissionDeniedError(SpkgError):
    """缓存目录或安装前缀不可写"""

    code = "PERMISSION_DENIED"


class InstallAbortedError(SpkgError):
    """用户（或自动确认策略）拒绝继续安装"""

    code = "ABORTED"


class DownloadFailedError(SpkgError):
    """所有候选地址下载失败，或校验和不匹配"""

    code = "DOWNLOAD_FAILED"


class ExtractionFailedError(SpkgError):
    """归档解压失败"""

    code = "EXTRACTION_FAILED"


class PatchFailedError(SpkgError):
    """补丁应用失败"""

    code = "PATCH_FAILED"


class LifecycleScriptFailedError(SpkgError):
    """生命周期脚本以非零码退出"""

    code = "LIFECYCLE_SCRIPT_FAILED"

    def __init__(self, stage: str, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.returncode = returncode


class CheckFailedError(LifecycleScriptFailedError):
    """测试套件失败（此时文件已复制到前缀，但不会写安装记录）"""

    code = "CHECK_FAILED"

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__("check", message, returncode)


class InstallScriptMissingError(SpkgError):
    """没有安装脚本，且无法从 configure / setup 描述合成"""

    code = "INSTALL_SCRIPT_MISSING"


class CommitFailedError(SpkgError):
    """清单计算或复制到前缀失败（已复制的文件不回滚）"""

    code = "COMMIT_FAILED"
