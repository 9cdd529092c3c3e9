"""确认策略

把"是否继续安装实验性 / 旧式包"的决策与终端提示机制解耦:
  - AUTO_YES:    一律同意 (-y)
  - AUTO_NO:     一律拒绝 (-n)
  - INTERACTIVE: 调用注入的 prompt 回调（默认走终端提示）

整次运行只选定一次策略，通过 InstallOptions 注入各组件。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

# prompt(message, default, timeout) -> bool
PromptCallback = Callable[[str, bool, "float | None"], bool]


class ConfirmMode(str, Enum):
    """确认模式"""
    AUTO_YES = "yes"
    AUTO_NO = "no"
    INTERACTIVE = "interactive"


@dataclass
class ConfirmPolicy:
    """确认策略"""

    mode: ConfirmMode = ConfirmMode.INTERACTIVE
    prompt: PromptCallback | None = None

    def confirm(
        self, message: str, *, default: bool = False, timeout: float | None = None,
    ) -> bool:
        """按策略给出答案；timeout 仅对交互模式有效（超时取 default）"""
        if self.mode == ConfirmMode.AUTO_YES:
            logger.info("%s -> 自动确认: yes", message)
            return True
        if self.mode == ConfirmMode.AUTO_NO:
            logger.info("%s -> 自动确认: no", message)
            return False
        prompt = self.prompt
        if prompt is None:
            from spkg.utils.prompt import confirm_prompt
            prompt = confirm_prompt
        return bool(prompt(message, default, timeout))

    @classmethod
    def from_name(cls, name: str | bool) -> ConfirmPolicy:
        """由配置字符串 (yes / no / interactive) 构造"""
        if isinstance(name, bool):
            # YAML 中未加引号的 yes / no 会被解析为布尔值
            name = "yes" if name else "no"
        try:
            return cls(mode=ConfirmMode(name.strip().lower()))
        except ValueError:
            from spkg.core.exceptions import ConfigError
            raise ConfigError(
                f"未知确认模式: {name}，可选: yes / no / interactive"
            ) from None
