"""终端确认提示

- confirm_prompt: 普通 y/n 确认（click.confirm）
- timed_confirm: 带超时的确认，超时采用默认答案
"""

from __future__ import annotations

import logging
import select
import sys

import click

logger = logging.getLogger(__name__)


def _parse_answer(answer: str, default: bool) -> bool:
    answer = answer.strip().lower()
    if not answer:
        return default
    return answer in ("y", "yes")


def timed_confirm(message: str, *, default: bool = True, timeout: float = 30.0) -> bool:
    """带超时的确认提示，timeout 秒内无输入则返回 default

    非交互终端（stdin 不是 tty）直接返回 default。
    """
    if not sys.stdin.isatty():
        logger.info("非交互终端，采用默认答案: %s", "yes" if default else "no")
        return default
    suffix = "[Y/n]" if default else "[y/N]"
    click.echo(f"{message} {suffix} ({int(timeout)} 秒后自动选择默认) ", nl=False)
    ready, _, _ = select.select([sys.stdin], [], [], timeout)
    if not ready:
        click.echo("")
        logger.info("确认超时，采用默认答案: %s", "yes" if default else "no")
        return default
    return _parse_answer(sys.stdin.readline(), default)


def confirm_prompt(message: str, default: bool = False, timeout: float | None = None) -> bool:
    """交互式确认；给出 timeout 时走 timed_confirm"""
    if timeout is not None:
        return timed_confirm(message, default=default, timeout=timeout)
    return click.confirm(message, default=default)
