"""测试策略

check_packages 为逗号或空白分隔的包名列表，大小写不敏感:
  name    显式运行该包的测试
  !name   显式跳过该包的测试（拒绝优先于允许）
  未出现  DEFAULT，由 --check / run_checks 决定

未配置时使用内置的默认跳过列表。
"""

from __future__ import annotations

import re

from spkg.core.config import DEFAULT_CHECK_DENYLIST
from spkg.core.models import CheckDecision

_SPLIT_RE = re.compile(r"[\s,]+")


def parse_check_packages(packages: str) -> tuple[set[str], set[str]]:
    """解析为 (允许集合, 拒绝集合)，均为小写"""
    allow: set[str] = set()
    deny: set[str] = set()
    for token in _SPLIT_RE.split(packages.strip()):
        token = token.lower()
        if not token:
            continue
        if token.startswith("!"):
            if token[1:]:
                deny.add(token[1:])
        else:
            allow.add(token)
    return allow, deny


def resolve_check(base: str, packages: str | None) -> CheckDecision:
    """判定某个包的测试策略"""
    if packages is None:
        packages = DEFAULT_CHECK_DENYLIST
    allow, deny = parse_check_packages(packages)
    name = base.lower()
    if name in deny:
        return CheckDecision.SKIP
    if name in allow:
        return CheckDecision.RUN
    return CheckDecision.DEFAULT


def should_run_check(decision: CheckDecision, run_checks: bool) -> bool:
    if decision == CheckDecision.DEFAULT:
        return run_checks
    return decision == CheckDecision.RUN
