"""spkg 命令行接口

CLI 按功能拆分为子模块，每个模块注册自己的命令到 main group。
spkg-install 是 install 命令的独立入口。
"""

import os

import click

from spkg import __version__
from spkg.core.config import Config, init_config
from spkg.core.exceptions import SpkgError
from spkg.utils.logger import setup_logging


def setup_cli_logging() -> None:
    setup_logging(
        level=os.getenv("SPKG_LOG_LEVEL", "INFO"),
        json_output=os.getenv("SPKG_LOG_JSON", "") == "1",
    )


def load_config(path: str) -> Config:
    """加载配置文件 + 环境变量，错误转为 click 异常（退出码 1）"""
    try:
        return init_config(path)
    except (SpkgError, ValueError, OSError) as e:
        raise click.ClickException(f"配置加载失败: {e}") from e


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """spkg - 源码包安装器"""
    setup_cli_logging()


# 注册各子命令
from spkg.cli.cmd_install import register as _reg_install  # noqa: E402
from spkg.cli.cmd_records import register as _reg_records  # noqa: E402

_reg_install(main)
_reg_records(main)
