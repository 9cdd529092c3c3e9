"""CLI: 安装命令

退出码: 0 成功 / 1 安装失败 / 2 参数错误
"""

from __future__ import annotations

import sys
from typing import Any

import click

from spkg.cli import load_config, setup_cli_logging
from spkg.core.confirm import ConfirmMode, ConfirmPolicy
from spkg.core.models import InstallOptions
from spkg.services.installer import InstallerStateMachine, InstallReport


def register(group: click.Group) -> None:
    group.add_command(install)


@click.command()
@click.argument("reference")
@click.option("-s", "--keep-build-tree", is_flag=True, help="保留构建目录")
@click.option("-k", "--keep-existing", is_flag=True, help="不卸载已安装的旧版本")
@click.option("-c", "--check", "run_check", is_flag=True, help="运行测试套件 (spkg-check)")
@click.option("-d", "--download-only", is_flag=True, help="只下载归档，不安装")
@click.option("-y", "--yes", "auto_yes", is_flag=True, help="所有确认自动回答 yes")
@click.option("-n", "--no", "auto_no", is_flag=True, help="所有确认自动回答 no")
@click.option("-o", "--allow-upstream", is_flag=True, help="镜像失败时允许从上游地址下载")
@click.option("--info", "info_only", is_flag=True, help="只显示包信息")
@click.option("--config", "config_path", default="spkg.yml", help="配置文件路径")
def install(
    reference: str, keep_build_tree: bool, keep_existing: bool, run_check: bool,
    download_only: bool, auto_yes: bool, auto_no: bool, allow_upstream: bool,
    info_only: bool, config_path: str,
) -> None:
    """安装一个包（名称、名称-版本、归档路径或 URL）"""
    if auto_yes and auto_no:
        raise click.UsageError("-y/--yes 与 -n/--no 不能同时使用")

    cfg = load_config(config_path)
    confirm = None
    if auto_yes:
        confirm = ConfirmPolicy(mode=ConfirmMode.AUTO_YES)
    elif auto_no:
        confirm = ConfirmPolicy(mode=ConfirmMode.AUTO_NO)

    options = InstallOptions(
        keep_build_tree=keep_build_tree,
        keep_existing=keep_existing,
        run_checks=True if run_check else None,
        download_only=download_only,
        allow_upstream=allow_upstream,
        info_only=info_only,
        confirm=confirm,
    )
    report = InstallerStateMachine(cfg).run(reference, options)

    if not report.success:
        click.echo(report.diagnostics(), err=True)
        sys.exit(1)
    if report.halted == "info":
        _echo_info(report.info)
        return
    _echo_summary(report)


def install_main() -> None:
    """独立入口: spkg-install"""
    setup_cli_logging()
    install.main(prog_name="spkg-install")


def _echo_info(info: dict[str, Any]) -> None:
    description = info.get("description", "")
    for key, value in info.items():
        if key == "description" or value in ("", [], None):
            continue
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        click.echo(f"{key:<14}{value}")
    if description:
        click.echo("")
        click.echo(description.rstrip())


def _echo_summary(report: InstallReport) -> None:
    if report.halted == "download_only":
        click.echo(f"已下载: {report.package_name}")
        return
    click.echo(f"安装成功: {report.package_name}")
    if report.record is not None:
        click.echo(f"  文件数: {len(report.record.files)}  测试: {report.record.test_result}")
    if report.kept_build_dir is not None:
        click.echo(f"  构建目录已保留: {report.kept_build_dir}")
