"""CLI: 安装记录与本地包（卸载、列出已安装包、列出可用包）"""

from __future__ import annotations

import click

from spkg.cli import load_config
from spkg.core.install import RecordStore, Uninstaller
from spkg.core.source import MetadataStore


def register(group: click.Group) -> None:
    group.add_command(uninstall)
    group.add_command(installed)
    group.add_command(available)


@click.command()
@click.argument("name")
@click.option("--config", "config_path", default="spkg.yml", help="配置文件路径")
def uninstall(name: str, config_path: str) -> None:
    """按安装记录卸载包"""
    cfg = load_config(config_path)
    store = RecordStore(cfg.inst_path)
    if not store.find(name):
        raise click.ClickException(f"{name} 没有安装记录")
    removed = Uninstaller(cfg.prefix_path, store).uninstall(name)
    click.echo(f"已卸载 {name}: 删除 {len(removed)} 个文件")


@click.command()
@click.option("--config", "config_path", default="spkg.yml", help="配置文件路径")
def installed(config_path: str) -> None:
    """列出已安装的包"""
    cfg = load_config(config_path)
    records = RecordStore(cfg.inst_path).list_installed()
    if not records:
        click.echo("没有已安装的包")
        return
    for r in records:
        click.echo(f"{r.package_name:<24}{r.package_version:<16}{r.test_result:<16}{r.install_date}")


@click.command()
@click.option("--config", "config_path", default="spkg.yml", help="配置文件路径")
def available(config_path: str) -> None:
    """列出带本地元数据的包"""
    cfg = load_config(config_path)
    store = MetadataStore(cfg.pkgs_path)
    for base in store.list_packages():
        meta = store.load(base)
        click.echo(f"{base:<24}{meta.version:<16}{meta.package_type.value}")
