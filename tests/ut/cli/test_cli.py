"""命令行测试（click CliRunner）"""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from spkg.cli import main
from spkg.cli.cmd_install import install
from spkg.utils.logger import reset_logging


@pytest.fixture(autouse=True)
def _clean_logging():
    yield
    reset_logging()


@pytest.fixture()
def config_file(config, tmp_path: Path) -> str:
    p = tmp_path / "spkg.yml"
    p.write_text(f"root_dir: {config.root_dir}\nconfirm: \"yes\"\n", encoding="utf-8")
    return str(p)


@pytest.fixture()
def hello(make_package) -> None:
    make_package(
        "hello", "1.0",
        scripts={"spkg-install": 'mkdir -p "$SPKG_DESTDIR_LOCAL/bin" && cp hello "$SPKG_DESTDIR_LOCAL/bin/"\n'},
        sources={"hello-1.0/hello": "hi\n"},
        description="Hello package\n",
    )


class TestInstallCommand:
    def test_success_exit_zero(self, config, config_file, hello) -> None:
        result = CliRunner().invoke(main, ["install", "--config", config_file, "hello"])
        assert result.exit_code == 0, result.output
        assert "安装成功: hello-1.0" in result.output
        assert (config.prefix_path / "bin" / "hello").is_file()

    def test_failure_exit_one(self, config_file, make_package) -> None:
        make_package("broken", "1.0", scripts={"spkg-install": "exit 2\n"})
        result = CliRunner().invoke(install, ["--config", config_file, "broken"])
        assert result.exit_code == 1
        assert "安装失败: broken-1.0" in result.output

    def test_yes_and_no_is_usage_error(self, config_file) -> None:
        result = CliRunner().invoke(install, ["-y", "-n", "--config", config_file, "hello"])
        assert result.exit_code == 2

    def test_unknown_option_is_usage_error(self) -> None:
        result = CliRunner().invoke(install, ["--bogus", "hello"])
        assert result.exit_code == 2

    def test_info(self, config, config_file, hello) -> None:
        result = CliRunner().invoke(install, ["--info", "--config", config_file, "hello"])
        assert result.exit_code == 0, result.output
        assert "Hello package" in result.output
        assert not config.prefix_path.exists()

    def test_keep_build_tree_reports_path(self, config, config_file, hello) -> None:
        result = CliRunner().invoke(install, ["-s", "--config", config_file, "hello"])
        assert result.exit_code == 0
        assert str(config.build_root_path / "hello-1.0") in result.output


class TestRecordCommands:
    def test_installed_and_uninstall(self, config, config_file, hello) -> None:
        runner = CliRunner()
        assert runner.invoke(main, ["install", "--config", config_file, "hello"]).exit_code == 0

        listed = runner.invoke(main, ["installed", "--config", config_file])
        assert listed.exit_code == 0
        assert "hello" in listed.output and "1.0" in listed.output

        removed = runner.invoke(main, ["uninstall", "--config", config_file, "hello"])
        assert removed.exit_code == 0
        assert not (config.prefix_path / "bin" / "hello").exists()

        assert "没有已安装的包" in runner.invoke(main, ["installed", "--config", config_file]).output

    def test_uninstall_unknown(self, config_file) -> None:
        result = CliRunner().invoke(main, ["uninstall", "--config", config_file, "ghost"])
        assert result.exit_code == 1

    def test_unreadable_config_is_clean_error(self, tmp_path: Path) -> None:
        # 目录无法作为文件打开，读取时抛 OSError
        config_dir = tmp_path / "conf.yml"
        config_dir.mkdir()
        result = CliRunner().invoke(main, ["installed", "--config", str(config_dir)])
        assert result.exit_code == 1
        assert "配置加载失败" in result.output
        assert not isinstance(result.exception, OSError)


def test_available_lists_local_metadata(config_file, make_package) -> None:
    make_package("zeta", "2.0", pkg_type="standard")
    make_package("alpha", "1.0")
    result = CliRunner().invoke(main, ["available", "--config", config_file])
    assert result.exit_code == 0
    rows = [line.split() for line in result.output.splitlines() if line.startswith(("alpha", "zeta"))]
    assert rows == [["alpha", "1.0", "optional"], ["zeta", "2.0", "standard"]]
