"""安装状态机测试（真实 bash 脚本 + 假下载器）"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from spkg.core.models import InstallOptions
from spkg.services.installer import InstallerStateMachine, InstallState
from spkg.utils.shell import LocalExecutor

INSTALL_HELLO = (
    'mkdir -p "$SPKG_DESTDIR_LOCAL/bin"\n'
    'cp hello "$SPKG_DESTDIR_LOCAL/bin/hello"\n'
)


@pytest.fixture()
def machine(config, fake_downloader) -> InstallerStateMachine:
    return InstallerStateMachine(config, executor=LocalExecutor(), downloader=fake_downloader)


@pytest.fixture()
def hello_pkg(make_package):
    def _make(version: str = "1.0", **scripts: str) -> Path:
        all_scripts = {"spkg-install": INSTALL_HELLO}
        all_scripts.update({k.replace("_", "-"): v for k, v in scripts.items()})
        return make_package(
            "hello", version, scripts=all_scripts,
            sources={f"hello-{version}/hello": "#!/bin/sh\necho hi\n"},
            description="Hello package\n",
        )
    return _make


def _record_names(config) -> list[str]:
    if not config.inst_path.is_dir():
        return []
    return sorted(p.name for p in config.inst_path.iterdir())


class TestSuccessPath:
    def test_end_to_end_done(self, config, machine, hello_pkg) -> None:
        hello_pkg()
        report = machine.run("hello")

        assert report.state == InstallState.DONE, report.diagnostics()
        assert report.transitions == [
            "resolving", "fetching", "preparing", "extracting", "running_lifecycle",
            "committing", "recording", "cleaning_up", "done",
        ]
        assert (config.prefix_path / "bin" / "hello").is_file()
        assert report.record.test_result == "not available"
        assert not (config.build_root_path / "hello-1.0").exists()
        data = json.loads((config.inst_path / "hello-1.0").read_text())
        assert data["files"] == ["bin/hello"]
        assert (config.log_path / "hello-1.0.log").is_file()

    def test_keep_build_tree(self, config, machine, hello_pkg) -> None:
        hello_pkg()
        report = machine.run("hello", InstallOptions(keep_build_tree=True))
        build_dir = config.build_root_path / "hello-1.0"
        assert report.success
        assert report.kept_build_dir == build_dir
        assert (build_dir / "spkg-env.sh").is_file()
        assert (build_dir / "src" / "hello").is_file()

    def test_existing_build_dir_moved_to_old(self, config, machine, hello_pkg) -> None:
        hello_pkg()
        stale = config.build_root_path / "hello-1.0"
        stale.mkdir(parents=True)
        (stale / "marker").write_text("")
        assert machine.run("hello", InstallOptions(keep_build_tree=True)).success
        assert (config.build_root_path / "old" / "hello-1.0" / "marker").is_file()
        assert not (stale / "marker").exists()

    def test_existing_build_dir_deleted(self, config, machine, hello_pkg) -> None:
        hello_pkg()
        stale = config.build_root_path / "hello-1.0"
        stale.mkdir(parents=True)
        assert machine.run("hello").success
        assert not (config.build_root_path / "old").exists()

    def test_check_passes(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_check="test -x \"$SPKG_LOCAL/bin/hello\" || exit 1\n")
        report = machine.run("hello", InstallOptions(run_checks=True))
        assert report.success, report.diagnostics()
        assert "testing" in report.transitions
        assert report.record.test_result == "passed"

    def test_check_skipped_by_policy(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_check="exit 1\n")
        config.check_packages = "!hello"
        report = machine.run("hello", InstallOptions(run_checks=True))
        assert report.success
        assert "testing" not in report.transitions

    def test_postinst_runs_after_commit(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_postinst='test -f "$SPKG_LOCAL/bin/hello" && touch "$SPKG_LOCAL/postinst-ran"\n')
        assert machine.run("hello").success
        assert (config.prefix_path / "postinst-ran").exists()


class TestFailures:
    def test_install_failure(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_install="echo boom; exit 1\n")
        report = machine.run("hello")

        assert report.state == InstallState.FAILED
        assert report.failed_stage == "install"
        assert _record_names(config) == []
        assert not (config.prefix_path / "bin" / "hello").exists()
        diag = report.diagnostics()
        assert "hello-1.0" in diag and "hello-1.0.log" in diag
        assert "spkg-env.sh" in diag and "cd " in diag
        assert "boom" in (config.log_path / "hello-1.0.log").read_text()
        # 失败时保留构建目录便于调试
        assert (config.build_root_path / "hello-1.0").is_dir()

    def test_check_failure_leaves_files_without_record(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_check="exit 1\n")
        report = machine.run("hello", InstallOptions(run_checks=True))

        assert report.state == InstallState.FAILED
        assert report.failed_stage == "check"
        assert report.error_code == "CHECK_FAILED"
        assert (config.prefix_path / "bin" / "hello").is_file()
        assert _record_names(config) == []

    def test_postinst_failure_leaves_files_without_record(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_postinst="exit 1\n")
        report = machine.run("hello")

        assert report.state == InstallState.FAILED
        assert report.failed_stage == "postinst"
        assert (config.prefix_path / "bin" / "hello").is_file()
        assert _record_names(config) == []
        # 只有 build / install / check 失败才给出调试提示
        assert "spkg-env.sh" not in report.diagnostics()

    def test_preinst_failure_has_no_debug_hint(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_preinst="exit 3\n")
        report = machine.run("hello")
        assert report.failed_stage == "preinst"
        assert "spkg-env.sh" not in report.diagnostics()

    def test_partial_commit_leaves_files_without_record(self, config, machine, hello_pkg) -> None:
        hello_pkg(spkg_install=INSTALL_HELLO + (
            'mkdir -p "$SPKG_DESTDIR_LOCAL/bin/clash"\n'
            'echo x > "$SPKG_DESTDIR_LOCAL/bin/clash/data"\n'
        ))
        # 前缀中的同名普通文件使该目录复制失败，其余文件照常复制
        clash = config.prefix_path / "bin" / "clash"
        clash.parent.mkdir(parents=True)
        clash.write_text("")

        report = machine.run("hello")

        assert report.state == InstallState.FAILED
        assert report.failed_stage == "committing"
        assert report.error_code == "COMMIT_FAILED"
        assert (config.prefix_path / "bin" / "hello").is_file()
        assert _record_names(config) == []

    def test_unwritable_log_dir_fails_cleanly(self, config, machine, hello_pkg, tmp_path: Path) -> None:
        hello_pkg()
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        config.log_dir = str(blocker / "logs")

        report = machine.run("hello")

        assert report.state == InstallState.FAILED
        assert report.failed_stage == "resolving"
        assert report.error_code == "OS_ERROR"
        assert report.transitions[-1] == "failed"
        assert not (config.build_root_path / "hello-1.0").exists()
        assert "hello-1.0" in report.diagnostics()

    def test_not_found(self, machine) -> None:
        report = machine.run("does-not-exist")
        assert report.state == InstallState.FAILED
        assert report.failed_stage == "resolving"
        assert report.error_code == "NOT_FOUND"
        assert "spkg-env.sh" not in report.diagnostics()

    def test_download_failure(self, config, machine, hello_pkg) -> None:
        hello_pkg()
        (config.distfiles_path / "hello-1.0.tar.gz").unlink()
        config.mirrors = ["https://mirror.example.org"]
        report = machine.run("hello")
        assert report.failed_stage == "fetching"
        assert report.error_code == "DOWNLOAD_FAILED"

    def test_corrupt_cached_archive_redownloaded_from_mirror(
        self, config, machine, hello_pkg, fake_downloader,
    ) -> None:
        hello_pkg()
        cached = config.distfiles_path / "hello-1.0.tar.gz"
        mirror = "https://mirror.example.org"
        config.mirrors = [mirror]
        url = f"{mirror}/spkg/upstream/hello/hello-1.0.tar.gz"
        fake_downloader.files[url] = cached.read_bytes()
        cached.write_bytes(b"corrupt")

        report = machine.run("hello")

        assert report.state == InstallState.DONE, report.diagnostics()
        assert fake_downloader.calls == [url]
        assert cached.read_bytes() == fake_downloader.files[url]
        assert (config.prefix_path / "bin" / "hello").is_file()


class TestReinstall:
    def test_previous_version_uninstalled(self, config, machine, hello_pkg) -> None:
        hello_pkg("1.0", spkg_install=INSTALL_HELLO + 'touch "$SPKG_DESTDIR_LOCAL/bin/old-only"\n')
        assert machine.run("hello").success
        assert (config.prefix_path / "bin" / "old-only").exists()

        hello_pkg("1.1", spkg_install=INSTALL_HELLO)
        assert machine.run("hello").success
        assert not (config.prefix_path / "bin" / "old-only").exists()
        assert (config.prefix_path / "bin" / "hello").exists()
        assert _record_names(config) == ["hello-1.1"]

    def test_keep_existing(self, config, machine, hello_pkg) -> None:
        hello_pkg("1.0", spkg_install=INSTALL_HELLO + 'touch "$SPKG_DESTDIR_LOCAL/bin/old-only"\n')
        assert machine.run("hello").success
        hello_pkg("1.1", spkg_install=INSTALL_HELLO)
        assert machine.run("hello", InstallOptions(keep_existing=True)).success
        assert (config.prefix_path / "bin" / "old-only").exists()


class TestShortCircuits:
    def test_info_with_local_metadata(self, config, machine, hello_pkg, fake_downloader) -> None:
        hello_pkg()
        (config.distfiles_path / "hello-1.0.tar.gz").unlink()
        report = machine.run("hello", InstallOptions(info_only=True))
        assert report.success and report.halted == "info"
        assert report.transitions == ["resolving", "done"]
        assert report.info["version"] == "1.0"
        assert report.info["description"] == "Hello package\n"
        assert fake_downloader.calls == []

    def test_info_legacy_reads_archive(self, machine, make_tarball, tmp_path: Path) -> None:
        archive = make_tarball(tmp_path / "old-2.0.spkg", {
            "old-2.0/SPKG.txt": "Old style\n",
            "old-2.0/spkg-install": "true\n",
        })
        report = machine.run(str(archive), InstallOptions(info_only=True))
        assert report.halted == "info"
        assert report.info["description"] == "Old style\n"
        assert report.info["name"] == "old"

    def test_download_only(self, config, machine, fake_downloader) -> None:
        url = "https://example.org/dl/zap-3.0.tar.gz"
        fake_downloader.files[url] = b"bytes"
        report = machine.run(url, InstallOptions(download_only=True))
        assert report.success and report.halted == "download_only"
        assert (config.distfiles_path / "zap-3.0.tar.gz").read_bytes() == b"bytes"
        assert not config.build_root_path.exists()


class TestLegacyArchive:
    def test_old_style_spkg_by_path(self, config, machine, make_tarball, tmp_path: Path) -> None:
        archive = make_tarball(tmp_path / "old-2.0.spkg", {
            "old-2.0/spkg-install": (
                'mkdir -p "$SPKG_DESTDIR_LOCAL/share/old"\n'
                'cp data.txt "$SPKG_DESTDIR_LOCAL/share/old/"\n'
            ),
            "old-2.0/src/data.txt": "payload\n",
        })
        report = machine.run(str(archive))
        assert report.success, report.diagnostics()
        assert (config.prefix_path / "share" / "old" / "data.txt").read_text() == "payload\n"
        assert _record_names(config) == ["old-2.0"]


class TestLocking:
    def test_forced_lock_creates_lock_file(self, config, fake_downloader, hello_pkg) -> None:
        config.force_lock = True
        hello_pkg()
        machine = InstallerStateMachine(config, executor=LocalExecutor(), downloader=fake_downloader)
        assert machine.run("hello").success
        assert config.lock_path.exists()
        assert not machine.lock.held
