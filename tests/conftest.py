"""公共测试夹具: 隔离的发行版根目录、元数据目录构造、归档构造、假下载器/执行器"""

from __future__ import annotations

import hashlib
import io
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

from spkg.core.config import Config
from spkg.core.models import upstream_version
from spkg.utils.shell import CommandResult


class FakeDownloader:
    """按 URL 返回预置内容，其余 URL 抛 ConnectionError"""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.texts: dict[str, str] = {}
        self.calls: list[str] = []

    def download(self, url: str, dest: Path) -> None:
        self.calls.append(url)
        if url not in self.files:
            raise ConnectionError(f"404: {url}")
        dest.write_bytes(self.files[url])

    def read_text(self, url: str) -> str:
        self.calls.append(url)
        if url not in self.texts:
            raise ConnectionError(f"404: {url}")
        return self.texts[url]


class FakeExecutor:
    """记录调用并返回固定退出码"""

    def __init__(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self.calls: list[dict] = []

    def execute(self, cmd, *, cwd=".", env=None, timeout=None, log_file=None) -> CommandResult:
        self.calls.append({"cmd": cmd, "cwd": cwd, "env": env, "log_file": log_file})
        return CommandResult(returncode=self.returncode)


@pytest.fixture()
def config(tmp_path: Path) -> Config:
    """指向 tmp_path 的配置，确认策略为自动同意"""
    root = tmp_path / "root"
    root.mkdir()
    return Config(root_dir=str(root), confirm="yes", make_jobs=2)


@pytest.fixture()
def fake_downloader() -> FakeDownloader:
    return FakeDownloader()


@pytest.fixture()
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


def _build_tarball(path: Path, files: dict[str, str], modes: dict[str, int] | None = None) -> Path:
    modes = modes or {}
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tf:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = modes.get(name, 0o644)
            tf.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture()
def make_tarball() -> Callable[..., Path]:
    """make_tarball(path, {"top/file": "内容"}, modes=None) -> path"""
    return _build_tarball


@pytest.fixture()
def make_package(config: Config) -> Callable[..., Path]:
    """在 pkgs 目录下构造元数据目录

    make_package("foo", "1.0", scripts={"spkg-install": "..."},
                 sources={"foo-1.0/configure": "..."}, pkg_type="optional")
    给出 sources 时同时在 distfiles 中生成 tarball 并写 checksums.ini。
    """

    def _make(
        base: str,
        version: str,
        *,
        scripts: dict[str, str] | None = None,
        sources: dict[str, str] | None = None,
        pkg_type: str | None = None,
        description: str = "",
        tarball: str | None = None,
    ) -> Path:
        pkg_dir = config.pkgs_path / base
        pkg_dir.mkdir(parents=True, exist_ok=True)
        (pkg_dir / "package-version.txt").write_text(version + "\n", encoding="utf-8")
        if pkg_type is not None:
            (pkg_dir / "type").write_text(pkg_type + "\n", encoding="utf-8")
        if description:
            (pkg_dir / "SPKG.rst").write_text(description, encoding="utf-8")
        for name, body in (scripts or {}).items():
            script = pkg_dir / name
            script.write_text(body, encoding="utf-8")
            script.chmod(0o755)
        if sources is not None:
            tarball_name = tarball or f"{base}-VERSION.tar.gz"
            real_name = tarball_name.replace("VERSION", upstream_version(version))
            archive = _build_tarball(config.distfiles_path / real_name, sources)
            digest = hashlib.sha256(archive.read_bytes()).hexdigest()
            (pkg_dir / "checksums.ini").write_text(
                f"tarball={tarball_name}\nsha256={digest}\n", encoding="utf-8",
            )
        return pkg_dir

    return _make
