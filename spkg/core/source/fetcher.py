"""归档拉取器

职责:
- 把解析结果对应的归档取到本地 distfiles 缓存（本地优先 + 远程回退）
- 按候选 URL 顺序尝试（镜像 → 可选的上游地址）
- 校验和验证

下载传输本身通过 Downloader 协议注入，默认实现基于 urllib。
"""

from __future__ import annotations

import hashlib
import logging
import os
import urllib.error
import urllib.request
from pathlib import Path
from typing import Protocol

from spkg.core.config import Config
from spkg.core.exceptions import DownloadFailedError, PermissionDeniedError
from spkg.core.models import Checksum, InstallOptions, ResolvedPackage, ResolveMode
from spkg.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)


class Downloader(Protocol):
    """下载传输协议：失败时抛 ConnectionError / OSError"""

    def download(self, url: str, dest: Path) -> None:
        ...

    def read_text(self, url: str) -> str:
        ...


class UrlDownloader:
    """基于 urllib 的默认下载实现"""

    def __init__(self, timeout: int = 60) -> None:
        self.timeout = timeout

    def download(self, url: str, dest: Path) -> None:
        validate_url_scheme(url, context="archive download")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                with open(dest, "wb") as f:
                    for chunk in iter(lambda: resp.read(65536), b""):
                        f.write(chunk)
        except (urllib.error.HTTPError, urllib.error.URLError) as e:
            raise ConnectionError(f"下载失败: {url} - {e}") from e

    def read_text(self, url: str) -> str:
        validate_url_scheme(url, context="catalog listing")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                return resp.read().decode("utf-8", errors="replace")
        except (urllib.error.HTTPError, urllib.error.URLError) as e:
            raise ConnectionError(f"读取失败: {url} - {e}") from e


def mirror_urls(mirrors: list[str], base: str, tarball: str) -> list[str]:
    """镜像上的上游归档地址: <mirror>/spkg/upstream/<base>/<tarball>"""
    return [f"{m.rstrip('/')}/spkg/upstream/{base}/{tarball}" for m in mirrors]


def file_digest(path: Path, algorithm: str) -> str:
    h = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def ensure_writable_dir(path: Path) -> None:
    """确保目录存在且可写，否则抛 PermissionDeniedError"""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PermissionDeniedError(f"无法创建目录 {path}: {e}") from e
    if not os.access(path, os.W_OK):
        raise PermissionDeniedError(f"目录不可写: {path}")


class ArchiveFetcher:
    """归档拉取器：已在本地则直接返回，否则逐个候选 URL 下载"""

    def __init__(self, config: Config, downloader: Downloader | None = None) -> None:
        self.config = config
        self.distfiles = config.distfiles_path
        self.downloader = downloader or UrlDownloader(timeout=config.download_timeout)

    def fetch(
        self, resolved: ResolvedPackage, options: InstallOptions | None = None,
    ) -> Path | None:
        """拉取归档，返回本地路径；纯脚本包（无归档）返回 None"""
        checksum = resolved.metadata.checksum if resolved.metadata else None

        if resolved.archive_path is not None and resolved.archive_path.exists():
            if checksum is None or self._checksum_ok(resolved.archive_path, checksum):
                logger.info("归档已在本地: %s", resolved.archive_path)
                return resolved.archive_path
            logger.warning("缓存归档校验和不匹配，重新下载: %s", resolved.archive_path)
            resolved.archive_path.unlink()

        if resolved.mode == ResolveMode.LOCAL_SCRIPTED and resolved.archive_path is None:
            logger.info("%s 没有上游归档，跳过下载", resolved.full_name)
            return None

        if not resolved.urls:
            raise DownloadFailedError(
                f"{resolved.full_name} 没有可用的下载地址 "
                "（未配置镜像，且未允许从上游拉取 -o）"
            )

        ensure_writable_dir(self.distfiles)
        dest = resolved.archive_path or self.distfiles / _url_filename(resolved.urls[0])

        errors: list[str] = []
        for url in resolved.urls:
            try:
                self._download_one(url, dest, checksum)
            except (ConnectionError, OSError, ValueError) as e:
                logger.warning("  下载失败，尝试下一个地址: %s (%s)", url, e)
                errors.append(f"{url}: {e}")
                continue
            resolved.archive_path = dest
            return dest

        raise DownloadFailedError(
            f"{resolved.full_name} 所有地址均下载失败:\n  " + "\n  ".join(errors)
        )

    def _download_one(self, url: str, dest: Path, checksum: Checksum | None) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        part = dest.with_name(dest.name + ".part")
        logger.info("  下载: %s", url)
        try:
            self.downloader.download(url, part)
            if checksum is not None and not self._checksum_ok(part, checksum):
                raise ValueError(f"校验和不匹配 ({checksum.algorithm})")
            os.replace(part, dest)
        finally:
            part.unlink(missing_ok=True)
        logger.info("  已保存: %s", dest)

    @staticmethod
    def _checksum_ok(path: Path, checksum: Checksum) -> bool:
        actual = file_digest(path, checksum.algorithm)
        if actual != checksum.digest:
            logger.warning(
                "校验和不匹配 %s: 期望 %s, 实际 %s", path.name, checksum.digest, actual,
            )
            return False
        logger.info("  校验和通过: %s", path.name)
        return True


def _url_filename(url: str) -> str:
    filename = url.rstrip("/").rsplit("/", 1)[-1]
    if not filename:
        raise DownloadFailedError(f"无法从 URL 解析文件名: {url}")
    return filename
