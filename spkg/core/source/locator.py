"""包定位器

把用户给出的包引用解析为具体的归档位置:

  1. 已存在的文件路径  → 规范化为绝对路径（不查元数据、不联网）
  2. 含路径分隔符 / URL → 交给 ArchiveFetcher 按字面地址下载
  3. 名称[-版本]:
     a. 本地元数据存在且版本匹配 → 本地脚本模式 (local-scripted)
     b. distfiles 缓存中已下载的归档（最近修改优先）
     c. 远程目录按层级查找（精确名优先，其次前缀）

旧式包（非本地脚本驱动）从远程目录安装前需要确认；
实验性层级给出更强的警告，弃用层级使用带超时的默认同意提示。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from spkg.core.config import Config
from spkg.core.confirm import ConfirmPolicy
from spkg.core.exceptions import InstallAbortedError, NotFoundError
from spkg.core.models import (
    ARCHIVE_EXTENSIONS,
    InstallOptions,
    PackageMetadata,
    PackageReference,
    PackageType,
    ReferenceKind,
    ResolvedPackage,
    ResolveMode,
    split_name,
    strip_archive_ext,
)
from spkg.core.source.catalog import CatalogHit, RemoteCatalog
from spkg.core.source.fetcher import (
    Downloader,
    UrlDownloader,
    ensure_writable_dir,
    mirror_urls,
)
from spkg.core.source.metadata import MetadataStore

logger = logging.getLogger(__name__)

EXPERIMENTAL_TIER = "experimental"
DEPRECATED_TIER = "deprecated"


class PackageLocator:
    """包定位器：本地元数据优先，远程目录兜底"""

    def __init__(
        self,
        config: Config,
        metadata: MetadataStore | None = None,
        catalog: RemoteCatalog | None = None,
        downloader: Downloader | None = None,
    ) -> None:
        self.config = config
        self.metadata = metadata or MetadataStore(config.pkgs_path)
        if catalog is None:
            catalog = RemoteCatalog(
                config.mirrors, config.catalog_tiers,
                downloader or UrlDownloader(timeout=config.download_timeout),
            )
        self.catalog = catalog

    def resolve(
        self,
        reference: str | PackageReference,
        options: InstallOptions | None = None,
    ) -> ResolvedPackage:
        """解析包引用，失败抛 NotFoundError / PermissionDeniedError / InstallAbortedError"""
        options = options or InstallOptions()
        ref = reference if isinstance(reference, PackageReference) else PackageReference.parse(reference)

        if ref.kind == ReferenceKind.PATH:
            path = Path(os.path.abspath(ref.raw))
            logger.info("使用本地文件: %s", path)
            return ResolvedPackage(
                reference=ref, mode=ResolveMode.LOCAL_FILE,
                base=ref.base, version=ref.version, archive_path=path,
            )

        if ref.kind == ReferenceKind.URL:
            ensure_writable_dir(self.config.distfiles_path)
            logger.info("按地址下载: %s", ref.raw)
            return ResolvedPackage(
                reference=ref, mode=ResolveMode.URL,
                base=ref.base, version=ref.version, urls=[ref.raw],
            )

        meta = self.metadata.find(ref.base)
        if meta is not None:
            if ref.version is None or ref.version == meta.version:
                return self._local_scripted(ref, meta, options)
            logger.info(
                "本地元数据版本为 %s，请求的是 %s，不使用本地脚本",
                meta.version, ref.version,
            )

        cached = self.search_cache(ref.raw)
        if cached is not None:
            base, version = split_name(strip_archive_ext(cached.name))
            logger.info("使用已下载的归档: %s", cached)
            return ResolvedPackage(
                reference=ref, mode=ResolveMode.CACHED_ARCHIVE,
                base=base, version=version, archive_path=cached,
            )

        hit = self.catalog.lookup(ref.raw)
        if hit is not None:
            ensure_writable_dir(self.config.distfiles_path)
            if not options.info_only:
                self._confirm_legacy(hit, options)
            base, version = split_name(hit.name)
            return ResolvedPackage(
                reference=ref, mode=ResolveMode.REMOTE_CATALOG,
                base=base, version=version, urls=hit.urls, tier=hit.tier,
            )

        raise NotFoundError(
            f"找不到包 '{ref.raw}': 无本地元数据 ({self.metadata.pkgs_dir})、"
            f"无已下载归档 ({self.config.distfiles_path})、远程目录中也无匹配"
        )

    def search_cache(self, name: str) -> Path | None:
        """在 distfiles 中查找 <name><ext> 或 <name>-*<ext>，最近修改的优先"""
        distfiles = self.config.distfiles_path
        if not distfiles.is_dir():
            return None
        candidates = [
            p for p in distfiles.iterdir()
            if p.is_file() and p.name.endswith(ARCHIVE_EXTENSIONS)
            and (strip_archive_ext(p.name) == name or p.name.startswith(f"{name}-"))
        ]
        if not candidates:
            return None
        candidates.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        return candidates[0]

    # ---- 内部 ----

    def _policy(self, options: InstallOptions) -> ConfirmPolicy:
        return options.confirm or ConfirmPolicy.from_name(self.config.confirm)

    def _local_scripted(
        self, ref: PackageReference, meta: PackageMetadata, options: InstallOptions,
    ) -> ResolvedPackage:
        if meta.package_type == PackageType.EXPERIMENTAL and not options.info_only:
            ok = self._policy(options).confirm(
                f"警告: {meta.full_name} 是实验性 (experimental) 包，"
                "可能无法构建，甚至破坏现有安装。是否继续?",
                default=False,
            )
            if not ok:
                raise InstallAbortedError(f"已取消安装实验性包 {meta.full_name}")

        resolved = ResolvedPackage(
            reference=ref, mode=ResolveMode.LOCAL_SCRIPTED,
            base=meta.base, version=meta.version, metadata=meta,
        )
        if not meta.tarball:
            logger.info("%s 为纯脚本包（无上游归档）", meta.full_name)
            return resolved

        resolved.archive_path = self.config.distfiles_path / meta.tarball
        # 缓存归档校验失败时仍需按这些地址重新下载
        resolved.urls = mirror_urls(self.config.mirrors, meta.base, meta.tarball)
        if options.allow_upstream and meta.upstream_url:
            resolved.urls.append(meta.upstream_url)
        if not resolved.archive_path.exists():
            if not options.info_only:
                ensure_writable_dir(self.config.distfiles_path)
        logger.info("本地脚本模式: %s (归档 %s)", meta.full_name, meta.tarball)
        return resolved

    def _confirm_legacy(self, hit: CatalogHit, options: InstallOptions) -> None:
        policy = self._policy(options)
        if hit.tier == EXPERIMENTAL_TIER:
            ok = policy.confirm(
                f"警告: {hit.name} 是实验性 (experimental) 旧式包，没有本地元数据，"
                "很可能无法构建或破坏现有安装。确定要安装吗?",
                default=False,
            )
        elif hit.tier == DEPRECATED_TIER:
            ok = policy.confirm(
                f"注意: {hit.name} 已被弃用 (deprecated)，将来会被移除。是否继续安装?",
                default=True, timeout=self.config.prompt_timeout,
            )
        else:
            ok = policy.confirm(
                f"{hit.name} 是旧式包（没有本地元数据），"
                f"将从 {hit.tier} 目录下载安装。是否继续?",
                default=True,
            )
        if not ok:
            raise InstallAbortedError(f"已取消安装 {hit.name}")
