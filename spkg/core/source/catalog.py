"""远程包目录

镜像布局: <mirror>/spkg/<tier>/list 列出该层级下的归档文件名（每行一个），
归档本身位于 <mirror>/spkg/<tier>/<filename>。

查找规则: 按层级优先级先在所有层级中找精确名称，再找名称前缀。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from spkg.core.models import strip_archive_ext
from spkg.core.source.fetcher import Downloader

logger = logging.getLogger(__name__)


@dataclass
class CatalogHit:
    """目录查找命中"""

    tier: str
    filename: str
    urls: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return strip_archive_ext(self.filename)


class RemoteCatalog:
    """按层级查找旧式包归档"""

    def __init__(
        self, mirrors: list[str], tiers: list[str], downloader: Downloader,
    ) -> None:
        self.mirrors = [m.rstrip("/") for m in mirrors]
        self.tiers = list(tiers)
        self.downloader = downloader
        self._listings: dict[str, list[str]] = {}

    def listing(self, tier: str) -> list[str]:
        """获取层级的文件清单（首个可用镜像，结果缓存）"""
        if tier in self._listings:
            return self._listings[tier]
        names: list[str] = []
        for mirror in self.mirrors:
            url = f"{mirror}/spkg/{tier}/list"
            try:
                text = self.downloader.read_text(url)
            except (ConnectionError, OSError, ValueError) as e:
                logger.warning("读取目录失败: %s (%s)", url, e)
                continue
            names = [line.strip() for line in text.splitlines() if line.strip()]
            break
        self._listings[tier] = names
        return names

    def lookup(self, name: str) -> CatalogHit | None:
        """精确匹配优先，其次前缀匹配（同层级取排序最后者，即最新版本）"""
        if not self.mirrors:
            return None
        for tier in self.tiers:
            for filename in self.listing(tier):
                if strip_archive_ext(filename) == name:
                    return self._hit(tier, filename)
        prefix = f"{name}-"
        for tier in self.tiers:
            candidates = sorted(
                f for f in self.listing(tier) if strip_archive_ext(f).startswith(prefix)
            )
            if candidates:
                return self._hit(tier, candidates[-1])
        return None

    def _hit(self, tier: str, filename: str) -> CatalogHit:
        logger.info("目录命中: %s/%s", tier, filename)
        return CatalogHit(
            tier=tier, filename=filename,
            urls=[f"{m}/spkg/{tier}/{filename}" for m in self.mirrors],
        )
