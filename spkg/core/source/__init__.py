"""包来源模块

拆分说明:
- metadata.py: 本地元数据目录加载
- catalog.py: 远程层级目录查找
- locator.py: 包引用解析
- fetcher.py: 归档下载与校验
- extractor.py: 解压与补丁
"""

from spkg.core.source.catalog import CatalogHit, RemoteCatalog
from spkg.core.source.extractor import Extractor
from spkg.core.source.fetcher import ArchiveFetcher, Downloader, UrlDownloader
from spkg.core.source.locator import PackageLocator
from spkg.core.source.metadata import MetadataStore

__all__ = [
    "ArchiveFetcher",
    "CatalogHit",
    "Downloader",
    "Extractor",
    "MetadataStore",
    "PackageLocator",
    "RemoteCatalog",
    "UrlDownloader",
]
