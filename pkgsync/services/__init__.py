"""服务层

- feed_client.py: 包源查询
- source_host.py: 代码托管查询 + clone/checkout
- resolver.py: 提交解析回退链
- orchestrator.py: 同步编排
"""

from pkgsync.services.feed_client import FeedClient
from pkgsync.services.orchestrator import SyncOrchestrator, SyncReport
from pkgsync.services.resolver import CommitResolver
from pkgsync.services.source_host import SourceHostClient, select_nearest_commit

__all__ = [
    "FeedClient",
    "SourceHostClient",
    "CommitResolver",
    "SyncOrchestrator",
    "SyncReport",
    "select_nearest_commit",
]
