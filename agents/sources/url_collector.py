"""
论文链接收集器

每次检索成功后，把论文的 (id, 标题, URL, 来源) 追加到这里，供 UI 侧边栏展示。
Agent 只能看到精简后的论文字段，看不到这里的完整链接。
"""

import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List


@dataclass
class CollectedUrlEntry:
    id: str
    title: str
    url: str
    source: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class UrlCollector:
    """按发现顺序追加的链接列表，只能通过 clear() 清空"""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: List[CollectedUrlEntry] = []

    def add(self, id: str, title: str, url: str, source: str) -> CollectedUrlEntry:
        entry = CollectedUrlEntry(id=id, title=title, url=url, source=source)
        with self._lock:
            self._entries.append(entry)
        return entry

    def extend(self, entries: Iterable[CollectedUrlEntry]):
        with self._lock:
            self._entries.extend(entries)

    def entries(self) -> List[CollectedUrlEntry]:
        """返回当前所有条目的副本"""
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
