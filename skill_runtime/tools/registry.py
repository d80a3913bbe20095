"""
工具注册中心：进程级唯一的 工具名 → 可调用工具 映射

覆盖策略：后注册者胜（last write wins），与 origin 无关：
- 运行时定义的工具可以遮蔽扫描发现的工具，反之亦然，只看注册先后
- 覆盖是整条替换，旧条目的执行能力直接丢弃，不做字段合并

并发：register / lookup / remove / list 在同一把锁下原子执行，
lookup 只会看到完整的旧条目或完整的新条目。

生命周期：启动时为空，只能通过上述操作修改，进程退出时清空。
"""

from __future__ import annotations

import atexit
import itertools
import threading
from functools import lru_cache

import structlog

from skill_runtime.errors import ProtectedToolError
from skill_runtime.tools.base import RegistryEntry, ResolvedTool, ToolListing, ToolOrigin

log = structlog.get_logger()


class ToolRegistry:
    """工具注册中心"""

    def __init__(self) -> None:
        self._entries: dict[str, RegistryEntry] = {}
        self._protected: set[str] = set()
        self._sequence = itertools.count(1)
        self._lock = threading.RLock()

    def register(
        self,
        tool: ResolvedTool,
        source_skill_name: str,
        origin: ToolOrigin = ToolOrigin.DISCOVERED,
    ) -> RegistryEntry:
        """注册工具；同名条目被整体替换"""
        with self._lock:
            entry = RegistryEntry(
                tool=tool,
                source_skill_name=source_skill_name,
                sequence=next(self._sequence),
                origin=ToolOrigin(origin),
            )
            previous = self._entries.get(tool.name)
            self._entries[tool.name] = entry

        if previous is not None:
            log.info(
                "工具同名覆盖",
                tool=tool.name,
                previous_skill=previous.source_skill_name,
                previous_origin=previous.origin.value,
                skill=source_skill_name,
                origin=entry.origin.value,
            )
        log.debug(
            "工具已注册",
            tool=tool.name,
            skill=source_skill_name,
            origin=entry.origin.value,
            stub=tool.is_stub,
            sequence=entry.sequence,
        )
        return entry

    def lookup(self, name: str) -> ResolvedTool | None:
        with self._lock:
            entry = self._entries.get(name)
        return entry.tool if entry is not None else None

    def get_entry(self, name: str) -> RegistryEntry | None:
        with self._lock:
            return self._entries.get(name)

    def remove(self, name: str) -> bool:
        """
        移除工具。

        Returns:
            True 表示已移除，False 表示不存在
        Raises:
            ProtectedToolError: 受保护工具不可移除
        """
        with self._lock:
            if name in self._protected:
                raise ProtectedToolError(name)
            entry = self._entries.pop(name, None)
        if entry is None:
            return False
        log.info("工具已移除", tool=name, skill=entry.source_skill_name)
        return True

    def protect(self, name: str) -> None:
        """把工具名加入受保护集合（remove 时抛 ProtectedToolError）"""
        with self._lock:
            self._protected.add(name)

    def is_protected(self, name: str) -> bool:
        with self._lock:
            return name in self._protected

    def list(self) -> list[ToolListing]:
        """
        列出全部工具（name, description, parameters）。

        顺序对调用方无语义，但在注册历史相同时保持稳定。
        """
        with self._lock:
            entries = list(self._entries.values())
        return [
            ToolListing(
                name=entry.name,
                description=entry.tool.description,
                parameters=entry.tool.declaration.parameters_payload(),
            )
            for entry in entries
        ]

    def entries(self) -> list[RegistryEntry]:
        with self._lock:
            return list(self._entries.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())

    def clear(self) -> None:
        """清空全部条目（包括受保护集合），用于进程退出"""
        with self._lock:
            self._entries.clear()
            self._protected.clear()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@lru_cache
def get_tool_registry() -> ToolRegistry:
    """单例获取进程级注册中心；进程退出时清空"""
    registry = ToolRegistry()
    atexit.register(registry.clear)
    return registry
