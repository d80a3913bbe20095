"""
调用上下文：通过 contextvars 在协程（以及 to_thread 线程）间自动传播 call_id
"""

import contextvars
import uuid
from contextlib import contextmanager
from typing import Iterator

import structlog

call_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("call_id", default="")


def new_call_id() -> str:
    """生成新的 call_id（短格式，便于日志阅读）"""
    return uuid.uuid4().hex[:12]


def get_call_id() -> str:
    return call_id_var.get()


@contextmanager
def dispatch_context(tool: str) -> Iterator[str]:
    """
    为一次工具调用绑定上下文。

    退出时恢复 call_id，并解绑 structlog 上的 call_id / tool 字段。
    """
    call_id = new_call_id()
    token = call_id_var.set(call_id)
    structlog.contextvars.bind_contextvars(call_id=call_id, tool=tool)
    try:
        yield call_id
    finally:
        structlog.contextvars.unbind_contextvars("call_id", "tool")
        call_id_var.reset(token)
