"""
执行策略：按脚本扩展名选择处理器的调用方式

每个策略对象只暴露一个能力：async invoke(args) -> JSON 值。

两种形态：
1. 进程内（InProcessStrategy，.py）
   - importlib 加载一次（按 路径+mtime 缓存），之后每次直接调用模块的 handler(args)
   - 参数和返回值都是内存对象，不经过序列化
   - 同步 handler 放到线程池执行，async handler 直接 await

2. 子进程（SubprocessStrategy，.js / .mjs / .sh）
   - 每次调用启动新进程，参数序列化为 JSON
   - 投递方式：stdin（bash）或单个命令行参数（node）
   - 等待进程退出并完整读取 stdout/stderr 后再判定结果：
     非零退出码 → HandlerExecutionError（附 stderr）
     stdout 为空或非 JSON → HandlerOutputError
   - 超时或调用被取消时终止子进程

新增语言 = 在 StrategyTable 中注册一个 扩展名 → 工厂 条目，Dispatcher 无需改动。
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import json
import threading
import types
import uuid
from pathlib import Path
from typing import Any, Callable, Literal, Protocol

import structlog

from skill_runtime.config import Settings
from skill_runtime.errors import (
    HandlerExecutionError,
    HandlerLoadError,
    HandlerOutputError,
    HandlerTimeout,
    SkillRuntimeError,
    UnsupportedHandlerLanguage,
)

log = structlog.get_logger()

# Dispatcher 注入到参数对象中的工作目录字段
WORK_DIR_KEY = "__workDir"

# node 端适配层：动态 import 脚本，调用默认导出（或具名 handler），结果写 stdout
NODE_SHIM = """
import { pathToFileURL } from "node:url";
const [scriptPath, raw] = process.argv.slice(1);
const mod = await import(pathToFileURL(scriptPath).href);
const handler = typeof mod.default === "function" ? mod.default : mod.handler;
if (typeof handler !== "function") {
  process.stderr.write(`no handler exported from ${scriptPath}\\n`);
  process.exit(2);
}
const result = await handler(JSON.parse(raw));
process.stdout.write(JSON.stringify(result === undefined ? null : result));
"""

_PREVIEW_CHARS = 200


class ExecutionStrategy(Protocol):
    """执行策略协议"""

    language: str

    async def invoke(self, args: dict[str, Any]) -> Any:
        ...


# 工厂：(脚本绝对路径, 超时毫秒) → 策略实例
StrategyFactory = Callable[[Path, int], ExecutionStrategy]


# ── 进程内策略 ──

class InProcessStrategy:
    """直接调用已加载的 handler 可调用对象"""

    language = "python"

    def __init__(self, handler: Callable[..., Any], timeout_ms: int, label: str) -> None:
        self._handler = handler
        self._timeout_ms = timeout_ms
        self._label = label

    @classmethod
    def from_source(cls, code: str, name: str, timeout_ms: int) -> "InProcessStrategy":
        """从源码编译 handler（非持久化 define_tool 使用，不落盘）"""
        filename = f"<define_tool:{name}>"
        module = types.ModuleType(f"skill_runtime_dynamic_{name}")
        module.__file__ = filename
        try:
            exec(compile(code, filename, "exec"), module.__dict__)
        except Exception as e:
            raise HandlerLoadError(f"编译失败 {filename}：{type(e).__name__}: {e}") from e
        return cls(_extract_handler(module, filename), timeout_ms, filename)

    async def invoke(self, args: dict[str, Any]) -> Any:
        try:
            if inspect.iscoroutinefunction(self._handler):
                call = self._handler(args)
            else:
                # 同步 handler 在线程中执行；超时后线程无法强制终止，只能放弃等待
                call = asyncio.to_thread(self._handler, args)
            return await asyncio.wait_for(call, timeout=self._timeout_ms / 1000)
        except asyncio.TimeoutError:
            log.warning("进程内处理器执行超时", handler=self._label, timeout_ms=self._timeout_ms)
            raise HandlerTimeout(self._timeout_ms) from None
        except SkillRuntimeError:
            raise
        except Exception as e:
            raise HandlerExecutionError(f"{type(e).__name__}: {e}") from e


def _extract_handler(module: types.ModuleType, label: str) -> Callable[..., Any]:
    handler = getattr(module, "handler", None)
    if handler is None or not callable(handler):
        raise HandlerLoadError(f"{label} 未定义可调用的 handler(args)")
    return handler


class PythonModuleLoader:
    """
    .py 处理器加载器，作为 StrategyFactory 注册到 StrategyTable。

    同一路径在文件未修改前只加载一次；加载失败在解析阶段即抛出 HandlerLoadError。
    """

    def __init__(self) -> None:
        self._cache: dict[tuple[Path, int], Callable[..., Any]] = {}
        self._lock = threading.Lock()

    def __call__(self, script_path: Path, timeout_ms: int) -> InProcessStrategy:
        return InProcessStrategy(self.load_handler(script_path), timeout_ms, str(script_path))

    def load_handler(self, script_path: Path) -> Callable[..., Any]:
        try:
            mtime_ns = script_path.stat().st_mtime_ns
        except OSError as e:
            raise HandlerLoadError(f"处理器文件不可访问：{script_path}（{e}）") from e

        key = (script_path, mtime_ns)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        module_name = f"skill_runtime_handlers.{script_path.stem}_{uuid.uuid4().hex[:8]}"
        spec = importlib.util.spec_from_file_location(module_name, script_path)
        if spec is None or spec.loader is None:
            raise HandlerLoadError(f"无法为 {script_path} 创建模块 spec")

        module = importlib.util.module_from_spec(spec)
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            raise HandlerLoadError(f"加载 {script_path} 失败：{type(e).__name__}: {e}") from e

        handler = _extract_handler(module, str(script_path))
        with self._lock:
            # 旧版本（mtime 不同）的缓存一并清掉
            for stale in [k for k in self._cache if k[0] == script_path]:
                del self._cache[stale]
            self._cache[key] = handler
        log.debug("进程内处理器已加载", script=str(script_path))
        return handler


# ── 子进程策略 ──

class SubprocessStrategy:
    """每次调用启动新进程，JSON 经 stdin 或 argv 传入，stdout 输出 JSON"""

    def __init__(
        self,
        language: str,
        command: list[str],
        timeout_ms: int,
        delivery: Literal["stdin", "argv"] = "stdin",
    ) -> None:
        self.language = language
        self._command = command
        self._timeout_ms = timeout_ms
        self._delivery = delivery

    async def invoke(self, args: dict[str, Any]) -> Any:
        payload = json.dumps(args, ensure_ascii=False)
        argv = list(self._command)
        stdin_bytes: bytes | None = None
        if self._delivery == "argv":
            argv.append(payload)
        else:
            stdin_bytes = payload.encode()

        work_dir = args.get(WORK_DIR_KEY)
        cwd = work_dir if isinstance(work_dir, str) and Path(work_dir).is_dir() else None

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if stdin_bytes is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            raise HandlerExecutionError(f"无法启动 {argv[0]}：{e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(input=stdin_bytes),
                timeout=self._timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            _kill(proc)
            await proc.wait()
            log.warning("子进程处理器执行超时，已终止", command=argv[0], timeout_ms=self._timeout_ms)
            raise HandlerTimeout(self._timeout_ms) from None
        except asyncio.CancelledError:
            # 调用被取消：终止并回收子进程后继续向上传播
            _kill(proc)
            await asyncio.shield(proc.wait())
            log.warning("子进程处理器调用被取消，已终止", command=argv[0], pid=proc.pid)
            raise

        err_text = stderr.decode(errors="replace").strip()
        if proc.returncode != 0:
            log.error(
                "子进程处理器执行失败",
                command=argv[0],
                returncode=proc.returncode,
                stderr=err_text[:_PREVIEW_CHARS],
            )
            raise HandlerExecutionError(
                f"退出码 {proc.returncode}：{err_text or '（无 stderr 输出）'}",
                stderr=err_text,
                returncode=proc.returncode,
            )

        output = stdout.decode(errors="replace").strip()
        if not output:
            raise HandlerOutputError("处理器 stdout 为空，期望一个 JSON 值")
        try:
            return json.loads(output)
        except json.JSONDecodeError:
            log.error(
                "处理器输出非 JSON，请检查脚本实现",
                command=argv[0],
                output_preview=output[:_PREVIEW_CHARS],
                tip="脚本通过 stdout 输出 JSON，调试日志走 stderr",
            )
            raise HandlerOutputError(
                f"处理器输出不是 JSON，预览：{output[:100]!r}"
            ) from None


def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


# ── 策略表 ──

class StrategyTable:
    """扩展名 → 策略工厂"""

    def __init__(self) -> None:
        self._factories: dict[str, StrategyFactory] = {}

    def register(self, extension: str, factory: StrategyFactory) -> None:
        ext = extension.lower()
        if not ext.startswith("."):
            ext = f".{ext}"
        self._factories[ext] = factory

    def supports(self, extension: str) -> bool:
        return extension.lower() in self._factories

    @property
    def extensions(self) -> list[str]:
        return sorted(self._factories)

    def factory_for(self, script_path: Path) -> StrategyFactory:
        factory = self._factories.get(script_path.suffix.lower())
        if factory is None:
            raise UnsupportedHandlerLanguage(
                f"不支持的处理器类型 '{script_path.suffix or '（无扩展名）'}'，"
                f"支持：{', '.join(self.extensions)}"
            )
        return factory

    def create(self, script_path: Path, timeout_ms: int) -> ExecutionStrategy:
        return self.factory_for(script_path)(script_path, timeout_ms)


def default_strategy_table(settings: Settings) -> StrategyTable:
    """内置策略：.py 进程内；.js/.mjs 走 node（argv 投递）；.sh 走 bash（stdin 投递）"""
    table = StrategyTable()
    table.register(".py", PythonModuleLoader())

    def _node(script_path: Path, timeout_ms: int) -> SubprocessStrategy:
        return SubprocessStrategy(
            "javascript",
            [settings.NODE_BIN, "--input-type=module", "-e", NODE_SHIM, str(script_path)],
            timeout_ms,
            delivery="argv",
        )

    def _bash(script_path: Path, timeout_ms: int) -> SubprocessStrategy:
        return SubprocessStrategy("shell", [settings.BASH_BIN, str(script_path)], timeout_ms)

    table.register(".js", _node)
    table.register(".mjs", _node)
    table.register(".sh", _bash)
    return table
