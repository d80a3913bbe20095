"""
控制台交互测试脚本：加载 Skill 目录，手动列出和调用工具

运行方式：
    python scripts/tool_console.py [额外 Skill 根目录 ...]（在配置的根目录之后扫描）

支持命令：
    /list                  列出已注册工具
    /call <name> <json>    调用工具，参数为 JSON 对象（可省略，默认 {}）
    /skills                列出已加载 Skill
    /reload                重新扫描 Skill 目录
    /debug                 切换调用耗时/错误类型显示
    /quit                  退出
"""

import asyncio
import json
import sys
from pathlib import Path

from prompt_toolkit import PromptSession

# 确保项目根目录在 sys.path 中
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from skill_runtime.config import get_settings
from skill_runtime.runtime import SkillRuntime


def _print_tools(runtime: SkillRuntime) -> None:
    tools = runtime.list_tools()
    if not tools:
        print("\033[90m  （没有已注册的工具）\033[0m\n")
        return
    for tool in tools:
        params = ", ".join(
            f"{name}{'?' if spec.get('optional') else ''}:{spec['type']}"
            for name, spec in tool["parameters"].items()
        )
        print(f"  \033[36m{tool['name']}\033[0m({params})  \033[90m{tool['description'].splitlines()[0]}\033[0m")
    print()


def _parse_call(line: str) -> tuple[str, dict]:
    """'/call name {"a": 1}' → ("name", {"a": 1})"""
    rest = line[len("/call"):].strip()
    if not rest:
        raise ValueError("用法：/call <name> <json>")
    name, _, raw_args = rest.partition(" ")
    args = json.loads(raw_args) if raw_args.strip() else {}
    if not isinstance(args, dict):
        raise ValueError("参数必须是 JSON 对象")
    return name, args


async def main() -> None:
    """交互式主循环"""
    settings = get_settings()

    extra_roots = [Path(arg) for arg in sys.argv[1:]]
    roots = settings.skill_roots() + extra_roots

    runtime = SkillRuntime.from_settings(settings)
    report = runtime.load(roots)

    print("=" * 60)
    print("  Skill Runtime 控制台")
    print(f"  已加载 {len(report.skills)} 个 Skill，{len(runtime.list_tools())} 个工具")
    print("  命令: /list | /call <name> <json> | /skills | /reload | /debug | /quit")
    print("=" * 60)

    show_debug = True
    pt_session = PromptSession()

    while True:
        try:
            user_input = (await pt_session.prompt_async("> ")).strip()
        except (EOFError, KeyboardInterrupt):
            print("\n再见！")
            break

        if not user_input:
            continue

        if user_input == "/quit":
            print("再见！")
            break
        elif user_input == "/list":
            _print_tools(runtime)
            continue
        elif user_input == "/skills":
            for name, description in runtime.get_catalog():
                print(f"  \033[36m{name}\033[0m  \033[90m{description}\033[0m")
            print()
            continue
        elif user_input == "/reload":
            report = runtime.load(roots)
            print(
                f"\033[90m  重新加载：{len(report.skills)} 个 Skill，"
                f"失败 {len(report.failed)}，移除 {len(report.removed)}\033[0m\n"
            )
            continue
        elif user_input == "/debug":
            show_debug = not show_debug
            print(f"\033[90m  调试信息: {'开启' if show_debug else '关闭'}\033[0m\n")
            continue
        elif not user_input.startswith("/call"):
            print("\033[93m  未知命令，输入 /list 查看工具，/call 调用工具\033[0m\n")
            continue

        try:
            name, args = _parse_call(user_input)
        except (ValueError, json.JSONDecodeError) as e:
            print(f"\033[31m  {e}\033[0m\n")
            continue

        result = await runtime.dispatch(name, args)
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2, default=str))
        if show_debug:
            status = "ok" if result.ok else result.error_kind
            print(f"\033[90m  ── {status} | {result.duration_ms}ms ──\033[0m")
        print()


if __name__ == "__main__":
    asyncio.run(main())
