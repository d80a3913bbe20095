"""
Skill 发现：SKILL.md 元数据 + tools.json 清单校验 + 目录扫描 + 扫描结果注册

Skill 目录结构：
- SKILL.md：frontmatter（name, description, timeout_ms?）+ 给 Agent 看的正文
- tools.json：工具声明数组（可选，缺失即纯指令 Skill）
- scripts/：处理器脚本（.py 进程内执行，.js/.mjs/.sh 子进程执行）
"""
