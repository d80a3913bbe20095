"""统计文本中以空白分隔的单词数量"""


def handler(args: dict) -> dict:
    # args["__workDir"] 由运行时注入，这里用不到
    return {"count": len(args["text"].split())}
