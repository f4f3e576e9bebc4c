"""
代码沙箱

用户代码作为一个动态构建的异步函数体运行，函数参数就是显式传入的作用域。
代码在独立子进程中以受限的内置函数表执行，执行前先做 AST 检查。
作用域与结果以 JSON 跨进程传递。
"""
from typing import Dict, Any, Optional, List, Tuple
from dataclasses import dataclass, field
import ast
import asyncio
import builtins
import json
import keyword
import logging
import multiprocessing
import os
import queue as queue_module
import textwrap
import time


logger = logging.getLogger(__name__)

ENTRY_FUNCTION = "__node_main__"

FORBIDDEN_NAMES = {
    "eval", "exec", "compile", "open", "input", "globals", "locals", "vars",
    "getattr", "setattr", "delattr", "breakpoint", "memoryview", "help",
}

# 帧与代码对象属性可以绕过受限的内置函数表
FORBIDDEN_ATTRIBUTES = {
    "cr_frame", "gi_frame", "ag_frame", "tb_frame", "f_back", "f_globals",
    "f_locals", "f_builtins", "f_code", "cr_code", "gi_code", "ag_code",
}

# 格式化字段语法（"{0.attr[key]}"）在运行时解析属性路径，AST 中看不到
FORMAT_ATTRIBUTES = {"format", "format_map"}


@dataclass
class SandboxConfig:
    """沙箱配置"""
    timeout_seconds: float = 30
    max_log_lines: int = 1000
    # 子进程启动方式；spawn 不继承父进程的任何内存状态
    start_method: str = "spawn"


@dataclass
class SecurityViolation:
    """安全违规"""
    rule: str
    description: str
    line_number: Optional[int] = None


@dataclass
class SandboxResult:
    """沙箱执行结果"""
    success: bool = False
    output: Any = None
    logs: List[str] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    timed_out: bool = False
    violations: List[SecurityViolation] = field(default_factory=list)
    execution_time: float = 0.0


class SecurityChecker:
    """执行前的静态安全检查"""

    def check(self, tree: ast.AST) -> List[SecurityViolation]:
        violations = []
        for node in ast.walk(tree):
            line = getattr(node, "lineno", None)
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                violations.append(SecurityViolation("no_import", "Imports are not allowed", line))
            elif isinstance(node, ast.Attribute) and (
                node.attr.startswith("__") or node.attr in FORBIDDEN_ATTRIBUTES
            ):
                violations.append(SecurityViolation(
                    "no_dunder", f"Access to '{node.attr}' is not allowed", line
                ))
            elif isinstance(node, ast.Attribute) and node.attr in FORMAT_ATTRIBUTES:
                violations.append(SecurityViolation(
                    "no_format", f"'{node.attr}' is not allowed, use f-strings instead", line
                ))
            elif isinstance(node, ast.Name) and node.id != ENTRY_FUNCTION and (
                node.id.startswith("__") or node.id in FORBIDDEN_NAMES
            ):
                violations.append(SecurityViolation(
                    "forbidden_name", f"Use of '{node.id}' is not allowed", line
                ))
            elif isinstance(node, (ast.Yield, ast.YieldFrom)):
                violations.append(SecurityViolation("no_yield", "Generators are not allowed", line))
            elif isinstance(node, (ast.Global, ast.Nonlocal)):
                violations.append(SecurityViolation(
                    "no_global", "global/nonlocal declarations are not allowed", line
                ))
        return violations


def is_bindable(name: str) -> bool:
    """作用域中的名称能否作为函数参数"""
    return (
        isinstance(name, str)
        and name.isidentifier()
        and not keyword.iskeyword(name)
        and not name.startswith("__")
    )


def build_source(code: str, param_names: List[str]) -> str:
    """把代码包装为以作用域名称为参数的异步函数"""
    body = textwrap.indent(code, "    ") if code.strip() else ""
    return f"async def {ENTRY_FUNCTION}({', '.join(param_names)}):\n{body}\n    pass\n"


class SandboxConsole:
    """受限的日志对象，把调用记录为有序字符串而不写入真实输出"""

    def __init__(self, logs: List[str], max_lines: int):
        self._logs = logs
        self._max_lines = max_lines

    def _push(self, prefix: str, args: Tuple[Any, ...]):
        if len(self._logs) < self._max_lines:
            self._logs.append(prefix + " ".join(stringify(arg) for arg in args))

    def log(self, *args):
        self._push("", args)

    def error(self, *args):
        self._push("ERROR: ", args)

    def warn(self, *args):
        self._push("WARN: ", args)

    def info(self, *args):
        self._push("INFO: ", args)


def stringify(value: Any) -> str:
    """对象序列化为 JSON，基本类型直接转字符串"""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str, ensure_ascii=False)
        except ValueError:
            return str(value)
    return str(value)


_SAFE_BUILTIN_NAMES = [
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter",
    "float", "format", "frozenset", "hash", "int", "isinstance", "issubclass",
    "iter", "len", "list", "map", "max", "min", "next", "pow", "range", "repr",
    "reversed", "round", "set", "slice", "sorted", "str", "sum", "tuple", "zip",
    "chr", "ord", "bin", "hex", "oct", "callable",
    "Exception", "ValueError", "TypeError", "KeyError", "IndexError",
    "ZeroDivisionError", "RuntimeError", "ArithmeticError", "LookupError",
    "NameError", "AttributeError", "StopIteration", "NotImplementedError",
]


def _safe_builtins(console: Any) -> Dict[str, Any]:
    table = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
    table["print"] = console.log
    return table


def _execute_in_sandbox(
    source: str,
    param_names: List[str],
    scope_json: str,
    max_log_lines: int,
    result_queue: multiprocessing.Queue,
) -> None:
    """
    在子进程中执行代码（内部函数）

    作用域以 JSON 传入；console 总是第一个参数，作用域中同名条目会覆盖它。
    子进程不保留父进程的环境变量（其中可能有主密钥）。
    """
    os.environ.clear()
    logs: List[str] = []
    console = SandboxConsole(logs, max_log_lines)
    scope = json.loads(scope_json)

    try:
        values = [scope[name] if name in scope else console for name in param_names]
        exec_globals = {"__builtins__": _safe_builtins(console)}
        exec(compile(source, "<node-code>", "exec"), exec_globals)
        output = asyncio.run(exec_globals[ENTRY_FUNCTION](*values))

        try:
            output_json = json.dumps(output)
        except (TypeError, ValueError) as e:
            raise TypeError(f"Return value is not JSON serializable: {e}")

        result_queue.put({"success": True, "output_json": output_json, "logs": logs})

    except BaseException as e:
        message = str(e) or type(e).__name__
        logs.append(f"ERROR: {message}")
        result_queue.put({
            "success": False,
            "logs": logs,
            "error": message,
            "error_type": type(e).__name__
        })


class CodeSandbox:
    """
    代码沙箱执行器

    使用示例：
        sandbox = CodeSandbox(SandboxConfig(timeout_seconds=5))
        result = await sandbox.run("return a + b", {"a": 2, "b": 3})
    """

    def __init__(self, config: Optional[SandboxConfig] = None):
        self.config = config or SandboxConfig()
        self._checker = SecurityChecker()

    def prepare(self, code: str, scope: Dict[str, Any]) -> Tuple[str, List[str], List[SecurityViolation]]:
        """构建函数源码并做安全检查"""
        param_names = ["console"]
        for name in scope:
            if name == "console":
                continue
            if is_bindable(name):
                param_names.append(name)
            else:
                logger.warning(f"Skipping scope entry that is not a valid parameter name: {name!r}")

        source = build_source(code, param_names)
        tree = ast.parse(source, "<node-code>")
        return source, param_names, self._checker.check(tree)

    async def run(self, code: str, scope: Optional[Dict[str, Any]] = None) -> SandboxResult:
        """
        执行代码

        Args:
            code: 作为异步函数体执行的代码
            scope: 显式传入的作用域（名称 -> JSON 可序列化的值）
        """
        scope = scope or {}
        start_time = time.perf_counter()
        result = SandboxResult()

        try:
            source, param_names, violations = self.prepare(code, scope)
        except SyntaxError as e:
            result.error = f"SyntaxError: {e.msg} at line {e.lineno}"
            result.error_type = "SyntaxError"
            result.logs.append(f"ERROR: {result.error}")
            return self._finish(result, start_time)

        if violations:
            result.violations = violations
            result.error = "Security violation: " + "; ".join(v.description for v in violations)
            result.error_type = "SecurityViolation"
            result.logs.append(f"ERROR: {result.error}")
            return self._finish(result, start_time)

        try:
            scope_json = json.dumps({name: scope[name] for name in param_names if name in scope})
        except (TypeError, ValueError) as e:
            result.error = f"Scope values must be JSON serializable: {e}"
            result.error_type = "TypeError"
            result.logs.append(f"ERROR: {result.error}")
            return self._finish(result, start_time)

        mp_context = multiprocessing.get_context(self.config.start_method)
        result_queue = mp_context.Queue()
        process = mp_context.Process(
            target=_execute_in_sandbox,
            args=(source, param_names, scope_json, self.config.max_log_lines, result_queue),
            daemon=True
        )

        process.start()
        try:
            loop = asyncio.get_running_loop()
            message = await loop.run_in_executor(None, self._wait_for_result, process, result_queue)
        finally:
            if process.is_alive():
                process.terminate()
            process.join(timeout=1)
            result_queue.close()

        if message is None:
            result.timed_out = True
            result.error = f"Code execution timed out after {self.config.timeout_seconds}s"
            result.error_type = "TimeoutError"
        elif message.get("crashed"):
            result.error = f"Sandbox process exited unexpectedly with code {process.exitcode}"
            result.error_type = "SandboxCrash"
        else:
            result.logs = message["logs"]
            result.success = message["success"]
            if result.success:
                result.output = json.loads(message["output_json"])
            else:
                result.error = message["error"]
                result.error_type = message["error_type"]

        return self._finish(result, start_time)

    async def evaluate(self, expression: str, scope: Optional[Dict[str, Any]] = None) -> SandboxResult:
        """
        求值单个表达式

        只接受一个完整的表达式（不能是语句），按 return (expression) 在沙箱中执行，
        与代码节点使用相同的检查、作用域绑定和超时。
        """
        expression = (expression or "").strip()
        try:
            ast.parse(expression, "<node-expression>", mode="eval")
        except SyntaxError as e:
            result = SandboxResult(
                error=f"SyntaxError: {e.msg} at line {e.lineno}",
                error_type="SyntaxError"
            )
            result.logs.append(f"ERROR: {result.error}")
            return self._finish(result, time.perf_counter())

        return await self.run(f"return ({expression})", scope)

    def _wait_for_result(self, process, result_queue) -> Optional[Dict[str, Any]]:
        """等待子进程结果；超时返回 None"""
        deadline = time.monotonic() + self.config.timeout_seconds
        while True:
            try:
                return result_queue.get(timeout=0.05)
            except queue_module.Empty:
                if not process.is_alive():
                    try:
                        return result_queue.get(timeout=0.2)
                    except queue_module.Empty:
                        return {"crashed": True}
                if time.monotonic() >= deadline:
                    return None

    def _finish(self, result: SandboxResult, start_time: float) -> SandboxResult:
        result.execution_time = time.perf_counter() - start_time
        if not result.success:
            logger.info(f"Sandbox execution failed ({result.error_type}): {result.error}")
        return result
