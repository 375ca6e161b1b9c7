"""Widget tools: calculations, tables, charts and media search.

Each widget tool publishes its block on the session as soon as it runs,
so the artifact appears ahead of the synthesized answer.
"""

from __future__ import annotations

import ast
import logging
import math
import operator
from typing import TYPE_CHECKING, Any, Literal

import json_repair
from pydantic import Field

from lumen.session.blocks import widget_block
from lumen.tools.base import ToolParams, ToolResult
from lumen.tools.registry import registry

if TYPE_CHECKING:
    from lumen.tools.context import ToolContext

logger = logging.getLogger(__name__)

MAX_EXPONENT = 1000


def publish_widget(ctx: ToolContext | None, widget_type: str, params: dict[str, Any]) -> None:
    """Emit a widget block if the tool runs inside a turn."""
    if ctx is not None:
        ctx.session.emit_block(widget_block(widget_type, params))


# -- Safe arithmetic ---------------------------------------------------------

SAFE_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.FloorDiv: operator.floordiv,
}
SAFE_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
SAFE_NAMES: dict[str, Any] = {
    "pi": math.pi,
    "e": math.e,
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "pow": pow,
    **{
        name: getattr(math, name)
        for name in ("sqrt", "log", "log10", "log2", "sin", "cos", "tan", "exp", "ceil", "floor")
    },
}


def safe_eval(expression: str) -> float | int:
    """Evaluate an arithmetic expression without exec or attribute access.

    ``^`` is accepted as exponentiation.

    Raises:
        ValueError: The expression uses anything outside the whitelist.
        ZeroDivisionError, OverflowError: Arithmetic failures.
    """
    try:
        tree = ast.parse(expression.replace("^", "**"), mode="eval")
    except SyntaxError as exc:
        msg = f"Invalid expression: {expression}"
        raise ValueError(msg) from exc

    def _eval(node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        if isinstance(node, ast.BinOp) and type(node.op) in SAFE_BIN_OPS:
            left, right = _eval(node.left), _eval(node.right)
            if isinstance(node.op, ast.Pow) and abs(right) > MAX_EXPONENT:
                msg = "Exponent too large"
                raise ValueError(msg)
            return SAFE_BIN_OPS[type(node.op)](left, right)
        if isinstance(node, ast.UnaryOp) and type(node.op) in SAFE_UNARY_OPS:
            return SAFE_UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
            func = SAFE_NAMES.get(node.func.id)
            if not callable(func):
                msg = f"Function not allowed: {node.func.id}"
                raise ValueError(msg)
            return func(*[_eval(arg) for arg in node.args])
        if isinstance(node, ast.Name):
            value = SAFE_NAMES.get(node.id)
            if value is None or callable(value):
                msg = f"Name not allowed: {node.id}"
                raise ValueError(msg)
            return value
        msg = "Disallowed expression"
        raise ValueError(msg)

    return _eval(tree)


class CalculateParams(ToolParams):
    expression: str = Field(description='The math expression to solve (e.g. "sqrt(25) + 10")')


@registry.tool(
    name="calculate",
    description="Evaluate a mathematical expression.",
    category="utility",
    params_model=CalculateParams,
)
async def calculate(expression: str, ctx: ToolContext | None = None) -> ToolResult:
    try:
        result = safe_eval(expression)
    except (ValueError, TypeError, ZeroDivisionError, OverflowError) as exc:
        return ToolResult(error=f"Could not evaluate '{expression}': {exc}")
    if isinstance(result, float) and result.is_integer() and abs(result) < 1e15:
        result = int(result)
    publish_widget(ctx, "calculation_result", {"expression": expression, "result": result})
    return ToolResult(data={"expression": expression, "result": result})


# -- Tables ------------------------------------------------------------------


class TableParams(ToolParams):
    title: str | None = Field(default=None, description="Table title")
    headers: list[str] = Field(description="Column headers")
    rows: list[list[str | int | float | bool | None]] = Field(description="Table rows")
    footer: str | None = Field(default=None, description="Optional footnote")


@registry.tool(
    name="generate_table",
    description="Create a structured data table to display information clearly.",
    category="utility",
    params_model=TableParams,
)
async def generate_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str | None = None,
    footer: str | None = None,
    ctx: ToolContext | None = None,
) -> ToolResult:
    params = {"title": title, "headers": headers, "rows": rows, "footer": footer}
    publish_widget(ctx, "table", params)
    return ToolResult(data={"status": "Table generated", "rows": len(rows)})


# -- Charts ------------------------------------------------------------------


class ChartParams(ToolParams):
    type: Literal["line", "bar", "area"] = Field(default="line", description="Chart type")
    title: str | None = Field(default=None, description="Chart title")
    data: Any = Field(
        description="Data points as a list of objects, e.g. [{\"year\": \"2023\", \"sales\": 10}]"
    )
    xAxisKey: str | None = Field(default=None, description="Key used for the x axis")  # noqa: N815
    yAxisKeys: list[str] | None = Field(default=None, description="Keys plotted on the y axis")  # noqa: N815
    colors: list[str] | None = Field(default=None, description="Optional series colors")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def coerce_dataset(data: Any) -> list[dict[str, Any]]:
    """Turn whatever the model sent into a list of row dicts.

    Strings are repaired (unquoted keys, single quotes, trailing commas)
    before parsing. Anything unrecoverable becomes an empty dataset.
    """
    if isinstance(data, str):
        try:
            data = json_repair.loads(data)
        except (ValueError, TypeError, RecursionError):
            logger.warning("Unrecoverable chart data: %.80s", data)
            return []
    if isinstance(data, dict):
        data = data.get("data", [data])
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


def derive_axes(
    rows: list[dict[str, Any]],
    x_key: str | None,
    y_keys: list[str] | None,
) -> tuple[str | None, list[str]]:
    """Fill in missing axis keys from the first row.

    The x axis is the first non-numeric key; y axes are keys numeric in
    every row.
    """
    if not rows:
        return x_key, list(y_keys or [])
    first = rows[0]
    if not x_key:
        x_key = next((k for k, v in first.items() if isinstance(v, str) and not _is_number(v)), None)
        if x_key is None:
            x_key = next(iter(first), None)
    if not y_keys:
        y_keys = [
            k for k in first
            if k != x_key and all(_is_number(row.get(k)) for row in rows)
        ]
    return x_key, list(y_keys)


@registry.tool(
    name="generate_chart",
    description="Create a line, bar, or area chart to visualize numerical data.",
    category="utility",
    params_model=ChartParams,
)
async def generate_chart(
    data: Any,
    type: str = "line",  # noqa: A002
    title: str | None = None,
    xAxisKey: str | None = None,  # noqa: N803
    yAxisKeys: list[str] | None = None,  # noqa: N803
    colors: list[str] | None = None,
    ctx: ToolContext | None = None,
) -> ToolResult:
    rows = coerce_dataset(data)
    x_key, y_keys = derive_axes(rows, xAxisKey, yAxisKeys)
    for row in rows:
        for key in y_keys:
            if isinstance(row.get(key), str) and _is_number(row[key]):
                row[key] = float(row[key])

    params: dict[str, Any] = {
        "type": type,
        "title": title,
        "data": rows,
        "xAxisKey": x_key,
        "yAxisKeys": y_keys,
    }
    if colors:
        params["colors"] = colors
    publish_widget(ctx, "chart", params)
    return ToolResult(data={"status": "Chart generated", "points": len(rows)})


# -- Media -------------------------------------------------------------------


class SearchMediaParams(ToolParams):
    query: str = Field(description="What to find images or videos of")
    type: Literal["images", "videos"] = Field(default="images", description="Media type")


@registry.tool(
    name="search_media",
    description="Search for high-quality images or videos related to a topic.",
    category="utility",
    params_model=SearchMediaParams,
)
async def search_media(
    query: str,
    type: str = "images",  # noqa: A002
    ctx: ToolContext | None = None,
) -> ToolResult:
    if ctx is not None:
        ctx.session.emit("mediaSearch", {"query": query, "mediaType": type})
    return ToolResult(data={"status": f"Started {type} search for {query}"})
