"""Tests for calculation, table, chart and media widgets."""

import math

import pytest

from lumen.tools import registry
from lumen.tools.widget_tools import coerce_dataset, derive_axes, safe_eval

# -- safe_eval ---------------------------------------------------------------


class TestSafeEval:
    def test_arithmetic(self):
        assert safe_eval("2 + 3 * 4") == 14
        assert safe_eval("(2 + 3) * 4") == 20
        assert safe_eval("-5 + 2") == -3

    def test_caret_is_power(self):
        assert safe_eval("2^10") == 1024

    def test_functions_and_constants(self):
        assert safe_eval("sqrt(25) + 10") == 15
        assert safe_eval("round(pi, 2)") == 3.14
        assert safe_eval("log(e)") == pytest.approx(1.0)
        assert safe_eval("max(1, 7, 3)") == 7

    def test_rejects_unknown_names(self):
        with pytest.raises(ValueError, match="not allowed"):
            safe_eval("__import__('os')")

    def test_rejects_attribute_access(self):
        with pytest.raises(ValueError):
            safe_eval("(1).__class__")

    def test_rejects_strings(self):
        with pytest.raises(ValueError):
            safe_eval("'a' * 10")

    def test_rejects_huge_exponent(self):
        with pytest.raises(ValueError, match="Exponent too large"):
            safe_eval("9 ** 99999")

    def test_syntax_error(self):
        with pytest.raises(ValueError, match="Invalid expression"):
            safe_eval("2 +")

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            safe_eval("1 / 0")


async def test_calculate_publishes_widget(ctx, events):
    result = await registry.execute("calculate", {"expression": "sqrt(16) * 2"}, ctx)

    assert result.data == {"expression": "sqrt(16) * 2", "result": 8}
    block = events.of_type("block")[0]["block"]
    assert block["type"] == "widget"
    assert block["data"] == {
        "widgetType": "calculation_result",
        "params": {"expression": "sqrt(16) * 2", "result": 8},
    }


async def test_calculate_error_publishes_nothing(ctx, events):
    result = await registry.execute("calculate", {"expression": "open('x')"}, ctx)
    assert not result.success
    assert events.events == []


async def test_calculate_keeps_fractions(ctx):
    result = await registry.execute("calculate", {"expression": "1 / 4"}, ctx)
    assert math.isclose(result.data["result"], 0.25)


# -- Tables ------------------------------------------------------------------


async def test_generate_table(ctx, events):
    args = {"title": "Prices", "headers": ["Item", "Cost"], "rows": [["Tea", 2.5], ["Cake", 4]]}
    result = await registry.execute("generate_table", args, ctx)

    assert result.data["rows"] == 2
    params = events.of_type("block")[0]["block"]["data"]["params"]
    assert params["headers"] == ["Item", "Cost"]
    assert params["rows"][1] == ["Cake", 4]
    assert params["footer"] is None


# -- Charts ------------------------------------------------------------------


class TestCoerceDataset:
    def test_list_passthrough(self):
        rows = [{"year": "2023", "sales": 10}]
        assert coerce_dataset(rows) == rows

    def test_repairs_malformed_json(self):
        raw = "[{year: '2023', sales: 10}, {year: '2024', sales: 12},]"
        assert coerce_dataset(raw) == [
            {"year": "2023", "sales": 10},
            {"year": "2024", "sales": 12},
        ]

    def test_unwraps_data_key(self):
        assert coerce_dataset({"data": [{"a": 1}]}) == [{"a": 1}]

    def test_garbage_becomes_empty(self):
        assert coerce_dataset(42) == []
        assert coerce_dataset([1, 2, 3]) == []


class TestDeriveAxes:
    def test_picks_first_string_key_for_x(self):
        rows = [{"sales": 10, "month": "Jan", "cost": 4}, {"sales": 12, "month": "Feb", "cost": 5}]
        assert derive_axes(rows, None, None) == ("month", ["sales", "cost"])

    def test_numeric_strings_count_as_numbers(self):
        rows = [{"year": "2023", "label": "a", "value": "1.5"}]
        x_key, y_keys = derive_axes(rows, None, None)
        assert x_key == "label"
        assert y_keys == ["year", "value"]

    def test_explicit_keys_kept(self):
        rows = [{"a": "x", "b": 1}]
        assert derive_axes(rows, "a", ["b"]) == ("a", ["b"])

    def test_empty_rows(self):
        assert derive_axes([], None, None) == (None, [])


async def test_generate_chart_from_malformed_string(ctx, events):
    raw = "[{month: 'Jan', revenue: '100'}, {month: 'Feb', revenue: 150}]"
    result = await registry.execute("generate_chart", {"data": raw, "type": "bar"}, ctx)

    assert result.success
    assert result.data["points"] == 2
    params = events.of_type("block")[0]["block"]["data"]["params"]
    assert params["type"] == "bar"
    assert params["xAxisKey"] == "month"
    assert params["yAxisKeys"] == ["revenue"]
    assert params["data"][0]["revenue"] == 100.0
    assert "colors" not in params


async def test_generate_chart_unrecoverable_data_renders_empty(ctx, events):
    result = await registry.execute("generate_chart", {"data": 12345}, ctx)

    assert result.success
    params = events.of_type("block")[0]["block"]["data"]["params"]
    assert params["data"] == []
    assert params["yAxisKeys"] == []


# -- Media -------------------------------------------------------------------


async def test_search_media_emits_event(ctx, events):
    result = await registry.execute("search_media", {"query": "aurora", "type": "videos"}, ctx)

    assert result.success
    assert events.events == [{"type": "mediaSearch", "query": "aurora", "mediaType": "videos"}]


async def test_search_media_rejects_unknown_type(ctx):
    result = await registry.execute("search_media", {"query": "aurora", "type": "gifs"}, ctx)
    assert not result.success
