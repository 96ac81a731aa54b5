"""Tests for tool definitions and the tool executor."""

import json
from typing import Dict, List, Optional

import pytest
from pydantic import BaseModel, Field

from convo_hub.exceptions import ToolError
from convo_hub.tools import ToolExecutor, function_to_tool, tool_from_model
from convo_hub.types import Tool, ToolUseContent


class WeatherInput(BaseModel):
    city: str = Field(description="City name")
    unit: str = "celsius"


def get_weather(city: str, days: int = 1, hourly: Optional[bool] = None) -> str:
    """Get the weather forecast for a city."""
    return f"Sunny in {city} for {days} day(s)"


class TestToolDefinitions:
    """Tests for building tool definitions."""

    def test_function_to_tool(self):
        """Test schema derivation from a signature."""
        tool = function_to_tool(get_weather)
        assert tool.name == "get_weather"
        assert tool.description == "Get the weather forecast for a city."
        assert tool.input_schema == {
            "type": "object",
            "properties": {
                "city": {"type": "string"},
                "days": {"type": "integer"},
                "hourly": {"type": "boolean"},
            },
            "required": ["city"],
        }

    def test_function_to_tool_overrides(self):
        """Test explicit name, description and parameter descriptions."""
        tool = function_to_tool(
            get_weather, name="weather", description="Forecast", parameter_descriptions={"city": "Where"}
        )
        assert tool.name == "weather"
        assert tool.description == "Forecast"
        assert tool.input_schema["properties"]["city"] == {"type": "string", "description": "Where"}

    def test_container_types(self):
        """Test list and dict annotations."""

        def tag(ids: List[int], labels: Dict[str, str]) -> None:
            pass

        properties = function_to_tool(tag).input_schema["properties"]
        assert properties["ids"] == {"type": "array", "items": {"type": "integer"}}
        assert properties["labels"] == {"type": "object", "additionalProperties": {"type": "string"}}

    def test_tool_from_model(self):
        """Test schema derivation from a pydantic model."""
        tool = tool_from_model("weather", "Get weather", WeatherInput)
        assert tool.input_schema["type"] == "object"
        assert tool.input_schema["required"] == ["city"]
        assert tool.input_schema["properties"]["city"]["description"] == "City name"

    def test_default_schema(self):
        """Test that a tool without parameters has an empty object schema."""
        assert Tool(name="now").input_schema == {"type": "object", "properties": {}}


class TestToolExecutor:
    """Tests for ToolExecutor."""

    @pytest.fixture
    def executor(self):
        executor = ToolExecutor()

        @executor.tool()
        def add(a: int, b: int) -> int:
            """Add two integers."""
            return a + b

        @executor.tool(description="Echo text back")
        def echo(text: str) -> str:
            return text

        @executor.tool()
        def explode() -> str:
            raise RuntimeError("kaboom")

        return executor

    def test_tools_in_registration_order(self, executor):
        """Test the registered tool list."""
        assert [tool.name for tool in executor.tools] == ["add", "echo", "explode"]
        assert "echo" in executor

    def test_string_result(self, executor):
        """Test that string output is returned as-is."""
        result = executor.execute(ToolUseContent(id="t1", name="echo", input={"text": "hi"}))
        assert result.tool_use_id == "t1"
        assert result.content == "hi"
        assert result.is_error is False

    def test_structured_result_is_json(self, executor):
        """Test that non-string output is JSON encoded."""
        result = executor.execute(ToolUseContent(id="t2", name="add", input={"a": 2, "b": 2}))
        assert json.loads(result.content) == 4

    def test_unknown_tool(self, executor):
        """Test that an unknown name yields an error result with the same id."""
        result = executor.execute(ToolUseContent(id="t3", name="teleport", input={}))
        assert result.tool_use_id == "t3"
        assert result.is_error is True
        assert result.content == "Unknown tool: teleport"

    def test_invalid_input(self, executor):
        """Test that input violating the schema is reported, not executed."""
        result = executor.execute(ToolUseContent(id="t4", name="add", input={"a": "two", "b": 2}))
        assert result.is_error is True
        assert result.content.startswith("Invalid input")

    def test_missing_required_input(self, executor):
        """Test that a missing required argument is reported."""
        result = executor.execute(ToolUseContent(id="t5", name="echo", input={}))
        assert result.is_error is True
        assert "'text' is a required property" in result.content

    def test_handler_exception(self, executor):
        """Test that a failing handler becomes an error result."""
        result = executor.execute(ToolUseContent(id="t6", name="explode", input={}))
        assert result.is_error is True
        assert result.content == "RuntimeError: kaboom"

    def test_execute_all_keeps_order(self, executor):
        """Test one result per call, in order."""
        uses = [
            ToolUseContent(id="a", name="echo", input={"text": "x"}),
            ToolUseContent(id="b", name="nope", input={}),
            ToolUseContent(id="c", name="add", input={"a": 1, "b": 1}),
        ]
        results = executor.execute_all(uses)
        assert [r.tool_use_id for r in results] == ["a", "b", "c"]
        assert [r.is_error for r in results] == [False, True, False]

    def test_register_model_tool(self):
        """Test registering a handler with a model-derived schema."""
        executor = ToolExecutor()
        executor.register(tool_from_model("weather", "Get weather", WeatherInput), lambda city, unit="celsius": city)
        result = executor.execute(ToolUseContent(id="w", name="weather", input={"city": "Oslo"}))
        assert result.content == "Oslo"

    def test_duplicate_registration(self, executor):
        """Test that a name can only be registered once."""
        with pytest.raises(ToolError):
            executor.register(Tool(name="echo"), lambda: "")

    def test_validation_can_be_disabled(self):
        """Test skipping schema validation."""
        executor = ToolExecutor(validate_input=False)
        executor.register(Tool(name="raw", input_schema={"type": "object", "required": ["x"]}), lambda **kw: kw)
        result = executor.execute(ToolUseContent(id="r", name="raw", input={}))
        assert result.is_error is False
        assert result.content == "{}"
