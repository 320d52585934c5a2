"""Small stand-alone tools: weather and jokes."""

import hashlib
import random
from typing import Any, Literal

from langchain_core.tools import tool
from pydantic import BaseModel, Field

from assistant.tools.base import EmptyInput

JOKES = [
    "Why do programmers prefer dark mode? Because light attracts bugs.",
    "There are 10 kinds of people: those who understand binary and those who don't.",
    "A SQL query walks into a bar, goes up to two tables and asks: 'Can I join you?'",
    "Why did the developer go broke? Because they used up all their cache.",
]


class GetWeatherInput(BaseModel):
    """Input schema for the weather tool."""

    location: str = Field(..., min_length=1, description="Location to get weather for")
    unit: Literal["celsius", "fahrenheit"] = Field("fahrenheit", description="Unit to get weather in")


def _reading_for(location: str) -> int:
    """Stable pseudo temperature in fahrenheit for a location."""
    digest = hashlib.sha256(location.strip().lower().encode()).digest()
    return 40 + digest[0] % 55


def create_get_weather_tool():
    @tool("get_weather", description="Get the weather for a given location", args_schema=GetWeatherInput)
    async def get_weather_handler(
        location: str, unit: Literal["celsius", "fahrenheit"] = "fahrenheit"
    ) -> dict[str, Any]:
        fahrenheit = _reading_for(location)
        if unit == "celsius":
            return {"location": location, "temp": round((fahrenheit - 32) * 5 / 9), "unit": "C"}
        return {"location": location, "temp": fahrenheit, "unit": "F"}

    return get_weather_handler


def create_get_joke_tool(rng: random.Random | None = None):
    chooser = rng or random.Random()

    @tool("get_joke", description="Get a programming joke", args_schema=EmptyInput)
    async def get_joke_handler() -> dict[str, Any]:
        return {"joke": chooser.choice(JOKES)}

    return get_joke_handler
