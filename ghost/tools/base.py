"""Tool base class: schema, argument parsing, execution."""

import json
from typing import Any, Dict

from ..channel import CancelToken
from ..errors import ToolArgumentParseError
from ..messages import ToolDefinition


def object_schema(properties: dict, required: list) -> dict:
    """Build a JSON-schema ``object`` for tool parameters."""
    return {"type": "object", "properties": properties, "required": required}


# Shorthand helpers for property definitions
_S = lambda desc, **kw: {"type": "string", "description": desc, **kw}
_I = lambda desc, **kw: {"type": "integer", "description": desc, **kw}
_B = lambda desc, **kw: {"type": "boolean", "description": desc, **kw}

_JSON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


class Tool:
    """A function the model may call.

    Subclasses set ``name``, ``description`` and ``parameters`` and implement
    ``run``. Arguments arrive as the model's raw JSON string.
    """

    name: str = ""
    description: str = ""
    parameters: Dict[str, Any] = object_schema({}, [])

    def definition(self) -> ToolDefinition:
        return ToolDefinition(self.name, self.description, self.parameters)

    def parse_arguments(self, raw: str) -> Dict[str, Any]:
        try:
            args = json.loads(raw or "{}")
        except (TypeError, ValueError) as e:
            raise ToolArgumentParseError(self.name, f"invalid JSON arguments: {e}") from e
        if not isinstance(args, dict):
            raise ToolArgumentParseError(self.name, "arguments must be a JSON object")

        properties = self.parameters.get("properties", {})
        for key in self.parameters.get("required", []):
            if key not in args:
                raise ToolArgumentParseError(self.name, f"missing required argument '{key}'")
        for key, value in args.items():
            expected = _JSON_TYPES.get(properties.get(key, {}).get("type", ""))
            if expected is None:
                continue
            # bool is an int subclass; keep integer fields strict.
            if isinstance(value, bool) and bool not in expected:
                ok = False
            else:
                ok = isinstance(value, expected)
            if not ok:
                raise ToolArgumentParseError(
                    self.name, f"argument '{key}' must be of type {properties[key]['type']}")
        return args

    def run(self, cancel: CancelToken, **arguments: Any) -> str:
        raise NotImplementedError

    def execute(self, cancel: CancelToken, raw: str) -> str:
        return self.run(cancel, **self.parse_arguments(raw))
