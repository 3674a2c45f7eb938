"""Static catalogue of the tools advertised to the model.

Order is significant: tools are sent to the API in this order on every
call.
"""

from __future__ import annotations

from typing import Any

from termagent.api.models import InputSchema, ToolDescriptor, ToolProperty


def _tool(name: str, description: str, properties: dict[str, str], required: tuple[str, ...] = ()) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=description,
        input_schema=InputSchema(
            properties={
                prop: ToolProperty(type="string", description=text)
                for prop, text in properties.items()
            },
            required=frozenset(required),
        ),
    )


EXECUTE_COMMAND = _tool(
    "execute_command",
    "Execute a shell command in the terminal. Use this to run any command like ls, cat, mkdir, etc. "
    "'cd <dir>' changes the working directory for later commands.",
    {"command": "The shell command to execute"},
    required=("command",),
)

READ_FILE = _tool(
    "read_file",
    "Read the contents of a file",
    {"path": "The path to the file to read"},
    required=("path",),
)

WRITE_FILE = _tool(
    "write_file",
    "Write content to a file. Creates the file if it doesn't exist.",
    {
        "path": "The path to the file",
        "content": "The content to write to the file",
    },
    required=("path", "content"),
)

LIST_FILES = _tool(
    "list_files",
    "List files in a directory",
    {"path": "The directory path to list. Defaults to current directory if not specified."},
)

CREATE_DIRECTORY = _tool(
    "create_directory",
    "Create a new directory",
    {"path": "The path of the directory to create"},
    required=("path",),
)

DELETE_FILE = _tool(
    "delete_file",
    "Delete a file or directory",
    {"path": "The path to the file or directory to delete"},
    required=("path",),
)

RUN_PYTHON = _tool(
    "run_python",
    "Execute Python code",
    {"code": "The Python code to execute"},
    required=("code",),
)

RUN_JAVASCRIPT = _tool(
    "run_javascript",
    "Execute JavaScript/Node.js code",
    {"code": "The JavaScript code to execute"},
    required=("code",),
)

TOOL_CATALOGUE: tuple[ToolDescriptor, ...] = (
    EXECUTE_COMMAND,
    READ_FILE,
    WRITE_FILE,
    LIST_FILES,
    CREATE_DIRECTORY,
    DELETE_FILE,
    RUN_PYTHON,
    RUN_JAVASCRIPT,
)

_BY_NAME: dict[str, ToolDescriptor] = {tool.name: tool for tool in TOOL_CATALOGUE}


def get_descriptor(name: str) -> ToolDescriptor | None:
    return _BY_NAME.get(name)


def tool_definitions(tools: tuple[ToolDescriptor, ...] = TOOL_CATALOGUE) -> list[dict[str, Any]]:
    """Return tool definitions in Anthropic API format."""
    return [tool.to_wire() for tool in tools]
