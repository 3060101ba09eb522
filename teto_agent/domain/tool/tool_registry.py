from typing import Dict, List, Any, Optional
from langchain_core.tools import BaseTool


class ToolRegistry:
    """Registry of the tools the persona may call"""

    def __init__(self):
        self.tools: Dict[str, BaseTool] = {}

    def register_tool(self, tool: BaseTool):
        """Register a new tool, replacing any tool with the same name"""

        self.tools[tool.name] = tool

    def get_tool(self, name: str) -> Optional[BaseTool]:
        """Get a tool by name"""

        return self.tools.get(name)

    def get_tools(self) -> List[BaseTool]:
        """All registered tools, for binding to a chat model"""

        return list(self.tools.values())

    def get_input_schema(self, name: str) -> Optional[Dict[str, Any]]:
        """JSON schema of a tool's arguments"""

        tool = self.tools.get(name)
        if tool is None:
            return None
        return tool.get_input_schema().model_json_schema()

    def list_tools(self) -> List[Dict[str, Any]]:
        """Describe all tools as {name, description, input_schema}"""

        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": self.get_input_schema(tool.name),
            }
            for tool in self.tools.values()
        ]
