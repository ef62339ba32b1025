""" Named tool registry, used to resolve tools referenced by workflow files. """
from typing import Callable, Dict, Iterable, List

_TOOLS: Dict[str, Callable] = {}

def register_tool(name: str):
    def _wrap(fn):
        _TOOLS[name] = fn
        return fn
    return _wrap

def get_tool(name: str) -> Callable:
    if name not in _TOOLS:
        raise ValueError(f"Tool not found: {name}")
    return _TOOLS[name]

def resolve_tools(names: Iterable[str]) -> Dict[str, Callable]:
    """ Map each tool name to its registered callable. """
    return {name: get_tool(name) for name in names}

def list_tools() -> List[str]:
    return sorted(_TOOLS)
