from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version

from tool_adapters import git_cli, github_cli, node_tools, supabase_cli, vercel_cli


def _resolve_version() -> str:
    try:
        return package_version("stackup")
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _resolve_version()

__all__ = [
    "__version__",
    "git_cli",
    "github_cli",
    "node_tools",
    "supabase_cli",
    "vercel_cli",
]
