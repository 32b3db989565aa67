"""LSP request handlers, each a plain function over a ParsedManifest and a registry."""
from .diagnostics import get_diagnostics
from .completion import get_completions
from .hover import get_hover
from .code_action import get_code_actions, latest_version_edit

__all__ = [
    'get_diagnostics', 'get_completions', 'get_hover',
    'get_code_actions', 'latest_version_edit',
]
