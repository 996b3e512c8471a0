"""Service layer for pexshell.

Schema discovery and caching, command synthesis, authenticated sessions
and request translation/execution against the target.
"""

from pexshell.services.command_synthesizer import CommandTree, synthesize
from pexshell.services.request_pipeline import RequestPipeline
from pexshell.services.schema_cache import SchemaCache
from pexshell.services.session_manager import SessionManager, SessionState

__all__ = [
    "CommandTree",
    "synthesize",
    "RequestPipeline",
    "SchemaCache",
    "SessionManager",
    "SessionState",
]
