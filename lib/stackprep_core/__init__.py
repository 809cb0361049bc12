from .compose import COMPOSE_NONE, COMPOSE_PLUGIN, COMPOSE_STANDALONE, detect_compose
from .errors import InstallError, RenderError, StackprepError, ValidationError
from .inputs import Credentials, StackInputs
from .shell import HostContext, local_context

__all__ = [
    "COMPOSE_NONE",
    "COMPOSE_PLUGIN",
    "COMPOSE_STANDALONE",
    "Credentials",
    "HostContext",
    "InstallError",
    "RenderError",
    "StackInputs",
    "StackprepError",
    "ValidationError",
    "detect_compose",
    "local_context",
]
