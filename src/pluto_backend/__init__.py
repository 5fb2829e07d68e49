from .browser import BrowserManager
from .config import PlutoConfig
from .credentials import CredentialPool
from .dispatcher import CompletionDispatcher
from .extractor import ContentExtractor
from .gate import ConcurrencyGate
from .orchestrator import PlutoOrchestrator
from .sanitize import extract_json, sanitize
from .tiering import ModelTiers

__all__ = [
    "BrowserManager",
    "CompletionDispatcher",
    "ConcurrencyGate",
    "ContentExtractor",
    "CredentialPool",
    "ModelTiers",
    "PlutoConfig",
    "PlutoOrchestrator",
    "extract_json",
    "sanitize",
]
