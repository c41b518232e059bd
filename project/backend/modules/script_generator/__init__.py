"""
Script Generator module public API.

Resilient decoding of provider output and batch-by-batch scene generation
with continuity anchoring.
"""

from shared.logging import get_logger

from .json_recovery import ResilientJsonDecoder, decode
from .main import generate_script
from .orchestrator import BatchContinuityOrchestrator

__all__ = [
    "ResilientJsonDecoder",
    "decode",
    "BatchContinuityOrchestrator",
    "generate_script",
]

logger = get_logger("script_generator")
