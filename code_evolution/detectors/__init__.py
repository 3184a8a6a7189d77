"""Detectors for performance and resource defects."""

from .base import Detector, create_impact, find_loops, issue_id
from .n1_query import N1QueryDetector, severity_for_calls
from .inefficient_loop import InefficientLoopDetector
from .large_payload import LargePayloadDetector
from .memory_leak import FrameworkFamily, FrameworkInfo, MemoryLeakDetector, classify_framework

__all__ = [
    "Detector",
    "create_impact",
    "find_loops",
    "issue_id",
    "N1QueryDetector",
    "severity_for_calls",
    "InefficientLoopDetector",
    "LargePayloadDetector",
    "MemoryLeakDetector",
    "FrameworkFamily",
    "FrameworkInfo",
    "classify_framework",
]
