"""
Persona memory engine: episodic memory, semantic knowledge and response caching.
"""

# Setup logging configuration on package import
from .utils.logging_config import setup_logging

setup_logging()
