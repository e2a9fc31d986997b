"""
Top-level test configuration for AppDeck.
"""

import os

# Ensure test-friendly defaults
os.environ.setdefault("APPDECK_JSON_LOGS", "false")
os.environ.setdefault("APPDECK_LOG_LEVEL", "DEBUG")
os.environ.setdefault("APPDECK_ENCRYPTION__MODE", "obfuscate")
