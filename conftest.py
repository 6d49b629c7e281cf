"""
Root pytest configuration for Lumen voice chat.

Sets up Python path and test environment variables for all test directories.
"""

import os
import sys
from pathlib import Path

# Set test environment variables before anything else imports settings
os.environ.setdefault("VOICE_CHAT_ENVIRONMENT", "testing")
os.environ.setdefault("VOICE_CHAT_DURABLE_BACKEND", "memory")
os.environ.setdefault("VOICE_CHAT_OBSERVABILITY_LOG_LEVEL", "DEBUG")
os.environ.setdefault("VOICE_CHAT_REDIS_PASSWORD", "test_password_for_pytest_only")

# Never reach the real Gemini Live API from tests
os.environ["VOICE_CHAT_LIVE_API_KEY"] = ""

# Project root
project_root = Path(__file__).parent

# Add project root to path
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
