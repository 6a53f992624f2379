"""Global pytest configuration."""

import os

# Keep tests offline: no key means stub embedding and answer clients
os.environ.setdefault("OPENAI_API_KEY", "")
