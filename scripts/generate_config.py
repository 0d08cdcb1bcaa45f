#!/usr/bin/env python3
"""Generate config.yaml from environment variables for container deployment.

Environment Variables:
    - AGENT_RUNTIME_API_KEY: Agent runtime API key (REQUIRED)
    - AGENT_RUNTIME_URL: Agent runtime base URL (default: http://localhost:8080)
    - AGENT_ID: Id of the presentation agent (REQUIRED)
    - IMAGE_TOOL_NAME: Runtime image generation tool (default: generate_image)
    - REDIS_URL: Redis URL for rate limiting (optional, enables rate limiting)
    - RATE_LIMIT_REQUESTS / RATE_LIMIT_WINDOW_SECONDS: Window size (default: 20 per 3600s)
    - PDF_PAGE_MODE: "fixed" (16:9 letterboxed) or "native" (default: fixed)
"""

import os
import sys
from pathlib import Path

import yaml


def generate_config():
    """Generate config dict from environment variables."""

    api_key = os.environ.get("AGENT_RUNTIME_API_KEY", "")
    agent_id = os.environ.get("AGENT_ID", "")
    if not api_key or not agent_id:
        print("ERROR: AGENT_RUNTIME_API_KEY and AGENT_ID environment variables are required!")
        sys.exit(1)

    print(f"AGENT_RUNTIME_API_KEY found: {api_key[:6]}...{api_key[-4:]}")
    print(f"AGENT_RUNTIME_URL: {os.environ.get('AGENT_RUNTIME_URL', 'http://localhost:8080')}")
    print(f"AGENT_ID: {agent_id}")

    config = {
        "runtime": {
            "base_url": os.environ.get("AGENT_RUNTIME_URL", "http://localhost:8080"),
            "api_key": api_key,
            "agent_id": agent_id,
            "image_tool_name": os.environ.get("IMAGE_TOOL_NAME", "generate_image"),
        },
        "rate_limit": {
            "enabled": False,
            "limit": int(os.environ.get("RATE_LIMIT_REQUESTS", "20")),
            "window_seconds": int(os.environ.get("RATE_LIMIT_WINDOW_SECONDS", "3600")),
        },
        "export": {
            "page_mode": os.environ.get("PDF_PAGE_MODE", "fixed"),
        },
        "server": {
            "port": int(os.environ.get("PORT", "8010")),
            "log_level": os.environ.get("LOG_LEVEL", "INFO"),
        },
    }

    if redis_url := os.environ.get("REDIS_URL"):
        config["rate_limit"]["enabled"] = True
        config["rate_limit"]["redis_url"] = redis_url
        print("REDIS_URL set - rate limiting enabled")
    else:
        print("WARNING: REDIS_URL not set - rate limiting disabled")

    return config


def main():
    config_path = Path(os.environ.get("SLIDEFOX_CONFIG", "config.yaml"))

    if config_path.exists():
        print(f"Config file already exists at {config_path}")
        with open(config_path, "r") as f:
            existing = yaml.safe_load(f) or {}
        if not existing.get("runtime", {}).get("api_key"):
            print("WARNING: Existing config.yaml has no API key, regenerating...")
        else:
            return

    config = generate_config()

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False, allow_unicode=True)

    print(f"Generated config.yaml at {config_path}")


if __name__ == "__main__":
    main()
