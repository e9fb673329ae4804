#!/usr/bin/env python3
"""
Setup Verification Script

Validates configuration and the messaging bridge before running the gateway.
Run this after setting up your .env file to ensure everything is configured correctly.

Usage:
    python scripts/verify_setup.py
"""

import asyncio
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load environment variables
from dotenv import load_dotenv
load_dotenv()


def print_header(title: str) -> None:
    """Print section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print(f"{'='*60}")


def print_result(name: str, success: bool, message: str = "") -> None:
    """Print check result."""
    status = "[PASS]" if success else "[FAIL]"
    color = "\033[92m" if success else "\033[91m"
    reset = "\033[0m"
    msg = f" - {message}" if message else ""
    print(f"  {color}{status}{reset} {name}{msg}")


def check_env_file() -> bool:
    """Check if .env file exists. Defaults are usable without one."""
    env_path = project_root / ".env"
    if env_path.exists():
        print_result(".env file", True, "Found")
    else:
        print_result(".env file", True, "Not found, using defaults (see .env.example)")
    return True


def check_settings() -> bool:
    """Load settings and print the effective values."""
    try:
        from session_gateway.config import Settings

        settings = Settings()
    except Exception as e:
        print_result("Settings", False, str(e)[:80])
        return False

    print_result("APP_ENV", True, settings.app_env)
    print_result("PORT", True, str(settings.port))
    print_result("SESSIONS_DIR", True, str(settings.sessions_dir))
    print_result("BRIDGE_URL", True, settings.bridge_url)
    print_result("Browser service", True, settings.browser_service)

    if settings.bridge_token:
        token = settings.bridge_token
        masked = f"{token[:4]}...{token[-4:]}" if len(token) > 12 else "***"
        print_result("BRIDGE_TOKEN", True, f"Set ({masked})")

    if settings.browserless_url and not settings.browserless_token:
        print_result("BROWSERLESS_TOKEN", False, "BROWSERLESS_URL is set without a token")
        return False

    return True


def check_sessions_dir() -> bool:
    """Check the sessions directory can be created and written."""
    sessions_dir = Path(os.getenv("SESSIONS_DIR", "sessions"))
    try:
        sessions_dir.mkdir(parents=True, exist_ok=True)
        probe = sessions_dir / ".write-test"
        probe.write_text("ok")
        probe.unlink()
    except OSError as e:
        print_result("Sessions directory", False, str(e)[:80])
        return False

    existing = [p.name for p in sessions_dir.iterdir() if p.is_dir()]
    print_result("Sessions directory", True, f"{sessions_dir} ({len(existing)} stored sessions)")
    return True


def check_alias_file() -> bool:
    """Validate the legacy alias file, if configured."""
    path = os.getenv("SESSION_ALIASES_FILE")
    if not path:
        print_result("Session aliases file", True, "Not configured")
        return True

    try:
        from session_gateway.core.sessions.registry import load_aliases

        aliases = load_aliases(None, Path(path))
    except (OSError, ValueError) as e:
        print_result("Session aliases file", False, str(e)[:80])
        return False

    print_result("Session aliases file", True, f"{len(aliases)} aliases")
    return True


async def check_bridge() -> bool:
    """Check if the messaging bridge is reachable."""
    url = os.getenv("BRIDGE_URL", "http://localhost:3100")

    try:
        import httpx

        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{url}/health")

            if response.status_code == 200:
                print_result("Messaging bridge", True, f"Reachable at {url}")
                return True
            else:
                print_result("Messaging bridge", False, f"Responded with {response.status_code}")
                return False

    except Exception:
        print_result("Messaging bridge", False, f"Not reachable at {url}")
        return False


def check_dependencies() -> bool:
    """Check if required Python packages are installed."""
    required_packages = [
        "fastapi",
        "uvicorn",
        "pydantic",
        "pydantic_settings",
        "httpx",
        "qrcode",
    ]

    missing = []
    for package in required_packages:
        try:
            __import__(package)
        except ImportError:
            missing.append(package)

    if missing:
        print_result("Python packages", False, f"Missing: {', '.join(missing)}")
        return False
    else:
        print_result("Python packages", True, "All required packages installed")
        return True


async def main():
    """Run all verification checks."""
    print("\n" + "="*60)
    print(" Session Gateway - Setup Verification")
    print("="*60)

    critical_failed = False

    print_header("Environment File")
    check_env_file()

    print_header("Python Dependencies")
    if not check_dependencies():
        critical_failed = True

    print_header("Configuration")
    if not check_settings():
        critical_failed = True

    print_header("Storage")
    if not check_sessions_dir():
        critical_failed = True
    if not check_alias_file():
        critical_failed = True

    print_header("Service Connections")
    bridge_ok = await check_bridge()

    print_header("Summary")

    if critical_failed:
        print("\n  \033[91mCRITICAL: Some required checks failed.\033[0m")
        print("  Please fix the issues above before running the gateway.")
        print()
        return 1
    elif not bridge_ok:
        print("\n  \033[93mWARNING: The messaging bridge is not reachable.\033[0m")
        print("  The gateway will start, but sessions cannot initialize.")
        print()
        return 0
    else:
        print("\n  \033[92mAll checks passed!\033[0m")
        print("  You can start the gateway with:")
        print("    uvicorn session_gateway.main:app --port 3000")
        print()
        return 0


if __name__ == "__main__":
    exit_code = asyncio.run(main())
    sys.exit(exit_code)
