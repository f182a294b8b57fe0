#!/usr/bin/env python3
"""
Diagnostic script to verify Supabase, Stripe and Gemini configuration.
Run this to check if your environment variables are properly set.

Usage:
    python check_config.py
"""

import os
import sys
from typing import List, Tuple

from dotenv import load_dotenv

REQUIRED_VARS = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "GEMINI_API_KEY",
]

OPTIONAL_VARS = [
    "DATABASE_URL",
    "FRONTEND_URL",
    "GEMINI_TEXT_MODEL",
    "GEMINI_IMAGE_MODEL",
    "IDENTITY_TIMEOUT_SECONDS",
    "LOG_LEVEL",
]


def check_env_var(name: str, required: bool = True) -> Tuple[bool, str]:
    """Check if environment variable is set and return status."""
    value = os.getenv(name)
    if value:
        # Mask sensitive values
        if "KEY" in name or "SECRET" in name or "TOKEN" in name:
            masked = value[:8] + "..." if len(value) > 8 else "***"
            return True, f"✓ {name}: {masked}"
        return True, f"✓ {name}: {value}"
    status = "✗" if required else "○"
    return False, f"{status} {name}: NOT SET"


def collect_issues() -> List[str]:
    issues: List[str] = []

    print("Required configuration:")
    print("-" * 40)
    for var in REQUIRED_VARS:
        ok, msg = check_env_var(var, required=True)
        print(msg)
        if not ok:
            issues.append(f"Missing required variable: {var}")

    supabase_url = os.getenv("SUPABASE_URL")
    if supabase_url and not supabase_url.startswith("https://"):
        print("  ⚠ SUPABASE_URL should start with 'https://'")
        issues.append("SUPABASE_URL is not an https URL")

    webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET")
    if webhook_secret and not webhook_secret.startswith("whsec_"):
        print("  ⚠ STRIPE_WEBHOOK_SECRET usually starts with 'whsec_'")
        issues.append("STRIPE_WEBHOOK_SECRET does not look like a webhook signing secret")
    print()

    print("Optional configuration:")
    print("-" * 40)
    for var in OPTIONAL_VARS:
        ok, msg = check_env_var(var, required=False)
        print(msg)
    if not os.getenv("DATABASE_URL"):
        print("  ℹ Using default SQLite database")
    print()
    return issues


def main() -> None:
    load_dotenv()
    print("=" * 60)
    print("Generative CMS Backend Configuration Check")
    print("=" * 60)
    print()

    issues = collect_issues()

    print("=" * 60)
    if issues:
        print("⚠ ISSUES FOUND:")
        for issue in issues:
            print(f"  - {issue}")
        sys.exit(1)
    print("✓ Configuration looks good!")
    print()
    print("Next steps:")
    print("  1. Initialise the schema: python -m database.initialize")
    print("  2. For local development: uvicorn main:app --reload")
    print("  3. Check health endpoint: /api/health")
    sys.exit(0)


if __name__ == "__main__":
    main()
