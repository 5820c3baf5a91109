#!/usr/bin/env python3
"""Pre-flight check — verifies provider configuration and imports before deploy.

Reads the same environment (and .env) the server does, then checks that the
selected LLM provider has a plausibly-formatted key, that speech synthesis
is either configured or explicitly disabled, and that the app modules import.

Usage:
    python preflight_check.py
"""

import re
import sys

ok = True

# Key prefixes the providers issue. Format only; nothing is sent anywhere.
KEY_FORMATS = {
    "openai": re.compile(r"^sk-[A-Za-z0-9_\-]{20,}$"),
    "anthropic": re.compile(r"^sk-ant-[A-Za-z0-9_\-]{20,}$"),
}


def check(label: str, passed: bool, detail: str = "", *, fatal: bool = True) -> bool:
    global ok  # noqa: PLW0603

    if passed:
        print(f"  ✓ {label}")
        return True
    if not fatal:
        print(f"  ⚠ {label}{': ' + detail if detail else ''}")
        return True
    print(f"  ✗ {label}{': ' + detail if detail else ''}")
    ok = False
    return False


def check_import(label: str, code: str) -> bool:
    try:
        exec(code)  # noqa: S102
    except Exception as exc:
        return check(label, False, str(exc))
    return check(label, True)


print("Dependencies:")
check_import("fastapi, uvicorn, structlog", "import fastapi, uvicorn, structlog")
check_import("pydantic, pydantic_settings", "import pydantic, pydantic_settings")
check_import("openai, anthropic", "import openai, anthropic")
check_import("prometheus_client, opentelemetry", "import prometheus_client, opentelemetry.sdk.trace")

print("App modules:")
if check_import("create_app", "from lyricsmith.main import create_app"):
    from lyricsmith.config import get_settings

    settings = get_settings()

    print("Provider configuration:")
    key = settings.active_llm_key
    check(f"{settings.llm_provider} API key present", bool(key), "lyrics will come from the mock provider", fatal=False)
    if key:
        check(
            f"{settings.llm_provider} API key format",
            bool(KEY_FORMATS[settings.llm_provider].match(key)),
            "unexpected prefix or length",
        )

    tts_key = settings.openai_api_key.get_secret_value()
    if settings.openai_tts_enabled:
        check("OpenAI key for speech synthesis", bool(tts_key), "set OPENAI_API_KEY or OPENAI_TTS_ENABLED=false")
    else:
        print("  - speech synthesis disabled")

    print("Limits:")
    check("RATE_LIMIT_REQUESTS > 0", settings.rate_limit_requests > 0, str(settings.rate_limit_requests))
    check(
        "VOICE_PREVIEW_DURATION <= VOICE_PREVIEW_MAX_DURATION",
        settings.voice_preview_duration <= settings.voice_preview_max_duration,
        f"{settings.voice_preview_duration} > {settings.voice_preview_max_duration}",
    )

print()
if ok:
    print("All checks pass — safe to deploy.")
else:
    print("FAILED — fix the errors above before deploying.")
    sys.exit(1)
