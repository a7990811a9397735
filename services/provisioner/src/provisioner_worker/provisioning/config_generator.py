"""Gateway runtime configuration files.

``openclaw.json`` holds agent defaults, tools and the gateway listener;
``auth-profiles.json`` holds one token profile per AI provider that has an
API key. Agent defaults can be tuned through string settings keyed like
``agent.thinking`` or ``ai.tts_provider``; anything unset falls back to the
defaults below.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from shared.contracts.dto.deployment import ModelChoice

from ..errors import MissingCredentialsError

CONTAINER_STATE_DIR = "/home/node/.openclaw"
CONTAINER_WORKSPACE = f"{CONTAINER_STATE_DIR}/workspace"
PROFILE_SUFFIX = "studio"

# Checked in order; first matching prefix wins.
MODEL_PROVIDERS: tuple[tuple[str, str], ...] = (
    ("claude", "anthropic"),
    ("gpt-", "openai"),
    ("o1", "openai"),
    ("o3", "openai"),
    ("chatgpt-", "openai"),
    ("gemini", "google"),
    ("kimi", "kimi"),
    ("glm", "zai"),
    ("minimax", "minimax"),
)
AUTH_PROVIDERS = ("anthropic", "openai", "google", "kimi", "zai", "minimax")

_COMPACTION = {
    "default": {"reserveTokensFloor": 20000, "memoryFlush": {"enabled": True, "softThresholdTokens": 4000}},
    "aggressive": {"reserveTokensFloor": 10000, "memoryFlush": {"enabled": True, "softThresholdTokens": 2000}},
}


class Credential(Protocol):
    provider: str
    key: str
    value: str


def resolve_model_id(model_id: str) -> str:
    """Qualify a bare model id with its provider (``claude-x`` -> ``anthropic/claude-x``)."""
    if "/" in model_id:
        return model_id
    for prefix, provider in MODEL_PROVIDERS:
        if model_id.startswith(prefix):
            return f"{provider}/{model_id}"
    return f"anthropic/{model_id}"


def credential_map(credentials: Iterable[Credential]) -> dict[str, str]:
    """Provider -> API key, from credentials whose key names an API key."""
    keys: dict[str, str] = {}
    for credential in credentials:
        if "api_key" in credential.key or "apikey" in credential.key:
            keys[credential.provider] = credential.value
    return keys


def _int_setting(settings: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(settings.get(key, "")) or default
    except ValueError:
        return default


def _csv_setting(settings: Mapping[str, str], key: str) -> list[str]:
    return [item.strip() for item in settings.get(key, "").split(",") if item.strip()]


def _agent_defaults(model: ModelChoice, settings: Mapping[str, str]) -> dict[str, Any]:
    model_config: dict[str, Any] = {"primary": resolve_model_id(model.primary)}
    if model.fallbacks:
        model_config["fallbacks"] = [resolve_model_id(m) for m in model.fallbacks]

    defaults: dict[str, Any] = {
        "workspace": CONTAINER_WORKSPACE,
        "model": model_config,
        "thinkingDefault": settings.get("agent.thinking") or "low",
        "timeoutSeconds": _int_setting(settings, "agent.timeout_seconds", 600),
        "maxConcurrent": _int_setting(settings, "agent.max_concurrent", 1),
        "sandbox": {
            "mode": settings.get("agent.sandbox_mode") or "non-main",
            "scope": settings.get("agent.sandbox_scope") or "agent",
        },
        "heartbeat": {"every": settings.get("agent.heartbeat_interval") or "30m"},
        "verboseDefault": "off",
    }

    compaction = _COMPACTION.get(settings.get("agent.compaction") or "default")
    if compaction:
        defaults["compaction"] = compaction

    pruning = settings.get("agent.context_pruning")
    if pruning in ("off", "cache-ttl"):
        defaults["contextPruning"] = {"mode": pruning}
    return defaults


def _tools(settings: Mapping[str, str], keys: Mapping[str, str]) -> dict[str, Any]:
    tools: dict[str, Any] = {
        "profile": settings.get("agent.tools_profile") or "full",
        "web": {
            "search": {"enabled": settings.get("agent.web_search") != "false"},
            "fetch": {"enabled": True, "maxChars": 50000, "timeoutSeconds": 30, "cacheTtlMinutes": 15},
        },
        "exec": {"timeoutSec": _int_setting(settings, "agent.exec_timeout_sec", 1800)},
    }
    # Audio transcription needs an OpenAI key
    if keys.get("openai"):
        tools["media"] = {
            "audio": {
                "enabled": True,
                "maxBytes": 20971520,
                "models": [{"provider": "openai", "model": "gpt-4o-mini-transcribe"}],
            }
        }
    if allow := _csv_setting(settings, "agent.tools_allow"):
        tools["allow"] = allow
    if deny := _csv_setting(settings, "agent.tools_deny"):
        tools["deny"] = deny
    return tools


def _tts(settings: Mapping[str, str]) -> dict[str, Any] | None:
    provider = settings.get("ai.tts_provider") or "disabled"
    if provider == "disabled":
        return None
    tts: dict[str, Any] = {"auto": settings.get("ai.tts_auto") or "inbound", "provider": provider}
    if provider == "openai":
        tts["openai"] = {
            "model": settings.get("ai.tts_openai_model") or "gpt-4o-mini-tts",
            "voice": settings.get("ai.tts_openai_voice") or "alloy",
        }
    elif provider == "elevenlabs":
        tts["elevenlabs"] = {
            "voiceId": settings.get("ai.elevenlabs_voice_id") or "",
            "modelId": settings.get("ai.elevenlabs_model") or "eleven_multilingual_v2",
            "voiceSettings": {
                "stability": float(settings.get("ai.elevenlabs_stability") or "0.5"),
                "similarityBoost": float(settings.get("ai.elevenlabs_similarity") or "0.75"),
            },
        }
    return tts


def build_openclaw_json(
    instance_name: str,
    port: int,
    model: ModelChoice,
    auth_token: str,
    credentials: Iterable[Credential],
    settings: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Build the gateway's ``openclaw.json``."""
    settings = settings or {}
    keys = credential_map(credentials)

    env_vars = {}
    if keys.get("openai"):
        env_vars["OPENAI_API_KEY"] = keys["openai"]
    if keys.get("elevenlabs"):
        env_vars["ELEVENLABS_API_KEY"] = keys["elevenlabs"]

    config: dict[str, Any] = {
        "agents": {
            "defaults": _agent_defaults(model, settings),
            "list": [
                {"id": "main"},
                {"id": instance_name, "name": instance_name, "workspace": CONTAINER_WORKSPACE},
            ],
        },
        "tools": _tools(settings, keys),
        "browser": {"enabled": settings.get("agent.browser_enabled") != "false"},
        "logging": {
            "level": settings.get("agent.logging_level") or "info",
            "redactSensitive": settings.get("agent.logging_redact") or "tools",
        },
        "gateway": {
            "mode": "local",
            "port": port,
            "bind": "lan",
            "controlUi": {"allowInsecureAuth": True},
            "auth": {"mode": "token", "token": auth_token},
        },
        "commands": {"native": "auto", "restart": True},
        "env": {"vars": env_vars},
    }
    if tts := _tts(settings):
        config["messages"] = {"tts": tts}
    return config


def build_auth_profiles_json(credentials: Iterable[Credential]) -> dict[str, Any]:
    """Build ``auth-profiles.json``.

    Raises:
        MissingCredentialsError: no provider has an API key.
    """
    keys = credential_map(credentials)
    auth: dict[str, Any] = {"version": 1, "profiles": {}, "lastGood": {}, "usageStats": {}}
    for provider in AUTH_PROVIDERS:
        if not keys.get(provider):
            continue
        profile = f"{provider}:{PROFILE_SUFFIX}"
        auth["profiles"][profile] = {"type": "token", "provider": provider, "token": keys[provider]}
        auth["lastGood"][provider] = profile

    if not auth["profiles"]:
        raise MissingCredentialsError()
    return auth
