"""
Callwatch — Model Factory

Builds LangChain chat models and hands them out wrapped in the progress
indicator. Two named defaults mirror the usual setup of a workflow: a cheap
`basic` model for routine steps and an `advanced` model for the hard ones.

Configuration (in priority order):
  1. Explicit `provider` argument to create_llm()
  2. LLM_PROVIDER environment variable
  3. defaults.<alias>.provider, then model_to_provider, in callwatch.yaml
  4. default_provider in callwatch.yaml
  5. Auto-detect from available API key env vars

Usage:
    from callwatch.llm import basic_model, advanced_model, create_model

    model = basic_model()                     # gpt-4.1-nano, with progress
    strong = create_model("advanced")          # alias lookup
    raw = create_llm("gpt-4o", temperature=0)  # plain BaseChatModel

Design rules:
  - No provider-specific imports at module level (lazy imports only)
  - Unknown model strings pass through to the provider unchanged
"""

from __future__ import annotations

import os
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel

from callwatch.adapter import LangChainAdapter, ModelAdapter
from callwatch.config import get_config_value, load_config, progress_settings
from callwatch.errors import ConfigError, UnknownProviderError
from callwatch.progress import with_progress_indicator


# ═══════════════════════════════════════════════════════════════════════
# Provider detection
# ═══════════════════════════════════════════════════════════════════════

def detect_provider(config: dict | None = None) -> str:
    """
    Detect LLM provider. Priority:
      1. LLM_PROVIDER env var
      2. default_provider in callwatch.yaml
      3. Auto-detect from API key env vars
    """
    explicit = os.environ.get("LLM_PROVIDER", "").lower().strip()
    if explicit:
        return explicit

    cfg_default = get_config_value("default_provider", config)
    if cfg_default:
        return str(cfg_default).lower().strip()

    if os.environ.get("OPENAI_API_KEY"):
        return "openai"
    if os.environ.get("ANTHROPIC_API_KEY"):
        return "anthropic"
    if os.environ.get("AZURE_OPENAI_ENDPOINT") and os.environ.get("AZURE_OPENAI_API_KEY"):
        return "azure"
    if os.environ.get("GOOGLE_API_KEY"):
        return "google"
    if os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_PROFILE"):
        return "bedrock"

    raise ConfigError(
        "No LLM provider detected. Set one of:\n"
        "  LLM_PROVIDER=openai|anthropic|azure|google|bedrock\n"
        "  Or set default_provider in callwatch.yaml\n"
        "  Or set provider API key env vars:\n"
        "    OPENAI_API_KEY=...\n"
        "    ANTHROPIC_API_KEY=...\n"
        "    AZURE_OPENAI_ENDPOINT=... + AZURE_OPENAI_API_KEY=...\n"
        "    GOOGLE_API_KEY=...\n"
        "    AWS_DEFAULT_REGION=... (for Bedrock)"
    )


def _infer_provider(model: str, config: dict | None = None) -> str:
    explicit = os.environ.get("LLM_PROVIDER", "").lower().strip()
    if explicit:
        return explicit

    pinned = (get_config_value("defaults", config, {}) or {}).get(model) or {}
    if pinned.get("provider"):
        return str(pinned["provider"])

    m2p = get_config_value("model_to_provider", config, {}) or {}
    if model in m2p:
        return m2p[model]

    return detect_provider(config)


def resolve_model(model: str, provider: str, config: dict | None = None) -> str:
    """Resolve a logical alias ("basic", "advanced") to a provider model id."""
    aliases = get_config_value("aliases", config, {}) or {}
    if model in aliases:
        alias_map = aliases[model] or {}
        if provider in alias_map:
            return alias_map[provider]
        raise ConfigError(
            f"Alias {model!r} has no model for provider {provider!r}",
            alias=model, provider=provider,
        )
    return model


# ═══════════════════════════════════════════════════════════════════════
# Provider factories (lazy imports)
# ═══════════════════════════════════════════════════════════════════════

def _create_openai(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_openai import ChatOpenAI
    kwargs.setdefault("stream_usage", True)
    return ChatOpenAI(model=model, temperature=temperature, **kwargs)


def _create_anthropic(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_anthropic import ChatAnthropic
    return ChatAnthropic(model=model, temperature=temperature, **kwargs)


def _create_google(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_google_genai import ChatGoogleGenerativeAI
    return ChatGoogleGenerativeAI(model=model, temperature=temperature, **kwargs)


def _create_azure(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_openai import AzureChatOpenAI
    settings = (get_config_value("provider_settings", None, {}) or {}).get("azure", {})
    return AzureChatOpenAI(
        azure_deployment=model,
        azure_endpoint=os.environ["AZURE_OPENAI_ENDPOINT"],
        api_key=os.environ.get("AZURE_OPENAI_API_KEY"),
        api_version=os.environ.get(
            "AZURE_OPENAI_VERSION",
            settings.get("api_version", "2024-12-01-preview"),
        ),
        temperature=temperature,
        **kwargs,
    )


def _create_bedrock(model: str, temperature: float, **kwargs) -> BaseChatModel:
    from langchain_aws import ChatBedrockConverse
    settings = (get_config_value("provider_settings", None, {}) or {}).get("bedrock", {})
    return ChatBedrockConverse(
        model=model,
        temperature=temperature,
        region_name=os.environ.get(
            "AWS_DEFAULT_REGION",
            settings.get("region", "us-east-1"),
        ),
        **kwargs,
    )


_FACTORIES = {
    "openai":    _create_openai,
    "anthropic": _create_anthropic,
    "google":    _create_google,
    "azure":     _create_azure,
    "bedrock":   _create_bedrock,
}


# ═══════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════

def create_llm(
    model: str = "basic",
    temperature: float = 0.1,
    provider: str | None = None,
    **kwargs,
) -> BaseChatModel:
    """
    Create a LangChain chat model.

    Args:
        model:       Logical alias ("basic", "advanced") or provider model name.
        temperature: Sampling temperature.
        provider:    Force a provider. If None, inferred or auto-detected.
        **kwargs:    Passed through to the underlying LangChain constructor.
    """
    config = load_config()

    if provider is None:
        provider = _infer_provider(model, config)

    provider = provider.lower().strip()
    if provider not in _FACTORIES:
        raise UnknownProviderError(provider, list(_FACTORIES))

    resolved = resolve_model(model, provider, config)

    timeout = kwargs.pop("timeout", None)
    if timeout is None:
        env_timeout = os.environ.get("LLM_TIMEOUT_SECONDS", "").strip()
        if env_timeout:
            timeout = int(env_timeout)
        else:
            timeout = get_config_value("timeout_seconds", config)
    if timeout:
        kwargs["timeout"] = int(timeout)

    return _FACTORIES[provider](resolved, temperature, **kwargs)


def create_model(
    model: str = "basic",
    temperature: float = 0.1,
    provider: str | None = None,
    show_progress: bool | None = None,
    verbose: bool | None = None,
    **kwargs,
) -> ModelAdapter:
    """Create a chat model behind the adapter protocol, with progress logging."""
    chat_model = create_llm(model, temperature=temperature, provider=provider, **kwargs)
    adapter = LangChainAdapter(chat_model)
    return with_progress_indicator(
        adapter,
        model_name=adapter.model_name,
        show_progress=show_progress,
        verbose=verbose,
        settings=progress_settings(load_config()),
    )


def basic_model(**kwargs: Any) -> ModelAdapter:
    """Fast, cheap model for routine steps."""
    return create_model("basic", **kwargs)


def advanced_model(**kwargs: Any) -> ModelAdapter:
    """Stronger model for planning and critique steps."""
    return create_model("advanced", **kwargs)


def get_provider_info() -> dict[str, str]:
    """Return current provider configuration for diagnostics."""
    config = load_config()
    try:
        provider = detect_provider(config)
    except ConfigError:
        provider = "none"
    return {
        "provider": provider,
        "env_override": os.environ.get("LLM_PROVIDER", ""),
        "config_file": str(config.get("_config_source", "built-in defaults")),
    }
