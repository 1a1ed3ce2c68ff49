"""
Environment helpers and DSPy LM resolution shared by the agent programs.

Env resolution order (example for module_env_prefix="DSPY_TOOL_SELECTOR"):
  - DSPY_TOOL_SELECTOR_PROVIDER / DSPY_PROVIDER / "groq"
  - DSPY_TOOL_SELECTOR_MODEL / DSPY_MODEL / default model
  - DSPY_TOOL_SELECTOR_TIMEOUT_SEC, else no timeout: the selector drives the conversational
    turn. Ancillary programs fall back to DSPY_LLM_TIMEOUT_SEC (20s).
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

DEFAULT_MODEL = "openai/gpt-oss-20b"
DEFAULT_TIMEOUT_SEC = 20.0

_PROVIDER_KEYS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return int(default)
    try:
        return int(str(raw).strip())
    except Exception:
        return int(default)


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or str(raw).strip() == "":
        return float(default)
    try:
        return float(str(raw).strip())
    except Exception:
        return float(default)


def _prefixed_model(provider: str, model_name: str) -> str:
    p = str(provider or "").strip().lower()
    m = str(model_name or "").strip()
    if not p:
        return m
    if m.startswith(f"{p}/"):
        return m
    return f"{p}/{m}"


def resolve_lm_config(*, module_env_prefix: str) -> Optional[Dict[str, str]]:
    """
    Return `{provider, model, modelName}` for a module, or None when the provider key is missing.
    """
    prefix = str(module_env_prefix or "").strip().upper()
    provider = (os.getenv(f"{prefix}_PROVIDER") or os.getenv("DSPY_PROVIDER") or "groq").strip().lower()
    model_name = str(os.getenv(f"{prefix}_MODEL") or os.getenv("DSPY_MODEL") or DEFAULT_MODEL).strip()

    key_env = _PROVIDER_KEYS.get(provider)
    if not key_env or not os.getenv(key_env):
        return None
    return {"provider": provider, "model": _prefixed_model(provider, model_name), "modelName": model_name}


def lm_timeout_sec(module_env_prefix: str, *, ancillary: bool = True) -> Optional[float]:
    """
    `<PREFIX>_TIMEOUT_SEC` when set; otherwise ancillary programs share `DSPY_LLM_TIMEOUT_SEC`
    (20s) and the conversational turn runs without a wall-clock limit.
    """
    prefix = str(module_env_prefix or "").strip().upper()
    if str(os.getenv(f"{prefix}_TIMEOUT_SEC") or "").strip():
        return env_float(f"{prefix}_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC)
    if not ancillary:
        return None
    return env_float("DSPY_LLM_TIMEOUT_SEC", DEFAULT_TIMEOUT_SEC)


def make_lm(
    *,
    module_env_prefix: str,
    temperature: float = 0.7,
    max_tokens: int = 4000,
    ancillary: bool = True,
) -> Any:
    """
    Build a `dspy.LM` for the module, or None when no provider is configured.
    """
    cfg = resolve_lm_config(module_env_prefix=module_env_prefix)
    if cfg is None:
        return None

    import dspy

    prefix = str(module_env_prefix or "").strip().upper()
    kwargs: Dict[str, Any] = {}
    timeout = lm_timeout_sec(prefix, ancillary=ancillary)
    if timeout is not None:
        kwargs["timeout"] = timeout
    return dspy.LM(
        model=cfg["model"],
        temperature=env_float(f"{prefix}_TEMPERATURE", temperature),
        max_tokens=env_int(f"{prefix}_MAX_TOKENS", max_tokens),
        num_retries=0,
        **kwargs,
    )


__all__ = [
    "DEFAULT_MODEL",
    "DEFAULT_TIMEOUT_SEC",
    "env_bool",
    "env_float",
    "env_int",
    "lm_timeout_sec",
    "make_lm",
    "resolve_lm_config",
]
