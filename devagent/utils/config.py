"""
Centralised configuration for Dev Agent.

Loads ``config/devagent.yaml`` once and ``.env`` for secrets, then exposes
typed settings so that no module needs raw key lookups.

Usage:
    from devagent.utils.config import load_workflow_context, load_retry_config

Precedence for every setting: values persisted in storage (dotted keys such
as ``branches.develop``) override the YAML file, which overrides the
built-in defaults.  The dotted keys exist only in this module.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from devagent.core.goals import BranchConfig, GoalStatus, WorkflowContext
from devagent.models.providers import PROVIDER_NAMES, ProviderConfig, RetryConfig
from devagent.utils.paths import base_path

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "devagent.yaml"

# ---------------------------------------------------------------------------
# Internal cache
# ---------------------------------------------------------------------------
_settings_cache: Optional[Dict[str, Any]] = None
_env_loaded = False


def _load_yaml(filename: str) -> Dict[str, Any]:
    """Load a YAML file from config/ and return as dict (empty on failure)."""
    path = os.path.join(base_path(), "config", filename)
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.debug("Could not load %s: %s", path, e)
        return {}


def _settings() -> Dict[str, Any]:
    """Return cached devagent.yaml contents."""
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = _load_yaml(CONFIG_FILENAME)
    return _settings_cache


def _section(name: str) -> Dict[str, Any]:
    section = _settings().get(name, {}) or {}
    return section if isinstance(section, dict) else {}


def reload() -> None:
    """Force re-read of the config file (useful after editing YAML)."""
    global _settings_cache, _env_loaded
    _settings_cache = None
    _env_loaded = False


def load_env() -> None:
    """Load ``.env`` from the project root into os.environ (once)."""
    global _env_loaded
    if _env_loaded:
        return
    env_path = os.path.join(base_path(), ".env")
    if os.path.isfile(env_path):
        load_dotenv(env_path)
        logger.debug("Loaded environment from %s", env_path)
    _env_loaded = True


# ---------------------------------------------------------------------------
# Storage mapping layer (dotted keys)
# ---------------------------------------------------------------------------

# Written by ``devagent init``; mirrors the defaults below.
DEFAULT_STORED_CONFIG: Dict[str, str] = {
    "github.owner": "",
    "github.repo": "",
    "branches.main": "main",
    "branches.develop": "develop",
    "branches.feature_prefix": "feature",
    "branches.release_prefix": "release",
    "goals.default_status": "todo",
    "goals.id_pattern": r"^g-[a-z0-9]{6}$",
}


def _stored(storage: Any, key: str) -> Optional[str]:
    if storage is None:
        return None
    value = storage.get_config(key)
    return value if value not in (None, "") else None


def _pick(storage: Any, key: str, section: Dict[str, Any], field: str, default: Any) -> Any:
    stored = _stored(storage, key)
    if stored is not None:
        return stored
    value = section.get(field)
    return default if value in (None, "") else value


# ---------------------------------------------------------------------------
# Workflow context
# ---------------------------------------------------------------------------

def load_workflow_context(storage: Any = None) -> WorkflowContext:
    """Build the read-only WorkflowContext for this process."""
    github = _section("github")
    branches = _section("branches")
    goals = _section("goals")
    defaults = BranchConfig()

    status_raw = _pick(storage, "goals.default_status", goals, "default_status", "todo")
    try:
        default_status = GoalStatus(str(status_raw))
    except ValueError:
        logger.warning("Unknown goals.default_status %r, using 'todo'", status_raw)
        default_status = GoalStatus.TODO

    return WorkflowContext(
        github_owner=str(_pick(storage, "github.owner", github, "owner", "")),
        github_repo=str(_pick(storage, "github.repo", github, "repo", "")),
        branches=BranchConfig(
            main=str(_pick(storage, "branches.main", branches, "main", defaults.main)),
            develop=str(_pick(storage, "branches.develop", branches, "develop", defaults.develop)),
            feature_prefix=str(
                _pick(storage, "branches.feature_prefix", branches, "feature_prefix", defaults.feature_prefix)
            ),
            release_prefix=str(
                _pick(storage, "branches.release_prefix", branches, "release_prefix", defaults.release_prefix)
            ),
        ),
        goal_id_pattern=str(
            _pick(storage, "goals.id_pattern", goals, "id_pattern", DEFAULT_STORED_CONFIG["goals.id_pattern"])
        ),
        default_status=default_status,
        remote=str(_pick(storage, "branches.remote", branches, "remote", "origin")),
    )


def get_github_token(storage: Any = None) -> Optional[str]:
    """GITHUB_TOKEN from the environment, else the stored ``github.token``."""
    load_env()
    return os.environ.get("GITHUB_TOKEN") or _stored(storage, "github.token")


def get_issue_milestone() -> Optional[str]:
    """Optional milestone title that limits which issues are imported."""
    value = _section("github").get("issue_milestone")
    return str(value) if value else None


def get_logging_level() -> str:
    return str(_section("logging").get("level", "INFO")).upper()


# ---------------------------------------------------------------------------
# Translation settings
# ---------------------------------------------------------------------------

_RETRY_KEYS = {
    "max_retries": "llm.retry.max_retries",
    "retry_delay_ms": "llm.retry.retry_delay_ms",
    "backoff_multiplier": "llm.retry.backoff_multiplier",
}


def load_retry_config(storage: Any = None) -> RetryConfig:
    """Retry policy: defaults < YAML ``llm.retry`` < persisted overrides."""
    section = _section("llm").get("retry", {}) or {}
    defaults = RetryConfig()
    try:
        return RetryConfig(
            max_retries=int(_pick(storage, _RETRY_KEYS["max_retries"], section, "max_retries", defaults.max_retries)),
            retry_delay_ms=float(
                _pick(storage, _RETRY_KEYS["retry_delay_ms"], section, "retry_delay_ms", defaults.retry_delay_ms)
            ),
            backoff_multiplier=float(
                _pick(
                    storage,
                    _RETRY_KEYS["backoff_multiplier"],
                    section,
                    "backoff_multiplier",
                    defaults.backoff_multiplier,
                )
            ),
        )
    except (TypeError, ValueError) as e:
        logger.warning("Invalid retry configuration (%s), using defaults", e)
        return defaults


def save_retry_config(storage: Any, config: RetryConfig) -> None:
    """Persist a retry policy so later client instances pick it up."""
    storage.set_config(_RETRY_KEYS["max_retries"], str(config.max_retries), category="llm")
    storage.set_config(_RETRY_KEYS["retry_delay_ms"], str(config.retry_delay_ms), category="llm")
    storage.set_config(_RETRY_KEYS["backoff_multiplier"], str(config.backoff_multiplier), category="llm")


# Environment variables read for each provider: (api key, base url, model)
_PROVIDER_ENV = {
    "openai": ("OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_MODEL"),
    "gemini": ("GEMINI_API_KEY", "GEMINI_BASE_URL", "GEMINI_MODEL"),
    "anthropic": ("ANTHROPIC_API_KEY", "ANTHROPIC_BASE_URL", "ANTHROPIC_MODEL"),
    "custom": ("CUSTOM_LLM_API_KEY", "CUSTOM_LLM_BASE_URL", "CUSTOM_LLM_MODEL"),
}


def load_provider_configs(storage: Any = None) -> Dict[str, ProviderConfig]:
    """All providers that have an API key, keyed by name.

    A provider is enabled by its API key from the environment (or ``.env``).
    YAML ``llm.providers`` may set ``model``/``base_url`` on top of the
    environment values; an ``api_key`` there is ignored so keys stay out of
    the repo.  A row in the storage ``llm`` table replaces the whole entry.
    """
    load_env()
    yaml_providers = _section("llm").get("providers", {}) or {}
    providers: Dict[str, ProviderConfig] = {}

    for name in PROVIDER_NAMES:
        key_var, url_var, model_var = _PROVIDER_ENV[name]
        from_yaml = yaml_providers.get(name, {}) or {}
        api_key = os.environ.get(key_var)
        if not api_key:
            continue
        providers[name] = ProviderConfig(
            name=name,
            api_key=api_key,
            model=from_yaml.get("model") or os.environ.get(model_var),
            base_url=from_yaml.get("base_url") or os.environ.get(url_var),
        )

    if storage is not None:
        for name, row in storage.get_llm_providers().items():
            if name not in PROVIDER_NAMES:
                logger.warning("Ignoring unknown LLM provider in storage: %s", name)
                continue
            if not row.get("api_key"):
                continue
            providers[name] = ProviderConfig(
                name=name,
                api_key=row["api_key"],
                model=row.get("model"),
                base_url=row.get("base_url"),
            )
    return providers


def get_default_provider_name(storage: Any = None) -> Optional[str]:
    """Stored default provider, else YAML ``llm.default_provider``."""
    if storage is not None:
        stored = storage.get_default_llm_provider() or _stored(storage, "llm.default_provider")
        if stored:
            return stored
    value = _section("llm").get("default_provider")
    return str(value) if value else None
