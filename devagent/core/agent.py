"""
DevAgent - composition root and host-facing facade.

Builds storage, git, the GitHub bridge, the translation stack and the goal
workflow explicitly (no module-level singletons) and exposes every
operation as a ``CommandResult``-returning method.  Unexpected exceptions
stop here: they are logged and returned as INTERNAL failures.
"""

import functools
import logging
from dataclasses import asdict
from typing import Any, Callable, Dict, Optional

from devagent.core.errors import DevAgentError, ErrorKind
from devagent.core.goals import WorkflowContext
from devagent.core.ids import GoalIdGenerator
from devagent.core.logger import ActionLogger
from devagent.core.results import Advisory, CommandResult
from devagent.core.workflow import GoalWorkflow
from devagent.integrations.github import GitHubBridge
from devagent.language.gate import LanguageGate, ValidationContext
from devagent.language.translator import AutoTranslator
from devagent.models.providers import ProviderConfig
from devagent.models.translation_client import TranslationClient
from devagent.storage.sqlite_store import SQLiteStorage
from devagent.utils import config as cfg
from devagent.utils.git import GitRepository

logger = logging.getLogger(__name__)

_SECRET_MARKERS = ("token", "api_key", "secret", "password")


def _mask(key: str, value: str) -> str:
    if value and any(marker in key.lower() for marker in _SECRET_MARKERS):
        return value[:4] + "..." if len(value) > 8 else "***"
    return value


def _boundary(action: str) -> Callable:
    """Turn any exception escaping a facade method into a failed envelope."""

    def decorator(func: Callable[..., CommandResult]) -> Callable[..., CommandResult]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> CommandResult:
            try:
                return func(*args, **kwargs)
            except DevAgentError as e:
                logger.warning("%s failed: %s", action, e)
                return CommandResult.from_error(e)
            except Exception as e:
                logger.error("%s failed unexpectedly: %s", action, e, exc_info=True)
                return CommandResult.fail(f"Failed to {action}", error=str(e), kind=ErrorKind.INTERNAL)

        return wrapper

    return decorator


class DevAgent:
    """Facade over the goal workflow and the language gate."""

    def __init__(
        self,
        storage: Any,
        git: Any,
        github: GitHubBridge,
        translation: TranslationClient,
        context: WorkflowContext,
        action_logger: Optional[ActionLogger] = None,
        id_generator: Optional[Callable[[], str]] = None,
    ) -> None:
        self.storage = storage
        self.git = git
        self.github = github
        self.translation = translation
        self.context = context
        self.gate = LanguageGate(AutoTranslator(translation))
        self.workflow = GoalWorkflow(
            storage=storage,
            git=git,
            github=github,
            context=context,
            id_generator=id_generator or GoalIdGenerator(storage),
            action_logger=action_logger,
        )

    @classmethod
    def from_config(
        cls,
        root: Optional[str] = None,
        db_path: Optional[str] = None,
        action_log: bool = True,
    ) -> "DevAgent":
        """Wire every collaborator from config/devagent.yaml, .env and storage."""
        cfg.load_env()
        storage = SQLiteStorage(db_path)
        context = cfg.load_workflow_context(storage)
        ids = GoalIdGenerator(storage)
        github = GitHubBridge(storage, ids, milestone=cfg.get_issue_milestone())
        github.initialize(context.github_owner, context.github_repo, cfg.get_github_token(storage))
        return cls(
            storage=storage,
            git=GitRepository(root),
            github=github,
            translation=TranslationClient.from_storage(storage),
            context=context,
            action_logger=ActionLogger() if action_log else None,
            id_generator=ids,
        )

    def close(self) -> None:
        self.github.close()

    # ------------------------------------------------------------------
    # Goal workflow
    # ------------------------------------------------------------------

    @_boundary("start goal")
    def start_goal(self, goal_id: str) -> CommandResult:
        return self.workflow.start_goal(goal_id)

    @_boundary("complete goal")
    def complete_goal(self, goal_id: str) -> CommandResult:
        return self.workflow.complete_goal(goal_id)

    @_boundary("stop goal")
    def stop_goal(self, goal_id: str) -> CommandResult:
        return self.workflow.stop_goal(goal_id)

    @_boundary("clean up completed goals")
    def cleanup_completed_goals(self) -> CommandResult:
        return self.workflow.cleanup_completed_goals()

    @_boundary("create goal")
    def create_goal(self, title: str, description: Optional[str] = None) -> CommandResult:
        return self.workflow.create_goal(title, description)

    @_boundary("list goals")
    def list_goals(self, status: Optional[str] = None) -> CommandResult:
        return self.workflow.list_goals(status)

    @_boundary("sync from GitHub")
    def sync_from_github(self) -> CommandResult:
        return self.workflow.sync_from_github()

    @_boundary("sync goal to GitHub")
    def sync_goal_to_github(self, goal_id: str) -> CommandResult:
        return self.workflow.sync_goal_to_github(goal_id)

    @_boundary("check pull request status")
    def check_pull_request_status(self, goal_id: str) -> CommandResult:
        return self.workflow.check_pull_request_status(goal_id)

    # ------------------------------------------------------------------
    # Language gate
    # ------------------------------------------------------------------

    @_boundary("validate content")
    def validate_before_save(
        self,
        entity_type: str,
        field_name: str,
        content: str,
        auto_translate: bool = True,
        strict_mode: bool = False,
    ) -> CommandResult:
        result = self.gate.validate_before_save(
            ValidationContext(entity_type, field_name, content, auto_translate, strict_mode)
        )
        return self._language_envelope(f"{entity_type}.{field_name}", result)

    @_boundary("validate file content")
    def validate_file_content(self, path: str, content: Optional[str] = None) -> CommandResult:
        if content is None:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
        result = self.gate.validate_file_content(path, content)
        return self._language_envelope(path, result)

    @staticmethod
    def _language_envelope(where: str, result: Any) -> CommandResult:
        data = result.to_dict()
        if result.valid:
            message = f"{where}: content is compliant"
            if result.translated_content is not None:
                message = f"{where}: content translated to English"
            return CommandResult.ok(
                message, data=data, warnings=[Advisory("translation", w) for w in result.warnings]
            )
        return CommandResult.fail(
            f"{where}: content is not in English ({result.detected_language})",
            error="; ".join(result.issues + result.warnings) or "Language validation failed",
            kind=ErrorKind.TRANSLATION if result.needs_translation else ErrorKind.VALIDATION,
            data=data,
        )

    # ------------------------------------------------------------------
    # LLM providers
    # ------------------------------------------------------------------

    @_boundary("add LLM provider")
    def add_llm_provider(
        self,
        name: str,
        api_key: str,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        make_default: bool = False,
    ) -> CommandResult:
        self.translation.set_provider(
            ProviderConfig(name=name, api_key=api_key, model=model, base_url=base_url),
            make_default=make_default,
        )
        logger.info("LLM provider %s configured", name)
        return CommandResult.ok(f"Added/updated LLM provider: {name}", data=self._provider_listing())

    @_boundary("remove LLM provider")
    def remove_llm_provider(self, name: str) -> CommandResult:
        self.translation.remove_provider(name)
        logger.info("LLM provider %s removed", name)
        return CommandResult.ok(f"Removed LLM provider: {name}", data=self._provider_listing())

    @_boundary("set default LLM provider")
    def set_default_llm_provider(self, name: str) -> CommandResult:
        self.translation.set_default_provider(name)
        return CommandResult.ok(f"Set {name} as default LLM provider", data=self._provider_listing())

    @_boundary("list LLM providers")
    def list_llm_providers(self) -> CommandResult:
        listing = self._provider_listing()
        if not listing["providers"]:
            return CommandResult.ok("No LLM providers configured", data=listing)
        return CommandResult.ok(f"Found {len(listing['providers'])} LLM providers", data=listing)

    @_boundary("set LLM retry policy")
    def set_llm_retry_config(
        self,
        max_retries: Optional[int] = None,
        retry_delay_ms: Optional[float] = None,
        backoff_multiplier: Optional[float] = None,
    ) -> CommandResult:
        retry = self.translation.set_retry_config(
            max_retries=max_retries, retry_delay_ms=retry_delay_ms, backoff_multiplier=backoff_multiplier
        )
        return CommandResult.ok(
            f"Retry policy: {retry.max_retries} retries, {retry.retry_delay_ms:g} ms delay, "
            f"x{retry.backoff_multiplier:g} backoff",
            data={"retry": asdict(retry)},
        )

    def _provider_listing(self) -> Dict[str, Any]:
        return {
            "providers": self.translation.describe_providers(),
            "retry": asdict(self.translation.retry_config),
        }

    # ------------------------------------------------------------------
    # Configuration and project setup
    # ------------------------------------------------------------------

    @_boundary("set configuration")
    def set_configuration(self, key: str, value: str) -> CommandResult:
        if not key or not key.strip():
            return CommandResult.fail("Configuration key is required", error="Empty key", kind=ErrorKind.VALIDATION)
        self.storage.set_config(key.strip(), value)
        logger.info("Configuration %s updated", key)
        return CommandResult.ok(
            f"Configuration {key} set (applies to the next command)",
            data={"key": key, "value": _mask(key, value)},
        )

    @_boundary("get configuration")
    def get_configuration(self, key: Optional[str] = None) -> CommandResult:
        if key is None:
            values = {k: _mask(k, v) for k, v in self.storage.get_all_config().items()}
            return CommandResult.ok(f"Found {len(values)} configuration values", data={"config": values})
        value = self.storage.get_config(key)
        if value is None:
            return CommandResult.fail(
                f"Configuration {key} not found", error="Configuration not found", kind=ErrorKind.NOT_FOUND
            )
        return CommandResult.ok(f"{key} = {_mask(key, value)}", data={"key": key, "value": _mask(key, value)})

    @_boundary("initialize project")
    def initialize_project(self) -> CommandResult:
        if not self.git.is_repository():
            return CommandResult.fail(
                'Current directory is not a Git repository. Please run "git init" first.',
                error="Not a Git repository",
                kind=ErrorKind.VALIDATION,
            )
        existing: Dict[str, str] = self.storage.get_all_config()
        written = []
        for key, value in cfg.DEFAULT_STORED_CONFIG.items():
            if key not in existing:
                self.storage.set_config(key, value)
                written.append(key)
        logger.info("Project initialized (%d default settings written)", len(written))
        return CommandResult.ok(
            "Dev Agent project initialized successfully",
            data={"database": getattr(self.storage, "db_path", None), "defaults_written": written},
        )
