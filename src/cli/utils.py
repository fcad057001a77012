"""Shared CLI utilities."""

import sys

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def _build_provider(config_model, model: str | None = None):
    from llm.factory import create_llm_provider

    llm_cfg = config_model.llm
    return create_llm_provider(
        provider=llm_cfg.provider,
        api_key=llm_cfg.api_key,
        model=model or llm_cfg.model,
        timeout=llm_cfg.timeout_seconds,
        max_attempts=config_model.retry.max_attempts,
    )


def get_components(skip_llm: bool = False, config_model=None):
    """Initialize stores and pipeline from config.

    Args:
        skip_llm: If True, skip provider init (for commands that only read the database)
        config_model: Pre-loaded PipelineConfig; loaded from disk when None
    """
    from cli.config import load_config_model
    from conversations import ConversationStore, ReleasePolicy
    from dedup import CandidateWindow, DuplicateChecker, LLMDuplicateClassifier
    from extraction import LLMActionExtractor
    from llm.base import LLMError
    from pipeline import TaskPipeline
    from tasks import TaskStore

    if config_model is None:
        try:
            config_model = load_config_model()
        except ValueError as e:
            console.print(f"[red]Config error:[/] {e}")
            sys.exit(1)

    buffer_cfg = config_model.buffer
    db_path = config_model.paths.db_path

    conversations = ConversationStore(
        db_path,
        buffer_minutes=buffer_cfg.buffer_minutes,
        silence_minutes=buffer_cfg.silence_minutes,
        bucket_seconds=buffer_cfg.bucket_seconds,
        retention_days=buffer_cfg.retention_days,
    )
    tasks = TaskStore(db_path)
    window = CandidateWindow(tasks, lookback_hours=config_model.dedup.lookback_hours)

    components = {
        "config_model": config_model,
        "conversations": conversations,
        "tasks": tasks,
        "window": window,
        "classifier": None,
        "checker": None,
        "extractor": None,
        "pipeline": None,
    }
    if skip_llm:
        return components

    dedup_cfg = config_model.dedup
    extraction_cfg = config_model.extraction
    try:
        provider = _build_provider(config_model)
        dedup_provider = _build_provider(config_model, dedup_cfg.model) if dedup_cfg.model else provider
        extraction_provider = (
            _build_provider(config_model, extraction_cfg.model) if extraction_cfg.model else provider
        )
    except LLMError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    classifier = LLMDuplicateClassifier(
        provider=dedup_provider,
        lookback_hours=dedup_cfg.lookback_hours,
        max_tokens=dedup_cfg.max_tokens,
        temperature=dedup_cfg.temperature,
        policy_rules=dedup_cfg.policy_rules,
    )
    checker = DuplicateChecker(window, classifier)
    extractor = LLMActionExtractor(
        provider=extraction_provider,
        user_name=extraction_cfg.user_name,
        job_context=extraction_cfg.user_job_context,
        max_tokens=extraction_cfg.max_tokens,
        temperature=extraction_cfg.temperature,
    )
    policy = ReleasePolicy.from_list(
        buffer_cfg.action_indicators, min_messages=buffer_cfg.min_messages_for_release
    )
    components.update(
        classifier=classifier,
        checker=checker,
        extractor=extractor,
        pipeline=TaskPipeline(
            conversations,
            tasks,
            extractor,
            checker,
            policy=policy,
            bypass_environments=dedup_cfg.bypass_environments,
        ),
    )
    return components
