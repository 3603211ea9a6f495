"""Command-line entry point: generate one build (optionally translated) and print it as JSON.

Usage::

    python -m app.main --context context.json [--members members.json] [--translate-to pt-BR]
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from app.core.config import settings
from app.core.services.ai.ai_service import BuildGenerationService
from app.core.services.ai.errors import AIServiceError
from app.core.services.ai.model_policy import ConfiguredModels, get_configured_models
from app.core.services.ai.usage_recorder import UsageActor

logger = logging.getLogger(__name__)

EXIT_CLASSIFIED_ERROR = 2
EXIT_UNEXPECTED_ERROR = 1


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level or settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_json(path: Optional[str], default: Any) -> Any:
    if not path:
        return default
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Generate a Path of Exile build with {settings.APP_NAME}."
    )
    parser.add_argument("--context", required=True, help="JSON file with the build session context.")
    parser.add_argument("--members", default=None, help="JSON file with the party member list.")
    parser.add_argument("--primary-model", default=None, help="Override GEMINI_MODEL_PRIMARY.")
    parser.add_argument("--fallback-model", default=None, help="Override GEMINI_MODEL_FALLBACK.")
    parser.add_argument("--actor-id", default=None, help="Actor id attached to the usage record.")
    parser.add_argument("--tenant-id", default=None, help="Tenant id attached to the usage record.")
    parser.add_argument("--translate-to", default=None, help="Also translate the build (en or pt-BR).")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    return parser.parse_args(argv)


def _resolve_models(args: argparse.Namespace) -> ConfiguredModels:
    configured = get_configured_models()
    return ConfiguredModels(
        primary_model=(args.primary_model or "").strip() or configured.primary_model,
        fallback_model=(args.fallback_model or "").strip() or configured.fallback_model,
    )


def main(argv: Optional[Sequence[str]] = None, service: Optional[BuildGenerationService] = None) -> int:
    args = _parse_args(argv)
    configure_logging(args.log_level)

    context = _load_json(args.context, {})
    members: List[Any] = _load_json(args.members, [])
    actor = UsageActor(actor_id=args.actor_id, tenant_id=args.tenant_id)

    service = service or BuildGenerationService()
    models = _resolve_models(args)
    try:
        result = service.generate_build(members, context, models=models, actor=actor)
        if args.translate_to:
            result = service.translate_build(result.payload, args.translate_to, models=models, actor=actor)
    except AIServiceError as exc:
        logger.error("Build generation failed [%s]: %s", exc.code, exc)
        print(json.dumps(exc.to_payload(), ensure_ascii=False, indent=2))
        return EXIT_CLASSIFIED_ERROR
    except Exception as exc:
        logger.exception("Unexpected build generation failure: %s", exc)
        return EXIT_UNEXPECTED_ERROR
    finally:
        service.flush_usage()

    print(json.dumps(result.payload.model_dump(mode="json"), ensure_ascii=False, indent=2))
    logger.info("Build ready from %s after %s round(s)", result.model, result.rounds)
    return 0


if __name__ == "__main__":
    sys.exit(main())
