"""Tests for the command-line surface."""

from __future__ import annotations

import pytest

from leadsync.cli import build_container, build_parser, build_view_engine, main
from leadsync.core.config import load_app_settings
from leadsync.core.models import LeadStatus, SortDirection, SortField
from leadsync.ingestion import ThreadSync


def test_parser_defaults() -> None:
    args = build_parser().parse_args([])

    assert args.command == "info"
    assert args.status is None
    assert args.sort == "date"
    assert args.direction == "desc"


def test_view_engine_built_from_arguments() -> None:
    args = build_parser().parse_args(
        [
            "threads",
            "--status",
            "hot",
            "--status",
            "warm",
            "--min-score",
            "50",
            "--search",
            "roof",
            "--sort",
            "aiScore",
            "--direction",
            "asc",
        ]
    )

    engine = build_view_engine(args)

    assert engine.filters.status == frozenset({LeadStatus.HOT, LeadStatus.WARM})
    assert engine.filters.ai_score_range == (50, 100)
    assert engine.filters.search_query == "roof"
    assert engine.sort_field is SortField.AI_SCORE
    assert engine.sort_direction is SortDirection.ASC


@pytest.mark.asyncio
async def test_container_wires_thread_sync() -> None:
    settings = load_app_settings(include_environment=False)
    container = build_container(settings, user_id="u-1")

    sync = container.resolve("thread_sync")

    assert isinstance(sync, ThreadSync)
    assert sync.user_id == "u-1"
    assert container.is_resolved("api_client")
    await container.aclose()


def test_info_command_prints_summary(capsys: pytest.CaptureFixture[str]) -> None:
    main(["info", "--user-id", "u-9"])

    output = capsys.readouterr().out
    assert "Gateway:" in output
    assert "u-9" in output
