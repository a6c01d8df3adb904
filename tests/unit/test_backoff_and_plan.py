from __future__ import annotations

import asyncio

import pytest

from coursegen.pipeline.backoff import call_with_timeout, compute_backoff_delay
from coursegen.pipeline.contracts import GenerationParams, SectionOverride, SectionSpec
from coursegen.pipeline.plan import build_plan, estimate_minutes_remaining, neighbour_summaries, progress_percentage, validate_overrides


def make_params(**overrides: object) -> GenerationParams:
  sections = [SectionSpec(title="Cells", subtopics=["Membranes", "Organelles"], instructions="Keep it visual."), SectionSpec(title="Genetics", subtopics=["DNA"])]
  return GenerationParams(course_title="Biology", sections=sections, **overrides)


def test_backoff_doubles_from_base_and_caps() -> None:
  delays = [compute_backoff_delay(count, base_seconds=1.0, cap_seconds=5.0) for count in range(5)]
  assert delays == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_backoff_handles_zero_base_and_huge_counts() -> None:
  assert compute_backoff_delay(3, base_seconds=0.0, cap_seconds=10.0) == 0.0
  assert compute_backoff_delay(10_000, base_seconds=0.5, cap_seconds=30.0) == 30.0


@pytest.mark.anyio
async def test_call_with_timeout_raises_when_deadline_passes() -> None:
  async def slow() -> str:
    await asyncio.sleep(1)
    return "late"

  with pytest.raises(TimeoutError):
    await call_with_timeout(slow, 0.01)


@pytest.mark.anyio
async def test_call_with_timeout_without_deadline_awaits_result() -> None:
  async def fast() -> str:
    return "ok"

  assert await call_with_timeout(fast, None) == "ok"


def test_build_plan_flattens_units_in_order() -> None:
  plan = build_plan(make_params())
  assert plan.total_sections == 2
  assert plan.total_subtopics == 3
  assert [(unit.section_index, unit.subtopic_index, unit.subtopic_title) for unit in plan.units] == [(0, 0, "Membranes"), (0, 1, "Organelles"), (1, 0, "DNA")]


def test_overrides_replace_title_subtopics_and_extend_instructions() -> None:
  params = make_params(per_section_overrides={0: SectionOverride(title="Cell biology", subtopics=["Membranes"], instructions="Add a lab."), 1: SectionOverride(instructions="Short.")})
  plan = build_plan(params)
  assert plan.sections[0].title == "Cell biology"
  assert plan.sections[0].subtopics == ["Membranes"]
  assert plan.sections[0].instructions == "Keep it visual.\nAdd a lab."
  assert plan.sections[1].instructions == "Short."
  assert plan.total_subtopics == 2
  assert plan.units[0].section_title == "Cell biology"


def test_validate_overrides_rejects_unknown_sections() -> None:
  validate_overrides(make_params(per_section_overrides={1: SectionOverride(title="Heredity")}))
  with pytest.raises(ValueError, match="unknown section indexes"):
    validate_overrides(make_params(per_section_overrides={2: SectionOverride(title="Ecology")}))


def test_progress_percentage_counts_substeps_and_reserves_completion() -> None:
  assert progress_percentage(0, 0, 2) == 0
  assert progress_percentage(0, 1, 2) == 12
  assert progress_percentage(1, 0, 2) == 50
  assert progress_percentage(1, 2, 2) == 75
  assert progress_percentage(2, 0, 2) == 99
  assert progress_percentage(0, 0, 0) == 0


def test_estimate_seeds_then_extrapolates() -> None:
  assert estimate_minutes_remaining(3, 0, 0.0, 8) == 24
  assert estimate_minutes_remaining(3, 1, 120.0, 8) == 4
  assert estimate_minutes_remaining(3, 3, 360.0, 8) == 0


def test_neighbour_summaries_cross_section_boundaries() -> None:
  plan = build_plan(make_params())
  assert neighbour_summaries(plan, 0) == (None, "Next topic: Organelles")
  assert neighbour_summaries(plan, 1) == ("Previous topic: Membranes", 'Next section "Genetics" will cover: DNA')
  assert neighbour_summaries(plan, 2) == ('Previous section "Cells" covered: Organelles', None)
