"""Unit accounting, progress math and neighbour context for a generation run."""

from __future__ import annotations

import math
from dataclasses import dataclass

from coursegen.pipeline.contracts import SUBTOPIC_STEPS, GenerationParams, SectionSpec


@dataclass(frozen=True)
class UnitRef:
  """One subtopic's worth of work."""

  section_index: int
  subtopic_index: int
  section_title: str
  subtopic_title: str


@dataclass(frozen=True)
class PipelinePlan:
  """Resolved sections and the flattened list of units to generate."""

  sections: tuple[SectionSpec, ...]
  units: tuple[UnitRef, ...]

  @property
  def total_sections(self) -> int:
    return len(self.sections)

  @property
  def total_subtopics(self) -> int:
    return len(self.units)


def resolve_sections(params: GenerationParams) -> list[SectionSpec]:
  """Apply per-section overrides to the roadmap sections."""

  resolved: list[SectionSpec] = []
  for index, section in enumerate(params.sections):
    override = params.per_section_overrides.get(index)
    if override is None:
      resolved.append(section)
      continue

    instructions = section.instructions
    # Override guidance is appended so roadmap guidance is never lost.
    if override.instructions:
      instructions = f"{instructions}\n{override.instructions}" if instructions else override.instructions
    resolved.append(SectionSpec(title=override.title or section.title, subtopics=list(override.subtopics) if override.subtopics is not None else list(section.subtopics), instructions=instructions))

  return resolved


def build_plan(params: GenerationParams) -> PipelinePlan:
  sections = resolve_sections(params)
  units = [UnitRef(section_index=section_index, subtopic_index=subtopic_index, section_title=section.title, subtopic_title=subtopic) for section_index, section in enumerate(sections) for subtopic_index, subtopic in enumerate(section.subtopics)]
  return PipelinePlan(sections=tuple(sections), units=tuple(units))


def validate_overrides(params: GenerationParams) -> None:
  """Reject overrides that point at sections the roadmap does not have."""

  unknown = sorted(index for index in params.per_section_overrides if index < 0 or index >= len(params.sections))
  if unknown:
    raise ValueError(f"Section overrides reference unknown section indexes: {unknown}.")


def progress_percentage(completed_units: int, substeps_done: int, total_units: int) -> int:
  """Percentage of finished work; 100 is reserved for completion."""

  if total_units <= 0:
    return 0
  fraction = (completed_units + substeps_done / len(SUBTOPIC_STEPS)) / total_units
  return min(int(fraction * 100), 99)


def estimate_minutes_remaining(total_units: int, completed_units: int, elapsed_seconds: float, minutes_per_subtopic: int) -> int:
  """Seed from the per-subtopic estimate, then extrapolate from observed throughput."""

  remaining_units = max(total_units - completed_units, 0)
  if completed_units <= 0:
    return remaining_units * minutes_per_subtopic
  seconds_per_unit = elapsed_seconds / completed_units
  return math.ceil(seconds_per_unit * remaining_units / 60)


def neighbour_summaries(plan: PipelinePlan, unit_index: int) -> tuple[str | None, str | None]:
  """Describe the subtopics immediately before and after a unit, across section boundaries."""

  unit = plan.units[unit_index]
  previous: str | None = None
  following: str | None = None

  if unit_index > 0:
    before = plan.units[unit_index - 1]
    if before.section_index == unit.section_index:
      previous = f"Previous topic: {before.subtopic_title}"
    else:
      previous = f'Previous section "{before.section_title}" covered: {before.subtopic_title}'

  if unit_index + 1 < len(plan.units):
    after = plan.units[unit_index + 1]
    if after.section_index == unit.section_index:
      following = f"Next topic: {after.subtopic_title}"
    else:
      following = f'Next section "{after.section_title}" will cover: {after.subtopic_title}'

  return previous, following
