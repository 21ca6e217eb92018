"""
AI retrospective summaries for finished goals.

The prompt carries the goal's facts and its progress history plus up to
AI_HISTORY_CONTEXT_GOALS of the owner's other most recent goals, so the
model can point out patterns across attempts. The model must answer with
``{"summary": "..."}``.
"""
import json
import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.core.config import settings
from app.core.errors import (
    AIProviderError, ExternalServiceFailure, InvalidGoalState, NotEnoughData, storage_errors,
)
from app.models.goal import Goal, GoalProgress, GoalStatus
from app.schemas.goal import AI_SUMMARY_MAX, AiSummaryOut
from app.services.ai_service import AIService, ai_service
from app.services.goals_service import count_progress, get_owned_goal
from app.services.progress_aggregator import sum_progress

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    GoalStatus.completed_success: "Successfully completed",
    GoalStatus.completed_failure: "Not completed (deadline passed)",
    GoalStatus.abandoned: "Abandoned",
}

INSTRUCTIONS = """You analyze a person's progress toward a personal goal and give constructive feedback.

Write a summary of 3-4 paragraphs addressed directly to the person ("you", "your"):
- describe their journey toward this goal,
- highlight what went well and what could improve,
- end with a suggested next goal and explain why it fits their history and patterns.

Use the previous goals, when present, to spot patterns in how they set and pursue goals.
Answer in the same language as the goal name and progress notes.
Respond with JSON only, in the form: {"summary": "..."}"""


def _format_entries(entries: Sequence[GoalProgress], indent: str = "") -> str:
    lines = []
    for e in entries:
        notes = f" ({e.notes})" if e.notes else ""
        lines.append(f"{indent}- {e.created_at.date().isoformat()}: {e.value}{notes}")
    return "\n".join(lines)


def build_summary_prompt(
    goal: Goal,
    entries: Sequence[GoalProgress],
    previous: Sequence[Dict],
) -> List[Dict[str, str]]:
    total = sum_progress(e.value for e in entries)
    sections = [
        "## Goal being analyzed",
        f"- Name: {goal.name}",
        f"- Target: {goal.target_value}",
        f"- Deadline: {goal.deadline.isoformat()}",
        f"- Final status: {STATUS_LABELS.get(goal.status, goal.status.value)}",
        f"- Total progress: {total} / {goal.target_value}",
    ]
    if goal.reflection_notes:
        sections += ["", "## Reflection notes", goal.reflection_notes]
    sections += ["", "## Progress entries", _format_entries(entries)]

    if previous:
        sections += ["", "## Previous goals (context)"]
        for index, item in enumerate(previous, start=1):
            prev_goal, prev_entries = item["goal"], item["entries"]
            prev_total = sum_progress(e.value for e in prev_entries)
            sections += [
                f"### Goal {index}: {prev_goal.name}",
                f"- Target: {prev_goal.target_value}",
                f"- Status: {prev_goal.status.value}",
                f"- Total progress: {prev_total} / {prev_goal.target_value}",
            ]
            if prev_goal.reflection_notes:
                sections.append(f"- Reflection notes: {prev_goal.reflection_notes}")
            if prev_entries:
                sections += ["- Progress entries:", _format_entries(prev_entries, indent="  ")]

    return [
        {"role": "system", "content": INSTRUCTIONS},
        {"role": "user", "content": "\n".join(sections)},
    ]


def parse_summary_response(content: str) -> str:
    cleaned = content.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    try:
        parsed = json.loads(cleaned)
    except ValueError as exc:
        logger.error(f"AI response is not valid JSON: {content[:200]}")
        raise AIProviderError() from exc

    summary = parsed.get("summary") if isinstance(parsed, dict) else None
    if not isinstance(summary, str) or not summary.strip():
        logger.error(f"AI response has no usable summary: {parsed}")
        raise AIProviderError()
    return summary.strip()[:AI_SUMMARY_MAX]


async def _progress_entries(db: AsyncSession, goal_id: str) -> List[GoalProgress]:
    with storage_errors("fetching progress entries"):
        result = await db.execute(
            select(GoalProgress).where(GoalProgress.goal_id == goal_id).order_by(GoalProgress.created_at.asc())
        )
        return list(result.scalars().all())


async def _previous_goals(db: AsyncSession, user_id: str, goal_id: str) -> List[Dict]:
    with storage_errors("fetching previous goals"):
        result = await db.execute(
            select(Goal)
            .where(Goal.user_id == user_id, Goal.id != goal_id)
            .order_by(Goal.created_at.desc())
            .limit(settings.AI_HISTORY_CONTEXT_GOALS)
        )
        goals = result.scalars().all()
    return [{"goal": g, "entries": await _progress_entries(db, g.id)} for g in goals]


async def generate_ai_summary(
    db: AsyncSession,
    user_id: str,
    goal_id: str,
    force: bool = False,
    ai_client: Optional[AIService] = None,
) -> AiSummaryOut:
    ai_client = ai_client or ai_service
    goal = await get_owned_goal(db, user_id, goal_id)

    if goal.status == GoalStatus.active:
        raise InvalidGoalState()

    if goal.ai_summary and not force:
        return AiSummaryOut(id=goal.id, ai_summary=goal.ai_summary)

    count = await count_progress(db, goal.id)
    if count < settings.AI_SUMMARY_MIN_ENTRIES:
        raise NotEnoughData(details={"entries_count": count, "required": settings.AI_SUMMARY_MIN_ENTRIES})

    entries = await _progress_entries(db, goal.id)
    previous = await _previous_goals(db, user_id, goal.id)
    messages = build_summary_prompt(goal, entries, previous)

    # Attempts are counted whether or not the provider succeeds
    goal.ai_generation_attempts = (goal.ai_generation_attempts or 0) + 1
    with storage_errors("recording AI generation attempt"):
        await db.commit()

    try:
        content = await ai_client.generate_completion(messages, temperature=0.7, max_tokens=5000, json_mode=True)
    except ExternalServiceFailure:
        raise
    except Exception as exc:
        logger.error(f"Unexpected error during AI generation for goal {goal_id}: {exc}")
        raise AIProviderError() from exc

    summary = parse_summary_response(content)

    goal.ai_summary = summary
    with storage_errors("saving AI summary"):
        await db.commit()
    logger.info(f"AI summary stored for goal {goal_id}")
    return AiSummaryOut(id=goal.id, ai_summary=summary)


async def update_ai_summary(db: AsyncSession, user_id: str, goal_id: str, ai_summary: str) -> AiSummaryOut:
    goal = await get_owned_goal(db, user_id, goal_id)
    goal.ai_summary = ai_summary
    with storage_errors("updating AI summary"):
        await db.commit()
    return AiSummaryOut(id=goal.id, ai_summary=ai_summary)
