from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from app.core import metrics
from app.core.errors import ActionNotFoundError, ActionPersistenceError, InvalidTransitionError
from app.db.store import PersistentStore
from app.events.emitter import emit_event
from app.observability.events import emit_stage_transition
from app.schemas.actions import ActionStage, RecommendedActionOut
from app.services.error_journal import ErrorJournal

logger = logging.getLogger("okr.actions")

_ACTION_SELECT = "SELECT * FROM recommended_actions WHERE id = ?"
_STAGE_UPDATE = "UPDATE recommended_actions SET stage = ? WHERE id = ?"

ALLOWED_STAGE_TRANSITIONS: dict[ActionStage, frozenset[ActionStage]] = {
    ActionStage.NEW: frozenset(
        {ActionStage.VIEWED, ActionStage.SAVED, ActionStage.SELECTED_FOR_ACTION, ActionStage.DISMISSED}
    ),
    ActionStage.VIEWED: frozenset({ActionStage.SAVED, ActionStage.SELECTED_FOR_ACTION, ActionStage.DISMISSED}),
    ActionStage.SAVED: frozenset({ActionStage.SELECTED_FOR_ACTION, ActionStage.DISMISSED}),
    ActionStage.SELECTED_FOR_ACTION: frozenset({ActionStage.IN_PROGRESS, ActionStage.SAVED, ActionStage.DISMISSED}),
    ActionStage.IN_PROGRESS: frozenset({ActionStage.ACTIONED, ActionStage.SELECTED_FOR_ACTION}),
    ActionStage.ACTIONED: frozenset(),
    ActionStage.DISMISSED: frozenset({ActionStage.NEW}),
}

# On-enter stamps: target stage -> (timestamp column, actor column).
STAGE_STAMPS: dict[ActionStage, tuple[str, str]] = {
    ActionStage.VIEWED: ("viewed_at", "viewed_by"),
    ActionStage.SAVED: ("saved_at", "saved_by"),
    ActionStage.ACTIONED: ("actioned_at", "actioned_by"),
}


def can_transition(current: ActionStage | str, target: ActionStage | str) -> bool:
    return ActionStage(target) in ALLOWED_STAGE_TRANSITIONS.get(ActionStage(current), frozenset())


def stage_patch(current: ActionStage | str, target: ActionStage | str, actor_id: str, *, now: datetime) -> dict[str, Any]:
    current, target = ActionStage(current), ActionStage(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)
    patch: dict[str, Any] = {"stage": target.value}
    stamp = STAGE_STAMPS.get(target)
    if stamp is not None:
        at_column, by_column = stamp
        patch[at_column] = now
        patch[by_column] = actor_id
    return patch


def transition(
    action: RecommendedActionOut,
    target_stage: ActionStage | str,
    actor_id: str,
    *,
    now: datetime | None = None,
) -> RecommendedActionOut:
    patch = stage_patch(action.stage, target_stage, actor_id, now=now or datetime.now(UTC))
    patch["stage"] = ActionStage(patch["stage"])
    return action.model_copy(update=patch)


class ActionLifecycleService:
    """Authoritative stage writes for recommended actions; each write is audited."""

    def __init__(
        self,
        store: PersistentStore,
        *,
        journal: ErrorJournal | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.store = store
        self.journal = journal or ErrorJournal()
        self._clock = clock

    async def get_action(self, action_id: str) -> RecommendedActionOut:
        with self.journal.store_failures(_ACTION_SELECT, ActionPersistenceError, action_id=action_id):
            row = await self.store.get("recommended_actions", action_id)
        if row is None:
            raise ActionNotFoundError(action_id)
        return RecommendedActionOut.model_validate(row)

    async def transition_action_stage(
        self,
        action_id: str,
        target_stage: ActionStage | str,
        actor_id: str,
    ) -> RecommendedActionOut:
        action = await self.get_action(action_id)
        previous = action.stage
        patch = stage_patch(previous, target_stage, actor_id, now=self._clock())
        with self.journal.store_failures(_STAGE_UPDATE, ActionPersistenceError, action_id=action_id, target_stage=patch["stage"]):
            row = await self.store.update("recommended_actions", action_id, patch)
            if row is None:
                raise ActionNotFoundError(action_id)
            stored = RecommendedActionOut.model_validate(row)
            await emit_event(
                self.store,
                action_id,
                "recommended_action.stage.changed",
                {"from": previous.value, "to": stored.stage.value},
                actor_id=actor_id,
            )
        metrics.stage_transitions_total.labels(from_stage=previous.value, to_stage=stored.stage.value).inc()
        emit_stage_transition(action_id=action_id, prior_stage=previous.value, new_stage=stored.stage.value, actor_id=actor_id)
        return stored

    async def link_action_to_objective(self, action_id: str, okr_objective_id: str) -> RecommendedActionOut:
        return await self._patch_link(action_id, "okr_objective_id", okr_objective_id, "recommended_action.objective.linked")

    async def assign_action_to_campaign(self, action_id: str, campaign_id: str) -> RecommendedActionOut:
        return await self._patch_link(action_id, "campaign_id", campaign_id, "recommended_action.campaign.assigned")

    async def _patch_link(self, action_id: str, column: str, value: str, event_type: str) -> RecommendedActionOut:
        query = f"UPDATE recommended_actions SET {column} = ? WHERE id = ?"
        with self.journal.store_failures(query, ActionPersistenceError, action_id=action_id):
            row = await self.store.update("recommended_actions", action_id, {column: value})
            if row is None:
                raise ActionNotFoundError(action_id)
            await emit_event(self.store, action_id, event_type, {column: value})
        logger.info("action %s %s=%s", action_id, column, value)
        return RecommendedActionOut.model_validate(row)


class OptimisticActionBoard:
    """Displayed action list that applies a stage change before the write lands and reverts it on failure."""

    def __init__(self, service: ActionLifecycleService, actions: Iterable[RecommendedActionOut] = ()) -> None:
        self.service = service
        self._actions: dict[str, RecommendedActionOut] = {action.id: action for action in actions}

    def get(self, action_id: str) -> RecommendedActionOut:
        try:
            return self._actions[action_id]
        except KeyError as exc:
            raise ActionNotFoundError(action_id) from exc

    def displayed(self) -> list[RecommendedActionOut]:
        return list(self._actions.values())

    async def move(self, action_id: str, target_stage: ActionStage | str, actor_id: str) -> RecommendedActionOut:
        current = self.get(action_id)
        self._actions[action_id] = transition(current, target_stage, actor_id)
        try:
            stored = await self.service.transition_action_stage(action_id, target_stage, actor_id)
        except BaseException:
            logger.warning("rolling back optimistic stage change action=%s to=%s", action_id, target_stage)
            self._actions[action_id] = current
            raise
        self._actions[action_id] = stored
        return stored
