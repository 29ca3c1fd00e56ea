"""Import condition reporting on the ManagedCluster."""

from dataclasses import replace

from constants import (
    IMPORT_CONDITION_TYPE,
    IMPORT_REASON_FAILED,
    IMPORT_REASON_SUCCEEDED,
)
from models import ClusterIdentity, ClusterRecord, Condition, ConditionStatus
from utils import now_iso


def import_succeeded() -> Condition:
    return Condition(
        type=IMPORT_CONDITION_TYPE,
        status=ConditionStatus.TRUE,
        reason=IMPORT_REASON_SUCCEEDED,
        message="Import succeeded",
    )


def import_failed(identity: ClusterIdentity, error: Exception) -> Condition:
    return Condition(
        type=IMPORT_CONDITION_TYPE,
        status=ConditionStatus.FALSE,
        reason=IMPORT_REASON_FAILED,
        message=f"Unable to import {identity}: {error}",
    )


def set_condition(record: ClusterRecord, condition: Condition) -> ClusterRecord:
    """Set or update a condition on a cluster record.

    An existing condition of the same type is replaced where it stands;
    otherwise the condition is appended. The transition time only moves when
    the status changes. The record passed in is not modified.
    """
    conditions = list(record.conditions)

    for i, cond in enumerate(conditions):
        if cond.type == condition.type:
            if cond.status != condition.status or not cond.last_transition_time:
                transition_time = now_iso()
            else:
                transition_time = cond.last_transition_time
            conditions[i] = replace(condition, last_transition_time=transition_time)
            return replace(record, conditions=tuple(conditions))

    conditions.append(replace(condition, last_transition_time=now_iso()))
    return replace(record, conditions=tuple(conditions))
