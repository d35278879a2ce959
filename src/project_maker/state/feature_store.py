"""
Feature Store for Project Maker

Authoritative model of features: an in-memory cache kept in agreement with
the `features` table. Every mutation is persisted first and applied to the
cache only after the database call succeeds, so a failed write never leaves
the cache ahead of storage. Writers are serialized by a store-wide lock.

Automation fields (status and logs) are written only through the dedicated
automation mutators; generic update() refuses to touch them.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..models import (
    AutomationLog,
    AutomationStatus,
    Feature,
    FeatureComplexity,
    FeatureStatus,
    GeneratedFeature,
    LogType,
    parse_timestamp,
    utc_now,
)
from .database import Database, deserialize, serialize
from .errors import FeatureNotFoundError, InvalidTransitionError

logger = logging.getLogger(__name__)


# Feature attribute -> features column, for fields update() may write
UPDATABLE_COLUMNS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "status": "status",
    "order": "order_index",
    "key_points": "key_points",
    "acceptance_criteria": "acceptance_criteria",
    "suggested_tests": "suggested_tests",
    "estimated_complexity": "complexity",
    "dependencies": "dependencies",
    "branch_name": "branch_name",
    "pr_url": "pr_url",
}

LIST_FIELDS = {"key_points", "acceptance_criteria", "suggested_tests", "dependencies"}

PROTECTED_FIELDS = {
    "id",
    "project_id",
    "created_at",
    "updated_at",
    "automation_status",
    "automation_logs",
}

# Legal automation status changes; any state may also return to IDLE
AUTOMATION_TRANSITIONS: dict[AutomationStatus, set[AutomationStatus]] = {
    AutomationStatus.IDLE: {AutomationStatus.RUNNING},
    AutomationStatus.RUNNING: {AutomationStatus.SUCCESS, AutomationStatus.FAILED},
    AutomationStatus.SUCCESS: {AutomationStatus.RUNNING},
    AutomationStatus.FAILED: {AutomationStatus.RUNNING},
}

INSERT_FEATURE_SQL = """
    INSERT INTO features (
        id, project_id, title, description, status, complexity,
        key_points, acceptance_criteria, suggested_tests, dependencies,
        automation_status, automation_logs, branch_name, pr_url,
        order_index, created_at, updated_at
    ) VALUES (
        :id, :project_id, :title, :description, :status, :complexity,
        :key_points, :acceptance_criteria, :suggested_tests, :dependencies,
        :automation_status, :automation_logs, :branch_name, :pr_url,
        :order_index, :created_at, :updated_at
    )
"""


def _coerce(field_name: str, value: Any) -> Any:
    """Convert an incoming value to the type stored on Feature."""
    if field_name == "status":
        return FeatureStatus(value)
    if field_name == "estimated_complexity":
        return FeatureComplexity(value)
    if field_name == "order":
        return int(value)
    if field_name in LIST_FIELDS:
        return [str(item) for item in value]
    if field_name in ("title", "description"):
        return str(value)
    return value


def _encode(field_name: str, value: Any) -> Any:
    """Convert a Feature value to its column representation."""
    if field_name in LIST_FIELDS:
        return serialize(list(value))
    if isinstance(value, (FeatureStatus, FeatureComplexity, AutomationStatus)):
        return value.value
    return value


def _encode_logs(logs: Iterable[AutomationLog]) -> str:
    return serialize([entry.to_dict() for entry in logs])


def feature_to_row(feature: Feature) -> dict[str, Any]:
    """Build the parameter dict for INSERT_FEATURE_SQL."""
    return {
        "id": feature.id,
        "project_id": feature.project_id,
        "title": feature.title,
        "description": feature.description,
        "status": feature.status.value,
        "complexity": feature.estimated_complexity.value,
        "key_points": serialize(feature.key_points),
        "acceptance_criteria": serialize(feature.acceptance_criteria),
        "suggested_tests": serialize(feature.suggested_tests),
        "dependencies": serialize(feature.dependencies),
        "automation_status": feature.automation_status.value,
        "automation_logs": _encode_logs(feature.automation_logs),
        "branch_name": feature.branch_name,
        "pr_url": feature.pr_url,
        "order_index": feature.order,
        "created_at": feature.created_at.isoformat(),
        "updated_at": feature.updated_at.isoformat(),
    }


def row_to_feature(row: dict[str, Any]) -> Feature:
    """Rebuild a Feature from a `features` row."""
    return Feature(
        id=row["id"],
        project_id=row["project_id"],
        title=row["title"],
        description=row.get("description") or "",
        status=FeatureStatus(row["status"]),
        order=row.get("order_index") or 0,
        key_points=deserialize(row.get("key_points")),
        acceptance_criteria=deserialize(row.get("acceptance_criteria")),
        suggested_tests=deserialize(row.get("suggested_tests")),
        estimated_complexity=FeatureComplexity(row["complexity"]),
        dependencies=deserialize(row.get("dependencies")),
        automation_status=AutomationStatus(row["automation_status"]),
        automation_logs=tuple(
            AutomationLog.from_dict(entry) for entry in deserialize(row.get("automation_logs"))
        ),
        branch_name=row.get("branch_name"),
        pr_url=row.get("pr_url"),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


class FeatureStore:
    """
    CRUD and Kanban queries over features.

    Returned Feature objects are snapshots: every mutation replaces the
    cached object instead of modifying it in place.
    """

    def __init__(self, db: Database):
        """
        Initialize the feature store.

        Args:
            db: Initialized Database the store persists to
        """
        self.db = db
        self._features: dict[str, Feature] = {}
        self._lock = asyncio.Lock()

    # ── Loading & queries ────────────────────────────────────────────

    async def load(self, project_id: str | None = None) -> list[Feature]:
        """
        Populate the cache from the database.

        Args:
            project_id: Only (re)load this project's features when given

        Returns:
            The loaded features, sorted by order
        """
        if project_id is None:
            rows = await self.db.query("SELECT * FROM features ORDER BY order_index ASC")
        else:
            rows = await self.db.query(
                "SELECT * FROM features WHERE project_id = :project_id ORDER BY order_index ASC",
                {"project_id": project_id},
            )
        features = [row_to_feature(row) for row in rows]

        async with self._lock:
            if project_id is None:
                self._features = {f.id: f for f in features}
            else:
                kept = {k: v for k, v in self._features.items() if v.project_id != project_id}
                kept.update({f.id: f for f in features})
                self._features = kept
        return features

    def get(self, feature_id: str) -> Feature | None:
        return self._features.get(feature_id)

    def require(self, feature_id: str) -> Feature:
        """Get a feature or raise FeatureNotFoundError."""
        feature = self._features.get(feature_id)
        if feature is None:
            logger.warning("Unknown feature id: %s", feature_id)
            raise FeatureNotFoundError(feature_id)
        return feature

    def list_by_project(self, project_id: str) -> list[Feature]:
        return sorted(
            (f for f in self._features.values() if f.project_id == project_id),
            key=lambda f: (f.order, f.created_at),
        )

    def list_by_status(self, project_id: str, status: FeatureStatus | str) -> list[Feature]:
        """Features of one board column, sorted by order."""
        status = FeatureStatus(status)
        return [f for f in self.list_by_project(project_id) if f.status == status]

    def _next_order(self, project_id: str) -> int:
        orders = [f.order for f in self._features.values() if f.project_id == project_id]
        return max([0, *orders]) + 1

    # ── Create ───────────────────────────────────────────────────────

    async def create(self, project_id: str, **fields: Any) -> Feature:
        """
        Create and persist a feature.

        Defaults: status backlog, order one past the project's highest
        order, automation idle with an empty log.

        Args:
            project_id: Owning project
            **fields: Any of the updatable Feature fields

        Returns:
            The created Feature
        """
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot set fields on create: {', '.join(sorted(unknown))}")
        values = {name: _coerce(name, value) for name, value in fields.items() if value is not None}

        async with self._lock:
            now = utc_now()
            values.setdefault("title", "New Feature")
            values.setdefault("order", self._next_order(project_id))
            feature = Feature(
                id=str(uuid.uuid4()),
                project_id=project_id,
                created_at=now,
                updated_at=now,
                **values,
            )
            await self.db.execute(INSERT_FEATURE_SQL, feature_to_row(feature))
            self._features[feature.id] = feature

        logger.debug("Created feature %s (%s)", feature.id, feature.title)
        return feature

    async def create_batch(
        self,
        project_id: str,
        generated: Sequence[GeneratedFeature],
    ) -> list[Feature]:
        """
        Insert several generated features at once.

        All features share one timestamp and receive strictly increasing
        orders after the project's current maximum. The inserts run in one
        transaction and the cache is swapped once, so observers see either
        none or all of the batch.
        """
        if not generated:
            return []

        async with self._lock:
            now = utc_now()
            order = self._next_order(project_id) - 1
            features = []
            for item in generated:
                order += 1
                features.append(Feature(
                    id=str(uuid.uuid4()),
                    project_id=project_id,
                    title=item.title,
                    description=item.description,
                    status=FeatureStatus.BACKLOG,
                    order=order,
                    key_points=list(item.key_points),
                    acceptance_criteria=list(item.acceptance_criteria),
                    suggested_tests=list(item.suggested_tests),
                    estimated_complexity=item.estimated_complexity,
                    dependencies=list(item.dependencies),
                    created_at=now,
                    updated_at=now,
                ))

            await self.db.execute_many(
                [(INSERT_FEATURE_SQL, feature_to_row(f)) for f in features]
            )
            merged = dict(self._features)
            merged.update({f.id: f for f in features})
            self._features = merged

        logger.info("Imported %d features into project %s", len(features), project_id)
        return features

    # ── Update / delete ──────────────────────────────────────────────

    async def update(self, feature_id: str, **changes: Any) -> Feature:
        """
        Persist changed fields and refresh updated_at.

        Raises:
            FeatureNotFoundError: If the id is unknown
            ValueError: If a protected or unknown field is given
        """
        protected = set(changes) & PROTECTED_FIELDS
        if protected:
            raise ValueError(f"Fields cannot be updated directly: {', '.join(sorted(protected))}")
        unknown = set(changes) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown feature fields: {', '.join(sorted(unknown))}")

        values = {name: _coerce(name, value) for name, value in changes.items()}

        async with self._lock:
            feature = self.require(feature_id)
            if not values:
                return feature
            return await self._write(feature, values)

    async def _write(self, feature: Feature, values: dict[str, Any]) -> Feature:
        """Persist `values` (attribute -> typed value), then swap the cached feature."""
        now = utc_now()
        clauses = []
        params: dict[str, Any] = {"id": feature.id, "updated_at": now.isoformat()}
        for name, value in values.items():
            if name == "automation_status":
                column, encoded = "automation_status", value.value
            elif name == "automation_logs":
                column, encoded = "automation_logs", _encode_logs(value)
            else:
                column, encoded = UPDATABLE_COLUMNS[name], _encode(name, value)
            clauses.append(f"{column} = :{column}")
            params[column] = encoded
        clauses.append("updated_at = :updated_at")

        await self.db.execute(
            f"UPDATE features SET {', '.join(clauses)} WHERE id = :id", params
        )
        updated = replace(feature, **values, updated_at=now)
        self._features[feature.id] = updated
        return updated

    async def delete(self, feature_id: str) -> None:
        async with self._lock:
            self.require(feature_id)
            await self.db.execute("DELETE FROM features WHERE id = :id", {"id": feature_id})
            del self._features[feature_id]

    async def delete_by_project(self, project_id: str) -> None:
        """Delete every feature of a project (used when the project is deleted)."""
        async with self._lock:
            await self.db.execute(
                "DELETE FROM features WHERE project_id = :project_id", {"project_id": project_id}
            )
            self._features = {
                k: v for k, v in self._features.items() if v.project_id != project_id
            }

    # ── Kanban moves ─────────────────────────────────────────────────

    async def move_to_status(
        self,
        feature_id: str,
        status: FeatureStatus | str,
        order: int | None = None,
    ) -> Feature:
        """
        Move a feature to another board column.

        Without an explicit order the feature is appended to the end of the
        target column. Siblings are not renumbered.
        """
        status = FeatureStatus(status)
        async with self._lock:
            feature = self.require(feature_id)
            if order is None:
                siblings = [
                    f for f in self._features.values()
                    if f.project_id == feature.project_id
                    and f.status == status
                    and f.id != feature_id
                ]
                order = max([len(siblings), *(f.order + 1 for f in siblings)])
            return await self._write(feature, {"status": status, "order": int(order)})

    async def reorder(
        self,
        project_id: str,
        status: FeatureStatus | str,
        ordered_ids: Sequence[str],
    ) -> None:
        """
        Assign order = position in ordered_ids to each listed feature.

        Features of the column missing from the list keep their old order,
        so callers are expected to pass the full column.
        """
        status = FeatureStatus(status)
        async with self._lock:
            for feature_id in ordered_ids:
                feature = self.require(feature_id)
                if feature.project_id != project_id:
                    raise ValueError(f"Feature {feature_id} does not belong to project {project_id}")

            now = utc_now()
            await self.db.execute_many([
                (
                    "UPDATE features SET order_index = :order_index, updated_at = :updated_at WHERE id = :id",
                    {"order_index": index, "updated_at": now.isoformat(), "id": feature_id},
                )
                for index, feature_id in enumerate(ordered_ids)
            ])

            merged = dict(self._features)
            for index, feature_id in enumerate(ordered_ids):
                merged[feature_id] = replace(merged[feature_id], order=index, updated_at=now)
            self._features = merged

        logger.debug("Reordered %d features in %s/%s", len(ordered_ids), project_id, status.value)

    # ── Automation fields ────────────────────────────────────────────

    async def update_automation_status(
        self,
        feature_id: str,
        status: AutomationStatus | str,
    ) -> Feature:
        """
        Change a feature's automation status.

        Raises:
            InvalidTransitionError: If the state machine forbids the change
        """
        status = AutomationStatus(status)
        async with self._lock:
            feature = self.require(feature_id)
            current = feature.automation_status
            if status != AutomationStatus.IDLE and status not in AUTOMATION_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Cannot change automation status from {current.value} to {status.value}"
                )
            return await self._write(feature, {"automation_status": status})

    async def reset_automation(self, feature_id: str) -> Feature:
        """Return a feature to idle before a manual retry."""
        return await self.update_automation_status(feature_id, AutomationStatus.IDLE)

    async def append_automation_log(
        self,
        feature_id: str,
        step: str,
        message: str,
        type: LogType | str = LogType.INFO,
        timestamp: datetime | None = None,
    ) -> AutomationLog:
        """Append one entry to a feature's automation log."""
        entry = AutomationLog(
            timestamp=timestamp or utc_now(),
            step=step,
            message=message,
            type=LogType(type),
        )
        async with self._lock:
            feature = self.require(feature_id)
            await self._write(feature, {"automation_logs": (*feature.automation_logs, entry)})
        return entry

    async def clear_automation_logs(self, feature_id: str) -> Feature:
        """Truncate a feature's automation log to empty."""
        async with self._lock:
            feature = self.require(feature_id)
            return await self._write(feature, {"automation_logs": ()})
