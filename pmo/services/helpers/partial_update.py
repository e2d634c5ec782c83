"""
Partial-update assembler shared by every entity's update operation.

Each patchable model declares its settable columns in ``PATCHABLE_FIELDS``.
A sparse field map is filtered against that set, turned into a single
``UPDATE ... WHERE id = :id`` that also refreshes ``updated_at``, and
executed in the current session.

Rules:
  - ``id`` and ownership/audit columns are never settable.
  - Keys absent from the patch structure are ignored (logged at debug).
  - ``UNSET`` values are skipped; ``None`` is a real value (clears the column).
  - An empty field set never issues a write and reports 0 rows.
  - No entity validation happens here; services validate before calling.

Usage:
    from pmo.services.helpers.partial_update import apply_update

    rows = apply_update(Project, project.id, {"budget": 5000.0})
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import update

from pmo.models import db
from pmo.models.auth import User
from pmo.models.contract import Contract, ProjectProvider, Provider
from pmo.models.document import BudgetLineItem, Document
from pmo.models.project import Deliverable, Phase, Project

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()

PATCHABLE_FIELDS: dict[type, frozenset[str]] = {
    Project: frozenset({
        "name", "code", "description", "lead_id", "direction_id", "status_id",
        "budget", "budget_consumed", "start_date", "target_end_date",
        "completion_pct", "priority", "health",
    }),
    Phase: frozenset({
        "name", "description", "order", "start_date", "target_end_date", "status",
        "budget_allocated", "budget_consumed", "completion_pct", "responsible_id",
    }),
    Deliverable: frozenset({
        "phase_id", "contract_id", "name", "description", "deliverable_type",
        "due_date", "status", "responsible_id", "validator_id", "weight",
    }),
    Contract: frozenset({
        "provider_id", "contract_number", "title", "description", "amount",
        "signature_date", "start_date", "end_date", "status",
    }),
    Provider: frozenset({
        "name", "registration_number", "address", "provider_type", "contact_name",
        "contact_email", "contact_phone", "expertise", "status",
    }),
    ProjectProvider: frozenset({"role_in_project", "start_date", "end_date", "status"}),
    Document: frozenset({
        "phase_id", "deliverable_id", "contract_id", "category", "description",
    }),
    BudgetLineItem: frozenset({
        "phase_id", "contract_id", "category", "planned_amount",
        "committed_amount", "consumed_amount", "description",
    }),
    User: frozenset({
        "full_name", "email", "password_hash", "role_id", "direction_id",
        "status", "last_access_at",
    }),
}

# Never settable through a patch, whatever the model
_PROTECTED = frozenset({"id", "project_id", "created_at", "updated_at", "created_by", "uploaded_by"})

for _model, _fields in PATCHABLE_FIELDS.items():
    if _fields & _PROTECTED:
        raise RuntimeError(f"{_model.__name__} exposes protected fields: {sorted(_fields & _PROTECTED)}")


def settable_fields(model) -> frozenset[str]:
    """Return the patch structure for ``model``."""
    try:
        return PATCHABLE_FIELDS[model]
    except KeyError:
        raise ValueError(f"{model.__name__} has no patch structure") from None


def filter_patch(model, sparse_fields: dict) -> dict:
    """Keep only settable, set keys of ``sparse_fields``."""
    allowed = settable_fields(model)
    ignored = sorted(k for k in sparse_fields if k not in allowed)
    if ignored:
        logger.debug("Ignoring non-patchable fields on %s: %s", model.__name__, ignored)
    return {
        key: value
        for key, value in sparse_fields.items()
        if key in allowed and value is not UNSET
    }


def build_update(model, entity_id: int, sparse_fields: dict):
    """Assemble the UPDATE statement for a sparse field map.

    Returns:
        (statement, applied_count). ``statement`` is None and
        ``applied_count`` 0 when nothing is settable.
    """
    values = filter_patch(model, sparse_fields)
    if not values:
        return None, 0
    applied = len(values)
    values["updated_at"] = datetime.now(timezone.utc)
    stmt = update(model).where(model.id == entity_id).values(**values)
    return stmt, applied


def apply_update(model, entity_id: int, sparse_fields: dict) -> int:
    """Execute a partial update in the current transaction.

    Returns the number of affected rows: 0 means nothing was settable,
    or (without a prior existence check) that the row does not exist.
    The caller commits.
    """
    stmt, applied = build_update(model, entity_id, sparse_fields)
    if stmt is None:
        return 0
    result = db.session.execute(stmt)
    logger.debug(
        "Partial update %s id=%s fields=%d rows=%d",
        model.__name__, entity_id, applied, result.rowcount,
    )
    return result.rowcount
