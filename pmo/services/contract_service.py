"""Contract service layer.

Contract numbers are unique across the portfolio. A contract still
referenced by deliverables cannot be deleted.
"""
import logging
from typing import Any

from sqlalchemy import func, select

from pmo.core.access import (
    Principal,
    ResourceKind,
    require_create,
    require_delete,
    require_modify,
    require_view,
)
from pmo.core.exceptions import ConflictError, DependencyError
from pmo.models import db
from pmo.models.contract import Contract, Provider
from pmo.models.project import Deliverable
from pmo.services.audit_service import get_audit
from pmo.services.helpers.partial_update import apply_update
from pmo.services.helpers.validation import (
    DateField,
    Number,
    OneOf,
    Reference,
    Text,
    check_date_range,
    coerce,
)
from pmo.services.project_service import get_project
from pmo.utils.helpers import db_commit_or_raise, get_or_raise

logger = logging.getLogger(__name__)

CONTRACT_STATUSES = {"negotiation", "signed", "active", "completed", "terminated"}

CONTRACT_FIELDS = {
    "contract_number": Text(50, required=True),
    "title": Text(255, required=True),
    "description": Text(),
    "provider_id": Reference(Provider),
    "amount": Number(minimum=0),
    "signature_date": DateField(),
    "start_date": DateField(),
    "end_date": DateField(),
    "status": OneOf(CONTRACT_STATUSES),
}


def _ensure_number_free(number: str, *, exclude_id: int | None = None) -> None:
    stmt = select(Contract.id).where(Contract.contract_number == number)
    if exclude_id is not None:
        stmt = stmt.where(Contract.id != exclude_id)
    if db.session.scalar(stmt) is not None:
        raise ConflictError("Contract", "contract_number", number)


def list_contracts(project_id: int, principal: Principal) -> list[Contract]:
    project = get_project(project_id, principal)
    return project.contracts.order_by(Contract.created_at.desc(), Contract.id.desc()).all()


def get_contract(contract_id: int, principal: Principal) -> Contract:
    contract = get_or_raise(Contract, contract_id)
    require_view(ResourceKind.CONTRACT, principal, contract)
    return contract


def create_contract(project_id: int, data: dict[str, Any], principal: Principal) -> Contract:
    project = get_project(project_id, principal)
    require_create(ResourceKind.CONTRACT, principal, project)
    values = coerce(data, CONTRACT_FIELDS)
    check_date_range(values.get("start_date"), values.get("end_date"))
    _ensure_number_free(values["contract_number"])

    contract = Contract(project_id=project.id, created_by=principal.id, **values)
    db.session.add(contract)
    db.session.flush()
    get_audit().emit(
        "contract.create", "contract", contract.id,
        actor=principal, project_id=project.id,
        details={"contract_number": contract.contract_number, "amount": contract.amount},
    )
    db_commit_or_raise("Contract")
    return contract


def update_contract(contract_id: int, data: dict[str, Any], principal: Principal) -> tuple[Contract, int]:
    contract = get_or_raise(Contract, contract_id)
    require_modify(contract, principal)
    patch = coerce(data, CONTRACT_FIELDS, partial=True)
    if "contract_number" in patch:
        _ensure_number_free(patch["contract_number"], exclude_id=contract.id)
    check_date_range(
        patch.get("start_date", contract.start_date),
        patch.get("end_date", contract.end_date),
    )
    rows = apply_update(Contract, contract.id, patch)
    if rows:
        get_audit().emit(
            "contract.update", "contract", contract.id,
            actor=principal, project_id=contract.project_id, details=patch,
        )
        db_commit_or_raise("Contract")
    return contract, rows


def delete_contract(contract_id: int, principal: Principal) -> None:
    contract = get_or_raise(Contract, contract_id)
    require_delete(ResourceKind.CONTRACT, principal, contract)
    count = db.session.scalar(
        select(func.count(Deliverable.id)).where(Deliverable.contract_id == contract.id)
    )
    if count:
        raise DependencyError("Contract", {"deliverables": count})

    get_audit().emit(
        "contract.delete", "contract", contract.id,
        actor=principal, project_id=contract.project_id,
        details={"contract_number": contract.contract_number},
    )
    db.session.delete(contract)
    db_commit_or_raise("Contract")
