"""Scheduled reachability check and the bulk check workflow step.

``lambda_handler`` runs on a schedule; it re-checks accounts that are pending
or in error and the not yet reachable studies of reachable accounts.
``bulk_reachability_step_handler`` is the step executed by the
``wf-bulk-reachability-check`` workflow.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from workbench.config import WorkbenchSettings
from workbench.context import RequestContext, system_request_context
from workbench.entities import ReachabilityStatus
from workbench.services import WorkbenchServices, build_services

LOGGER = logging.getLogger("workbench.reachability_job")

RECHECK_STATUSES = [ReachabilityStatus.PENDING.value, ReachabilityStatus.ERROR.value]


def run_reachability_check(services: WorkbenchServices) -> Dict[str, int]:
    """Trigger reachability checks for everything that is not reachable yet.

    Returns:
        Counts of bulk account checks and study checks that were attempted
    """
    request_context = system_request_context()
    reachability = services.reachability_service

    accounts = services.account_service.list(request_context)
    statuses = {account["status"] for account in accounts}

    bulk_checks = 0
    for status in RECHECK_STATUSES:
        if status in statuses:
            reachability.attempt_reach(request_context, {"id": "*", "status": status})
            bulk_checks += 1

    study_checks = 0
    for account in accounts:
        if account["status"] != ReachabilityStatus.REACHABLE.value:
            continue
        studies = services.study_service.list_studies_for_account(request_context, account["id"])
        for study in studies:
            if study.get("status") == ReachabilityStatus.REACHABLE.value:
                continue
            reachability.attempt_reach(request_context, {"id": study["id"], "type": "study"})
            study_checks += 1

    LOGGER.info("Reachability check: %d bulk account checks, %d study checks", bulk_checks, study_checks)
    return {"bulk_checks": bulk_checks, "study_checks": study_checks}


def run_bulk_reachability_step(services: WorkbenchServices, payload: Dict[str, Any]) -> Dict[str, str]:
    """Check the accounts listed in a bulk check workflow input."""
    context_data = payload.get("request_context")
    request_context = (
        RequestContext.model_validate(context_data) if context_data else system_request_context()
    )
    return services.reachability_service.reach_accounts(
        request_context,
        payload.get("ds_account_ids", []),
        bool(payload.get("force_check_all", False)),
    )


_services: Optional[WorkbenchServices] = None


def _get_services() -> WorkbenchServices:
    global _services
    if _services is None:
        _services = build_services(WorkbenchSettings.load())
    return _services


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, int]:
    return run_reachability_check(_get_services())


def bulk_reachability_step_handler(event: Dict[str, Any], context: Any) -> Dict[str, str]:
    return run_bulk_reachability_step(_get_services(), event.get("input", event))
