"""Tests for the scheduled reachability job."""

from unittest.mock import MagicMock, patch

from workbench import reachability_job
from workbench.reachability_job import (
    bulk_reachability_step_handler,
    run_bulk_reachability_step,
    run_reachability_check,
)

from conftest import make_context


def make_services(accounts, studies_by_account=None):
    services = MagicMock()
    services.account_service.list.return_value = accounts
    services.study_service.list_studies_for_account.side_effect = (
        lambda ctx, account_id: (studies_by_account or {}).get(account_id, [])
    )
    return services


def test_checks_pending_and_error_accounts_and_studies():
    services = make_services(
        [
            {"id": "111111111111", "status": "pending"},
            {"id": "222222222222", "status": "error"},
            {"id": "333333333333", "status": "reachable"},
        ],
        {
            "333333333333": [
                {"id": "s1", "status": "pending"},
                {"id": "s2", "status": "reachable"},
                {"id": "s3", "status": "error"},
                {"id": "s4", "status": "pending"},
            ]
        },
    )

    counts = run_reachability_check(services)

    assert counts == {"bulk_checks": 2, "study_checks": 3}
    calls = [c.args[1] for c in services.reachability_service.attempt_reach.call_args_list]
    assert {"id": "*", "status": "pending"} in calls
    assert {"id": "*", "status": "error"} in calls
    assert {"id": "s2", "type": "study"} not in calls
    assert len(calls) == 5
    services.study_service.list_studies_for_account.assert_called_once()


def test_nothing_to_check():
    services = make_services([{"id": "333333333333", "status": "reachable"}])
    assert run_reachability_check(services) == {"bulk_checks": 0, "study_checks": 0}


def test_bulk_step_uses_request_context_from_payload():
    services = MagicMock()
    services.reachability_service.reach_accounts.return_value = {"111111111111": "reachable"}
    payload = {
        "ds_account_ids": ["111111111111"],
        "force_check_all": True,
        "request_context": make_context().model_dump(),
    }

    assert run_bulk_reachability_step(services, payload) == {"111111111111": "reachable"}

    ctx, ids, force = services.reachability_service.reach_accounts.call_args.args
    assert ctx.uid == "u-admin"
    assert ids == ["111111111111"]
    assert force is True


def test_bulk_step_defaults_to_system_context():
    services = MagicMock()
    run_bulk_reachability_step(services, {})
    ctx, ids, force = services.reachability_service.reach_accounts.call_args.args
    assert ctx.uid == "_system_"
    assert ids == []
    assert force is False


def test_step_handler_unwraps_workflow_input():
    services = MagicMock()
    with patch.object(reachability_job, "_services", services):
        bulk_reachability_step_handler({"input": {"ds_account_ids": ["1"]}}, None)
    assert services.reachability_service.reach_accounts.call_args.args[1] == ["1"]
