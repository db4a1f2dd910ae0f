"""Trigger named workflows as Step Functions executions.

Each trigger records a workflow instance in DynamoDB before starting the
execution, so a started execution can always be traced back to its instance.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import ClientError

from workbench.context import RequestContext
from workbench.db import DynamoTable
from workbench.errors import bad_request, internal_error
from workbench.utils import generate_id, utc_now_iso

LOGGER = logging.getLogger("workbench.workflows")

DEFAULT_INSTANCE_TTL_DAYS = 30


class WorkflowTriggerService:
    """Starts workflow executions for the services."""

    def __init__(
        self,
        instances_table: DynamoTable,
        state_machine_arn: str,
        region: str,
        profile: Optional[str] = None,
        instance_ttl_days: int = DEFAULT_INSTANCE_TTL_DAYS,
    ):
        session_kwargs = {"region_name": region}
        if profile:
            session_kwargs["profile_name"] = profile

        session = boto3.Session(**session_kwargs)
        self.stepfunctions = session.client("stepfunctions")
        self.instances_table = instances_table
        self.state_machine_arn = state_machine_arn
        self.instance_ttl_days = instance_ttl_days

    def trigger_workflow(
        self,
        request_context: RequestContext,
        workflow: Dict[str, Any],
        workflow_input: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Start a workflow execution.

        Args:
            request_context: Context of the caller
            workflow: ``{"workflow_id": ..., "workflow_ver": ...}``; the version defaults to 1
            workflow_input: JSON serializable input for the workflow

        Returns:
            ``{"execution_arn": ..., "instance": ...}``
        """
        workflow_id = workflow.get("workflow_id")
        if not workflow_id:
            raise bad_request("workflow_id is required", safe=True)
        workflow_ver = int(workflow.get("workflow_ver") or 1)

        instance_id = generate_id()
        instance = {
            "id": instance_id,
            "wf_id": workflow_id,
            "wf_ver": workflow_ver,
            "wf_status": "not_started",
            "input": json.dumps(workflow_input or {}, default=str),
            "created_at": utc_now_iso(),
            "created_by": request_context.uid,
            "ttl": int(time.time()) + self.instance_ttl_days * 24 * 3600,
        }
        self.instances_table.put(instance, condition="attribute_not_exists(id)")

        execution_input = {
            "meta": {
                "wf_id": workflow_id,
                "wf_ver": workflow_ver,
                "wf_inst_id": instance_id,
            },
            "input": workflow_input or {},
        }
        try:
            response = self.stepfunctions.start_execution(
                stateMachineArn=self.state_machine_arn,
                name=f"{workflow_id}_{workflow_ver}_{instance_id}",
                input=json.dumps(execution_input, default=str),
            )
        except ClientError as e:
            LOGGER.error("Failed to start workflow %s: %s", workflow_id, e)
            self.instances_table.update(
                {"id": instance_id},
                {"wf_status": "error", "status_msg": str(e)},
                by=request_context.uid,
            )
            raise internal_error(f'Could not start workflow "{workflow_id}"', safe=True) from e

        execution_arn = response["executionArn"]
        instance = self.instances_table.update(
            {"id": instance_id},
            {"wf_status": "in_progress", "execution_arn": execution_arn},
            by=request_context.uid,
        )
        LOGGER.info("Started workflow %s v%s as %s", workflow_id, workflow_ver, execution_arn)
        return {"execution_arn": execution_arn, "instance": instance}
