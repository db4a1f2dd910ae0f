"""Wiring of the services from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

import boto3

from workbench.application_roles import ApplicationRoleService
from workbench.audit import AuditWriter, AuditWriterService, DynamoAuditWriter, LoggingAuditWriter
from workbench.authorization import AuthorizationService
from workbench.config import WorkbenchSettings
from workbench.data_source_accounts import DataSourceAccountService
from workbench.data_source_buckets import DataSourceBucketService
from workbench.data_source_reachability import DataSourceReachabilityService
from workbench.data_source_registration import DataSourceRegistrationService
from workbench.db import DynamoTable
from workbench.locks import LockService
from workbench.role_sessions import RoleSessionFactory
from workbench.studies import ACCOUNT_INDEX, StudyService
from workbench.workflows import WorkflowTriggerService

LOGGER = logging.getLogger("workbench.services")


@dataclass
class WorkbenchServices:
    """Every service the API and jobs need, built once per process."""
    settings: WorkbenchSettings
    tables: List[DynamoTable]
    authorization: AuthorizationService
    audit_writer: AuditWriterService
    lock_service: LockService
    workflow_trigger: WorkflowTriggerService
    account_service: DataSourceAccountService
    bucket_service: DataSourceBucketService
    study_service: StudyService
    application_role_service: ApplicationRoleService
    registration_service: DataSourceRegistrationService
    reachability_service: DataSourceReachabilityService

    def create_tables(self) -> None:
        """Create every table used by the services if missing."""
        data_sources, studies, locks, instances = self.tables[:4]
        data_sources.create_table_if_not_exists(["pk", "sk"])
        studies.create_table_if_not_exists(["id"], indexes=[{"name": ACCOUNT_INDEX, "hash_key": "account_id"}])
        locks.create_table_if_not_exists(["id"], ttl_attribute="ttl")
        instances.create_table_if_not_exists(["id"], ttl_attribute="ttl")
        for extra in self.tables[4:]:
            extra.create_table_if_not_exists(["id"])


def build_services(settings: WorkbenchSettings) -> WorkbenchServices:
    """Bind tables and clients and wire the services together."""
    region, profile = settings.region, settings.profile
    data_sources = DynamoTable(settings.data_sources_table, region, profile)
    studies = DynamoTable(settings.studies_table, region, profile)
    locks = DynamoTable(settings.locks_table, region, profile)
    instances = DynamoTable(settings.workflow_instances_table, region, profile)
    tables = [data_sources, studies, locks, instances]

    writers: List[AuditWriter] = [LoggingAuditWriter()]
    if settings.audit_table:
        audit_table = DynamoTable(settings.audit_table, region, profile)
        tables.append(audit_table)
        writers.append(DynamoAuditWriter(audit_table))

    authorization = AuthorizationService()
    audit_writer = AuditWriterService(writers)
    lock_service = LockService(locks)
    workflow_trigger = WorkflowTriggerService(
        instances, settings.workflow_state_machine_arn, region, profile
    )

    account_service = DataSourceAccountService(data_sources, authorization, audit_writer)
    bucket_service = DataSourceBucketService(data_sources, authorization, audit_writer)
    study_service = StudyService(studies, authorization, audit_writer)
    application_role_service = ApplicationRoleService(data_sources, authorization)

    cloudwatch = None
    if settings.enable_metrics:
        session_kwargs = {"region_name": region}
        if profile:
            session_kwargs["profile_name"] = profile
        cloudwatch = boto3.Session(**session_kwargs).client("cloudwatch")

    registration_service = DataSourceRegistrationService(
        account_service,
        bucket_service,
        study_service,
        application_role_service,
        lock_service,
        authorization,
        audit_writer,
    )
    reachability_service = DataSourceReachabilityService(
        account_service,
        study_service,
        application_role_service,
        workflow_trigger,
        RoleSessionFactory(region, profile),
        authorization,
        audit_writer,
        cloudwatch=cloudwatch,
    )

    LOGGER.info("Workbench services ready (region=%s)", region)
    return WorkbenchServices(
        settings=settings,
        tables=tables,
        authorization=authorization,
        audit_writer=audit_writer,
        lock_service=lock_service,
        workflow_trigger=workflow_trigger,
        account_service=account_service,
        bucket_service=bucket_service,
        study_service=study_service,
        application_role_service=application_role_service,
        registration_service=registration_service,
        reachability_service=reachability_service,
    )
