"""Runtime settings.

Settings come from an optional YAML file overridden by ``WORKBENCH_*``
environment variables (``WORKBENCH_STUDIES_TABLE`` sets ``studies_table``).
``AWS_DEFAULT_REGION``/``AWS_REGION`` and ``AWS_PROFILE`` fill in the region
and profile when neither source sets them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

LOGGER = logging.getLogger("workbench.config")

ENV_PREFIX = "WORKBENCH_"
CONFIG_PATH_ENV = "WORKBENCH_CONFIG"


class WorkbenchSettings(BaseModel):
    """Settings shared by the API, the scheduled job and the CLI."""

    region: str = "us-east-1"
    profile: Optional[str] = None

    data_sources_table: str = "swb-data-sources"
    studies_table: str = "swb-studies"
    locks_table: str = "swb-locks"
    workflow_instances_table: str = "swb-workflow-instances"
    audit_table: Optional[str] = None

    main_account_id: Optional[str] = None
    workflow_state_machine_arn: str = ""

    cognito_user_pool_id: Optional[str] = None
    cognito_app_client_id: Optional[str] = None
    enable_auth: bool = False

    enable_metrics: bool = False
    log_level: str = Field(default="INFO", description="Root log level for the API and CLI")

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "WorkbenchSettings":
        """Build settings from a YAML file and the environment.

        Args:
            config_path: YAML file; defaults to ``$WORKBENCH_CONFIG`` when set
            environ: Environment mapping, ``os.environ`` by default

        Returns:
            Validated settings
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        config_path = config_path or environ.get(CONFIG_PATH_ENV)
        if config_path:
            values.update(_read_yaml(Path(config_path)))

        for name in cls.model_fields:
            env_value = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None:
                values[name] = env_value

        region = environ.get("AWS_DEFAULT_REGION") or environ.get("AWS_REGION")
        if region and "region" not in values:
            values["region"] = region
        if environ.get("AWS_PROFILE") and "profile" not in values:
            values["profile"] = environ["AWS_PROFILE"]

        return cls(**values)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with path.open() as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
    LOGGER.debug("Loaded settings from %s", path)
    return data
