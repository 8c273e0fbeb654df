"""
Runtime configuration for the order pipeline.

Settings are a validated Pydantic model. Defaults match the behaviour of the
deployed system (30 s visibility timeout, three receives before dead-lettering,
batches of ten); every value can be overridden from ORDER_PIPELINE_*
environment variables.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

ENV_PREFIX = "ORDER_PIPELINE_"

LOG_FORMAT = "%(asctime)s | %(name)-24s | %(levelname)-5s | %(message)s"
LOG_DATEFMT = "%H:%M:%S"


class Settings(BaseModel):
    """Tunable knobs for every pipeline component."""

    # Durable queue
    visibility_timeout: float = Field(default=30.0, gt=0, description="Seconds a received message stays hidden")
    max_receive_count: int = Field(default=3, ge=1, description="Receives before a message is dead-lettered")

    # Consumers
    batch_size: int = Field(default=10, ge=1, le=10)
    consumer_workers: int = Field(default=2, ge=0)
    poll_interval: float = Field(default=0.5, gt=0)

    # Routing and workflow
    high_value_threshold: float = Field(default=500.0, ge=0, description="Orders strictly above this start a workflow")
    max_order_value: float = Field(default=10000.0, gt=0, description="Exclusive upper bound checked by Validate")
    payment_success_rate: float = Field(default=0.9, ge=0, le=1)
    workflow_workers: int = Field(default=4, ge=1)
    inline_workflows: bool = Field(default=False, description="Run workflows on the routing thread")
    history_limit: int = Field(default=1000, ge=1, description="Routed events, finished executions and sent emails kept in memory")

    # Notifications
    topic_arn: str = Field(default="arn:local:sns:order-notifications")
    sender_address: str = Field(default="orders@order-pipeline.local")

    # Ambient
    log_level: str = Field(default="INFO")
    data_file: Optional[Path] = Field(default=None, description="Optional JSON file to seed/snapshot the order store")

    @classmethod
    def from_env(cls, environ: Optional[dict[str, str]] = None, **overrides) -> "Settings":
        """
        Build settings from ORDER_PIPELINE_* environment variables.

        Pydantic coerces the string values to each field's type. Explicit
        keyword overrides win over the environment.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update(overrides)
        return cls(**values)


def configure_logging(level: str = "INFO") -> None:
    """Apply the pipeline's console log format to the root logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
