"""Data Transfer Objects for application layer."""

import threading
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

from migration_engine.domain.entities.difference import ComparisonOptions, SchemaComparisonResult
from migration_engine.domain.entities.execution import MigrationExecutionResult
from migration_engine.domain.entities.migration import EnhancedMigrationScript


@dataclass
class GenerationOptions:
    """Options for generating a migration script."""
    include_rollback: bool = True
    include_validation: bool = True
    business_justification: Optional[str] = None
    author: Optional[str] = None
    environment: str = "production"
    name: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ExecutionOptions:
    """Options for executing a migration script."""
    dry_run: bool = False
    validate_only: bool = False
    stop_on_error: bool = True
    cancel_event: Optional[threading.Event] = None
    completed_step_ids: FrozenSet[str] = frozenset()  # steps done by an earlier attempt


@dataclass
class MigrationRequest:
    """Request to compare two databases and plan (optionally run) a migration."""
    source_ref: str
    target_ref: str
    comparison: ComparisonOptions = field(default_factory=ComparisonOptions)
    generation: GenerationOptions = field(default_factory=GenerationOptions)
    execution: ExecutionOptions = field(default_factory=ExecutionOptions)
    execute: bool = False
    execution_ref: Optional[str] = None  # database the script runs against, defaults to source_ref


@dataclass
class MigrationResponse:
    """Comparison, generated script and execution outcome of one request."""
    comparison: SchemaComparisonResult
    script: Optional[EnhancedMigrationScript] = None
    execution: Optional[MigrationExecutionResult] = None
