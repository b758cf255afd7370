from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
from datetime import datetime


class ExecutionStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class LogLevel(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class QueryResult:
    """What the query transport returns for one statement."""
    row_count: int = 0
    rows: Tuple[Tuple[Any, ...], ...] = field(default_factory=tuple)
    execution_time_ms: float = 0.0

    @property
    def first_cell(self) -> Any:
        if self.rows and self.rows[0]:
            return self.rows[0][0]
        return None


@dataclass(frozen=True)
class ExecutionLogEntry:
    timestamp: datetime
    level: LogLevel
    message: str
    step_id: Optional[str] = None
    duration_ms: Optional[float] = None
    affected_rows: Optional[int] = None


@dataclass
class PerformanceMetrics:
    total_execution_seconds: float = 0.0
    average_step_seconds: float = 0.0
    statements_executed: int = 0
    rows_affected: int = 0
    step_durations_seconds: Dict[str, float] = field(default_factory=dict)


@dataclass
class MigrationExecutionResult:
    """Bookkeeping for one execution attempt of a migration script."""
    execution_id: str
    script_id: str
    start_time: datetime
    status: ExecutionStatus = ExecutionStatus.PENDING
    end_time: Optional[datetime] = None
    current_step: Optional[int] = None
    completed_steps: int = 0
    failed_steps: int = 0
    cancelled: bool = False
    dry_run: bool = False
    step_statuses: Dict[str, StepStatus] = field(default_factory=dict)
    execution_log: List[ExecutionLogEntry] = field(default_factory=list)
    performance_metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)

    def log(
        self,
        level: LogLevel,
        message: str,
        step_id: Optional[str] = None,
        duration_ms: Optional[float] = None,
        affected_rows: Optional[int] = None,
    ) -> ExecutionLogEntry:
        """Append an entry; the log is never rewritten."""
        entry = ExecutionLogEntry(
            timestamp=datetime.now(),
            level=level,
            message=message,
            step_id=step_id,
            duration_ms=duration_ms,
            affected_rows=affected_rows,
        )
        self.execution_log.append(entry)
        return entry

    def entries_for(self, step_id: str) -> List[ExecutionLogEntry]:
        return [e for e in self.execution_log if e.step_id == step_id]

    def steps_with_status(self, status: StepStatus) -> List[str]:
        return [step_id for step_id, s in self.step_statuses.items() if s == status]
