"""Engine components: ledger → dedup → session → pipeline → dispatch → parallel."""

from .context import RunContext
from .dedup import DeduplicationGate, DeduplicationStore, SQLiteDeduplicationStore
from .dispatcher import RequestDispatcher, validate_url
from .fetcher import BaseSession, FetchResponse, HttpxSession, PlaywrightSession
from .ledger import EventLedger, RunInfo, RunStatus
from .pipeline import Pipeline, PipelineRunner
from .session import ResourceHandle, build_session, register_engine, unregister_engine
from .thread_pool import ParallelExecutor, WorkerOutcome, partition

__all__ = [
    "BaseSession",
    "DeduplicationGate",
    "DeduplicationStore",
    "EventLedger",
    "FetchResponse",
    "HttpxSession",
    "ParallelExecutor",
    "Pipeline",
    "PipelineRunner",
    "PlaywrightSession",
    "RequestDispatcher",
    "ResourceHandle",
    "RunContext",
    "RunInfo",
    "RunStatus",
    "SQLiteDeduplicationStore",
    "WorkerOutcome",
    "build_session",
    "partition",
    "register_engine",
    "unregister_engine",
    "validate_url",
]
