"""
Content reconciliation and versioning core for a product editor.

Tracks three views of a product's editorial content (the last-known store
snapshot, the user's working copy and an AI-proposed draft) and keeps an
undo/redo history that asynchronous refetches, component normalization and
in-flight saves cannot corrupt.

Key Features:
- Field-level dirty tracking against the store snapshot
- Conflict detection against a freshly fetched remote snapshot
- Field-by-field accept/reject of AI draft proposals
- Debounced, bounded, linear undo/redo with a saved marker
- Stabilization guard against false "unsaved changes" after load and save
- Fire-and-forget version records with restore through the history path

Quick Start:
    >>> from contentstate import EditorSession, HttpProductApi
    >>>
    >>> async with HttpProductApi("https://api.example.com") as api:
    ...     session = EditorSession("42", api)
    ...     await session.load()
    ...     session.form.input_value('title', 'New title')
    ...     session.accept_field('seo.title')
    ...     result = await session.save()
    ...     await session.aclose()

Architecture:
    FormState is the single source of truth for live values. DirtyFieldTracker
    and ConflictDetector are pure derivations. DraftReconciler and FormHistory
    mutate FormState; FormHistory, version restore and the load sync share one
    RestoreGuard. EditorSession orchestrates and exposes an EditorContext.

Modules:
    - form_state: live values, baseline, touched bookkeeping, validation
    - dirty_tracker: normalized per-field comparison, content status
    - conflicts: three-way conflict detection and resolution
    - drafts: remaining proposals, accept/reject
    - history: debounced snapshots, undo/redo, saved marker
    - stabilization: settle timer and post-save guard
    - versions: version manager and stores
    - session: orchestration boundary
    - http_backend: httpx adapters for the external APIs
"""

__version__ = "0.1.0"

from contentstate.config import (
    EditorConfig,
    editor_config_context,
    get_base_editor_config,
    get_editor_config,
    set_base_editor_config,
)
from contentstate.conflicts import ConflictDetector, detect_conflicts, resolve_conflicts
from contentstate.context import DirtyFieldsSummary, EditorContext, HistoryHandle
from contentstate.dirty_tracker import (
    VARIATIONS_FIELD,
    compute_dirty_fields,
    content_status,
    reconcile_buffer,
)
from contentstate.drafts import DraftReconciler, remaining_proposals
from contentstate.errors import (
    BackendError,
    ConflictDetectionError,
    ContentStateError,
    FormValidationError,
    PartialSaveFailure,
    SaveFailure,
    VersionPersistenceFailure,
)
from contentstate.field_paths import DraftField
from contentstate.form_state import FormState
from contentstate.guards import RestoreGuard
from contentstate.history import FormHistory, HistoryPhase
from contentstate.http_backend import HttpProductApi, HttpVersionStore
from contentstate.models import (
    ConflictEntry,
    ConflictResolution,
    ConflictSet,
    ContentBuffer,
    ContentStatus,
    ProductRecord,
    RemoteSnapshot,
    ResolutionAction,
    SaveResult,
    SaveStatus,
    TriggerType,
    VersionRecord,
)
from contentstate.schema import ProductFormSchema, project_form_values, to_save_payload
from contentstate.session import EditorSession, ProductBackend
from contentstate.shortcuts import Shortcut, dispatch_shortcut
from contentstate.snapshot_model import HistorySnapshot, HistoryState
from contentstate.stabilization import StabilizationGuard
from contentstate.timers import AsyncioScheduler, ManualScheduler, Scheduler
from contentstate.versions import InMemoryVersionStore, VersionManager, VersionStore

__all__ = [
    # Config
    'EditorConfig',
    'editor_config_context',
    'get_base_editor_config',
    'get_editor_config',
    'set_base_editor_config',
    # Errors
    'BackendError',
    'ConflictDetectionError',
    'ContentStateError',
    'FormValidationError',
    'PartialSaveFailure',
    'SaveFailure',
    'VersionPersistenceFailure',
    # Records
    'ConflictEntry',
    'ConflictResolution',
    'ConflictSet',
    'ContentBuffer',
    'ContentStatus',
    'ProductRecord',
    'RemoteSnapshot',
    'ResolutionAction',
    'SaveResult',
    'SaveStatus',
    'TriggerType',
    'VersionRecord',
    'HistorySnapshot',
    'HistoryState',
    # Form
    'DraftField',
    'FormState',
    'ProductFormSchema',
    'project_form_values',
    'to_save_payload',
    # Derivations
    'VARIATIONS_FIELD',
    'compute_dirty_fields',
    'content_status',
    'reconcile_buffer',
    'detect_conflicts',
    'resolve_conflicts',
    'remaining_proposals',
    # Engines
    'ConflictDetector',
    'DraftReconciler',
    'FormHistory',
    'HistoryPhase',
    'RestoreGuard',
    'StabilizationGuard',
    'VersionManager',
    'VersionStore',
    'InMemoryVersionStore',
    # Scheduling
    'Scheduler',
    'AsyncioScheduler',
    'ManualScheduler',
    # Session
    'EditorSession',
    'ProductBackend',
    'EditorContext',
    'DirtyFieldsSummary',
    'HistoryHandle',
    'Shortcut',
    'dispatch_shortcut',
    # HTTP
    'HttpProductApi',
    'HttpVersionStore',
]
