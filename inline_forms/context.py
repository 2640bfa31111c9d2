"""
Per-interaction context handed to control handlers and commit callbacks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .lifecycle import RowLifecycle
from .records import Record, RecordStore
from .registry import FormStateRegistry

logger = logging.getLogger(__name__)


@dataclass
class FormContext:
    registry: FormStateRegistry
    store: RecordStore
    handlers: Any
    orchestrator: Any = None
    config: Dict[str, Any] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)
    control: Any = None
    tree: Any = None
    parent: Optional[Record] = None
    rebuild_targets: List[str] = field(default_factory=list)

    def request_rebuild(self, form_id: str):
        if form_id not in self.rebuild_targets:
            self.rebuild_targets.append(form_id)

    def lifecycle(self, form_id: str) -> RowLifecycle:
        return RowLifecycle(self.registry, form_id, self.store, request_rebuild=self.request_rebuild)

    def handler(self, kind: str):
        return self.handlers.get(kind)
