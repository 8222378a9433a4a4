# src/atlas_rdd/core/engine/__init__.py
"""
Fronteira com o engine de execução.

Componentes principais:
    - protocol → `ExecutionEngine`, `PartitionHandle`, `Partitioner`,
                 `StorageLevel`, `WorkerType`
    - worker   → execução de uma partição (`run_task`, `TaskOutcome`)
    - local    → `LocalEngine`, engine de referência em processo

O core apenas emite pedidos através desta fronteira; agendamento,
recuperação de partições perdidas e transporte pertencem ao engine.
"""

from .local import LocalEngine
from .protocol import ExecutionEngine, PartitionHandle, Partitioner, StorageLevel, WorkerType
from .worker import TaskOutcome, run_task

__all__ = [
    "ExecutionEngine",
    "LocalEngine",
    "PartitionHandle",
    "Partitioner",
    "StorageLevel",
    "TaskOutcome",
    "WorkerType",
    "run_task",
]
