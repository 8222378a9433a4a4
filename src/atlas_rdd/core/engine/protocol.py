# src/atlas_rdd/core/engine/protocol.py
"""
Contrato de fronteira entre o core e o engine de execução.

O engine (agendamento de partições, tolerância a falhas, blocos, transporte)
é um colaborador externo. O core apenas emite pedidos e recebe resultados
através do protocolo `ExecutionEngine` definido aqui.

Operações da fronteira:
    - parallelize: partições já enquadradas pelo core → handle
    - submit: (CompiledCommand, handle anterior, modo de worker) → handle novo
    - shuffle: (handle de pares keyed, Partitioner) → handle redistribuído
    - coalesce / union: movimentação de dados no engine
    - materialize: (handle, formato) → elementos decodificados, no driver
    - persist / unpersist / checkpoint: estado de armazenamento

Invariantes:
    - Handles são opacos para o core, exceto pela etiqueta de formato
    - Um Partitioner é identificado por (num_partitions, token da função)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol, Union, runtime_checkable

from atlas_rdd.core.command.builder import CompiledCommand
from atlas_rdd.core.command.formats import Format
from atlas_rdd.core.exceptions import CompositionError


class WorkerType(str, Enum):
    """Modo de isolamento dos workers que executam partições."""
    PROCESS = "process"
    THREAD = "thread"


class StorageLevel(str, Enum):
    """
    Níveis de armazenamento aceitos por `persist`.

    O conjunto é fechado; o core não define política de eviction.
    """
    MEMORY_ONLY = "memory_only"
    MEMORY_ONLY_2 = "memory_only_2"
    MEMORY_AND_DISK = "memory_and_disk"
    MEMORY_AND_DISK_2 = "memory_and_disk_2"
    MEMORY_ONLY_SER = "memory_only_ser"
    MEMORY_ONLY_SER_2 = "memory_only_ser_2"
    MEMORY_AND_DISK_SER = "memory_and_disk_ser"
    MEMORY_AND_DISK_SER_2 = "memory_and_disk_ser_2"
    DISK_ONLY = "disk_only"
    DISK_ONLY_2 = "disk_only_2"
    OFF_HEAP = "off_heap"

    @classmethod
    def get(cls, level: Union[str, "StorageLevel"]) -> "StorageLevel":
        if isinstance(level, cls):
            return level
        try:
            return cls(str(level).lower())
        except ValueError:
            raise CompositionError(
                f"Storage level desconhecido: {level}",
                details={"level": str(level), "allowed": [lv.value for lv in cls]},
            ) from None


@dataclass(frozen=True)
class Partitioner:
    """Identidade de particionamento: a função nunca roda dentro do shuffle."""

    num_partitions: int
    func_token: str


@dataclass(frozen=True)
class PartitionHandle:
    """Referência opaca a dados particionados mantidos pelo engine."""

    id: int
    num_partitions: int
    format: Format
    partitioner: Optional[Partitioner] = None


@runtime_checkable
class ExecutionEngine(Protocol):
    """Contrato mínimo que um engine precisa honrar para o core."""

    @property
    def default_parallelism(self) -> int:
        ...

    @property
    def is_active(self) -> bool:
        ...

    def parallelize(self, partitions: List[List[bytes]], fmt: Format) -> PartitionHandle:
        ...

    def submit(
        self,
        compiled: CompiledCommand,
        prev: PartitionHandle,
        worker_type: WorkerType,
    ) -> PartitionHandle:
        ...

    def shuffle(self, handle: PartitionHandle, partitioner: Partitioner) -> PartitionHandle:
        ...

    def coalesce(self, handle: PartitionHandle, num_partitions: int) -> PartitionHandle:
        ...

    def union(self, left: PartitionHandle, right: PartitionHandle) -> PartitionHandle:
        ...

    def materialize(self, handle: PartitionHandle, fmt: Format) -> List[Any]:
        ...

    def persist(self, handle: PartitionHandle, level: StorageLevel) -> None:
        ...

    def unpersist(self, handle: PartitionHandle) -> None:
        ...

    def checkpoint(self, handle: PartitionHandle) -> None:
        ...

    def num_partitions(self, handle: PartitionHandle) -> int:
        ...

    def set_name(self, handle: PartitionHandle, name: str) -> None:
        ...

    def get_name(self, handle: PartitionHandle) -> Optional[str]:
        ...

    def stop(self) -> None:
        ...
