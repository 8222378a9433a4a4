# src/atlas_rdd/core/engine/local.py
"""
LocalEngine — engine de referência em processo.

Implementa o protocolo `ExecutionEngine` inteiramente no driver, para que o
core seja executável e testável sem cluster. Partições são listas de frames
de bytes; o engine nunca reinterpreta payloads, apenas chaves de shuffle.

Decisões arquiteturais:
    - O grafo de handles é preguiçoso: nada é computado até `materialize`
      (ou `checkpoint`)
    - Cada computação de um handle invoca o CompiledCommand exatamente uma
      vez por partição (`invocations` registra a contagem)
    - Handles persistidos guardam as partições na primeira computação
    - Workers em processo usam joblib/loky; em thread, joblib/threading

Invariantes:
    - Sem retry: a primeira partição com falha encerra a invocação
    - Após `stop()`, qualquer pedido falha com EngineCommunicationError

Limites explícitos:
    - Não é um engine distribuído (sem rede, sem recomputação de perdas)
    - Não implementa política de eviction
"""

from __future__ import annotations

import itertools
import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from joblib import Parallel, delayed

from atlas_rdd.core.command.builder import CompiledCommand
from atlas_rdd.core.command.formats import Format, decode, split_keyed
from atlas_rdd.core.errors import (
    engine_communication_error,
    execution_failure,
    incompatible_format,
    raise_payload,
)
from atlas_rdd.core.exceptions import (
    AlreadyPersistedError,
    EngineCommunicationError,
    ExecutionFailure,
    IncompatibleFormatError,
)

from .protocol import PartitionHandle, Partitioner, StorageLevel, WorkerType
from .worker import TaskOutcome, run_task

_BACKENDS = {
    WorkerType.PROCESS: "loky",
    WorkerType.THREAD: "threading",
}


@dataclass
class _Node:
    kind: str
    num_partitions: int
    format: Format
    parents: Tuple[int, ...] = ()
    data: Optional[List[List[bytes]]] = None
    compiled: Optional[CompiledCommand] = None
    worker_type: WorkerType = WorkerType.THREAD
    partitioner: Optional[Partitioner] = None
    name: Optional[str] = None


class LocalEngine:
    """Engine de referência (ver docstring do módulo)."""

    def __init__(self, *, default_parallelism: int = 1, n_jobs: int = 1):
        self._default_parallelism = max(1, int(default_parallelism))
        self._n_jobs = n_jobs
        self._nodes: Dict[int, _Node] = {}
        self._blocks: Dict[int, List[List[bytes]]] = {}
        self._levels: Dict[int, StorageLevel] = {}
        self._checkpoints: Dict[int, List[List[bytes]]] = {}
        self._ids = itertools.count()
        self._lock = threading.RLock()
        self._active = True
        self.invocations: Counter = Counter()

    # -----------------------------
    # Estado
    # -----------------------------
    @property
    def default_parallelism(self) -> int:
        return self._default_parallelism

    @property
    def is_active(self) -> bool:
        return self._active

    def stop(self) -> None:
        with self._lock:
            self._active = False
            self._blocks.clear()
            self._checkpoints.clear()
            self._levels.clear()

    def _ensure_active(self, operation: str) -> None:
        if not self._active:
            raise_payload(
                engine_communication_error(operation=operation, reason="engine encerrado"),
                EngineCommunicationError,
            )

    def _node(self, handle: PartitionHandle, operation: str) -> _Node:
        self._ensure_active(operation)
        node = self._nodes.get(handle.id)
        if node is None:
            raise_payload(
                engine_communication_error(operation=operation, reason=f"handle desconhecido: {handle.id}"),
                EngineCommunicationError,
            )
        return node

    def _register(self, node: _Node) -> PartitionHandle:
        with self._lock:
            node_id = next(self._ids)
            self._nodes[node_id] = node
        return PartitionHandle(
            id=node_id,
            num_partitions=node.num_partitions,
            format=node.format,
            partitioner=node.partitioner,
        )

    # -----------------------------
    # Construção de handles
    # -----------------------------
    def parallelize(self, partitions: List[List[bytes]], fmt: Format) -> PartitionHandle:
        self._ensure_active("parallelize")
        data = [list(frames) for frames in partitions]
        return self._register(_Node(kind="source", num_partitions=len(data), format=fmt, data=data))

    def submit(
        self,
        compiled: CompiledCommand,
        prev: PartitionHandle,
        worker_type: WorkerType,
    ) -> PartitionHandle:
        parent = self._node(prev, "submit")
        if compiled.deserializer != parent.format:
            raise_payload(
                incompatible_format(producer=parent.format, consumer=compiled.deserializer, operation="submit"),
                IncompatibleFormatError,
            )
        return self._register(
            _Node(
                kind="command",
                num_partitions=parent.num_partitions,
                format=compiled.serializer,
                parents=(prev.id,),
                compiled=compiled,
                worker_type=WorkerType(worker_type),
            )
        )

    def shuffle(self, handle: PartitionHandle, partitioner: Partitioner) -> PartitionHandle:
        parent = self._node(handle, "shuffle")
        if not parent.format.keyed:
            raise_payload(
                incompatible_format(producer=parent.format, consumer="keyed", operation="shuffle"),
                IncompatibleFormatError,
            )
        return self._register(
            _Node(
                kind="shuffle",
                num_partitions=partitioner.num_partitions,
                format=parent.format.values(),
                parents=(handle.id,),
                partitioner=partitioner,
            )
        )

    def coalesce(self, handle: PartitionHandle, num_partitions: int) -> PartitionHandle:
        parent = self._node(handle, "coalesce")
        target = max(1, min(int(num_partitions), parent.num_partitions))
        return self._register(
            _Node(kind="coalesce", num_partitions=target, format=parent.format, parents=(handle.id,))
        )

    def union(self, left: PartitionHandle, right: PartitionHandle) -> PartitionHandle:
        a = self._node(left, "union")
        b = self._node(right, "union")
        if a.format != b.format:
            raise_payload(
                incompatible_format(producer=b.format, consumer=a.format, operation="union"),
                IncompatibleFormatError,
            )
        return self._register(
            _Node(
                kind="union",
                num_partitions=a.num_partitions + b.num_partitions,
                format=a.format,
                parents=(left.id, right.id),
            )
        )

    # -----------------------------
    # Armazenamento
    # -----------------------------
    def persist(self, handle: PartitionHandle, level: StorageLevel) -> None:
        self._node(handle, "persist")
        level = StorageLevel.get(level)
        with self._lock:
            current = self._levels.get(handle.id)
            if current is not None and current != level:
                raise AlreadyPersistedError(
                    "Não é possível alterar o storage level de um handle já persistido",
                    details={"handle": handle.id, "current": current.value, "requested": level.value},
                )
            self._levels[handle.id] = level

    def unpersist(self, handle: PartitionHandle) -> None:
        self._node(handle, "unpersist")
        with self._lock:
            self._levels.pop(handle.id, None)
            self._blocks.pop(handle.id, None)

    def checkpoint(self, handle: PartitionHandle) -> None:
        self._node(handle, "checkpoint")
        partitions = self._compute(handle.id)
        with self._lock:
            self._checkpoints[handle.id] = partitions

    def storage_level(self, handle: PartitionHandle) -> Optional[StorageLevel]:
        return self._levels.get(handle.id)

    def is_stored(self, handle: PartitionHandle) -> bool:
        return handle.id in self._blocks or handle.id in self._checkpoints

    # -----------------------------
    # Metadados
    # -----------------------------
    def num_partitions(self, handle: PartitionHandle) -> int:
        return self._node(handle, "num_partitions").num_partitions

    def set_name(self, handle: PartitionHandle, name: str) -> None:
        self._node(handle, "set_name").name = name

    def get_name(self, handle: PartitionHandle) -> Optional[str]:
        return self._node(handle, "get_name").name

    # -----------------------------
    # Materialização
    # -----------------------------
    def materialize(self, handle: PartitionHandle, fmt: Format) -> List[Any]:
        node = self._node(handle, "materialize")
        if fmt != node.format:
            raise_payload(
                incompatible_format(producer=node.format, consumer=fmt, operation="materialize"),
                IncompatibleFormatError,
            )
        partitions = self._compute(handle.id)
        return [item for frames in partitions for item in decode(fmt, frames)]

    def _compute(self, node_id: int) -> List[List[bytes]]:
        # O lock cobre a execução inteira: materializações concorrentes de
        # threads do driver são serializadas e um nó persistido é computado
        # uma única vez.
        with self._lock:
            if node_id in self._checkpoints:
                return self._checkpoints[node_id]
            if node_id in self._blocks:
                return self._blocks[node_id]

            node = self._nodes[node_id]
            if node.kind == "source":
                partitions = node.data or []
            elif node.kind == "command":
                partitions = self._run_command(node_id, node, self._compute(node.parents[0]))
            elif node.kind == "shuffle":
                partitions = self._run_shuffle(node, self._compute(node.parents[0]))
            elif node.kind == "coalesce":
                partitions = self._run_coalesce(node, self._compute(node.parents[0]))
            elif node.kind == "union":
                partitions = self._compute(node.parents[0]) + self._compute(node.parents[1])
            else:  # pragma: no cover
                raise EngineCommunicationError(f"Tipo de nó desconhecido: {node.kind}")

            if node_id in self._levels:
                self._blocks[node_id] = partitions
            return partitions

    def _run_command(self, node_id: int, node: _Node, parents: List[List[bytes]]) -> List[List[bytes]]:
        backend = _BACKENDS[node.worker_type]
        try:
            outcomes: List[TaskOutcome] = Parallel(n_jobs=self._n_jobs, backend=backend)(
                delayed(run_task)(node.compiled, index, frames)
                for index, frames in enumerate(parents)
            )
        except Exception as exc:  # noqa: BLE001
            raise EngineCommunicationError(
                "Falha no pool de workers",
                details={"backend": backend, "exc_type": exc.__class__.__name__, "exc_message": str(exc)},
            ) from exc

        self.invocations[node_id] += len(outcomes)

        failed = [outcome for outcome in outcomes if not outcome.ok]
        if failed:
            first = min(failed, key=lambda outcome: outcome.index)
            payload = execution_failure(
                partition=first.index,
                exc_type=first.error_type,
                exc_message=first.error_message,
            )
            raise ExecutionFailure(
                message=f"{payload.message}: {first.error_type}: {first.error_message}",
                details=dict(payload.details, stages=node.compiled.stage_names),
                hint=payload.hint,
            )

        return [list(outcome.frames or []) for outcome in sorted(outcomes, key=lambda o: o.index)]

    def _run_shuffle(self, node: _Node, parents: List[List[bytes]]) -> List[List[bytes]]:
        buckets: List[List[bytes]] = [[] for _ in range(node.num_partitions)]
        for frames in parents:
            for key, payload in split_keyed(frames):
                buckets[key % node.num_partitions].append(payload)
        return buckets

    def _run_coalesce(self, node: _Node, parents: List[List[bytes]]) -> List[List[bytes]]:
        # faixas contíguas: partição i recebe [i*m/n, (i+1)*m/n)
        total = len(parents)
        target = node.num_partitions
        merged: List[List[bytes]] = []
        for i in range(target):
            start = i * total // target
            end = (i + 1) * total // target
            merged.append([frame for frames in parents[start:end] for frame in frames])
        return merged
