# src/atlas_rdd/core/rdd/collection.py
"""
Collection — coleção particionada, preguiçosa e imutável.

Uma Collection é a visão do driver sobre dados particionados mantidos pelo
engine. Transformações (`map`, `filter`, `map_partitions`, ...) apenas
compõem Stages em uma cópia do Command corrente; nada é executado até uma
ação (`collect`, `reduce`, `count`, ...).

Decisões arquiteturais:
    - Uma única classe; a forma "pipelined" é a variante `Derived` da
      linhagem (ver `lineage`)
    - Cada transformação devolve uma nova Collection; nenhuma muta a receptora
    - Collections persistidas ou com checkpoint cortam a linhagem: a
      sucessora parte do handle materializado com um Command novo
    - O Command só é compilado e submetido quando o handle é requisitado

Invariantes:
    - O engine recebe exatamente um CompiledCommand por fronteira
      materializada, qualquer que seja o tamanho da cadeia
    - Erros de composição (formatos incompatíveis, storage level
      conflitante) são levantados na chamada que os introduziu
    - No máximo uma cópia persistida por Collection

Limites explícitos:
    - Não lê arquivos
    - Não implementa política de eviction
"""

from __future__ import annotations

import weakref
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from atlas_rdd.core.command.builder import Command
from atlas_rdd.core.command.formats import Format
from atlas_rdd.core.command.stages import (
    compact_stage,
    filter_stage,
    flat_map_stage,
    foreach_partition_stage,
    foreach_stage,
    glom_stage,
    identity_stage,
    map_partitions_stage,
    map_partitions_with_index_stage,
    map_stage,
)
from atlas_rdd.core.engine.protocol import PartitionHandle, StorageLevel
from atlas_rdd.core.errors import incompatible_format, raise_payload
from atlas_rdd.core.exceptions import AlreadyPersistedError, IncompatibleFormatError

from . import aggregation, shuffle
from .lineage import Derived, Lineage, Root, can_collapse, derive, output_format, successor

DEFAULT_CACHE_LEVEL = StorageLevel.MEMORY_ONLY_SER


def _release(engine, handle: PartitionHandle) -> None:
    if engine.is_active:
        engine.unpersist(handle)


class Collection:
    """Coleção particionada (ver docstring do módulo)."""

    def __init__(self, context, lineage: Lineage, command: Command):
        self._context = context
        self._lineage = lineage
        self._command = command
        self._handle: Optional[PartitionHandle] = lineage.handle if isinstance(lineage, Root) else None
        self._cached = False
        self._level: Optional[StorageLevel] = None
        self._checkpointed = False
        self._finalizer: Optional[weakref.finalize] = None

    def __repr__(self) -> str:
        kind = "Derived" if self.is_pipelined else "Root"
        return (
            f"Collection({kind}, stages={[s.name for s in self._command.stages]}, "
            f"format={self.output_format}, cached={self._cached})"
        )

    # -----------------------------
    # Estado e metadados
    # -----------------------------
    @property
    def context(self):
        return self._context

    @property
    def command(self) -> Command:
        return self._command

    @property
    def lineage(self) -> Lineage:
        return self._lineage

    @property
    def serializer(self) -> Format:
        return self._command.serializer

    @property
    def deserializer(self) -> Format:
        return self._command.deserializer

    @property
    def output_format(self) -> Format:
        return output_format(self._lineage, self._command)

    @property
    def attached(self) -> Dict[str, List[str]]:
        return self._command.attached

    @property
    def is_cached(self) -> bool:
        return self._cached

    @property
    def storage_level(self) -> Optional[StorageLevel]:
        return self._level

    @property
    def is_checkpointed(self) -> bool:
        return self._checkpointed

    @property
    def is_pipelined(self) -> bool:
        return isinstance(self._lineage, Derived)

    @property
    def is_pipelinable(self) -> bool:
        return can_collapse(self._cached, self._checkpointed)

    @property
    def partitions_size(self) -> int:
        return self._lineage.num_partitions

    @property
    def default_reduce_partitions(self) -> int:
        return self._context.session.default_parallelism or self.partitions_size

    @property
    def id(self) -> int:
        return self.handle.id

    @property
    def name(self) -> Optional[str]:
        return self._context.engine.get_name(self.handle)

    def set_name(self, name: str) -> "Collection":
        self._context.engine.set_name(self.handle, name)
        return self

    # -----------------------------
    # Handle (compilação preguiçosa)
    # -----------------------------
    @property
    def handle(self) -> PartitionHandle:
        if self._handle is None:
            compiled = self._command.build()
            self._context.log(
                component="command",
                level="DEBUG",
                message="Command compilado",
                stages=compiled.stage_names,
                serializer=str(compiled.serializer),
                deserializer=str(compiled.deserializer),
            )
            self._handle = self._context.engine.submit(
                compiled, self._lineage.ancestor, self._context.worker_type
            )
            self._context.log(
                component="engine",
                level="DEBUG",
                message="Command submetido",
                ancestor=self._lineage.ancestor.id,
                handle=self._handle.id,
            )
        return self._handle

    # -----------------------------
    # Composição interna
    # -----------------------------
    def _pipe(
        self,
        main,
        func: Optional[Callable[..., Any]] = None,
        options: Optional[Dict[str, Any]] = None,
        *,
        serializer: Optional[Format] = None,
    ) -> "Collection":
        ancestor, command = successor(
            self._lineage,
            self._command,
            pipelinable=self.is_pipelinable,
            handle=lambda: self.handle,
        )
        command.add(main, func, options)
        if serializer is not None:
            command.serializer = serializer
        lineage = derive(ancestor, command, operation=(options or {}).get("name", "pipe"))
        return Collection(self._context, lineage, command)

    def _root(self, handle: PartitionHandle) -> "Collection":
        return Collection(self._context, Root(handle), self._command.boundary_copy(handle.format))

    def _extend(self, extend: Callable[[Command], Any]) -> "Collection":
        if isinstance(self._lineage, Root):
            command = self._command.deep_copy()
            extend(command)
            return Collection(self._context, self._lineage, command)

        ancestor, command = successor(
            self._lineage,
            self._command,
            pipelinable=self.is_pipelinable,
            handle=lambda: self.handle,
        )
        extend(command)
        return Collection(self._context, derive(ancestor, command, operation="attach"), command)

    # -----------------------------
    # Closures e bibliotecas
    # -----------------------------
    def attach(self, *entries: Any, **closures: Callable[..., Any]) -> "Collection":
        """Anexa closures nomeadas (e módulos, quando strings) ao Command."""

        def _attach(command: Command) -> None:
            if entries:
                command.add_before(entries)
            if closures:
                command.add_before(closures)

        return self._extend(_attach)

    def add_library(self, *names: str) -> "Collection":
        return self._extend(lambda command: command.add_library(names))

    # -----------------------------
    # Transformações
    # -----------------------------
    def map(self, f: Callable[[Any], Any]) -> "Collection":
        return self._pipe(map_stage, f, {"name": "map"})

    def flat_map(self, f: Callable[[Any], Iterable[Any]]) -> "Collection":
        return self._pipe(flat_map_stage, f, {"name": "flat_map"})

    def filter(self, f: Callable[[Any], bool]) -> "Collection":
        return self._pipe(filter_stage, f, {"name": "filter"})

    def map_partitions(self, f: Callable[..., Iterable[Any]], requires: Iterable[str] = ()) -> "Collection":
        """
        Executa `f` uma vez por partição, com a sequência inteira.

        Com `requires`, `f` recebe também o `StageEnv` e pode usar as
        closures anexadas via `env.closure(nome)`.

        Nomes em `requires` já cobertos por `attach` são resolvidos aqui; os
        demais geram um evento WARNING nesta chamada, pois `attach` pode vir
        depois na cadeia. Se continuarem ausentes quando a Collection for
        materializada, o build levanta `CompilationError`.
        """
        return self._pipe_with_env(map_partitions_stage, f, "map_partitions", requires)

    def _pipe_with_env(self, main, f, name: str, requires: Iterable[str]) -> "Collection":
        requires = tuple(requires)
        result = self._pipe(main, f, {"name": name, "requires": requires, "params": {"with_env": bool(requires)}})
        last = len(result._command.stages) - 1
        for position, stage, missing in result._command.missing_closures():
            if position != last:
                continue
            self._context.log(
                component="command",
                level="WARNING",
                message="Closure requerida ainda não anexada",
                stage=stage,
                position=position,
                missing=missing,
            )
        return result

    def map_partitions_with_index(
        self, f: Callable[..., Iterable[Any]], requires: Iterable[str] = ()
    ) -> "Collection":
        return self._pipe_with_env(map_partitions_with_index_stage, f, "map_partitions_with_index", requires)

    def compact(self) -> "Collection":
        return self._pipe(compact_stage, None, {"name": "compact"})

    def glom(self) -> "Collection":
        return self._pipe(glom_stage, None, {"name": "glom"})

    def keys(self) -> "Collection":
        return self._pipe(map_stage, aggregation._first, {"name": "keys"})

    def values(self) -> "Collection":
        return self._pipe(map_stage, aggregation._second, {"name": "values"})

    # -----------------------------
    # Fronteiras (movimentação no engine)
    # -----------------------------
    def coalesce(self, num_partitions: int) -> "Collection":
        handle = self._context.engine.coalesce(self.handle, num_partitions)
        return self._root(handle)

    def union(self, other: "Collection") -> "Collection":
        other_collection = other
        if other.output_format != self.output_format:
            policy = self._context.session.union_on_format_mismatch
            if policy != "reencode":
                raise_payload(
                    incompatible_format(
                        producer=other.output_format,
                        consumer=self.output_format,
                        operation="union",
                    ),
                    IncompatibleFormatError,
                )
            other_collection = other._pipe(
                identity_stage, None, {"name": "reencode"}, serializer=self.output_format
            )
            self._context.log(
                component="collection",
                level="INFO",
                message="Stage de re-encode inserido para union",
                producer=str(other.output_format),
                consumer=str(self.output_format),
            )

        handle = self._context.engine.union(self.handle, other_collection.handle)
        return self._root(handle)

    def partition_by(self, num_partitions: Optional[int] = None, partition_func=None) -> "Collection":
        return shuffle.partition_by(self, num_partitions, partition_func)

    # -----------------------------
    # Persistência
    # -----------------------------
    def persist(self, level: Union[str, StorageLevel] = DEFAULT_CACHE_LEVEL) -> "Collection":
        level = StorageLevel.get(level)
        if self._cached:
            if level != self._level:
                raise AlreadyPersistedError(
                    "Collection já persistida com outro storage level",
                    details={"current": self._level.value, "requested": level.value},
                    hint="Chame unpersist() antes de trocar o storage level.",
                )
            return self

        engine = self._context.engine
        handle = self.handle
        engine.persist(handle, level)
        self._cached = True
        self._level = level
        self._finalizer = weakref.finalize(self, _release, engine, handle)
        self._context.log(
            component="storage",
            level="INFO",
            message="Collection persistida",
            handle=handle.id,
            storage_level=level.value,
        )
        return self

    def cache(self) -> "Collection":
        return self.persist(DEFAULT_CACHE_LEVEL)

    def unpersist(self) -> "Collection":
        if not self._cached:
            return self
        self._context.engine.unpersist(self.handle)
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        self._cached = False
        self._level = None
        self._context.log(component="storage", level="INFO", message="Collection liberada", handle=self.handle.id)
        return self

    def checkpoint(self) -> "Collection":
        self._context.engine.checkpoint(self.handle)
        self._checkpointed = True
        self._context.log(component="storage", level="INFO", message="Checkpoint registrado", handle=self.handle.id)
        return self

    # -----------------------------
    # Ações
    # -----------------------------
    def collect(self) -> List[Any]:
        with self._context.job("collect"):
            return self._context.engine.materialize(self.handle, self.output_format)

    def collect_as_map(self) -> Dict[Any, Any]:
        return dict(self.collect())

    def foreach(self, f: Callable[[Any], Any]) -> None:
        self._pipe(foreach_stage, f, {"name": "foreach"}).collect()

    def foreach_partition(self, f: Callable[[Iterable[Any]], Any]) -> None:
        self._pipe(foreach_partition_stage, f, {"name": "foreach_partition"}).collect()

    def reduce(self, f: Callable[[Any, Any], Any]) -> Any:
        return aggregation.reduce(self, f)

    def fold(self, zero: Any, f: Callable[[Any, Any], Any]) -> Any:
        return aggregation.fold(self, zero, f)

    def aggregate(self, zero: Any, seq_op, comb_op) -> Any:
        return aggregation.aggregate(self, zero, seq_op, comb_op)

    def max(self) -> Any:
        return aggregation.max(self)

    def min(self) -> Any:
        return aggregation.min(self)

    def sum(self) -> Any:
        return aggregation.sum(self)

    def count(self) -> int:
        return aggregation.count(self)

    # -----------------------------
    # Pares chave/valor
    # -----------------------------
    def combine_by_key(
        self, create_combiner, merge_value, merge_combiners, num_partitions=None, partition_func=None
    ) -> "Collection":
        return aggregation.combine_by_key(
            self, create_combiner, merge_value, merge_combiners, num_partitions, partition_func
        )

    def reduce_by_key(self, f, num_partitions: Optional[int] = None, partition_func=None) -> "Collection":
        return aggregation.reduce_by_key(self, f, num_partitions, partition_func)

    def distinct(self) -> "Collection":
        return aggregation.distinct(self)
