# src/atlas_rdd/core/rdd/lineage.py
"""
Linhagem de uma Collection como variante etiquetada.

Uma Collection é sempre uma de duas formas:

    - Root(handle): dados já materializados no engine; nada a compilar
    - Derived(ancestor, command): Command pendente sobre o ancestral
      materializado mais próximo

O colapso de Stages é decidido por um predicado puro (`can_collapse`), e a
sucessão (`successor`) devolve o ancestral e o Command base da próxima
Collection. Assim, por mais longa que seja a cadeia de `map`/`filter`, o
engine recebe exatamente um CompiledCommand por fronteira materializada.

Invariantes:
    - Em um Derived, `command.deserializer == ancestor.format`
      (verificado ao formar a linhagem, nunca adiado para execução)
    - Root nunca carrega Stages pendentes
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Tuple, Union

from atlas_rdd.core.command.builder import Command
from atlas_rdd.core.command.formats import Format
from atlas_rdd.core.engine.protocol import PartitionHandle
from atlas_rdd.core.errors import incompatible_format, raise_payload
from atlas_rdd.core.exceptions import IncompatibleFormatError


@dataclass(frozen=True)
class Root:
    handle: PartitionHandle

    @property
    def num_partitions(self) -> int:
        return self.handle.num_partitions


@dataclass(frozen=True, eq=False)
class Derived:
    ancestor: PartitionHandle
    command: Command

    @property
    def num_partitions(self) -> int:
        return self.ancestor.num_partitions


Lineage = Union[Root, Derived]


def can_collapse(cached: bool, checkpointed: bool) -> bool:
    """Uma Collection só colapsa na sucessora se não for fronteira materializada."""
    return not (cached or checkpointed)


def output_format(lineage: Lineage, command: Command) -> Format:
    """Root entrega os dados intocados; Derived entrega o que o Command produz."""
    if isinstance(lineage, Root):
        return command.deserializer
    return command.serializer


def successor(
    lineage: Lineage,
    command: Command,
    *,
    pipelinable: bool,
    handle: Callable[[], PartitionHandle],
) -> Tuple[PartitionHandle, Command]:
    """
    Ancestral e Command base (não compilado) da próxima Collection.

    `handle` só é chamado quando a linhagem é cortada, pois submete o
    Command corrente ao engine.
    """
    if pipelinable and isinstance(lineage, Derived):
        return lineage.ancestor, command.deep_copy()
    boundary = handle()
    return boundary, command.boundary_copy(boundary.format)


def derive(ancestor: PartitionHandle, command: Command, *, operation: str) -> Derived:
    if command.deserializer != ancestor.format:
        raise_payload(
            incompatible_format(producer=ancestor.format, consumer=command.deserializer, operation=operation),
            IncompatibleFormatError,
        )
    return Derived(ancestor=ancestor, command=command)
