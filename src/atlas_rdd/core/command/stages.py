# src/atlas_rdd/core/command/stages.py
"""
Templates de Stage executados uma vez por partição.

Cada template tem a assinatura `main(iterator, index, env)` e devolve um
iterável com os elementos de saída da partição. A função do usuário chega
em `env.main`; closures auxiliares em `env.closure(nome)`; parâmetros não
chamáveis (ex.: zero value) em `env.params`.

Templates são funções de módulo para que o CompiledCommand seja
serializável por referência quando enviado a workers em processo isolado.
"""

from __future__ import annotations

import copy
import functools
from typing import Any, Iterable, Iterator

from .formats import pack_long

_MISSING = object()


# -----------------------------
# Elemento a elemento
# -----------------------------
def map_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    f = env.main
    return (f(item) for item in iterator)


def flat_map_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    f = env.main
    for item in iterator:
        yield from f(item)


def filter_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    f = env.main
    return (item for item in iterator if f(item))


def compact_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    return (item for item in iterator if item is not None)


def identity_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    return iterator


# -----------------------------
# Partição inteira
# -----------------------------
def map_partitions_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    if env.params.get("with_env"):
        return env.main(iterator, env)
    return env.main(iterator)


def map_partitions_with_index_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    if env.params.get("with_env"):
        return env.main(iterator, index, env)
    return env.main(iterator, index)


def glom_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    return [list(iterator)]


def foreach_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    f = env.main
    for item in iterator:
        f(item)
    return []


def foreach_partition_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    env.main(iterator)
    return []


def partition_size_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    return [sum(1 for _ in iterator)]


# -----------------------------
# Redução
# -----------------------------
def reduce_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    """Partição vazia produz `[None]`, descartado depois pelo `compact`."""
    first = next(iterator, _MISSING)
    if first is _MISSING:
        return [None]
    return [functools.reduce(env.main, iterator, first)]


def aggregate_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    # zero copiado por partição: a função pode mutar o acumulador
    zero = copy.deepcopy(env.params["zero"])
    return [functools.reduce(env.main, iterator, zero)]


# -----------------------------
# Shuffle / combiners
# -----------------------------
def key_by_hash_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    partition_func = env.closure("partition_func")
    for key, value in iterator:
        yield pack_long(partition_func(key)), (key, value)


def combine_locally_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    # membership explícita: um combiner pode ser None
    create_combiner = env.closure("create_combiner")
    merge_value = env.closure("merge_value")
    combiners = {}
    for key, value in iterator:
        if key in combiners:
            combiners[key] = merge_value(combiners[key], value)
        else:
            combiners[key] = create_combiner(value)
    return list(combiners.items())


def merge_combiners_stage(iterator: Iterator[Any], index: int, env) -> Iterable[Any]:
    merge_combiners = env.closure("merge_combiners")
    combiners = {}
    for key, combiner in iterator:
        if key in combiners:
            combiners[key] = merge_combiners(combiners[key], combiner)
        else:
            combiners[key] = combiner
    return list(combiners.items())
