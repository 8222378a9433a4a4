# src/atlas_rdd/core/rdd/aggregation.py
"""
Protocolos de agregação construídos sobre o primitivo por partição.

Todas as reduções seguem o mesmo padrão em duas fases:

    1. `seq_op` (ou `f`) roda dentro de cada partição e produz um único
       resultado parcial
    2. os parciais são reunidos com `coalesce(1)` + `compact` e combinados
       por `comb_op` no mesmo template de Stage; o escalar volta via
       `collect()[0]`

Decisões arquiteturais:
    - O zero de `fold`/`aggregate` é aplicado em cada partição E na
      combinação final (`fold(1, +)` sobre 0..10 em 2 partições vale 58);
      escolha um zero com comportamento de identidade
    - Partição vazia em `reduce` produz parcial `None`, descartado pelo
      `compact`; `reduce` sobre uma Collection vazia devolve `None`
    - `combine_by_key` agrega localmente antes do shuffle (combiner)

Limites explícitos:
    - Não há `tree_aggregate` nem agregação por amostragem
"""

from __future__ import annotations

import operator
from typing import Any, Callable, Dict, Optional

from atlas_rdd.core.command.stages import (
    aggregate_stage,
    combine_locally_stage,
    map_stage,
    merge_combiners_stage,
    partition_size_stage,
    reduce_stage,
)

from .shuffle import partition_by


def _identity(value):
    return value


def _first(pair):
    return pair[0]


def _second(pair):
    return pair[1]


def _pair_with_none(item):
    return item, None


def _keep_left(left, _right):
    return left


def _max(memo, item):
    return memo if memo > item else item


def _min(memo, item):
    return memo if memo < item else item


# -----------------------------
# Redução em duas fases
# -----------------------------
def _reduce(
    collection,
    stage,
    seq_op: Optional[Callable[..., Any]],
    comb_op: Callable[..., Any],
    *,
    name: str,
    params: Optional[Dict[str, Any]] = None,
) -> Any:
    if seq_op is None:
        # parciais já calculados (ex.: count)
        partials = collection
    else:
        partials = collection._pipe(stage, seq_op, {"name": name, "params": params})

    funnel = partials.coalesce(1).compact()
    final = funnel._pipe(stage, comb_op, {"name": f"{name}.combine", "params": params})
    result = final.collect()
    return result[0] if result else None


def reduce(collection, f: Callable[[Any, Any], Any]) -> Any:
    return _reduce(collection, reduce_stage, f, f, name="reduce")


def aggregate(collection, zero: Any, seq_op, comb_op) -> Any:
    return _reduce(collection, aggregate_stage, seq_op, comb_op, name="aggregate", params={"zero": zero})


def fold(collection, zero: Any, f) -> Any:
    return aggregate(collection, zero, f, f)


def max(collection) -> Any:  # noqa: A001
    return reduce(collection, _max)


def min(collection) -> Any:  # noqa: A001
    return reduce(collection, _min)


def sum(collection) -> Any:  # noqa: A001
    return reduce(collection, operator.add)


def count(collection) -> int:
    sizes = collection._pipe(partition_size_stage, None, {"name": "count"})
    return aggregate(sizes, 0, None, operator.add)


# -----------------------------
# Pares chave/valor
# -----------------------------
def combine_by_key(
    collection,
    create_combiner: Callable[[Any], Any],
    merge_value: Callable[[Any, Any], Any],
    merge_combiners: Callable[[Any, Any], Any],
    num_partitions: Optional[int] = None,
    partition_func: Optional[Callable[[Any], int]] = None,
):
    """
    Combina valores por chave: combiner local, shuffle, merge de combiners.

    O resultado tem um par `(chave, valor_combinado)` por chave,
    particionado por `partition_func` (padrão: `stable_hash`).
    """
    combined = collection._pipe(
        combine_locally_stage,
        None,
        {
            "name": "combine_locally",
            "closures": {"create_combiner": create_combiner, "merge_value": merge_value},
            "requires": ("create_combiner", "merge_value"),
        },
    )
    shuffled = partition_by(combined, num_partitions, partition_func)
    return shuffled._pipe(
        merge_combiners_stage,
        None,
        {
            "name": "merge_combiners",
            "closures": {"merge_combiners": merge_combiners},
            "requires": ("merge_combiners",),
        },
    )


def reduce_by_key(collection, f, num_partitions: Optional[int] = None, partition_func=None):
    return combine_by_key(collection, _identity, f, f, num_partitions, partition_func)


def distinct(collection):
    """A ordem não é preservada: a operação passa por um shuffle."""
    paired = collection._pipe(map_stage, _pair_with_none, {"name": "distinct.pair"})
    reduced = reduce_by_key(paired, _keep_left)
    return reduced._pipe(map_stage, _first, {"name": "distinct.unpair"})
