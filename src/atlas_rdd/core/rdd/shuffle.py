# src/atlas_rdd/core/rdd/shuffle.py
"""
Ponte de particionamento (shuffle) do Atlas RDD.

`partition_by` reescreve cada par `(k, v)` como
`(pack_long(h(k)), (k, v))` em um único Stage, troca o serializer da
Collection para o enquadramento keyed (um registro por frame) e delega a
redistribuição ao engine. O engine roteia apenas pela chave de 8 bytes;
a função de particionamento nunca executa dentro do shuffle.

Decisões arquiteturais:
    - A identidade da função de particionamento é um token estável,
      registrado no `PartitionFunctionRegistry` do Context, e não a
      identidade do objeto em memória
    - O hash padrão (`stable_hash`) independe do processo; o `hash`
      nativo de `str` é randomizado por processo e não serve aqui
    - A Collection resultante é Root: o serializer volta a ser o do
      produtor e o deserializer passa a ser o formato entregue pelo engine

Invariantes:
    - Mesma chave → mesma partição
    - A ordem entre partições após o shuffle não é especificada

Limites explícitos:
    - Não implementa ordenação nem range partitioning
"""

from __future__ import annotations

import hashlib
import marshal
import pickle
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from atlas_rdd.core.command.stages import key_by_hash_stage
from atlas_rdd.core.engine.protocol import Partitioner
from atlas_rdd.core.exceptions import CompositionError

_MASK = (1 << 64) - 1
_EMPTY_CELL = "<empty-cell>"


def _signed(value: int) -> int:
    value &= _MASK
    return value - (1 << 64) if value >= (1 << 63) else value


def _digest(data: bytes) -> int:
    return int.from_bytes(hashlib.sha256(data).digest()[:8], "big", signed=True)


def stable_hash(key: Any) -> int:
    """
    Hash de chave determinístico entre processos.

    Inteiros valem por si; strings e bytes usam os 8 primeiros bytes de um
    SHA-256; tuplas e listas combinam os hashes dos elementos em ordem;
    `frozenset`/`set` combinam por XOR (independe da ordem de iteração);
    membros de `Enum` valem pelo seu `value`.

    Raises:
        CompositionError: Para qualquer outro tipo de chave; o `hash` nativo
            pode variar entre processos e quebraria "mesma chave → mesma
            partição" com workers `process`.
    """
    if key is None:
        return 0
    if isinstance(key, Enum):
        return stable_hash(key.value)
    if isinstance(key, int):
        return int(key)
    if isinstance(key, float):
        return hash(key)
    if isinstance(key, str):
        return _digest(key.encode("utf-8"))
    if isinstance(key, bytes):
        return _digest(key)
    if isinstance(key, (tuple, list)):
        acc = 0x345678
        for item in key:
            acc = _signed((acc * 1000003) ^ stable_hash(item))
        return _signed(acc ^ len(key))
    if isinstance(key, (frozenset, set)):
        acc = 0
        for item in key:
            acc ^= stable_hash(item)
        return _signed((acc * 69069) ^ (len(key) + 0x1F35A7BD))
    raise CompositionError(
        f"Tipo de chave sem hash estável: {type(key).__name__}",
        details={"key_type": type(key).__name__},
        hint="Passe partition_func=... para partition_by/reduce_by_key com um hash determinístico da chave.",
    )


def _closure_digest(func: Callable[..., Any]) -> bytes:
    cells = []
    for cell in getattr(func, "__closure__", None) or ():
        try:
            value = cell.cell_contents
        except ValueError:
            cells.append(_EMPTY_CELL)
            continue
        # funções capturadas entram pelo próprio token
        if getattr(value, "__code__", None) is not None and value is not func:
            value = function_token(value)
        cells.append(value)
    try:
        return pickle.dumps((cells, getattr(func, "__defaults__", None)), protocol=4)
    except (pickle.PicklingError, TypeError, AttributeError) as exc:
        raise CompositionError(
            "Variáveis capturadas pela função de particionamento não são serializáveis",
            details={"func": repr(func), "exc_type": exc.__class__.__name__},
            hint="Registre a função com PartitionFunctionRegistry.register(func, name=...).",
        ) from None


def function_token(func: Callable[..., Any], name: Optional[str] = None) -> str:
    """
    Token estável de uma função de particionamento.

    Ordem de resolução: nome explícito, `modulo.qualname`, e para lambdas e
    funções locais o qualname seguido de um digest do code object, das
    variáveis capturadas (closure) e dos defaults: duas closures da mesma
    fábrica com valores capturados distintos recebem tokens distintos.
    """
    if name:
        return name
    if not callable(func):
        raise CompositionError("Função de particionamento deve ser chamável", details={"func": repr(func)})

    qualname = getattr(func, "__qualname__", None)
    if not qualname:
        raise CompositionError(
            "Função de particionamento sem qualname precisa de nome explícito",
            details={"func": repr(func)},
            hint="Registre a função com PartitionFunctionRegistry.register(func, name=...).",
        )

    module = getattr(func, "__module__", None) or "__main__"
    token = f"{module}.{qualname}"
    if "<lambda>" in qualname or "<locals>" in qualname:
        code = getattr(func, "__code__", None)
        if code is None:
            raise CompositionError(
                "Função local sem code object precisa de nome explícito",
                details={"func": repr(func)},
            )
        digest = hashlib.sha256(marshal.dumps(code) + _closure_digest(func)).hexdigest()[:16]
        token = f"{token}@{digest}"
    return token


class PartitionFunctionRegistry:
    """
    Registro de funções de particionamento por token estável.

    Dois Partitioners são iguais quando têm o mesmo número de partições e o
    mesmo token, inclusive entre processos distintos.
    """

    def __init__(self):
        self._functions: Dict[str, Callable[..., Any]] = {}

    def register(self, func: Callable[..., Any], name: Optional[str] = None) -> str:
        token = function_token(func, name)
        current = self._functions.get(token)
        if current is not None and current is not func:
            same_code = getattr(current, "__code__", None) is getattr(func, "__code__", object())
            if name or not same_code:
                raise CompositionError(
                    f"Token de particionamento já registrado para outra função: {token}",
                    details={"token": token},
                )
        self._functions[token] = func
        return token

    def get(self, token: str) -> Callable[..., Any]:
        try:
            return self._functions[token]
        except KeyError:
            raise CompositionError(
                f"Função de particionamento não registrada: {token}",
                details={"token": token, "registered": sorted(self._functions)},
            ) from None

    def __contains__(self, token: str) -> bool:
        return token in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def tokens(self) -> List[str]:
        return sorted(self._functions)


def partition_by(collection, num_partitions: Optional[int] = None, partition_func=None):
    """Redistribui pares `(chave, valor)` entre `num_partitions` partições."""
    if num_partitions is None:
        num_partitions = collection.default_reduce_partitions
    if isinstance(num_partitions, bool) or not isinstance(num_partitions, int) or num_partitions < 1:
        raise CompositionError(
            "num_partitions deve ser um inteiro positivo",
            details={"num_partitions": num_partitions},
        )

    context = collection.context
    partition_func = partition_func or stable_hash
    token = context.partition_functions.register(partition_func)

    keyed = collection._pipe(
        key_by_hash_stage,
        None,
        {
            "name": "partition_by",
            "closures": {"partition_func": partition_func},
            "requires": ("partition_func",),
        },
        serializer=collection.serializer.keyed_pairs(),
    )

    partitioner = Partitioner(num_partitions=num_partitions, func_token=token)
    handle = context.engine.shuffle(keyed.handle, partitioner)
    context.log(
        component="shuffle",
        level="INFO",
        message="Shuffle submetido",
        num_partitions=num_partitions,
        partition_func=token,
        handle=handle.id,
    )
    return collection._root(handle)
