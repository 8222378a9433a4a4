# tests/core/rdd/test_shuffle.py
"""
Testes da ponte de particionamento (`partition_by`) e do hash estável.

Os testes asseguram que:
- `stable_hash` é determinístico e independe da randomização de `hash`
- funções de particionamento têm token estável e registrado no Context
- após `partition_by`, cada chave aparece em exatamente uma partição
- a Collection resultante é Root e lê o formato entregue pelo engine

Limites explícitos:
    - A ordem entre partições após o shuffle não é verificada
"""

import enum
import hashlib
import operator

import pytest

try:
    from atlas_rdd.core.command.formats import Format
    from atlas_rdd.core.exceptions import CompositionError, ExecutionFailure
    from atlas_rdd.core.rdd.lineage import Root
    from atlas_rdd.core.rdd.shuffle import (
        PartitionFunctionRegistry,
        function_token,
        stable_hash,
    )
except Exception as e:  # noqa: BLE001
    stable_hash = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing shuffle module. Implement:\n"
            "- src/atlas_rdd/core/rdd/shuffle.py (partition_by, stable_hash)\n"
            f"Import error: {_IMPORT_ERR}"
        )


def always_zero(key):
    return 0


def test_stable_hash_known_values():
    """
    Verifica os valores de referência do hash estável.

    Decisões arquiteturais:
        - Inteiros valem por si (roteamento `k % n` previsível)
        - Strings usam SHA-256, nunca o `hash` randomizado do processo
    """
    _require_imports()
    expected = int.from_bytes(hashlib.sha256(b"spark").digest()[:8], "big", signed=True)

    assert stable_hash(None) == 0
    assert stable_hash(42) == 42
    assert stable_hash(-7) == -7
    assert stable_hash("spark") == expected
    assert stable_hash(b"spark") == expected


def test_stable_hash_of_sequences_is_structural():
    _require_imports()
    assert stable_hash(("a", 1)) == stable_hash(("a", 1))
    assert stable_hash(("a", 1)) == stable_hash(["a", 1])
    assert stable_hash(("a", 1)) != stable_hash((1, "a"))
    assert -(2 ** 63) <= stable_hash(tuple(range(100))) < 2 ** 63


class Color(enum.Enum):
    RED = "red"
    BLUE = 2


class Point:
    def __init__(self, x):
        self.x = x

    def __eq__(self, other):
        return isinstance(other, Point) and other.x == self.x

    def __hash__(self):
        return hash(self.x)


def _offset_partitioner(offset):
    def partition(key):
        return key + offset

    return partition


def test_stable_hash_of_sets_ignores_iteration_order():
    """
    Verifica que conjuntos têm hash estrutural, independente da ordem.

    Invariantes:
        - `set` e `frozenset` com os mesmos elementos têm o mesmo hash
        - Conjuntos distintos produzem hashes distintos
    """
    _require_imports()
    forward = frozenset(["k%d" % i for i in range(20)])
    backward = frozenset(reversed(["k%d" % i for i in range(20)]))

    assert stable_hash(forward) == stable_hash(backward)
    assert stable_hash(forward) == stable_hash(set(forward))
    assert stable_hash(frozenset({"k1", "z"})) != stable_hash(frozenset({"k2", "z"}))
    assert stable_hash(frozenset()) != stable_hash(frozenset({0}))
    assert -(2 ** 63) <= stable_hash(forward) < 2 ** 63


def test_stable_hash_of_enum_uses_value():
    _require_imports()
    assert stable_hash(Color.RED) == stable_hash("red")
    assert stable_hash(Color.BLUE) == 2


@pytest.mark.parametrize("key", [Point(1), object(), 1 + 2j])
def test_stable_hash_rejects_keys_without_stable_hash(key):
    """
    Verifica que tipos sem hash estável entre processos são rejeitados.

    O `hash` nativo desses tipos pode variar entre workers `process`.
    """
    _require_imports()
    with pytest.raises(CompositionError) as exc:
        stable_hash(key)

    assert exc.value.details["key_type"] == type(key).__name__
    assert "partition_func" in exc.value.hint


def test_custom_key_type_requires_partition_func(ctx):
    _require_imports()
    pairs = [(Point(i % 2), 1) for i in range(6)]

    with pytest.raises(ExecutionFailure) as exc:
        ctx.parallelize(pairs, 2).reduce_by_key(operator.add).collect()
    assert exc.value.details["exc_type"] == "CompositionError"

    counts = ctx.parallelize(pairs, 2).reduce_by_key(operator.add, 2, lambda p: p.x).collect()
    assert sorted((p.x, n) for p, n in counts) == [(0, 3), (1, 3)]


def test_function_token_resolution():
    """
    Verifica a ordem de resolução do token: nome explícito, `modulo.qualname`,
    digest do code object para lambdas.
    """
    _require_imports()
    identity = lambda k: k  # noqa: E731
    token = function_token(identity)

    assert function_token(always_zero) == f"{__name__}.always_zero"
    assert function_token(always_zero, name="zero") == "zero"
    assert "<lambda>@" in token
    assert token == function_token(identity)
    assert token != function_token(lambda k: -k)
    with pytest.raises(CompositionError):
        function_token(42)


def test_registry_rejects_conflicting_tokens():
    _require_imports()
    registry = PartitionFunctionRegistry()

    token = registry.register(always_zero)
    registry.register(always_zero)
    registry.register(stable_hash, name="custom")

    assert token in registry
    assert registry.get(token) is always_zero
    assert len(registry) == 2
    assert registry.tokens() == sorted([token, "custom"])
    with pytest.raises(CompositionError):
        registry.register(operator.neg, name="custom")
    with pytest.raises(CompositionError):
        registry.get("missing")


def test_closures_from_same_factory_get_distinct_tokens():
    """
    Verifica que o token considera os valores capturados pela closure.

    Invariantes:
        - Mesmo code object com capturas distintas → tokens distintos
        - Mesmo code object com as mesmas capturas → mesmo token
        - O registro mantém as duas funções, sem sobrescrever a primeira
    """
    _require_imports()
    shift_zero = _offset_partitioner(0)
    shift_one = _offset_partitioner(1)
    registry = PartitionFunctionRegistry()

    token_zero = registry.register(shift_zero)
    token_one = registry.register(shift_one)

    assert token_zero != token_one
    assert function_token(_offset_partitioner(0)) == token_zero
    assert registry.get(token_zero)(5) == 5
    assert registry.get(token_one)(5) == 6
    assert len(registry) == 2


def test_unpicklable_captures_require_explicit_name():
    _require_imports()
    import threading

    lock = threading.Lock()
    guarded = lambda key: 0 if lock else 1  # noqa: E731

    with pytest.raises(CompositionError):
        function_token(guarded)
    assert function_token(guarded, name="guarded") == "guarded"


def test_partition_by_groups_each_key_in_one_partition(ctx):
    """
    Verifica que a mesma chave sempre cai na mesma partição.

    Invariantes:
        - Nenhum par é perdido ou duplicado
        - Conjuntos de chaves por partição são disjuntos
    """
    _require_imports()
    pairs = [(word, i) for i, word in enumerate("a b c a b c a c d e".split())]

    shuffled = ctx.parallelize(pairs, 3).partition_by(2)
    partitions = shuffled.glom().collect()

    assert shuffled.partitions_size == 2
    assert sorted(p for part in partitions for p in part) == sorted(pairs)
    keys = [{k for k, _ in part} for part in partitions]
    assert not keys[0] & keys[1]


def test_partition_by_integer_keys_route_by_modulo(ctx):
    _require_imports()
    shuffled = ctx.parallelize([(k, str(k)) for k in range(6)], 2).partition_by(3)

    partitions = shuffled.glom().collect()

    assert [sorted(k for k, _ in part) for part in partitions] == [[0, 3], [1, 4], [2, 5]]


def test_partition_by_result_is_root_over_shuffle_handle(ctx):
    """
    Verifica os formatos da Collection resultante do shuffle.

    Decisões arquiteturais:
        - serializer volta a ser o do produtor
        - deserializer é o formato sem chave e sem lote entregue pelo engine
    """
    _require_imports()
    source = ctx.parallelize([(1, "a"), (2, "b")])

    shuffled = source.partition_by(2)

    assert isinstance(shuffled.lineage, Root)
    assert shuffled.serializer == source.serializer
    assert shuffled.deserializer == Format("pickle", 1)
    assert shuffled.handle.partitioner.num_partitions == 2
    assert shuffled.handle.partitioner.func_token == function_token(stable_hash)
    assert any(e["component"] == "shuffle" for e in ctx.events)


def test_partition_by_uses_custom_function_and_registers_it(ctx):
    _require_imports()
    shuffled = ctx.parallelize([("x", 1), ("y", 2), ("z", 3)], 3).partition_by(2, always_zero)

    assert shuffled.glom().collect() == [[("x", 1), ("y", 2), ("z", 3)], []]
    assert function_token(always_zero) in ctx.partition_functions


def test_partition_by_defaults_to_source_partitions(ctx):
    _require_imports()
    assert ctx.parallelize([(1, 1), (2, 2)], 3).partition_by().partitions_size == 3


@pytest.mark.parametrize("num_partitions", [0, -1, 1.5, True])
def test_partition_by_rejects_invalid_partition_count(ctx, num_partitions):
    _require_imports()
    with pytest.raises(CompositionError):
        ctx.parallelize([(1, 1)]).partition_by(num_partitions)
