# tests/core/rdd/test_transformations.py
"""
Testes das transformações e ações elementares da Collection.

Este módulo valida, ponta a ponta sobre o LocalEngine:
- `map`, `flat_map`, `filter`, `compact`, `glom`, `keys`, `values`
- `map_partitions` e `map_partitions_with_index` (uma chamada por partição)
- `coalesce` e `union` (fronteiras que movem dados no engine)
- `foreach` / `foreach_partition` (apenas efeitos colaterais)
- closures anexadas (`attach`) e bibliotecas (`add_library`)
- propagação de falhas de Stage como `ExecutionFailure`

Invariantes:
    - A ordem dentro de cada partição é preservada
    - Nenhuma transformação muta a Collection receptora
    - Erros de composição são levantados na chamada que os introduziu

Limites explícitos:
    - Colapso de Stages e persistência são cobertos em test_pipelining
      e test_persist
"""

import pytest

try:
    from atlas_rdd.core.context import Context
    from atlas_rdd.core.exceptions import (
        CompilationError,
        ExecutionFailure,
        IncompatibleFormatError,
    )
except Exception as e:  # noqa: BLE001
    Context = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    """
    Garante que Context e Collection estejam disponíveis para os testes.

    Falha de forma explícita, sem fallback, quando o core não pode ser
    importado, para que o erro de import não se disfarce de falha do fixture.
    """
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing rdd modules. Implement:\n"
            "- src/atlas_rdd/core/rdd/collection.py (Collection)\n"
            "- src/atlas_rdd/core/context.py (Context)\n"
            f"Import error: {_IMPORT_ERR}"
        )


@pytest.mark.parametrize("num_slices", [1, 2, 3, 7])
def test_map_preserves_order(ctx, num_slices):
    """
    Verifica `collect(map(from(S), f)) == [f(x) for x in S]`.

    A concatenação das partições, na ordem do particionamento original,
    reproduz a ordem da sequência de entrada.
    """
    _require_imports()
    data = list(range(20))

    out = ctx.parallelize(data, num_slices).map(lambda x: x * x).collect()

    assert out == [x * x for x in data]


def test_flat_map_filter_compact(ctx):
    _require_imports()
    rdd = ctx.parallelize(range(6), 2)

    assert rdd.flat_map(lambda x: [x, 1]).collect() == [0, 1, 1, 1, 2, 1, 3, 1, 4, 1, 5, 1]
    assert rdd.filter(lambda x: x % 2 == 0).collect() == [0, 2, 4]
    assert ctx.parallelize([1, None, 2, None, 3]).compact().collect() == [1, 2, 3]


def test_glom_exposes_partitions(ctx):
    _require_imports()
    out = ctx.parallelize(range(11), 3).glom().collect()

    assert out == [[0, 1, 2], [3, 4, 5, 6], [7, 8, 9, 10]]


def test_map_partitions_runs_once_per_partition(ctx):
    """
    Verifica que `map_partitions` recebe a partição inteira, uma vez por partição.
    """
    _require_imports()
    calls = []

    def total(part):
        items = list(part)
        calls.append(items)
        return [sum(items)]

    out = ctx.parallelize(range(11), 2).map_partitions(total).collect()

    assert out == [10, 45]
    assert calls == [[0, 1, 2, 3, 4], [5, 6, 7, 8, 9, 10]]


def test_map_partitions_with_index(ctx):
    _require_imports()
    out = ctx.parallelize(range(4), 4).map_partitions_with_index(lambda part, index: [next(part) * index]).collect()

    assert out == [0, 1, 4, 9]


def test_keys_and_values(ctx):
    _require_imports()
    pairs = ctx.parallelize([(1, 2), (3, 4), (5, 6)])

    assert pairs.keys().collect() == [1, 3, 5]
    assert pairs.values().collect() == [2, 4, 6]


def test_coalesce_returns_root_over_adjacent_ranges(ctx):
    """
    Verifica que `coalesce` é uma fronteira (Root) sobre faixas contíguas.
    """
    _require_imports()
    rdd = ctx.parallelize(range(11), 3).map(lambda x: x)

    coalesced = rdd.coalesce(2)

    assert not coalesced.is_pipelined
    assert coalesced.partitions_size == 2
    assert coalesced.glom().collect() == [[0, 1, 2], [3, 4, 5, 6, 7, 8, 9, 10]]


def test_union_keeps_duplicates(ctx):
    _require_imports()
    rdd = ctx.parallelize([1, 2, 3], 1)

    out = rdd.union(rdd.map(lambda x: x * 10))

    assert out.collect() == [1, 2, 3, 10, 20, 30]
    assert out.partitions_size == 2


def test_union_of_mismatched_formats_is_rejected_by_default(ctx):
    """
    Verifica que `union` de formatos distintos falha alto (política `reject`).

    Invariantes:
        - O erro é levantado na chamada de `union`, nunca adiado
        - Nada é submetido ao engine para o lado incompatível
    """
    _require_imports()
    left = ctx.parallelize([1, 2])
    right = ctx.parallelize(["a"], serializer="json")

    with pytest.raises(IncompatibleFormatError) as exc:
        left.union(right)

    assert exc.value.details["operation"] == "union"
    assert exc.value.hint


def test_union_reencode_policy_inserts_identity_stage(session_config):
    """
    Verifica a política `union.on_format_mismatch: reencode`.

    Decisões arquiteturais:
        - O lado `other` ganha um Stage identidade cujo serializer é o
          formato de saída da Collection receptora
    """
    _require_imports()
    session_config["union"] = {"on_format_mismatch": "reencode"}
    with Context(session_config) as context:
        left = context.parallelize([1, 2])
        right = context.parallelize(["a"], serializer="json")

        out = left.union(right)

        assert out.output_format == left.output_format
        assert out.collect() == [1, 2, "a"]
        assert any(e["message"].startswith("Stage de re-encode") for e in context.events)


def test_foreach_runs_for_side_effects(ctx):
    _require_imports()
    seen = []
    partitions = []

    assert ctx.parallelize(range(5), 2).foreach(seen.append) is None
    ctx.parallelize(range(5), 2).foreach_partition(lambda part: partitions.append(list(part)))

    assert seen == [0, 1, 2, 3, 4]
    assert partitions == [[0, 1], [2, 3, 4]]


def test_attach_exposes_closures_to_map_partitions(ctx):
    """
    Verifica `attach` + `map_partitions(..., requires=...)`.

    Invariantes:
        - `attach` devolve uma nova Collection (a receptora não muda)
        - A função recebe o StageEnv e resolve a closure pelo nome
    """
    _require_imports()
    base = ctx.parallelize([1, 2, 3])
    scaled = base.map_partitions(lambda part, env: [env.closure("scale")(x) for x in part], requires=["scale"])

    attached = scaled.attach(scale=lambda x: x * 10)

    assert attached.collect() == [10, 20, 30]
    assert attached.attached["closures"] == ["scale"]
    assert scaled.attached["closures"] == []


def test_missing_closure_fails_when_materialized(ctx):
    _require_imports()
    rdd = ctx.parallelize([1]).map_partitions(lambda part, env: part, requires=["weights"])

    with pytest.raises(CompilationError):
        rdd.collect()

    failures = [e for e in ctx.events if e["message"] == "Job falhou"]
    assert failures[-1]["error"]["type"] == "COMPILATION_ERROR"


def test_add_library_is_recorded_and_imported(ctx):
    _require_imports()
    rdd = ctx.parallelize([4, 9]).add_library("math")

    out = rdd.map(lambda x: x + 1)

    assert rdd.attached["libraries"] == ["math"]
    assert out.attached["libraries"] == ["math"]
    assert out.collect() == [5, 10]
    with pytest.raises(ExecutionFailure):
        ctx.parallelize([1]).add_library("atlas_rdd_missing_module").map(str).collect()


def test_stage_failure_surfaces_as_execution_failure(ctx):
    """
    Verifica que uma exceção na função do usuário vira ExecutionFailure.

    Invariantes:
        - Nenhum resultado parcial é devolvido
        - O log registra a falha com o payload canônico
    """
    _require_imports()

    def boom(x):
        if x == 2:
            raise ZeroDivisionError("boom")
        return x

    with pytest.raises(ExecutionFailure) as exc:
        ctx.parallelize([1, 2, 3], 3).map(boom).collect()

    assert exc.value.details["partition"] == 1
    assert exc.value.details["exc_type"] == "ZeroDivisionError"
    failures = [e for e in ctx.events if e["message"] == "Job falhou"]
    assert failures[-1]["error"]["type"] == "EXECUTION_FAILURE"


def test_names_and_ids(ctx):
    _require_imports()
    rdd = ctx.parallelize([1, 2])

    assert rdd.name is None
    assert rdd.set_name("numbers") is rdd
    assert rdd.name == "numbers"
    assert isinstance(rdd.id, int)
    assert rdd.map(str).id != rdd.id


def test_collect_as_map(ctx):
    _require_imports()
    assert ctx.parallelize([("a", 1), ("b", 2)]).collect_as_map() == {"a": 1, "b": 2}


def test_unattached_requirement_is_reported_at_composition(ctx):
    """
    Verifica que `map_partitions(..., requires=...)` registra um WARNING
    na própria chamada quando a closure ainda não foi anexada, sem impedir
    um `attach` posterior.
    """
    _require_imports()
    pending = ctx.parallelize([1, 2]).map_partitions(lambda part, env: part, requires=["weights"])

    warnings = [e for e in ctx.events if e["message"] == "Closure requerida ainda não anexada"]
    assert len(warnings) == 1
    assert warnings[0]["level"] == "WARNING"
    assert warnings[0]["missing"] == ["weights"]
    assert warnings[0]["stage"] == "map_partitions"
    assert pending.command.missing_closures() == [(0, "map_partitions", ["weights"])]

    resolved = pending.attach(weights=len)
    assert resolved.command.missing_closures() == []
    assert resolved.collect() == [1, 2]


def test_requirement_already_attached_is_not_reported(ctx):
    _require_imports()
    rdd = (
        ctx.parallelize([1, 2, 3])
        .attach(scale=lambda x: x * 2)
        .map_partitions(lambda part, env: [env.closure("scale")(x) for x in part], requires=["scale"])
    )

    assert rdd.collect() == [2, 4, 6]
    assert not [e for e in ctx.events if e["message"] == "Closure requerida ainda não anexada"]
