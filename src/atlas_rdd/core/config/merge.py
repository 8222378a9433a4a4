# src/atlas_rdd/core/config/merge.py
"""
Composição da configuração de sessão: deep-merge e overrides pontuados.

A configuração efetiva é montada em camadas, da mais fraca para a mais forte:

    defaults (arquivo) → local (arquivo) → overrides em código

Overrides em código podem vir aninhados (`{"worker": {"n_jobs": 4}}`) ou
pontuados (`{"worker.n_jobs": 4}`), no estilo de `conf.set("chave", valor)`.

Política de merge (v1):
    - dict → merge recursivo por chave
    - list → sobrescrita total
    - escalar → sobrescrita direta
    - base `None` aceita qualquer tipo (ex.: `default_parallelism: null`)
    - conflito de tipos → `ConfigTypeConflictError`

Invariantes:
    - Nenhum input é mutado
    - Conflitos estruturais interrompem o merge (sem resultado parcial)
"""

from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping

from .errors import ConfigTypeConflictError, InvalidOverrideKeyError


def _path(key: str, prefix: Iterable[str]) -> str:
    return ".".join([*prefix, key])


def _merge_into(result: Dict[str, Any], override: Mapping[str, Any], prefix: tuple) -> None:
    for key, value in override.items():
        current = result.get(key)
        if current is None:
            result[key] = deepcopy(value)
        elif isinstance(current, dict) and isinstance(value, dict):
            _merge_into(current, value, prefix + (key,))
        elif isinstance(value, list) or type(current) is type(value):
            result[key] = deepcopy(value)
        else:
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{_path(key, prefix)}': "
                f"{type(current).__name__} vs {type(value).__name__}"
            )


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep-merge determinístico de `override` sobre `base`.

    Exemplo:
        base     = {"worker": {"type": "process", "n_jobs": 1}}
        override = {"worker": {"n_jobs": 4}}
        →          {"worker": {"type": "process", "n_jobs": 4}}

    Raises:
        ConfigTypeConflictError: Se base e override divergirem de tipo em
            alguma chave (a mensagem traz o caminho pontuado).
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )

    result: Dict[str, Any] = deepcopy(base)
    _merge_into(result, override, ())
    return result


def expand_dotted(overrides: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Converte chaves pontuadas em dicionários aninhados.

        {"session.master": "local[4]", "worker": {"n_jobs": 2}}
        → {"session": {"master": "local[4]"}, "worker": {"n_jobs": 2}}

    Chaves sem ponto passam como estão. Duas chaves que apontam para o mesmo
    caminho com tipos incompatíveis levantam `ConfigTypeConflictError`.
    """
    expanded: Dict[str, Any] = {}
    for key, value in overrides.items():
        if not isinstance(key, str) or not key or any(not part for part in key.split(".")):
            raise InvalidOverrideKeyError(f"Chave de override inválida: {key!r}")

        *parents, leaf = key.split(".")
        nested: Dict[str, Any] = {leaf: deepcopy(value)}
        for parent in reversed(parents):
            nested = {parent: nested}
        expanded = deep_merge(expanded, nested)
    return expanded
