# src/atlas_rdd/core/config/loader.py
"""
Montagem da configuração de sessão a partir de arquivos e overrides.

Camadas, da mais fraca para a mais forte:
    1. defaults (YAML/JSON, obrigatório)
    2. local    (YAML/JSON, opcional; ausente = ignorado)
    3. overrides em código (dict aninhado ou com chaves pontuadas)

Invariantes:
    - Defaults ausentes são fatais; o arquivo local ausente não é
    - O resultado é sempre um `dict` novo (nenhuma camada é mutada)
    - Arquivos vazios equivalem a `{}`

Limites explícitos:
    - Não valida a semântica da sessão (ver `core.config.session`)
    - Não interpola variáveis de ambiente
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml  # PyYAML

from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)
from .merge import deep_merge, expand_dotted

_READERS: Dict[str, Callable[[Any], Any]] = {
    ".yaml": yaml.safe_load,
    ".yml": yaml.safe_load,
    ".json": json.load,
}


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Lê um arquivo de configuração existente e devolve sua raiz como dict.

    Raises:
        UnsupportedConfigFormatError: Extensão fora de `_READERS`.
        InvalidConfigRootTypeError: Raiz diferente de mapeamento.
    """
    reader = _READERS.get(path.suffix.lower())
    if reader is None:
        raise UnsupportedConfigFormatError(
            f"Formato de configuração não suportado: '{path.suffix}' ({path.name})"
        )

    with path.open("r", encoding="utf-8") as fh:
        data = reader(fh)

    return _as_layer(data if data is not None else {}, source=str(path))


def _as_layer(data: Any, *, source: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Raiz da configuração em {source} deve ser dict, recebido: {type(data).__name__}"
        )
    return data


def load_config(
    *,
    defaults_path: str,
    local_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Resolve a configuração efetiva da sessão.

    Exemplo:
        load_config(
            defaults_path="config/defaults.yaml",
            local_path="config/local.yaml",
            overrides={"session.master": "local[4]"},
        )

    Raises:
        DefaultsNotFoundError: Arquivo de defaults inexistente.
        UnsupportedConfigFormatError: Extensão não suportada.
        InvalidConfigRootTypeError: Raiz de arquivo ou override não-dict.
        InvalidOverrideKeyError: Chave pontuada malformada em `overrides`.
        ConfigTypeConflictError: Conflito de tipos entre camadas.
    """
    defaults_file = Path(defaults_path)
    if not defaults_file.is_file():
        raise DefaultsNotFoundError(f"Arquivo de defaults não encontrado: {defaults_file}")

    effective = read_config_file(defaults_file)

    if local_path is not None and Path(local_path).is_file():
        effective = deep_merge(effective, read_config_file(Path(local_path)))

    if overrides is not None:
        layer = _as_layer(overrides, source="overrides")
        effective = deep_merge(effective, expand_dotted(layer))

    return effective
