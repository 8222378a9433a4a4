# src/atlas_rdd/core/config/hashing.py
"""
Identidade da configuração efetiva de uma sessão.

O Context calcula o hash uma única vez, na construção, e o expõe como
`config_hash`; o evento "Sessão iniciada" o registra para que execuções
com a mesma configuração sejam reconhecíveis no log.

Forma canônica: JSON com chaves ordenadas, separadores compactos, UTF-8
sem escape; valores não-JSON (ex.: `Path`) entram via `str()`.
"""

import hashlib
import json
from typing import Any, Mapping


def canonical_config_json(config: Mapping[str, Any]) -> str:
    """Serializa a configuração na forma canônica usada pelo hash."""
    if not isinstance(config, dict):
        raise TypeError(
            f"Configuração de sessão deve ser dict, recebido: {type(config).__name__}"
        )
    return json.dumps(
        config,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def compute_config_hash(config: Mapping[str, Any]) -> str:
    """SHA-256 hexadecimal (64 caracteres) de `canonical_config_json(config)`."""
    return hashlib.sha256(canonical_config_json(config).encode("utf-8")).hexdigest()
