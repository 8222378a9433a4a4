# src/atlas_rdd/core/config/session.py
"""
Resolução da configuração de sessão do Atlas RDD.

Este módulo converte a configuração efetiva (dict, vinda do loader ou
construída em código) em um `SessionConfig` imutável, validando os
parâmetros obrigatórios de sessão.

Estrutura esperada (v1):

    session:
      app_name: "wordcount"          # obrigatório
      master: "local[4]"             # obrigatório
      default_parallelism: null      # opcional (int)
    worker:
      type: "process"                # process | thread
      n_jobs: 1
    parallelize:
      strategy: "inplace"            # inplace | deep_copy
    serializer:
      codec: "pickle"                # pickle | json | utf8
      batch_size: 1024
    union:
      on_format_mismatch: "reject"   # reject | reencode

Decisões arquiteturais:
    - `app_name` e `master` ausentes são falhas fatais no início da sessão
    - Valores fora do domínio declarado são rejeitados (sem coerção)
    - O tipo de worker padrão é `thread` no Windows e `process` nos demais

Limites explícitos:
    - Não carrega arquivos (ver `loader`)
    - Não cria engine
"""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

from atlas_rdd.core.command.formats import CODECS
from atlas_rdd.core.errors import configuration_error, raise_payload
from atlas_rdd.core.exceptions import ConfigurationError

WORKER_TYPES = ("process", "thread")
PARALLELIZE_STRATEGIES = ("inplace", "deep_copy")
UNION_POLICIES = ("reject", "reencode")

DEFAULT_BATCH_SIZE = 1024
DEFAULT_CODEC = "pickle"

_LOCAL_MASTER = re.compile(r"^local(\[(\*|[0-9]+)\])?$")


@dataclass(frozen=True)
class SessionConfig:
    """
    Configuração de sessão resolvida e validada.

    Campos:
        - app_name / master: identidade da aplicação e do cluster alvo
        - default_parallelism: paralelismo padrão declarado (ou derivado do master local)
        - worker_type: modo de isolamento dos workers (process | thread)
        - n_jobs: workers simultâneos no engine local
        - parallelize_strategy: inplace | deep_copy
        - codec / batch_size: formato padrão de serialização
        - union_on_format_mismatch: política para `union` de formatos distintos
    """

    app_name: str
    master: str
    default_parallelism: Optional[int]
    worker_type: str
    n_jobs: int
    parallelize_strategy: str
    codec: str
    batch_size: int
    union_on_format_mismatch: str

    @property
    def is_local(self) -> bool:
        return bool(_LOCAL_MASTER.match(self.master))

    def local_parallelism(self) -> int:
        """Paralelismo implícito de um master `local`, `local[N]` ou `local[*]`."""
        match = _LOCAL_MASTER.match(self.master)
        if match is None:
            raise ConfigurationError(
                f"Master não é local: {self.master}",
                details={"master": self.master},
            )
        slots = match.group(2)
        if slots is None:
            return 1
        if slots == "*":
            return os.cpu_count() or 1
        return max(1, int(slots))


def default_worker_type() -> str:
    """Fork não está disponível no Windows."""
    if sys.platform.startswith("win"):
        return "thread"
    return "process"


def _section(config: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = config.get(name, {}) or {}
    if not isinstance(value, dict):
        raise_payload(
            configuration_error(
                message=f"Seção '{name}' deve ser um mapa",
                details={"section": name, "received": type(value).__name__},
            ),
            ConfigurationError,
        )
    return value


def _choice(value: Any, allowed: tuple, key: str) -> str:
    if value not in allowed:
        raise_payload(
            configuration_error(
                message=f"Valor inválido para '{key}'",
                details={"key": key, "value": value, "allowed": list(allowed)},
            ),
            ConfigurationError,
        )
    return value


def _positive_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise_payload(
            configuration_error(
                message=f"'{key}' deve ser um inteiro positivo",
                details={"key": key, "value": value},
            ),
            ConfigurationError,
        )
    return value


def resolve_session_config(config: Dict[str, Any]) -> SessionConfig:
    """
    Valida a configuração efetiva e produz um `SessionConfig`.

    Raises:
        ConfigurationError: Se `session.app_name` ou `session.master`
            estiverem ausentes, ou se algum valor estiver fora do domínio.
    """
    if not isinstance(config, dict):
        raise ConfigurationError(
            "Configuração de sessão deve ser um dict",
            details={"received": type(config).__name__},
        )

    session = _section(config, "session")
    worker = _section(config, "worker")
    parallelize = _section(config, "parallelize")
    serializer = _section(config, "serializer")
    union = _section(config, "union")

    master = session.get("master")
    if not master:
        raise_payload(
            configuration_error(
                message="A master URL must be set in your configuration",
                details={"key": "session.master"},
            ),
            ConfigurationError,
        )

    app_name = session.get("app_name")
    if not app_name:
        raise_payload(
            configuration_error(
                message="An application name must be set in your configuration",
                details={"key": "session.app_name"},
            ),
            ConfigurationError,
        )

    parallelism = session.get("default_parallelism")
    if parallelism is not None:
        parallelism = _positive_int(parallelism, "session.default_parallelism")

    return SessionConfig(
        app_name=str(app_name),
        master=str(master),
        default_parallelism=parallelism,
        worker_type=_choice(worker.get("type", default_worker_type()), WORKER_TYPES, "worker.type"),
        n_jobs=_positive_int(worker.get("n_jobs", 1), "worker.n_jobs"),
        parallelize_strategy=_choice(
            parallelize.get("strategy", "inplace"), PARALLELIZE_STRATEGIES, "parallelize.strategy"
        ),
        codec=_choice(serializer.get("codec", DEFAULT_CODEC), tuple(CODECS), "serializer.codec"),
        batch_size=_positive_int(serializer.get("batch_size", DEFAULT_BATCH_SIZE), "serializer.batch_size"),
        union_on_format_mismatch=_choice(
            union.get("on_format_mismatch", "reject"), UNION_POLICIES, "union.on_format_mismatch"
        ),
    )
