# src/atlas_rdd/core/context.py
"""
Context — ponto de entrada de uma sessão do Atlas RDD.

O Context reúne tudo o que uma sessão compartilha entre Collections:

    - configuração resolvida (`SessionConfig`) e seu hash canônico
    - o engine de execução (injetado ou `LocalEngine` para masters locais)
    - o formato de serialização padrão
    - o registro de funções de particionamento
    - o log estruturado de eventos da sessão
    - propriedades locais por thread (ex.: call site)

Decisões arquiteturais:
    - `app_name` e `master` ausentes são fatais no início (`ConfigurationError`)
    - Masters `local`, `local[N]` e `local[*]` criam um `LocalEngine`;
      qualquer outro master exige um engine injetado
    - Eventos são dicionários simples, sempre com `app_name`, `component`,
      `level`, `message` e `timestamp` em UTC

Invariantes:
    - Cada Context possui seu próprio log e registro de funções
    - Após `stop()`, pedidos ao engine falham com `EngineCommunicationError`

Limites explícitos:
    - Não negocia recursos de cluster
    - Não lê arquivos de dados
"""

from __future__ import annotations

import copy
import threading
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from atlas_rdd.core.command.builder import Command
from atlas_rdd.core.command.formats import Format, encode
from atlas_rdd.core.config import (
    SessionConfig,
    compute_config_hash,
    default_worker_type,
    load_config,
    resolve_session_config,
)
from atlas_rdd.core.engine.local import LocalEngine
from atlas_rdd.core.engine.protocol import ExecutionEngine, WorkerType
from atlas_rdd.core.errors import configuration_error, exception_to_error, raise_payload
from atlas_rdd.core.exceptions import CompositionError, ConfigurationError
from atlas_rdd.core.rdd.collection import Collection
from atlas_rdd.core.rdd.lineage import Root
from atlas_rdd.core.rdd.shuffle import PartitionFunctionRegistry, stable_hash

CALL_SITE_PROPERTY = "externalCallSite"


class Context:
    """
    Sessão do Atlas RDD.

    Exemplo:
        ctx = Context({"session": {"app_name": "wordcount", "master": "local[2]"}})
        counts = (
            ctx.parallelize(words)
            .map(lambda w: (w, 1))
            .reduce_by_key(operator.add)
            .collect_as_map()
        )
    """

    def __init__(self, config: Dict[str, Any], engine: Optional[ExecutionEngine] = None):
        self._config = copy.deepcopy(config) if isinstance(config, dict) else config
        self.session: SessionConfig = resolve_session_config(self._config)
        self.config_hash = compute_config_hash(self._config)

        self.events: List[Dict[str, Any]] = []
        self._local = threading.local()
        self.partition_functions = PartitionFunctionRegistry()
        self.partition_functions.register(stable_hash)

        if engine is None:
            if not self.session.is_local:
                raise_payload(
                    configuration_error(
                        message="Master não local exige um engine injetado",
                        details={"master": self.session.master},
                        hint="Use master 'local', 'local[N]' ou 'local[*]', ou passe engine=... ao Context.",
                    ),
                    ConfigurationError,
                )
            engine = LocalEngine(
                default_parallelism=self.session.default_parallelism or self.session.local_parallelism(),
                n_jobs=self.session.n_jobs,
            )
        elif not isinstance(engine, ExecutionEngine):
            raise_payload(
                configuration_error(
                    message="Engine injetado não implementa ExecutionEngine",
                    details={"engine": type(engine).__name__},
                ),
                ConfigurationError,
            )
        self.engine = engine

        self._default_serializer = Format(codec=self.session.codec, batch_size=self.session.batch_size)
        self.set_call_site("Python")

        self.log(
            component="session",
            level="INFO",
            message="Sessão iniciada",
            master=self.session.master,
            worker_type=self.session.worker_type,
            config_hash=self.config_hash,
        )

    @classmethod
    def from_files(
        cls,
        *,
        defaults_path: str,
        local_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        engine: Optional[ExecutionEngine] = None,
    ) -> "Context":
        config = load_config(defaults_path=defaults_path, local_path=local_path, overrides=overrides)
        return cls(config, engine=engine)

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    # -----------------------------
    # Log estruturado
    # -----------------------------
    def log(self, *, component: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "app_name": self.session.app_name,
            "component": component,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    @contextmanager
    def job(self, operation: str, **extra: Any):
        """Delimita uma ação no log; falhas são registradas com o payload canônico."""
        self.log(
            component="job",
            level="INFO",
            message="Job iniciado",
            operation=operation,
            call_site=self.get_call_site(),
            **extra,
        )
        try:
            yield
        except Exception as exc:
            self.log(
                component="job",
                level="ERROR",
                message="Job falhou",
                operation=operation,
                error=exception_to_error(exc).to_dict(),
            )
            raise
        self.log(component="job", level="INFO", message="Job concluído", operation=operation)

    # -----------------------------
    # Configuração
    # -----------------------------
    def config(self, key: Optional[str] = None) -> Any:
        """Configuração efetiva; `key` aceita caminho pontuado (`session.master`)."""
        if key is None:
            return copy.deepcopy(self._config)
        node: Any = self._config
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    @property
    def default_parallelism(self) -> int:
        return self.session.default_parallelism or self.engine.default_parallelism

    @property
    def worker_type(self) -> WorkerType:
        return WorkerType(self.session.worker_type)

    @staticmethod
    def default_worker_type() -> str:
        return default_worker_type()

    def default_serializer(self, fmt: Optional[Format] = None) -> Format:
        if fmt is not None:
            self._default_serializer = fmt
        return self._default_serializer

    def get_serializer(self, suggestion: Union[None, str, Format] = None) -> Format:
        if suggestion is None:
            return self._default_serializer
        if isinstance(suggestion, Format):
            return suggestion
        return Format(codec=suggestion, batch_size=self._default_serializer.batch_size)

    # -----------------------------
    # Propriedades locais
    # -----------------------------
    def _properties(self) -> Dict[str, Any]:
        if not hasattr(self._local, "properties"):
            self._local.properties = {}
        return self._local.properties

    def set_local_property(self, key: str, value: Any) -> None:
        self._properties()[key] = value

    def get_local_property(self, key: str) -> Any:
        return self._properties().get(key)

    def set_call_site(self, site: str) -> None:
        self.set_local_property(CALL_SITE_PROPERTY, site)

    def get_call_site(self) -> str:
        site = self.get_local_property(CALL_SITE_PROPERTY)
        if site:
            return site
        frame = traceback.extract_stack(limit=3)[0]
        return f"{frame.name} at {frame.filename}:{frame.lineno}"

    # -----------------------------
    # Collections
    # -----------------------------
    def parallelize(
        self,
        data: Iterable[Any],
        num_slices: Optional[int] = None,
        serializer: Union[None, str, Format] = None,
    ) -> Collection:
        """
        Distribui uma coleção local em `num_slices` partições.

        A fatia `i` recebe `data[i*n//k:(i+1)*n//k]`, preservando a ordem.
        Com `parallelize.strategy: deep_copy`, listas são copiadas antes
        de serializadas.
        """
        if num_slices is None:
            num_slices = self.default_parallelism
        if isinstance(num_slices, bool) or not isinstance(num_slices, int) or num_slices < 1:
            raise CompositionError(
                "num_slices deve ser um inteiro positivo",
                details={"num_slices": num_slices},
            )

        fmt = self.get_serializer(serializer)
        if isinstance(data, list) and self.session.parallelize_strategy == "deep_copy":
            data = copy.deepcopy(data)
        else:
            data = list(data)

        size = len(data)
        slices = [data[i * size // num_slices:(i + 1) * size // num_slices] for i in range(num_slices)]
        try:
            partitions = [encode(fmt, part) for part in slices]
        except TypeError as exc:
            raise CompositionError(
                "Dados incompatíveis com o serializer escolhido",
                details={"format": str(fmt), "reason": str(exc)},
            ) from exc

        handle = self.engine.parallelize(partitions, fmt)
        self.log(
            component="context",
            level="INFO",
            message="Coleção distribuída",
            num_slices=num_slices,
            format=str(fmt),
            strategy=self.session.parallelize_strategy,
            handle=handle.id,
        )
        return Collection(self, Root(handle), Command(fmt, handle.format))

    # -----------------------------
    # Ciclo de vida
    # -----------------------------
    def stop(self) -> None:
        if not self.engine.is_active:
            return
        self.engine.stop()
        self.log(component="session", level="INFO", message="Sessão encerrada")
