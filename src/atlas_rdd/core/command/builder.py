# src/atlas_rdd/core/command/builder.py
"""
Command — unidade serializável de trabalho por partição.

Um Command reúne:
    - uma sequência ordenada de Stages (template + função do usuário)
    - closures auxiliares nomeadas, disponíveis a todos os Stages
    - módulos (bibliotecas) importados no worker antes de qualquer Stage
    - o par serializer/deserializer da fronteira da unidade

O Command cresce enquanto transformações são compostas e é compilado
(`build`) exatamente uma vez, de forma preguiçosa, quando a Collection dona
precisa de fato das partições no engine.

Decisões arquiteturais:
    - Após o build, o Command é imutável; composição adicional ocorre sobre
      `deep_copy()`, nunca sobre um Command já referenciado por outro ramo
    - `build` é idempotente e o resultado fica em cache no próprio Command
    - Closure exigida e não anexada falha no build (`CompilationError`)

Invariantes:
    - Duas Collections nunca observam mutações posteriores uma da outra
    - O CompiledCommand é um valor congelado e serializável

Limites explícitos:
    - Não conhece partições, handles ou engine
    - Não executa nada no driver
"""

from __future__ import annotations

import copy
import importlib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from atlas_rdd.core.exceptions import CompilationError, CompositionError

from .formats import Format, decode, encode

StageMain = Callable[..., Iterable[Any]]


@dataclass(frozen=True)
class Stage:
    """
    Descritor de um Stage composto.

    Campos:
        - main: template executado por partição (ver `stages`)
        - func: função do usuário exposta como `env.main`
        - closures: closures auxiliares vinculadas só a este Stage
        - requires: nomes de closures que o Stage referencia
        - params: valores não chamáveis (ex.: zero value)
        - name: rótulo para eventos e diagnóstico
    """

    main: StageMain
    func: Optional[Callable[..., Any]] = None
    closures: Dict[str, Callable[..., Any]] = field(default_factory=dict)
    requires: Tuple[str, ...] = ()
    params: Dict[str, Any] = field(default_factory=dict)
    name: str = ""


@dataclass
class StageEnv:
    """Ambiente visível a um Stage durante a execução de uma partição."""

    main: Optional[Callable[..., Any]]
    closures: Dict[str, Callable[..., Any]]
    libraries: Dict[str, Any]
    params: Dict[str, Any]

    def closure(self, name: str) -> Callable[..., Any]:
        try:
            return self.closures[name]
        except KeyError:
            raise CompilationError(
                f"Closure não anexada: {name}",
                details={"closure": name, "attached": sorted(self.closures)},
            ) from None

    def library(self, name: str) -> Any:
        return self.libraries[name]


@dataclass(frozen=True)
class CompiledCommand:
    """
    Forma final, implantável, de um Command.

    É o que o engine recebe em `submit` e invoca uma vez por partição:
    `compiled(index, frames) -> frames`.
    """

    stages: Tuple[Stage, ...]
    closures: Dict[str, Callable[..., Any]]
    libraries: Tuple[str, ...]
    serializer: Format
    deserializer: Format

    @property
    def stage_names(self) -> List[str]:
        return [stage.name for stage in self.stages]

    def __call__(self, index: int, frames: List[bytes]) -> List[bytes]:
        libraries = {name: importlib.import_module(name) for name in self.libraries}
        iterator = iter(decode(self.deserializer, frames))
        for stage in self.stages:
            closures = dict(self.closures)
            closures.update(stage.closures)
            env = StageEnv(
                main=stage.func,
                closures=closures,
                libraries=libraries,
                params=stage.params,
            )
            iterator = iter(stage.main(iterator, index, env))
        return encode(self.serializer, iterator)


class Command:
    """
    Builder de Command (ver docstring do módulo).

    Exemplo:
        cmd = Command(Format())
        cmd.add(map_stage, lambda x: x * 2, {"name": "map"})
        compiled = cmd.build()
    """

    def __init__(self, serializer: Format, deserializer: Optional[Format] = None):
        self._serializer = serializer
        self._deserializer = deserializer if deserializer is not None else serializer
        self._stages: List[Stage] = []
        self._before: Dict[str, Callable[..., Any]] = {}
        self._libraries: List[str] = []
        self._compiled: Optional[CompiledCommand] = None

    def __repr__(self) -> str:
        return (
            f"Command(stages={[s.name for s in self._stages]}, "
            f"serializer={self._serializer}, deserializer={self._deserializer}, "
            f"built={self.built})"
        )

    # -----------------------------
    # Formatos
    # -----------------------------
    @property
    def serializer(self) -> Format:
        return self._serializer

    @serializer.setter
    def serializer(self, fmt: Format) -> None:
        self._ensure_mutable("serializer")
        self._serializer = fmt

    @property
    def deserializer(self) -> Format:
        return self._deserializer

    @deserializer.setter
    def deserializer(self, fmt: Format) -> None:
        self._ensure_mutable("deserializer")
        self._deserializer = fmt

    # -----------------------------
    # Estado
    # -----------------------------
    @property
    def built(self) -> bool:
        return self._compiled is not None

    @property
    def stages(self) -> Tuple[Stage, ...]:
        return tuple(self._stages)

    @property
    def attached(self) -> Dict[str, List[str]]:
        return {
            "closures": sorted(self._before),
            "libraries": list(self._libraries),
        }

    def _ensure_mutable(self, operation: str) -> None:
        if self._compiled is not None:
            raise CompositionError(
                "Command já compilado é imutável; componha sobre deep_copy()",
                details={"operation": operation},
            )

    # -----------------------------
    # Composição
    # -----------------------------
    def add(
        self,
        main: StageMain,
        func: Optional[Callable[..., Any]] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "Command":
        """Anexa um Stage. Opções: `closures`, `requires`, `params`, `name`."""
        self._ensure_mutable("add")
        if not callable(main):
            raise CompositionError("Template de Stage deve ser chamável", details={"main": repr(main)})
        if func is not None and not callable(func):
            raise CompositionError(
                "Função do Stage deve ser chamável",
                details={"func": repr(func)},
            )

        options = dict(options or {})
        unknown = set(options) - {"closures", "requires", "params", "name"}
        if unknown:
            raise CompositionError(
                "Opções de Stage desconhecidas",
                details={"unknown": sorted(unknown)},
            )

        self._stages.append(
            Stage(
                main=main,
                func=func,
                closures=dict(options.get("closures") or {}),
                requires=tuple(options.get("requires") or ()),
                params=dict(options.get("params") or {}),
                name=options.get("name") or getattr(main, "__name__", "stage"),
            )
        )
        return self

    def add_before(
        self,
        entries: Union[Mapping[str, Any], Iterable[Any]],
    ) -> "Command":
        """
        Anexa closures e bibliotecas disponíveis a todos os Stages.

        Aceita um mapa `nome -> chamável`, ou um iterável de chamáveis
        (nomeados por `__name__`) e/ou strings (módulos a importar no worker).

        Reanexar um nome a outro objeto é erro: alteraria Stages já compostos.
        """
        self._ensure_mutable("add_before")

        if isinstance(entries, Mapping):
            items = list(entries.items())
        else:
            items = []
            for entry in entries:
                if isinstance(entry, str):
                    self.add_library([entry])
                    continue
                name = getattr(entry, "__name__", None)
                if not name or name == "<lambda>":
                    raise CompositionError(
                        "Closure anônima precisa ser anexada com nome explícito",
                        details={"entry": repr(entry)},
                    )
                items.append((name, entry))

        for name, closure in items:
            if not callable(closure):
                raise CompositionError(
                    f"Closure '{name}' não é chamável",
                    details={"closure": name},
                )
            current = self._before.get(name)
            if current is not None and current is not closure:
                raise CompositionError(
                    f"Closure '{name}' já anexada a outro objeto",
                    details={"closure": name},
                )
            self._before[name] = closure
        return self

    def add_library(self, names: Sequence[str]) -> "Command":
        self._ensure_mutable("add_library")
        for name in names:
            if not isinstance(name, str) or not name:
                raise CompositionError("Nome de biblioteca inválido", details={"library": repr(name)})
            if name not in self._libraries:
                self._libraries.append(name)
        return self

    # -----------------------------
    # Cópias
    # -----------------------------
    def deep_copy(self) -> "Command":
        """Cópia estruturalmente independente (não compilada), mesmos formatos."""
        other = Command(self._serializer, self._deserializer)
        other._stages = [
            Stage(
                main=s.main,
                func=s.func,
                closures=dict(s.closures),
                requires=tuple(s.requires),
                params=copy.deepcopy(s.params),
                name=s.name,
            )
            for s in self._stages
        ]
        other._before = dict(self._before)
        other._libraries = list(self._libraries)
        return other

    def boundary_copy(self, input_format: Format) -> "Command":
        """Cópia sem Stages, lendo de uma fronteira materializada em `input_format`."""
        other = self.deep_copy()
        other._stages = []
        other._deserializer = input_format
        return other

    # -----------------------------
    # Build
    # -----------------------------
    def missing_closures(self) -> List[Tuple[int, str, List[str]]]:
        """`(posição, stage, nomes)` de cada Stage com closures requeridas ainda não anexadas."""
        pending = []
        for position, stage in enumerate(self._stages):
            missing = [
                name for name in stage.requires
                if name not in stage.closures and name not in self._before
            ]
            if missing:
                pending.append((position, stage.name, missing))
        return pending

    def build(self) -> CompiledCommand:
        if self._compiled is not None:
            return self._compiled

        for position, name, missing in self.missing_closures():
            raise CompilationError(
                f"Stage '{name}' referencia closure não anexada: {', '.join(missing)}",
                details={
                    "stage": name,
                    "position": position,
                    "missing": missing,
                    "attached": sorted(self._before),
                },
                hint="Use attach(nome=função) na Collection antes de materializá-la.",
            )

        self._compiled = CompiledCommand(
            stages=tuple(self._stages),
            closures=dict(self._before),
            libraries=tuple(self._libraries),
            serializer=self._serializer,
            deserializer=self._deserializer,
        )
        return self._compiled
