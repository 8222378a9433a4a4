# src/atlas_rdd/core/engine/worker.py
"""
Execução de uma partição no worker.

`run_task` invoca o CompiledCommand uma única vez para a partição recebida
e devolve um `TaskOutcome`. Falhas da função do usuário não atravessam a
fronteira como exceção: voltam como dados estruturados, e o engine as
converte em uma única `ExecutionFailure` para a invocação inteira.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from atlas_rdd.core.command.builder import CompiledCommand


@dataclass(frozen=True)
class TaskOutcome:
    """Resultado de uma invocação por partição."""

    index: int
    frames: Optional[List[bytes]] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_type is None


def run_task(compiled: CompiledCommand, index: int, frames: List[bytes]) -> TaskOutcome:
    try:
        output = compiled(index, frames)
    except Exception as exc:  # noqa: BLE001 - devolvido como TaskOutcome
        return TaskOutcome(
            index=index,
            error_type=exc.__class__.__name__,
            error_message=str(exc),
        )
    return TaskOutcome(index=index, frames=output)
