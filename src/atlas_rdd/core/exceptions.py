"""
Atlas RDD — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do Atlas RDD.

Objetivo:
- Permitir que Command, Collection e Engine levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para AtlasErrorPayload
- Evitar ValueError/RuntimeError genéricos em guardrails críticos

Taxonomia:
- CompositionError: construção inválida de pipeline (detectada na chamada)
- EngineCommunicationError: engine inacessível ou com falha própria
- ExecutionFailure: função de Stage do usuário falhou em uma partição
- ConfigurationError: parâmetros obrigatórios de sessão ausentes

Regras:
- Erros de composição são sempre síncronos (nunca adiados para execução).
- Exceções devem carregar apenas dados estruturados (serializáveis).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class AtlasException(Exception):
    """Base class para exceções internas do Atlas RDD.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Composição (síncronas)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CompositionError(AtlasException):
    """Pipeline construído de forma inválida."""


@dataclass(frozen=True)
class CompilationError(CompositionError):
    """Stage referencia closure auxiliar não anexada ao Command."""


@dataclass(frozen=True)
class IncompatibleFormatError(CompositionError):
    """Serializer de um lado e deserializer do outro não formam par válido."""


@dataclass(frozen=True)
class AlreadyPersistedError(CompositionError):
    """Collection já persistida com outro storage level."""


@dataclass(frozen=True)
class VectorFormatError(CompositionError):
    """Texto de vetor malformado."""


# ---------------------------------------------------------------------------
# Engine / Execução / Configuração
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineCommunicationError(AtlasException):
    """Engine inacessível, encerrada ou retornou falha própria."""


@dataclass(frozen=True)
class ExecutionFailure(AtlasException):
    """Função de Stage falhou durante a invocação de uma partição."""


@dataclass(frozen=True)
class ConfigurationError(AtlasException):
    """Configuração de sessão ausente ou inválida (fatal no início)."""
