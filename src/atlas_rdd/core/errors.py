"""
Atlas RDD — Canonical Error Structures (v1)

Este módulo define o padrão canônico de erros do Atlas RDD.
Erros são considerados artefatos de domínio e fazem parte do contrato operacional
do sistema, devendo ser:

- explícitos
- serializáveis
- rastreáveis
- acionáveis

Nenhuma degradação silenciosa é permitida: toda ambiguidade falha alto.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .exceptions import (
    AlreadyPersistedError,
    AtlasException,
    CompilationError,
    CompositionError,
    ConfigurationError,
    EngineCommunicationError,
    ExecutionFailure,
    IncompatibleFormatError,
    VectorFormatError,
)


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AtlasErrorPayload:
    """
    Payload canônico de erro do Atlas RDD.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador (onde corrigir)
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

# Composição
COMPOSITION_ERROR = "COMPOSITION_ERROR"
COMPILATION_ERROR = "COMPILATION_ERROR"
INCOMPATIBLE_FORMAT = "INCOMPATIBLE_FORMAT"
ALREADY_PERSISTED = "ALREADY_PERSISTED"
VECTOR_FORMAT_ERROR = "VECTOR_FORMAT_ERROR"

# Engine / Execução / Sessão
ENGINE_COMMUNICATION_ERROR = "ENGINE_COMMUNICATION_ERROR"
EXECUTION_FAILURE = "EXECUTION_FAILURE"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


# Ordem importa: subclasses antes das bases.
_EXCEPTION_CODES = (
    (CompilationError, COMPILATION_ERROR),
    (IncompatibleFormatError, INCOMPATIBLE_FORMAT),
    (AlreadyPersistedError, ALREADY_PERSISTED),
    (VectorFormatError, VECTOR_FORMAT_ERROR),
    (CompositionError, COMPOSITION_ERROR),
    (EngineCommunicationError, ENGINE_COMMUNICATION_ERROR),
    (ExecutionFailure, EXECUTION_FAILURE),
    (ConfigurationError, CONFIGURATION_ERROR),
)


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def incompatible_format(
    *,
    producer: Any,
    consumer: Any,
    operation: str,
    hint: str = "Garanta que o serializer do produtor seja igual ao deserializer do consumidor, "
    "ou habilite `union.on_format_mismatch: reencode` na configuração.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=INCOMPATIBLE_FORMAT,
        message="Formatos de serialização incompatíveis",
        details={
            "producer": str(producer),
            "consumer": str(consumer),
            "operation": operation,
        },
        hint=hint,
    )


def execution_failure(
    *,
    partition: Optional[int] = None,
    exc_type: Optional[str] = None,
    exc_message: Optional[str] = None,
    hint: str = "Verifique a função do Stage na partição indicada. Nenhum retry é aplicado automaticamente.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=EXECUTION_FAILURE,
        message="Falha na função de Stage durante a execução da partição",
        details={
            "partition": partition,
            "exc_type": exc_type,
            "exc_message": exc_message,
        },
        hint=hint,
    )


def engine_communication_error(
    *,
    operation: str,
    reason: str,
    hint: str = "Verifique se a sessão ainda está ativa e se o engine está acessível.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=ENGINE_COMMUNICATION_ERROR,
        message="Falha de comunicação com o engine de execução",
        details={
            "operation": operation,
            "reason": reason,
        },
        hint=hint,
    )


def configuration_error(
    *,
    message: str = "Configuração de sessão inválida",
    details: Optional[Dict[str, Any]] = None,
    hint: str = "Declare explicitamente os parâmetros obrigatórios da sessão antes de iniciar.",
) -> AtlasErrorPayload:
    return AtlasErrorPayload(
        type=CONFIGURATION_ERROR,
        message=message,
        details=details or {},
        hint=hint,
    )


def raise_payload(payload: AtlasErrorPayload, exc_class: type) -> None:
    """Levanta `exc_class` carregando os campos de um payload canônico."""
    raise exc_class(message=payload.message, details=dict(payload.details), hint=payload.hint)


def exception_to_error(exc: BaseException) -> AtlasErrorPayload:
    """Converte exceções em AtlasErrorPayload (serializável, acionável).

    Regras:
    - AtlasException: código estável derivado da classe, com details/hint.
    - Outras exceções: encapsular como EXECUTION_FAILURE sem expor stack trace.
    """
    if isinstance(exc, AtlasException):
        code = COMPOSITION_ERROR
        for klass, klass_code in _EXCEPTION_CODES:
            if isinstance(exc, klass):
                code = klass_code
                break
        return AtlasErrorPayload(
            type=code,
            message=str(exc) or "Erro do Atlas RDD",
            details=dict(exc.details or {}),
            hint=exc.hint,
        )

    return AtlasErrorPayload(
        type=EXECUTION_FAILURE,
        message=str(exc) or "Erro inesperado durante execução",
        details={"exception_class": exc.__class__.__name__},
        hint="Verifique o log de eventos da sessão",
    )
