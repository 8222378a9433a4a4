# tests/conftest.py
"""
Fixtures compartilhados para testes do Atlas RDD.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações de sessão mínimas e determinísticas
- YAMLs de defaults e overrides locais semelhantes ao uso real
- um Context com LocalEngine em modo thread

Decisões arquiteturais:
    - Workers em thread: nenhuma função de teste precisa ser serializável
      entre processos, e contadores compartilhados ficam observáveis
    - Imports do core são realizados de forma lazy para melhorar a
      clareza de erros durante falhas
    - O Context é encerrado ao fim de cada teste

Invariantes:
    - Nenhuma fixture realiza I/O de rede
    - Cada teste recebe um Context próprio (log e engine isolados)

Limites explícitos:
    - Não exercita o backend `loky` (ver testes do engine)
    - Não substitui testes de integração com engines externos
"""

import pytest


# =====================================================
# Config Loader fixtures
# =====================================================

@pytest.fixture
def project_like_config_defaults_yaml() -> str:
    """
    YAML de defaults semelhante a um `config.defaults.yaml` real.

    Serve como base canônica sobre a qual overrides locais são aplicados
    via deep-merge, e contém a sessão mínima exigida pelo Context.

    Returns:
        str: Conteúdo YAML de defaults.
    """
    return """\
session:
  app_name: wordcount
  master: local[2]
worker:
  type: thread
  n_jobs: 1
serializer:
  codec: pickle
  batch_size: 1024
union:
  on_format_mismatch: reject
"""


@pytest.fixture
def project_like_config_local_yaml() -> str:
    """
    YAML de overrides locais (`config.local.yaml`).

    Representa apenas as chaves sobrescritas; não é uma configuração
    completa.

    Returns:
        str: Conteúdo YAML de override local.
    """
    return """\
session:
  master: local[4]
serializer:
  batch_size: 2
"""


# =====================================================
# Session fixtures
# =====================================================

@pytest.fixture
def session_config() -> dict:
    """
    Configuração de sessão mínima e válida, já resolvida.

    Decisões arquiteturais:
        - Master local com duas partições padrão
        - Workers em thread para determinismo e observabilidade
        - Lotes pequenos para exercitar o framing com vários frames

    Returns:
        dict: Configuração pronta para `Context(config)`.
    """
    return {
        "session": {"app_name": "atlas-rdd-tests", "master": "local[2]"},
        "worker": {"type": "thread", "n_jobs": 1},
        "serializer": {"codec": "pickle", "batch_size": 3},
    }


@pytest.fixture
def ctx(session_config):
    """
    Context determinístico com LocalEngine em modo thread.

    O import do Context é feito de forma lazy para que falhas de import
    apareçam como erro do fixture, com mensagem clara.

    Yields:
        Context: sessão ativa, encerrada ao final do teste.
    """
    from atlas_rdd.core.context import Context

    context = Context(session_config)
    yield context
    context.stop()
