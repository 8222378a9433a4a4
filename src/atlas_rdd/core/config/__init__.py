# src/atlas_rdd/core/config/__init__.py

"""
Camada de configuração do Atlas RDD.

Este pacote contém as estruturas e utilitários responsáveis por carregar,
mesclar, identificar e resolver a configuração de uma sessão.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + local) e overrides
      em código com chaves pontuadas
    - Resolução de configuração final via deep-merge determinístico
    - Geração de hash canônico para rastreabilidade
    - Validação dos parâmetros obrigatórios de sessão (`SessionConfig`)

Invariantes:
    - A configuração final é um dicionário puro (dict)
    - Conflitos estruturais são tratados como erro
    - Sessão sem `app_name` ou `master` não inicia
"""

from .hashing import canonical_config_json, compute_config_hash
from .loader import load_config, read_config_file
from .merge import deep_merge, expand_dotted
from .session import SessionConfig, default_worker_type, resolve_session_config

__all__ = [
    "SessionConfig",
    "canonical_config_json",
    "compute_config_hash",
    "deep_merge",
    "default_worker_type",
    "expand_dotted",
    "load_config",
    "read_config_file",
    "resolve_session_config",
]
