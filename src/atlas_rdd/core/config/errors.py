# src/atlas_rdd/core/config/errors.py
"""
Exceções dos arquivos e overrides de configuração do Atlas RDD.

Cobrem apenas a montagem do dicionário de configuração (leitura de
arquivos, overrides em código, deep-merge). Falhas de resolução da sessão,
como `session.master` ausente, são `ConfigurationError` (ver
`core.exceptions`).

Limites explícitos:
    - Não realiza fallback ou recovery
    - Não depende de Engine, Collection ou Context
"""


class ConfigError(Exception):
    """Base dos erros de montagem da configuração (load, overrides, merge)."""


class DefaultsNotFoundError(ConfigError):
    """
    O arquivo de defaults não existe no caminho informado.

    O loader não infere nem cria defaults: sem eles a sessão não tem
    `app_name` nem `master`.
    """


class UnsupportedConfigFormatError(ConfigError):
    """Extensão fora de `.yaml`, `.yml` e `.json`."""


class InvalidConfigRootTypeError(ConfigError):
    """O conteúdo raiz de um arquivo ou de um override não é um `dict`."""


class InvalidOverrideKeyError(ConfigError):
    """
    Chave pontuada de override malformada.

    Exemplos rejeitados: `""`, `"session."`, `".master"`, `"session..master"`.
    """


class ConfigTypeConflictError(ConfigError):
    """
    Conflito de tipos durante o deep-merge.

    Exemplo:
        - base:     {"worker": {"type": "process"}}
        - override: {"worker": "thread"}
    """
