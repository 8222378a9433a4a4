# src/atlas_rdd/__init__.py
"""
Atlas RDD — front-end preguiçoso para pipelines sobre coleções particionadas.

Este pacote raiz define o namespace público do Atlas RDD: compor cadeias de
transformações em uma única unidade de trabalho por partição (Command),
parear cada unidade com um contrato de serialização explícito (Format) e
construir shuffles e reduções em várias fases sobre o primitivo por partição.

Arquitetura em alto nível:
    - core.config   → carregamento, merge, hashing e resolução da sessão
    - core.command  → Format, templates de Stage e o compilador de Command
    - core.engine   → fronteira com o engine de execução e o LocalEngine
    - core.rdd      → Collection, linhagem, shuffle e agregações
    - core.context  → Context, ponto de entrada da sessão
    - mllib         → vetores densos e esparsos

Limites explícitos:
    - Não negocia recursos de cluster
    - Não implementa política de eviction de cache
    - Não define o formato RPC nativo do engine
"""

from .core.command.formats import Format
from .core.context import Context
from .core.engine.protocol import StorageLevel, WorkerType
from .core.rdd.collection import Collection

__all__ = ["Collection", "Context", "Format", "StorageLevel", "WorkerType"]
