# src/atlas_rdd/core/command/__init__.py
"""
Compilador de Commands do Atlas RDD.

Componentes:
    - formats → `Format` (identidade do formato de fio), codecs e framing
    - stages  → templates de Stage executados por partição
    - builder → `Command`, `Stage`, `StageEnv`, `CompiledCommand`

Este pacote não depende de conceitos de execução distribuída.
"""

from .builder import Command, CompiledCommand, Stage, StageEnv
from .formats import Format, decode, encode, pack_long, unpack_long

__all__ = [
    "Command",
    "CompiledCommand",
    "Format",
    "Stage",
    "StageEnv",
    "decode",
    "encode",
    "pack_long",
    "unpack_long",
]
