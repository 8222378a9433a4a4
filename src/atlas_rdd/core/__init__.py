# src/atlas_rdd/core/__init__.py
"""
Core do Atlas RDD.

O core é o compilador preguiçoso de pipelines e o protocolo de execução por
partição. Tudo o que é agendamento, tolerância a falhas e transporte pertence
ao engine, acessado apenas pela fronteira em `core.engine.protocol`.

Componentes principais:
    - config  → configuração de sessão (loader, merge, hashing, validação)
    - command → Command, Stages, Format e framing
    - engine  → protocolo do engine e engine local de referência
    - rdd     → Collection, linhagem, shuffle e agregações
    - context → sessão

Princípios fundamentais:
    - Erros de composição são síncronos; nenhuma ambiguidade é silenciosa
    - O Command compilado é imutável; ramos nunca compartilham mutações
"""
