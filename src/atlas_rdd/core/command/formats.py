# src/atlas_rdd/core/command/formats.py
"""
Formatos de serialização do Atlas RDD.

Este módulo define o `Format`, a etiqueta explícita de identidade do formato
de fio usado na fronteira de cada unidade de trabalho, junto com os codecs e
o enquadramento (framing) de partições em frames de bytes.

O par serializer/deserializer é o invariante de sustentação do pipeline:
o serializer de um passo deve ser igual ao deserializer do passo seguinte.
Como uma violação corromperia dados silenciosamente, a identidade do formato
é um valor comparável (`Format`), verificado no momento da composição.

Enquadramento (v1):
    - batch_size > 1  → um frame por lote de até N elementos
    - batch_size == 1 → um frame por elemento
    - keyed=True      → frames alternados: chave (8 bytes, big-endian, com
                        sinal) seguida do payload do registro; usado apenas
                        como entrada do shuffle

Codecs suportados:
    - pickle: qualquer objeto Python serializável (padrão)
    - json:   tipos JSON (tuplas voltam como listas)
    - utf8:   apenas strings, sempre um elemento por frame

Limites explícitos:
    - Não comprime frames
    - Não conhece partições nem engine
"""

from __future__ import annotations

import json
import pickle
import struct
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from atlas_rdd.core.exceptions import CompositionError

KEY_STRUCT = struct.Struct(">q")

_LONG_MASK = (1 << 64) - 1
_LONG_SIGN = 1 << 63


class Codec:
    """Codifica/decodifica um único objeto em bytes."""

    name = "abstract"

    def dumps(self, obj: Any) -> bytes:
        raise NotImplementedError

    def loads(self, data: bytes) -> Any:
        raise NotImplementedError


class PickleCodec(Codec):
    name = "pickle"

    def dumps(self, obj: Any) -> bytes:
        return pickle.dumps(obj, protocol=pickle.HIGHEST_PROTOCOL)

    def loads(self, data: bytes) -> Any:
        return pickle.loads(data)


class JsonCodec(Codec):
    name = "json"

    def dumps(self, obj: Any) -> bytes:
        return json.dumps(obj, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    def loads(self, data: bytes) -> Any:
        return json.loads(data.decode("utf-8"))


class Utf8Codec(Codec):
    name = "utf8"

    def dumps(self, obj: Any) -> bytes:
        if not isinstance(obj, str):
            raise TypeError(f"utf8 codec aceita apenas str, recebido: {type(obj).__name__}")
        return obj.encode("utf-8")

    def loads(self, data: bytes) -> Any:
        return data.decode("utf-8")


CODECS: Dict[str, Codec] = {
    codec.name: codec for codec in (PickleCodec(), JsonCodec(), Utf8Codec())
}


def get_codec(name: str) -> Codec:
    try:
        return CODECS[name]
    except KeyError:
        raise CompositionError(
            f"Codec desconhecido: {name}",
            details={"codec": name, "available": sorted(CODECS)},
        ) from None


@dataclass(frozen=True)
class Format:
    """
    Identidade do formato de fio de uma fronteira de Command.

    Dois formatos são compatíveis se e somente se são iguais; não existe
    conversão implícita entre codecs, tamanhos de lote ou enquadramento.
    """

    codec: str = "pickle"
    batch_size: int = 1024
    keyed: bool = False

    def __post_init__(self) -> None:
        get_codec(self.codec)
        if self.batch_size < 1:
            raise CompositionError(
                "batch_size deve ser >= 1",
                details={"batch_size": self.batch_size},
            )
        if self.codec == "utf8" and self.batch_size != 1:
            object.__setattr__(self, "batch_size", 1)

    @property
    def batched(self) -> bool:
        return self.batch_size > 1

    def unbatched(self) -> "Format":
        return replace(self, batch_size=1)

    def keyed_pairs(self) -> "Format":
        return replace(self, batch_size=1, keyed=True)

    def values(self) -> "Format":
        return replace(self, keyed=False)

    def __str__(self) -> str:
        framing = "keyed" if self.keyed else ("batch=%d" % self.batch_size)
        return f"{self.codec}[{framing}]"


def pack_long(value: int) -> bytes:
    """Empacota um inteiro arbitrário em 8 bytes (complemento de dois, com sinal)."""
    value &= _LONG_MASK
    if value & _LONG_SIGN:
        value -= 1 << 64
    return KEY_STRUCT.pack(value)


def unpack_long(data: bytes) -> int:
    return KEY_STRUCT.unpack(data)[0]


def encode(fmt: Format, items: Iterable[Any]) -> List[bytes]:
    """Codifica os elementos de uma partição em frames conforme `fmt`."""
    codec = get_codec(fmt.codec)

    if fmt.keyed:
        frames: List[bytes] = []
        for item in items:
            try:
                key, record = item
            except (TypeError, ValueError):
                raise TypeError(
                    "Formato keyed exige pares (chave_codificada, registro)"
                ) from None
            if not isinstance(key, bytes) or len(key) != KEY_STRUCT.size:
                raise TypeError("Chave de shuffle deve ter 8 bytes (pack_long)")
            frames.append(key)
            frames.append(codec.dumps(record))
        return frames

    if not fmt.batched:
        return [codec.dumps(item) for item in items]

    frames = []
    batch: List[Any] = []
    for item in items:
        batch.append(item)
        if len(batch) >= fmt.batch_size:
            frames.append(codec.dumps(batch))
            batch = []
    if batch:
        frames.append(codec.dumps(batch))
    return frames


def decode(fmt: Format, frames: Iterable[bytes]) -> Iterator[Any]:
    """Decodifica frames de uma partição em elementos, preservando a ordem."""
    codec = get_codec(fmt.codec)

    if fmt.keyed:
        for key, payload in split_keyed(list(frames)):
            yield key, codec.loads(payload)
        return

    for frame in frames:
        if fmt.batched:
            yield from codec.loads(frame)
        else:
            yield codec.loads(frame)


def split_keyed(frames: List[bytes]) -> Iterator[Tuple[int, bytes]]:
    """Percorre frames keyed sem reinterpretar o payload (uso do shuffle)."""
    if len(frames) % 2:
        raise ValueError("Partição keyed com número ímpar de frames")
    for i in range(0, len(frames), 2):
        yield unpack_long(frames[i]), frames[i + 1]
