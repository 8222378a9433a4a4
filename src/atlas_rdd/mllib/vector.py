# src/atlas_rdd/mllib/vector.py
"""
Vetores numéricos (valor) trocados pelos protocolos de agregação.

Formatos textuais:
    - DenseVector:  `[v0,v1,...,vn]`
    - SparseVector: `(tamanho,[i0,i1,...],[v0,v1,...])`

Para todo vetor construído de forma válida, `Vector.parse(str(x)) == x`.
Texto malformado levanta `VectorFormatError`.

Os valores são mantidos em `numpy.ndarray` (float64); índices esparsos são
inteiros estritamente crescentes dentro de `[0, tamanho)`.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import numpy as np

from atlas_rdd.core.exceptions import VectorFormatError

_NUMBER = r"[-+]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?"
_NUMBERS = rf"(?:\s*{_NUMBER}\s*(?:,\s*{_NUMBER}\s*)*)?"
_DENSE = re.compile(rf"^\[({_NUMBERS})\]$")
_SPARSE = re.compile(rf"^\(\s*([0-9]+)\s*,\s*\[((?:\s*[0-9]+\s*(?:,\s*[0-9]+\s*)*)?)\]\s*,\s*\[({_NUMBERS})\]\s*\)$")


def _split(text: str) -> list:
    text = text.strip()
    return [item.strip() for item in text.split(",")] if text else []


def _format_value(value: float) -> str:
    return repr(float(value))


class Vector:
    """Base dos vetores; fábricas e parser textual."""

    size: int

    @staticmethod
    def dense(values: Iterable[Any]) -> "DenseVector":
        return DenseVector(values)

    @staticmethod
    def sparse(size: int, *args: Any) -> "SparseVector":
        return SparseVector(size, *args)

    @staticmethod
    def parse(text: str) -> "Vector":
        if not isinstance(text, str):
            raise VectorFormatError("Vetor textual deve ser str", details={"received": type(text).__name__})
        text = text.strip()
        if text.startswith("[") and text.endswith("]"):
            return DenseVector.parse(text)
        if text.startswith("(") and text.endswith(")"):
            return SparseVector.parse(text)
        raise VectorFormatError("Formato de vetor desconhecido", details={"text": text})

    @staticmethod
    def to_vector(data: Any) -> "Vector":
        if isinstance(data, Vector):
            return data
        if isinstance(data, (list, tuple, range, np.ndarray)):
            return DenseVector(data)
        raise VectorFormatError(
            "Não é possível converter para vetor",
            details={"received": type(data).__name__},
        )

    def __len__(self) -> int:
        return self.size

    def to_array(self) -> np.ndarray:
        raise NotImplementedError

    def _other_array(self, other: Union["Vector", Sequence[float], np.ndarray]) -> np.ndarray:
        array = other.to_array() if isinstance(other, Vector) else np.asarray(other, dtype=np.float64)
        if array.shape != (self.size,):
            raise VectorFormatError(
                "Dimensões incompatíveis",
                details={"left": self.size, "right": list(array.shape)},
            )
        return array

    def dot(self, other) -> float:
        return float(np.dot(self.to_array(), self._other_array(other)))

    def squared_distance(self, other) -> float:
        diff = self.to_array() - self._other_array(other)
        return float(np.dot(diff, diff))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Vector):
            return NotImplemented
        return self.size == other.size and bool(np.array_equal(self.to_array(), other.to_array()))

    __hash__ = None


class DenseVector(Vector):
    """Vetor denso: todos os valores armazenados."""

    def __init__(self, values: Iterable[Any]):
        try:
            self._values = np.asarray(list(values), dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise VectorFormatError("Valores de vetor inválidos", details={"reason": str(exc)}) from exc
        if self._values.ndim != 1:
            raise VectorFormatError("DenseVector deve ser unidimensional", details={"shape": list(self._values.shape)})
        self.size = int(self._values.shape[0])

    @classmethod
    def parse(cls, text: str) -> "DenseVector":
        match = _DENSE.match(text.strip())
        if match is None:
            raise VectorFormatError("Formato inválido para DenseVector", details={"text": text})
        return cls(float(item) for item in _split(match.group(1)))

    @property
    def values(self) -> np.ndarray:
        return self._values

    def to_array(self) -> np.ndarray:
        return self._values.copy()

    def __getitem__(self, index: int) -> float:
        return float(self._values[index])

    def __str__(self) -> str:
        return "[" + ",".join(_format_value(v) for v in self._values) + "]"

    def __repr__(self) -> str:
        return f"DenseVector({str(self)})"


class SparseVector(Vector):
    """
    Vetor esparso: tamanho explícito, índices ordenados e valores.

    Construção:
        SparseVector(4, {1: 1.0, 3: 5.5})
        SparseVector(4, [[1, 3], [1.0, 5.5]])
        SparseVector(4, [1, 3], [1.0, 5.5])
    """

    def __init__(self, size: int, indices_or_pairs: Any, values: Optional[Sequence[Any]] = None):
        if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 0:
            raise VectorFormatError("Tamanho de SparseVector inválido", details={"size": repr(size)})

        if values is None:
            if isinstance(indices_or_pairs, Mapping):
                pairs = sorted(indices_or_pairs.items())
                indices = [index for index, _ in pairs]
                values = [value for _, value in pairs]
            else:
                try:
                    indices, values = indices_or_pairs
                except (TypeError, ValueError):
                    raise VectorFormatError(
                        "SparseVector espera mapa ou par (índices, valores)",
                        details={"received": repr(indices_or_pairs)},
                    ) from None
        else:
            indices = indices_or_pairs

        self.size = int(size)
        try:
            self._indices = np.asarray(list(indices), dtype=np.int64)
            self._values = np.asarray(list(values), dtype=np.float64)
        except (TypeError, ValueError) as exc:
            raise VectorFormatError("Índices ou valores inválidos", details={"reason": str(exc)}) from exc

        if self._indices.shape != self._values.shape:
            raise VectorFormatError(
                "Índices e valores com tamanhos diferentes",
                details={"indices": len(self._indices), "values": len(self._values)},
            )
        if len(self._indices) and (
            np.any(np.diff(self._indices) <= 0) or self._indices[0] < 0 or self._indices[-1] >= self.size
        ):
            raise VectorFormatError(
                "Índices devem ser estritamente crescentes e menores que o tamanho",
                details={"size": self.size, "indices": self._indices.tolist()},
            )

    @classmethod
    def parse(cls, text: str) -> "SparseVector":
        match = _SPARSE.match(text.strip())
        if match is None:
            raise VectorFormatError("Formato inválido para SparseVector", details={"text": text})
        size = int(match.group(1))
        indices = [int(item) for item in _split(match.group(2))]
        values = [float(item) for item in _split(match.group(3))]
        return cls(size, indices, values)

    @property
    def indices(self) -> np.ndarray:
        return self._indices

    @property
    def values(self) -> np.ndarray:
        return self._values

    def to_array(self) -> np.ndarray:
        array = np.zeros(self.size, dtype=np.float64)
        array[self._indices] = self._values
        return array

    def dot(self, other) -> float:
        dense = self._other_array(other)
        return float(np.dot(self._values, dense[self._indices]))

    def __getitem__(self, index: int) -> float:
        if index < 0:
            index += self.size
        if not 0 <= index < self.size:
            raise IndexError(index)
        position = int(np.searchsorted(self._indices, index))
        if position < len(self._indices) and self._indices[position] == index:
            return float(self._values[position])
        return 0.0

    def __str__(self) -> str:
        indices = ",".join(str(int(i)) for i in self._indices)
        values = ",".join(_format_value(v) for v in self._values)
        return f"({self.size},[{indices}],[{values}])"

    def __repr__(self) -> str:
        return f"SparseVector({str(self)})"
