from __future__ import annotations

from collections.abc import Iterable, Iterator

from .errors import ConfigurationError


class ModelTiers:
    """Model identifiers from most to least capable; fixed at startup."""

    def __init__(self, models: Iterable[str]):
        ordered: list[str] = []
        for model in models:
            model = (model or "").strip()
            if model and model not in ordered:
                ordered.append(model)
        if not ordered:
            raise ConfigurationError("At least one completion model must be configured.")
        self._models = tuple(ordered)

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    @property
    def primary(self) -> str:
        return self._models[0]
