from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from stage_runner.errors import PipelineError


class PipelineContext(Mapping[str, str]):
    """
    Accumulating key/value store of values produced by completed stages.

    Only the pipeline runner writes to it (through :meth:`publish`). Stages get a
    :class:`ContextView` restricted to the keys they declare. Values are never removed, so the
    contents after a failure describe everything produced up to that point.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = {}
        if initial:
            self.publish(initial, producer="<initial>")

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def publish(self, outputs: Mapping[str, str], *, producer: str) -> None:
        for key, value in outputs.items():
            if not isinstance(key, str) or not key.strip():
                raise PipelineError(f"{producer}: output keys must be non-empty strings", stage=producer)
            if not isinstance(value, str):
                raise PipelineError(
                    f"{producer}: output {key!r} must be a string, got {type(value).__name__}",
                    stage=producer,
                )
            if key in self._values:
                raise PipelineError(
                    f"{producer}: output {key!r} was already produced by an earlier stage",
                    stage=producer,
                )
        self._values.update(outputs)

    def view(self, *, required: Iterable[str] = (), optional: Iterable[str] = (), stage: str) -> ContextView:
        required_keys = tuple(required)
        missing = [k for k in required_keys if k not in self._values]
        if missing:
            raise PipelineError(
                f"{stage}: missing required inputs: {', '.join(missing)}",
                stage=stage,
                details={"missing": missing},
            )
        return ContextView(self._values, allowed=frozenset((*required_keys, *optional)), stage=stage)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


class ContextView(Mapping[str, str]):
    """Read-only window onto a :class:`PipelineContext`, scoped to declared keys."""

    def __init__(self, values: Mapping[str, str], *, allowed: frozenset[str], stage: str) -> None:
        self._values = values
        self._allowed = allowed
        self._stage = stage

    def __getitem__(self, key: str) -> str:
        if key not in self._allowed:
            raise KeyError(f"{self._stage}: {key!r} is not a declared input of this stage")
        return self._values[key]

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        # Mapping.get would swallow the undeclared-key KeyError.
        if key not in self._allowed:
            raise KeyError(f"{self._stage}: {key!r} is not a declared input of this stage")
        return self._values.get(key, default)

    def __iter__(self) -> Iterator[str]:
        return (k for k in self._values if k in self._allowed)

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, key: object) -> bool:
        return key in self._allowed and key in self._values
