# symsolver/src/symsolver/config.py
"""Configuration models for the symmetric solver adapter.

This module defines the pydantic-facing option set accepted by
:meth:`symsolver.adapter.SymmetricSolverAdapter.configure` and translates it
into the native :class:`QualityParameters` the adapter mutates while running.

Notes:
    - A host optimization algorithm usually passes its whole option set; this
      model allows and ignores unknown fields (`extra="allow"`).
    - `pivot_tolerance_max` is checked against `pivot_tolerance` only when it
      was given explicitly. Otherwise it is silently raised to
      `pivot_tolerance`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .backend import ICNTL_MAX
from .errors import OptionInvalidError

MAX_MEMORY_RETRIES: Final[int] = 20
"""Default cap on workspace-doubling retries after a memory underestimate."""

# Doubling from 1 reaches the integer control ceiling in 31 steps.
_MEMORY_RETRIES_LIMIT: Final[int] = 64

_PIVTOLMAX_RANGE_MSG: Final[str] = (
    "Option 'pivot_tolerance_max': This value must be between pivot_tolerance "
    "({pivtol}) and 1; got {pivtolmax}."
)


@dataclass(slots=True)
class QualityParameters:
    """Quality controls the adapter carries across factorizations.

    `pivot_tolerance` only moves up, towards `pivot_tolerance_max`.

    Attributes:
        pivot_tolerance: Current relative pivot threshold.
        pivot_tolerance_max: Ceiling for quality escalation.
        memory_growth_percent: Initial backend workspace over-allocation, in
            percent of the backend's own estimate.
        max_memory_retries: Number of workspace-doubling retries allowed after
            the backend reports insufficient memory.
    """

    pivot_tolerance: float = 1e-6
    pivot_tolerance_max: float = 0.1
    memory_growth_percent: int = 1000
    max_memory_retries: int = MAX_MEMORY_RETRIES


class AdapterOptions(BaseModel):
    """Option set recognized by the solver adapter."""

    model_config = ConfigDict(extra="allow", frozen=True)

    pivot_tolerance: float = Field(
        default=1e-6,
        ge=0.0,
        le=1.0,
        description=(
            "Pivot tolerance. A smaller number pivots for sparsity, a larger "
            "number pivots for stability."
        ),
    )

    pivot_tolerance_max: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description=(
            "Maximum pivot tolerance. Quality escalation may raise the pivot "
            "tolerance up to this value."
        ),
    )

    memory_growth_percent: int = Field(
        default=1000,
        ge=0,
        le=ICNTL_MAX,
        description="Percentage increase in the backend's estimated working space",
    )

    warm_start_same_structure: bool = Field(
        default=False,
        description="Reuse the previously analyzed sparsity structure",
    )

    max_memory_retries: int = Field(
        default=MAX_MEMORY_RETRIES,
        ge=0,
        le=_MEMORY_RETRIES_LIMIT,
        description="Workspace-doubling retries after a memory underestimate",
    )

    @model_validator(mode="after")
    def _check_pivot_tolerance_max(self) -> Self:
        if (
            "pivot_tolerance_max" in self.model_fields_set
            and self.pivot_tolerance_max < self.pivot_tolerance
        ):
            raise ValueError(
                _PIVTOLMAX_RANGE_MSG.format(
                    pivtol=self.pivot_tolerance,
                    pivtolmax=self.pivot_tolerance_max,
                )
            )
        return self

    def to_quality_parameters(self) -> QualityParameters:
        """Convert these options to native QualityParameters.

        Returns:
            Fresh QualityParameters with the escalation ceiling clamped to be
            at least the pivot tolerance.
        """
        return QualityParameters(
            pivot_tolerance=self.pivot_tolerance,
            pivot_tolerance_max=max(self.pivot_tolerance_max, self.pivot_tolerance),
            memory_growth_percent=self.memory_growth_percent,
            max_memory_retries=self.max_memory_retries,
        )


def coerce_options(
    options: AdapterOptions | Mapping[str, Any] | None,
) -> AdapterOptions:
    """Normalize user input into an AdapterOptions instance.

    Args:
        options: An AdapterOptions, a mapping of option names to values, or
            None for all defaults.

    Raises:
        OptionInvalidError: If validation of a mapping fails.
        TypeError: If options is of an unsupported type.

    Returns:
        Validated AdapterOptions.
    """
    if options is None:
        return AdapterOptions()
    if isinstance(options, AdapterOptions):
        return options
    if not isinstance(options, Mapping):
        msg = f"options must be AdapterOptions or a mapping; got {type(options)!r}"
        raise TypeError(msg)
    try:
        return AdapterOptions.model_validate(dict(options))
    except ValidationError as exc:
        raise OptionInvalidError(str(exc)) from exc
