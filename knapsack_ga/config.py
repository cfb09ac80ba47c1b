from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class RunConfig(BaseModel):
    """Configuration of a single evolutionary run, validated on construction."""

    tournament_size: int = Field(default=2, ge=1, description="Contestants per parent tournament")
    population_size: int = Field(default=1000, ge=1)
    max_generations: int = Field(default=1000, ge=0)
    mutation: Literal["one_over_length"] = "one_over_length"
    crossover: Literal["uniform"] = "uniform"
    parallel_evaluation: bool = Field(
        default=True, description="Score the population on all workers given by n_jobs"
    )
    parallel_breeding: bool = False
    n_jobs: int = Field(default=-1, description="joblib worker count, -1 for all cores")
    evaluation_block_size: int = Field(
        default=64, ge=1, description="Genomes scored per evaluation task"
    )
    breeding_batch_size: int = Field(
        default=64,
        ge=1,
        description="Offspring bred per random stream; fixed so results do not depend on n_jobs",
    )
    seed: int | None = Field(default=None, ge=0, description="None draws entropy from the OS")
    report_every: int = Field(
        default=10, ge=1, description="Generations between flushes of buffered progress output"
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("n_jobs")
    @classmethod
    def _nonzero_jobs(cls, v: int) -> int:
        if v == 0:
            raise ValueError("n_jobs cannot be 0")
        return v
