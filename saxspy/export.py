import bz2
import json
import pickle
from pathlib import Path
from typing import Any

import pandas as pd
import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.dataclasses import dataclass
from typing_extensions import Self


@dataclass
class Profile:
    q: list[float] = Field()
    intensity: list[float] = Field()
    reference: list[float] | None = Field(default=None)
    paths: list[str] = Field(default=[])

    @model_validator(mode="after")
    def number_of_elements(self) -> Self:
        if len(self.q) != len(self.intensity):
            raise ValueError(
                f"Number of elements in q ({len(self.q)}) and intensity ({len(self.intensity)}) are not compatible"
            )
        if self.reference is not None and len(self.reference) != len(self.q):
            raise ValueError(
                f"Number of elements in q ({len(self.q)}) and reference ({len(self.reference)}) are not compatible"
            )
        if self.paths and len(self.paths) != len(self.q):
            raise ValueError(
                f"Number of elements in q ({len(self.q)}) and paths ({len(self.paths)}) are not compatible"
            )
        return self


@dataclass
class Gradients:
    derivatives: list[list[list[float]]] = Field(default=[])
    box_derivatives: list[list[list[float]]] = Field(default=[])


class Export(BaseModel):
    source: str = Field(default="saxspy", pattern=r"saxspy")
    profile: Profile | dict = Field(default={})
    gradients: Gradients | dict | None = Field(default=None)
    metadata: dict = Field(default={})

    model_config: ConfigDict = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context: Any) -> None:
        if isinstance(self.profile, dict):
            self.profile = Profile(**self.profile)
        if isinstance(self.gradients, dict):
            self.gradients = Gradients(**self.gradients)

    @classmethod
    def from_result(
        cls, result, reference=None, include_gradients: bool = False, metadata: dict | None = None
    ) -> "Export":
        """Build an export from a :class:`saxspy.simulation.IntensityResult`."""
        profile = Profile(
            q=result.q.tolist(),
            intensity=result.intensity.tolist(),
            reference=None if reference is None else list(map(float, reference)),
            paths=[path.value for path in result.paths],
        )
        gradients = None
        if include_gradients:
            gradients = Gradients(
                derivatives=result.derivatives.tolist(),
                box_derivatives=result.box_derivatives.tolist(),
            )
        return cls(profile=profile, gradients=gradients, metadata=metadata or {})

    def to_frame(self) -> pd.DataFrame:
        data = dict(q=self.profile.q, intensity=self.profile.intensity)
        if self.profile.reference is not None:
            data["reference"] = self.profile.reference
        if self.profile.paths:
            data["path"] = self.profile.paths
        return pd.DataFrame(data)

    def save(self, filename: str | Path) -> None:
        """Write the export; the suffix picks the format."""
        path = Path(filename)
        suffix = path.suffix.lower()
        if suffix == ".csv":
            self.to_frame().to_csv(path, index=False)
            return
        if suffix not in WRITERS:
            raise ValueError(f"Unknown file extension {path.suffix}")
        mode, write = WRITERS[suffix]
        opener = bz2.BZ2File if suffix in (".bz2", ".pbz2") else open
        with opener(path, mode) as handle:
            write(self.model_dump(), handle)


WRITERS = {
    ".json": ("w", lambda data, handle: json.dump(data, handle, indent=4)),
    ".yml": ("w", yaml.safe_dump),
    ".yaml": ("w", yaml.safe_dump),
    ".pkl": ("wb", pickle.dump),
    ".bz2": ("wb", pickle.dump),
    ".pbz2": ("wb", pickle.dump),
}
